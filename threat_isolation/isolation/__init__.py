"""Isolation Forest implementation for anomaly detection.

This package provides randomized isolation trees and the ensemble that
builds them on bootstrap subsamples of a training matrix.
"""

from .forest import IsolationForest
from .tree import Internal, IsolationTree, Leaf, average_path_length, max_depth_for

__all__ = [
    "Internal",
    "IsolationTree",
    "Leaf",
    "IsolationForest",
    "average_path_length",
    "max_depth_for",
]
