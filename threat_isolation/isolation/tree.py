"""
This module contains the node variants and the IsolationTree class that
implement a single randomized isolation tree over network feature vectors.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Sequence, Union

import numpy as np
import numpy.typing as npt

from ..errors import InvalidModelState

EULER_GAMMA = 0.5772156649


def average_path_length(n: int) -> float:
    """
    Expected path length of an unsuccessful search in a binary search tree of n points.
    Used as the correction term for leaves holding more than one training row.
    Args:
        n: Number of points.
    Returns:
        0 for n <= 1, otherwise 2 * (ln(n - 1) + gamma) - 2 * (n - 1) / n.
    """
    if n <= 1:
        return 0.0
    return 2.0 * (math.log(n - 1) + EULER_GAMMA) - 2.0 * (n - 1) / n


def max_depth_for(subsample_size: int) -> int:
    """Height limit of a tree grown on subsample_size rows: ceil(log2(n))."""
    return int(math.ceil(math.log2(subsample_size)))


@dataclass(frozen=True)
class Leaf:
    """
    Terminal node.
    Attributes:
        size: Number of subsample rows that reached this node at build time.
    """
    size: int


@dataclass(frozen=True)
class Internal:
    """
    Split node. Rows with value < split_point go left, the rest go right.
    Attributes:
        feature_index: Index of the feature used for splitting.
        split_point: Threshold value for the split.
        left: Child receiving values below the threshold.
        right: Child receiving values at or above the threshold.
    """
    feature_index: int
    split_point: float
    left: Node
    right: Node


Node = Union[Leaf, Internal]


def _build_node(
    Xs: npt.NDArray[np.floating[Any]],
    depth: int,
    max_depth: int,
    n_features: int,
    rng: np.random.Generator,
) -> Node:
    """
    Recursively partition the subsample using one random split per node.
    Args:
        Xs: Rows that reached this node, shape (n_rows, n_features).
        depth: Depth of the node being built (root is 0).
        max_depth: Depth at which every node becomes a leaf.
        n_features: Number of candidate features.
        rng: Random generator owned by the tree being built.
    Returns:
        The built node.
    """
    n_rows = Xs.shape[0]
    if depth >= max_depth or n_rows <= 1:
        return Leaf(size=n_rows)

    idx_feature = int(rng.integers(n_features))
    column = Xs[:, idx_feature]
    lower = float(column.min())
    upper = float(column.max())

    # constant column: no value separates the rows
    if lower == upper:
        return Leaf(size=n_rows)

    split_threshold = float(rng.uniform(lower, upper))
    mask_lower = column < split_threshold

    return Internal(
        feature_index=idx_feature,
        split_point=split_threshold,
        left=_build_node(Xs[mask_lower], depth + 1, max_depth, n_features, rng),
        right=_build_node(Xs[~mask_lower], depth + 1, max_depth, n_features, rng),
    )


def _path_lengths_batch(
    node: Node,
    Xs: npt.NDArray[np.floating[Any]],
    depth: int,
) -> npt.NDArray[np.floating[Any]]:
    """
    Args:
        node: Node the samples have reached.
        Xs: Data samples of shape (n_samples, n_features).
        depth: Depth of node.
    Returns:
        Path lengths for each sample of shape (n_samples,).
    """
    if isinstance(node, Leaf):
        return np.full(Xs.shape[0], depth + average_path_length(node.size), dtype=np.float64)

    path_lengths = np.zeros(Xs.shape[0], dtype=np.float64)
    mask_lower = Xs[:, node.feature_index] < node.split_point

    if np.any(mask_lower):
        path_lengths[mask_lower] = _path_lengths_batch(node.left, Xs[mask_lower], depth + 1)

    if np.any(~mask_lower):
        path_lengths[~mask_lower] = _path_lengths_batch(node.right, Xs[~mask_lower], depth + 1)

    return path_lengths


def _serialize_node(node: Node) -> dict[str, Any]:
    if isinstance(node, Leaf):
        return {"type": "leaf", "size": node.size}
    return {
        "type": "internal",
        "feature_index": node.feature_index,
        "split_point": node.split_point,
        "left": _serialize_node(node.left),
        "right": _serialize_node(node.right),
    }


def _deserialize_node(data: Any) -> Node:
    if not isinstance(data, dict):
        raise InvalidModelState(f"Tree node must be a mapping, got {type(data).__name__}")

    node_type = data.get("type")
    try:
        if node_type == "leaf":
            return Leaf(size=int(data["size"]))
        if node_type == "internal":
            return Internal(
                feature_index=int(data["feature_index"]),
                split_point=float(data["split_point"]),
                left=_deserialize_node(data["left"]),
                right=_deserialize_node(data["right"]),
            )
    except KeyError as exc:
        raise InvalidModelState(f"Tree node is missing field {exc}") from exc

    raise InvalidModelState(f"Unknown tree node type: {node_type!r}")


class IsolationTree:
    """
    Single randomized isolation tree.
    Built once from a subsample and immutable afterwards.
    Attributes:
        max_depth: Height limit used while building.
        root: Root node of the tree (None before build).
    """

    def __init__(self, max_depth: int) -> None:
        """
        Initialize an IsolationTree.
        Args:
            max_depth: Height limit, normally ceil(log2(subsample_size)).
        """
        self.max_depth = max_depth
        self.root: Node | None = None

    def build(
        self,
        subsample: npt.NDArray[np.floating[Any]],
        n_features: int,
        rng: np.random.Generator,
    ) -> None:
        """
        Builds the tree structure by randomly partitioning the subsample.
        Args:
            subsample: Rows drawn for this tree, shape (n_rows, n_features).
            n_features: Number of features to choose split features from.
            rng: Random generator for feature and threshold draws.
        """
        self.root = _build_node(subsample, 0, self.max_depth, n_features, rng)

    def path_length(self, sample: Sequence[float]) -> float:
        """
        Number of edges from the root to the leaf the sample falls into,
        plus the average path length correction for that leaf.
        Args:
            sample: One feature vector.
        Returns:
            Path length of the sample.
        """
        assert self.root is not None

        node = self.root
        depth = 0
        while isinstance(node, Internal):
            node = node.left if sample[node.feature_index] < node.split_point else node.right
            depth += 1
        return depth + average_path_length(node.size)

    def path_lengths(self, Xs: npt.NDArray[np.floating[Any]]) -> npt.NDArray[np.floating[Any]]:
        """
        Args:
            Xs: Data samples of shape (n_samples, n_features).
        Returns:
            Path lengths for each sample of shape (n_samples,).
        """
        assert self.root is not None

        return _path_lengths_batch(self.root, Xs, 0)

    def serialize(self) -> dict[str, Any]:
        """Depth-first dump of the tree. Split points are kept as exact floats."""
        return {
            "max_depth": self.max_depth,
            "root": None if self.root is None else _serialize_node(self.root),
        }

    @classmethod
    def deserialize(cls, data: dict[str, Any]) -> IsolationTree:
        """
        Args:
            data: Output of serialize().
        Returns:
            Restored IsolationTree with identical structure.
        """
        if not isinstance(data, dict) or "max_depth" not in data:
            raise InvalidModelState("Tree state must be a mapping with a max_depth field")

        tree = cls(max_depth=int(data["max_depth"]))
        if data.get("root") is not None:
            tree.root = _deserialize_node(data["root"])
        return tree

    def count_nodes(self) -> int:
        """Total number of nodes in the tree."""
        stack = [] if self.root is None else [self.root]
        count = 0
        while stack:
            node = stack.pop()
            count += 1
            if isinstance(node, Internal):
                stack.extend((node.left, node.right))
        return count
