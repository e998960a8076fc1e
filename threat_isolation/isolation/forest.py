"""
This module contains the IsolationForest class that implements an ensemble
of isolation trees built on bootstrap subsamples of the training matrix.
"""

from __future__ import annotations

from typing import Any, Sequence

import numpy as np
import numpy.typing as npt
from joblib import Parallel, delayed

from ..errors import InvalidModelState
from .tree import IsolationTree, average_path_length, max_depth_for


def _fit_single_tree(
    seed: int,
    Xs: npt.NDArray[np.floating[Any]],
    subsample_size: int,
    max_depth: int,
) -> IsolationTree:
    """
    Worker function to fit an isolation tree with a given seed.
    This function is designed to be called in parallel using joblib.
    Each worker receives an integer seed to ensure reproducibility.

    Args:
        seed: Random seed for this tree (integer).
        Xs: Training data of shape (n_samples, n_features).
        subsample_size: Number of rows to draw (with replacement) for this tree.
        max_depth: Height limit of the tree.
    Returns:
        Fitted IsolationTree instance.
    """
    rng = np.random.default_rng(seed)

    n_draws = min(subsample_size, Xs.shape[0])
    subsample_indices = rng.integers(0, Xs.shape[0], size=n_draws)

    tree = IsolationTree(max_depth=max_depth)
    tree.build(Xs[subsample_indices], Xs.shape[1], rng)
    return tree


def _score_single_tree(
    tree: IsolationTree,
    Xs: npt.NDArray[np.floating[Any]],
) -> npt.NDArray[np.floating[Any]]:
    """
    Worker function to compute path lengths on a single tree.
    Args:
        tree: Fitted IsolationTree instance.
        Xs: Data samples of shape (n_samples, n_features).
    Returns:
        Path lengths for each sample of shape (n_samples,).
    """
    return tree.path_lengths(Xs)


class IsolationForest:
    """
    Ensemble of Isolation Trees.

    Each tree is trained on a random subsample of the data drawn with replacement,
    and samples are scored by their path length in every tree.

    Attributes:
        ensemble_size: Number of trees in the ensemble.
        subsample_size: Number of rows drawn for each tree.
        max_depth: Height limit of every tree, ceil(log2(subsample_size)).
        n_jobs: Number of parallel jobs to run. -1 means using all processors.
        random_state: Random seed for reproducibility.
        trees: List of fitted IsolationTree instances.
    """
    def __init__(
        self,
        ensemble_size: int = 100,
        subsample_size: int = 256,
        n_jobs: int = 1,
        random_state: int | None = None,
    ) -> None:
        """
        Initialize an IsolationForest.
        Args:
            ensemble_size: Number of isolation trees to create in the ensemble.
            subsample_size: Number of rows drawn for each tree.
            n_jobs: Number of parallel jobs to run for tree building.
                - If 1 (default): sequential execution (no parallelization)
                - If -1: use all available processors
                - If > 1: use specified number of processors
            random_state: Random seed for reproducibility. If None, results will
                vary between runs. If an integer, same seed produces identical forests
                in both sequential (n_jobs=1) and parallel (n_jobs=-1) modes.
        """
        self.ensemble_size = ensemble_size
        self.subsample_size = subsample_size
        self.max_depth = max_depth_for(subsample_size)
        self.n_jobs = n_jobs
        self.random_state = random_state

        self.trees: list[IsolationTree] = []

    @property
    def expected_path_length(self) -> float:
        """c(subsample_size): average path length of a tree grown on subsample_size rows."""
        return average_path_length(self.subsample_size)

    def fit(self, Xs: npt.NDArray[np.floating[Any]]) -> IsolationForest:
        """
        Creates the isolation trees, each built on its own bootstrap subsample.
        The tree list is only assigned once every tree has been built.

        Args:
            Xs: Training data of shape (n_samples, n_features).
        Returns:
            The fitted forest.
        """
        rng = np.random.RandomState(self.random_state)
        MAX_INT = np.iinfo(np.int32).max
        seeds = rng.randint(MAX_INT, size=self.ensemble_size)

        if self.n_jobs == 1:
            trees = [
                _fit_single_tree(int(seed), Xs, self.subsample_size, self.max_depth)
                for seed in seeds
            ]
        else:
            trees_list = Parallel(n_jobs=self.n_jobs, backend="loky")(
                delayed(_fit_single_tree)(int(seed), Xs, self.subsample_size, self.max_depth)
                for seed in seeds
            )
            trees = list(trees_list)  # type: ignore[arg-type]

        self.trees = trees
        return self

    def path_lengths(self, sample: Sequence[float]) -> list[float]:
        """
        Args:
            sample: One feature vector.
        Returns:
            Path length of the sample in every tree, in tree order.
        """
        return [tree.path_length(sample) for tree in self.trees]

    def path_length_matrix(
        self, Xs: npt.NDArray[np.floating[Any]],
    ) -> npt.NDArray[np.floating[Any]]:
        """
        Args:
            Xs: Data samples of shape (n_samples, n_features).
        Returns:
            Path lengths of shape (n_samples, n_trees).
        """
        if self.n_jobs == 1:
            depth_matrix = np.zeros((Xs.shape[0], len(self.trees)))
            for tree_idx, tree in enumerate(self.trees):
                depth_matrix[:, tree_idx] = tree.path_lengths(Xs)
        else:
            depth_results = Parallel(n_jobs=self.n_jobs, backend="loky")(
                delayed(_score_single_tree)(tree, Xs) for tree in self.trees
            )
            depth_matrix = np.column_stack(list(depth_results))

        return depth_matrix

    def mean_path_lengths(
        self, Xs: npt.NDArray[np.floating[Any]],
    ) -> npt.NDArray[np.floating[Any]]:
        """
        Args:
            Xs: Data samples of shape (n_samples, n_features).
        Returns:
            Average path length across all trees for each sample, shape (n_samples,).
        """
        return np.mean(self.path_length_matrix(Xs), axis=1)

    def scores(
        self, Xs: npt.NDArray[np.floating[Any]],
    ) -> npt.NDArray[np.floating[Any]]:
        """
        Closed-form anomaly scores 2^(-E[h(x)] / c(subsample_size)) in [0, 1],
        where higher scores indicate anomalies.
        Args:
            Xs: Data samples of shape (n_samples, n_features).
        Returns:
            Anomaly scores for each sample of shape (n_samples,).
        """
        return 2.0 ** (-self.mean_path_lengths(Xs) / self.expected_path_length)

    def count_nodes(self) -> int:
        """Total number of nodes across the ensemble."""
        return sum(tree.count_nodes() for tree in self.trees)

    def serialize(self) -> dict[str, Any]:
        """Dump of the ensemble configuration and every tree."""
        return {
            "ensemble_size": self.ensemble_size,
            "subsample_size": self.subsample_size,
            "max_depth": self.max_depth,
            "trees": [tree.serialize() for tree in self.trees],
        }

    @classmethod
    def deserialize(cls, data: dict[str, Any], n_jobs: int = 1) -> IsolationForest:
        """
        Args:
            data: Output of serialize().
            n_jobs: Number of parallel jobs for batch scoring of the restored forest.
        Returns:
            Restored IsolationForest producing identical path lengths.
        """
        try:
            forest = cls(
                ensemble_size=int(data["ensemble_size"]),
                subsample_size=int(data["subsample_size"]),
                n_jobs=n_jobs,
            )
            forest.max_depth = int(data["max_depth"])
            trees = [IsolationTree.deserialize(tree_data) for tree_data in data["trees"]]
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidModelState(f"Malformed forest state: {exc}") from exc

        if len(trees) != forest.ensemble_size:
            raise InvalidModelState(
                f"Forest state declares {forest.ensemble_size} trees but contains {len(trees)}"
            )

        forest.trees = trees
        return forest
