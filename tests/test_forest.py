import numpy as np
import pytest

from threat_isolation.errors import InvalidModelState
from threat_isolation.isolation import IsolationForest, Leaf, average_path_length


@pytest.fixture(scope="module")
def training_matrix():
    rng = np.random.default_rng(11)
    return rng.normal(size=(400, 5))


def test_fit_builds_requested_number_of_trees(training_matrix):
    forest = IsolationForest(ensemble_size=15, subsample_size=64, random_state=0).fit(training_matrix)

    assert len(forest.trees) == 15
    assert forest.max_depth == 6
    assert all(tree.max_depth == 6 for tree in forest.trees)


def test_small_matrix_subsamples_at_most_its_row_count():
    Xs = np.random.default_rng(0).normal(size=(10, 3))
    forest = IsolationForest(ensemble_size=5, subsample_size=256, random_state=0).fit(Xs)

    def leaf_total(node):
        if isinstance(node, Leaf):
            return node.size
        return leaf_total(node.left) + leaf_total(node.right)

    assert forest.max_depth == 8
    assert all(leaf_total(tree.root) == 10 for tree in forest.trees)


def test_same_random_state_gives_same_forest(training_matrix):
    first = IsolationForest(ensemble_size=10, subsample_size=64, random_state=5).fit(training_matrix)
    second = IsolationForest(ensemble_size=10, subsample_size=64, random_state=5).fit(training_matrix)

    assert first.serialize() == second.serialize()


def test_parallel_and_sequential_builds_are_identical(training_matrix):
    sequential = IsolationForest(ensemble_size=8, subsample_size=64, n_jobs=1, random_state=9)
    parallel = IsolationForest(ensemble_size=8, subsample_size=64, n_jobs=2, random_state=9)

    sequential.fit(training_matrix)
    parallel.fit(training_matrix)

    assert sequential.serialize() == parallel.serialize()
    np.testing.assert_array_equal(
        sequential.path_length_matrix(training_matrix[:50]),
        parallel.path_length_matrix(training_matrix[:50]),
    )


def test_path_length_matrix_shape_and_row_means(training_matrix):
    forest = IsolationForest(ensemble_size=12, subsample_size=32, random_state=1).fit(training_matrix)
    matrix = forest.path_length_matrix(training_matrix[:20])

    assert matrix.shape == (20, 12)
    np.testing.assert_allclose(forest.mean_path_lengths(training_matrix[:20]), matrix.mean(axis=1))
    np.testing.assert_array_equal(matrix[3], forest.path_lengths(training_matrix[3]))


def test_closed_form_scores_rank_outliers_higher(training_matrix):
    forest = IsolationForest(ensemble_size=50, subsample_size=128, random_state=2).fit(training_matrix)
    samples = np.vstack([np.zeros(5), np.full(5, 10.0)])

    scores = forest.scores(samples)

    assert forest.expected_path_length == average_path_length(128)
    assert np.all((scores >= 0.0) & (scores <= 1.0))
    assert scores[1] > scores[0]


def test_deserialize_reproduces_path_lengths(training_matrix):
    forest = IsolationForest(ensemble_size=10, subsample_size=64, random_state=4).fit(training_matrix)
    restored = IsolationForest.deserialize(forest.serialize())

    np.testing.assert_array_equal(
        restored.path_length_matrix(training_matrix),
        forest.path_length_matrix(training_matrix),
    )


def test_deserialize_rejects_tree_count_mismatch(training_matrix):
    state = IsolationForest(ensemble_size=3, subsample_size=16, random_state=4).fit(training_matrix).serialize()
    state["trees"] = state["trees"][:2]

    with pytest.raises(InvalidModelState):
        IsolationForest.deserialize(state)


def test_deserialize_rejects_missing_fields():
    with pytest.raises(InvalidModelState):
        IsolationForest.deserialize({"ensemble_size": 1, "trees": []})
