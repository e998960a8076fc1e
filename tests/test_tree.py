import json
import math

import numpy as np
import pytest

from threat_isolation.errors import InvalidModelState
from threat_isolation.isolation import (
    Internal,
    IsolationTree,
    Leaf,
    average_path_length,
    max_depth_for,
)


def _leaves(node):
    if isinstance(node, Leaf):
        return [node]
    return _leaves(node.left) + _leaves(node.right)


def _depth(node):
    if isinstance(node, Leaf):
        return 0
    return 1 + max(_depth(node.left), _depth(node.right))


def test_average_path_length_small_values():
    assert average_path_length(0) == 0.0
    assert average_path_length(1) == 0.0
    assert average_path_length(2) == pytest.approx(2 * 0.5772156649 - 1.0)
    assert average_path_length(256) == pytest.approx(2 * (math.log(255) + 0.5772156649) - 2 * 255 / 256)


def test_max_depth_is_ceil_log2():
    assert max_depth_for(256) == 8
    assert max_depth_for(100) == 7
    assert max_depth_for(2) == 1


def test_build_respects_depth_limit_and_keeps_every_row():
    rng = np.random.default_rng(0)
    Xs = rng.normal(size=(256, 10))

    tree = IsolationTree(max_depth=8)
    tree.build(Xs, 10, rng)

    assert _depth(tree.root) <= 8
    assert sum(leaf.size for leaf in _leaves(tree.root)) == 256


def test_zero_depth_limit_gives_single_leaf():
    rng = np.random.default_rng(0)
    tree = IsolationTree(max_depth=0)
    tree.build(rng.normal(size=(50, 3)), 3, rng)

    assert tree.root == Leaf(size=50)


def test_single_row_gives_single_leaf():
    rng = np.random.default_rng(0)
    tree = IsolationTree(max_depth=8)
    tree.build(np.ones((1, 4)), 4, rng)

    assert tree.root == Leaf(size=1)


def test_constant_matrix_falls_back_to_leaf():
    rng = np.random.default_rng(0)
    tree = IsolationTree(max_depth=8)
    tree.build(np.full((64, 5), 3.0), 5, rng)

    assert tree.root == Leaf(size=64)


def test_constant_feature_does_not_break_construction():
    rng = np.random.default_rng(1)
    Xs = rng.normal(size=(128, 4))
    Xs[:, 2] = 7.0

    for _ in range(20):
        tree = IsolationTree(max_depth=7)
        tree.build(Xs, 4, rng)
        assert sum(leaf.size for leaf in _leaves(tree.root)) == 128


def test_path_length_follows_splits():
    tree = IsolationTree(max_depth=2)
    tree.root = Internal(
        feature_index=0,
        split_point=5.0,
        left=Leaf(size=1),
        right=Internal(feature_index=1, split_point=2.0, left=Leaf(size=3), right=Leaf(size=1)),
    )

    assert tree.path_length([4.0, 0.0]) == 1.0
    assert tree.path_length([5.0, 1.0]) == 2 + average_path_length(3)
    assert tree.path_length([6.0, 2.0]) == 2.0


def test_batch_path_lengths_match_single_sample():
    rng = np.random.default_rng(2)
    Xs = rng.normal(size=(200, 6))
    tree = IsolationTree(max_depth=8)
    tree.build(Xs[:150], 6, rng)

    batch = tree.path_lengths(Xs)
    single = [tree.path_length(row) for row in Xs]

    np.testing.assert_array_equal(batch, single)


def test_outlier_has_shorter_path_on_average():
    rng = np.random.default_rng(3)
    Xs = rng.normal(size=(256, 2))
    outlier = np.array([8.0, 8.0])

    outlier_lengths, inlier_lengths = [], []
    for _ in range(50):
        tree = IsolationTree(max_depth=8)
        tree.build(Xs, 2, rng)
        outlier_lengths.append(tree.path_length(outlier))
        inlier_lengths.append(tree.path_length(np.zeros(2)))

    assert np.mean(outlier_lengths) < np.mean(inlier_lengths)


def test_serialize_round_trip_through_json():
    rng = np.random.default_rng(4)
    Xs = rng.normal(size=(64, 3))
    tree = IsolationTree(max_depth=6)
    tree.build(Xs, 3, rng)

    restored = IsolationTree.deserialize(json.loads(json.dumps(tree.serialize())))

    assert restored.max_depth == 6
    assert restored.root == tree.root
    for row in Xs:
        assert restored.path_length(row) == tree.path_length(row)


def test_unbuilt_tree_serializes_empty_root():
    state = IsolationTree(max_depth=3).serialize()

    assert state == {"max_depth": 3, "root": None}
    assert IsolationTree.deserialize(state).root is None


@pytest.mark.parametrize("state", [
    {"max_depth": 3, "root": {"type": "branch"}},
    {"max_depth": 3, "root": {"type": "internal", "feature_index": 0, "split_point": 1.0}},
    {"max_depth": 3, "root": ["leaf", 4]},
    {"root": {"type": "leaf", "size": 2}},
])
def test_deserialize_rejects_malformed_state(state):
    with pytest.raises(InvalidModelState):
        IsolationTree.deserialize(state)
