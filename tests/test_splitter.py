import math

import numpy as np
import pytest

from rface import Treedata, find_best_split
from rface.datadefs import squared_error
from rface.splitter import (categorical_feature_split, feature_split,
                            numerical_feature_split)


def _store(target, feature, target_numerical=True, feature_numerical=True):
    """Return a store with the target at index 0 and the split feature at index 1."""
    raw = [[str(v) for v in target], [str(v) for v in feature]]
    return Treedata(raw, ["t", "f"], [target_numerical, feature_numerical], random_state=0)


def _outlier_store():
    return _store([1, 1, 2, 2, 2, 3, 10], [1, 2, 2, 3, 3, 3, 8])


def test_numerical_split_on_outlier_data():
    td = _outlier_store()
    res = numerical_feature_split(td, 0, 1, 2, np.arange(7))
    assert res.found
    assert res.fitness > 0
    assert res.split_value == 3.0
    assert res.left_ics.tolist() == [0, 1, 2]
    assert sorted(res.right_ics.tolist()) == [3, 4, 5, 6]
    assert 6 in res.right_ics
    assert res.n == 7


def test_sum_of_branch_errors_does_not_exceed_total():
    td = _outlier_store()
    res = numerical_feature_split(td, 0, 1, 2, np.arange(7))
    t = td.feature_data(0)
    se_tot = squared_error(t)
    se_split = squared_error(t[res.left_ics]) + squared_error(t[res.right_ics])
    assert se_split <= se_tot
    assert res.fitness == pytest.approx((se_tot - se_split) / se_tot)


def test_split_search_is_idempotent():
    td = _outlier_store()
    ics = np.arange(7)
    a = numerical_feature_split(td, 0, 1, 2, ics)
    b = numerical_feature_split(td, 0, 1, 2, ics)
    assert a.fitness == b.fitness
    assert np.array_equal(a.left_ics, b.left_ics)
    assert np.array_equal(a.right_ics, b.right_ics)
    assert ics.tolist() == list(range(7))


@pytest.mark.parametrize("m", [1, 2, 3])
def test_branch_size_invariant(m):
    rng = np.random.default_rng(1)
    t = rng.normal(size=30).round(3)
    f = rng.integers(0, 8, size=30)
    td = _store(t, f)
    res = feature_split(td, 0, 1, m, np.arange(30))
    if res.found:
        assert len(res.left_ics) >= m and len(res.right_ics) >= m
        assert len(res.left_ics) + len(res.right_ics) == res.n
        left_values = td.feature_data(1, res.left_ics)
        right_values = td.feature_data(1, res.right_ics)
        assert left_values.max() < res.split_value <= right_values.min()


def test_missing_values_are_excluded():
    td = _store([1, 2, 3, 4], [1, "NA", 3, 4])
    res = numerical_feature_split(td, 0, 1, 1, np.arange(4))
    assert res.n == 3
    assert res.found
    assert 1 not in res.left_ics and 1 not in res.right_ics
    assert len(res.left_ics) + len(res.right_ics) == 3


def test_too_few_samples_is_not_a_split():
    td = _store([1, 2, 3], [1, 2, 3])
    res = numerical_feature_split(td, 0, 1, 2, np.arange(3))
    assert not res.found
    assert math.isnan(res.fitness)
    assert res.left_ics.size == 0


def test_constant_target_is_not_a_split():
    td = _store([5, 5, 5, 5], [1, 2, 3, 4])
    assert not numerical_feature_split(td, 0, 1, 1, np.arange(4)).found


def test_constant_feature_is_not_a_split():
    td = _store([1, 2, 3, 4], [7, 7, 7, 7])
    assert not numerical_feature_split(td, 0, 1, 1, np.arange(4)).found


def test_numerical_feature_against_categorical_target():
    td = _store(["a", "a", "a", "b", "b", "b"], [1, 2, 3, 4, 5, 6], target_numerical=False)
    res = numerical_feature_split(td, 0, 1, 1, np.arange(6))
    assert res.fitness == pytest.approx(1.0)
    assert res.split_value == 4.0
    assert res.left_ics.tolist() == [0, 1, 2]


def test_categorical_feature_perfect_separation():
    td = _store([0, 0, 1, 1, 1, 1], ["A", "A", "B", "B", "C", "C"], feature_numerical=False)
    res = categorical_feature_split(td, 0, 1, 1, np.arange(6))
    assert res.fitness == pytest.approx(1.0)
    assert res.split_left == frozenset({0.0})
    assert res.split_right == frozenset({1.0, 2.0})
    assert res.left_ics.tolist() == [0, 1]
    assert res.right_ics.tolist() == [2, 3, 4, 5]


def test_categorical_feature_against_categorical_target():
    td = _store(["x", "y", "x", "y", "y", "x"], ["A", "B", "A", "C", "B", "A"],
                target_numerical=False, feature_numerical=False)
    res = categorical_feature_split(td, 0, 1, 1, np.arange(6))
    assert res.fitness == pytest.approx(1.0)
    assert res.split_left == frozenset({0.0})
    assert sorted(res.right_ics.tolist()) == [1, 3, 4]


def test_categorical_branch_size_invalidates():
    td = _store([0, 1, 1, 1], ["A", "B", "B", "B"], feature_numerical=False)
    assert not categorical_feature_split(td, 0, 1, 2, np.arange(4)).found


def test_single_category_is_not_a_split():
    td = _store([0, 1, 2, 3], ["A", "A", "A", "A"], feature_numerical=False)
    assert not categorical_feature_split(td, 0, 1, 1, np.arange(4)).found


def test_find_best_split_prefers_higher_fitness():
    t = [0, 0, 0, 1, 1, 1]
    raw = [[str(v) for v in t], ["1", "2", "3", "4", "5", "6"], ["3", "1", "4", "1", "5", "9"]]
    td = Treedata(raw, ["t", "good", "noise"], [True, True, True], random_state=0)
    res = find_best_split(td, 0, [2, 1], 1, np.arange(6))
    assert res.feature_idx == 1
    assert res.fitness == pytest.approx(1.0)


def test_find_best_split_without_candidates():
    td = _outlier_store()
    assert not find_best_split(td, 0, [], 1, np.arange(7)).found


def test_categorical_greedy_picks_best_move():
    # moving A (code 0) already improves, moving B (code 1) is perfect
    td = _store([5, 5, 0, 0, 5, 5], ["A", "A", "B", "B", "C", "C"], feature_numerical=False)
    res = categorical_feature_split(td, 0, 1, 1, np.arange(6))
    assert res.split_left == frozenset({1.0})
    assert res.split_right == frozenset({0.0, 2.0})
    assert res.fitness == pytest.approx(1.0)
    assert res.left_ics.tolist() == [2, 3]


def test_categorical_greedy_commits_several_moves():
    # A moves first (se 108), then C (se 1); moving B or D afterwards only hurts
    t = [0, 0, 10, 10, 1, 1, 10, 10]
    f = ["A", "A", "B", "B", "C", "C", "D", "D"]
    td = _store(t, f, feature_numerical=False)
    res = categorical_feature_split(td, 0, 1, 1, np.arange(8))
    assert res.split_left == frozenset({0.0, 2.0})
    assert res.split_right == frozenset({1.0, 3.0})
    # se_tot = 181.5, se_best = 1
    assert res.fitness == pytest.approx(180.5 / 181.5)
    assert res.left_ics.tolist() == [0, 1, 4, 5]
    assert res.right_ics.tolist() == [2, 3, 6, 7]
