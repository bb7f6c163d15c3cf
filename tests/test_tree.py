import math

import numpy as np
import pytest

from rface import RootedTree, Treedata
from rface.errors import ConfigurationError
from rface.tree import TreeNode, _leaf_prediction, resolve_m_try


def _step_store(missing_first=False):
    """Target jumps from 0 to 10 at x = 20."""
    x = [str(i) for i in range(40)]
    if missing_first:
        x[0] = "NA"
    y = ["0" if i < 20 else "10" for i in range(40)]
    return Treedata([y, x], ["t", "x"], [True, True], random_state=0)


def test_grow_finds_step():
    td = _step_store()
    tree = RootedTree(m_try=1, node_size=2, random_state=0).grow(td, 0, np.arange(40))
    assert not tree.root_.is_leaf
    assert tree.root_.feature_index == 1
    assert tree.root_.threshold == 20.0
    assert tree.n_leaves_ == 2
    assert tree.importance_[1] == pytest.approx(1.0)
    pred = tree.predict(td)
    assert np.array_equal(pred, td.feature_data(0))


def test_leaf_limit_and_node_size():
    td = _step_store()
    tree = RootedTree(m_try=1, n_max_leaves=1, random_state=0).grow(td, 0, np.arange(40))
    assert tree.root_.is_leaf
    assert tree.root_.prediction == pytest.approx(5.0)

    tree = RootedTree(m_try=1, node_size=25, random_state=0).grow(td, 0, np.arange(40))
    assert tree.root_.is_leaf


def test_missing_split_value_stops_at_node():
    td = _step_store(missing_first=True)
    tree = RootedTree(m_try=1, node_size=2, random_state=0).grow(td, 0, np.arange(40))
    assert not tree.root_.is_leaf
    pred = tree.predict(td, [0, 39])
    assert pred[0] == pytest.approx(tree.root_.prediction)
    assert pred[1] == 10.0


def test_categorical_split_and_unseen_category():
    t = ["1", "1", "1", "5", "5", "5"]
    f = ["A", "A", "B", "C", "C", "C"]
    td = Treedata([t, f], ["t", "f"], [True, False], random_state=0)
    tree = RootedTree(m_try=1, node_size=1, random_state=0).grow(td, 0, np.arange(6))
    root = tree.root_
    assert root.split_type == "categorical"
    assert root.split_left | root.split_right == frozenset({0.0, 1.0, 2.0})
    assert root.child_for(7.0) is None
    assert root.child_for(float("nan")) is None
    assert tree.predict(td).tolist() == [1.0, 1.0, 1.0, 5.0, 5.0, 5.0]


def test_categorical_target_leaf_is_mode():
    assert _leaf_prediction(np.array([1.0, 0.0, 1.0, 0.0]), numerical=False) == 0.0
    assert _leaf_prediction(np.array([2.0, 2.0, 1.0]), numerical=False) == 2.0
    assert _leaf_prediction(np.array([1.0, 2.0]), numerical=True) == 1.5
    assert math.isnan(_leaf_prediction(np.array([]), numerical=True))


def test_resolve_m_try():
    assert resolve_m_try(0, 5) == 1
    assert resolve_m_try(0, 50) == 5
    assert resolve_m_try(10, 3) == 3


def test_child_for_numeric():
    node = TreeNode(is_leaf=False)
    node.split_type = "numeric"
    node.threshold = 2.0
    node.children = {"left": TreeNode(), "right": TreeNode()}
    assert node.child_for(1.5) is node.children["left"]
    assert node.child_for(2.0) is node.children["right"]


def test_contrasts_compete_when_enabled():
    td = _step_store()
    tree = RootedTree(m_try=1, node_size=2, use_contrasts=True, random_state=0)
    tree.grow(td, 0, np.arange(40))
    assert tree.importance_.shape == (4,)
    assert tree.root_.feature_index in (1, 3)


def test_invalid_target():
    td = _step_store()
    with pytest.raises(ConfigurationError):
        RootedTree().grow(td, 2, np.arange(40))


def test_not_grown():
    with pytest.raises(ValueError):
        RootedTree().predict(_step_store())


def test_rules_and_print(capsys):
    td = _step_store()
    tree = RootedTree(m_try=1, node_size=2, random_state=0).grow(td, 0, np.arange(40))
    rules = tree.export_rules()
    assert rules == ["x < 20 => value=0 (N=20)", "x >= 20 => value=10 (N=20)"]
    tree.print_tree()
    out = capsys.readouterr().out
    assert "if x < 20:" in out
    assert "Predict 10 (N=20)" in out


def test_graphviz_export():
    pytest.importorskip("graphviz")
    td = _step_store()
    tree = RootedTree(m_try=1, node_size=2, random_state=0).grow(td, 0, np.arange(40))
    source = tree.export_graphviz()
    assert "x < 20" in source
