# -*- coding: utf-8 -*-
"""
rface.tree
==========

A single decision tree grown on a :class:`~rface.treedata.Treedata` through
the split search in :mod:`rface.splitter`.

At every node ``m_try`` candidate features are drawn at random (plus as many
contrast features when ``use_contrasts`` is set); the candidate with the
highest split fitness wins.  A node becomes a leaf when it holds fewer than
``2 * node_size`` samples with a real target value, when the tree already has
``n_max_leaves`` leaves, or when no candidate yields a valid split.

Leaves predict the mean target (numerical target) or the most frequent
category code, lowest code on ties (categorical target).  A sample whose value
of a split feature is missing, or whose category was never seen at that node,
stops at the node and takes the node's prediction.

The tree also records an impurity-based importance per feature: the sum of
``fitness * n_node / n_root`` over the nodes splitting on it.
"""

from __future__ import annotations

import logging

import numpy as np

from .datadefs import NUM_NAN
from .errors import ConfigurationError
from .splitter import find_best_split

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def _leaf_prediction(values: np.ndarray, numerical: bool) -> float:
    if values.size == 0:
        return NUM_NAN
    if numerical:
        return float(values.mean())
    codes, counts = np.unique(values, return_counts=True)
    return float(codes[np.argmax(counts)])


def resolve_m_try(m_try: int, n_candidates: int) -> int:
    """``m_try = 0`` means ``floor(0.1 * n_candidates)``, at least 1."""
    if m_try <= 0:
        m_try = int(np.floor(0.1 * n_candidates))
    return max(1, min(int(m_try), n_candidates))


# -----------------------------------------------------------------------------
# Node
# -----------------------------------------------------------------------------
class TreeNode:
    """Internal representation of a single node in a decision tree.

    Attributes
    ----------
    is_leaf : bool
        True if this node is terminal.
    feature_index : int or None
        Split feature; ``None`` for leaves.
    split_type : {"numeric", "categorical"} or None
        Kind of split performed at this node.
    threshold : float or None
        Numeric splits send values ``< threshold`` left.
    split_left, split_right : frozenset
        Category codes sent left/right by categorical splits.
    labels_left : tuple of str
        Labels of ``split_left``, for display.
    children : dict
        Mapping ``{"left": TreeNode, "right": TreeNode}`` for internal nodes.
    prediction : float
        Prediction for samples stopping at this node.
    n_samples : int
        Training samples with a real target value at this node.
    fitness : float
        Fitness of the split; ``NaN`` for leaves.
    """

    def __init__(self, *, is_leaf: bool = True):
        self.is_leaf: bool = is_leaf
        self.feature_index: int | None = None
        self.split_type: str | None = None
        self.threshold: float | None = None
        self.split_left: frozenset = frozenset()
        self.split_right: frozenset = frozenset()
        self.labels_left: tuple = ()
        self.children: dict = {}
        self.prediction: float = NUM_NAN
        self.n_samples: int = 0
        self.fitness: float = NUM_NAN

    def child_for(self, value: float) -> "TreeNode | None":
        """Child a value is routed to, or ``None`` if it stops here."""
        if np.isnan(value):
            return None
        if self.split_type == "numeric":
            return self.children["left" if value < self.threshold else "right"]
        if value in self.split_left:
            return self.children["left"]
        if value in self.split_right:
            return self.children["right"]
        return None


# -----------------------------------------------------------------------------
# Tree
# -----------------------------------------------------------------------------
class RootedTree:
    """
    Decision tree grown through the feature store's split search.

    Parameters
    ----------
    m_try : int, default=0
        Number of candidate features drawn per node; 0 picks
        ``floor(0.1 * n_features)`` (at least 1).
    n_max_leaves : int, default=100
        Maximum number of leaves.
    node_size : int, default=3
        Minimum number of samples per branch.
    use_contrasts : bool, default=False
        Also draw ``m_try`` contrast features per node.
    random_state : int, numpy.random.Generator or None, default=None
        Source of the candidate draws.  Pass the run's generator to share it
        sequentially with other consumers.
    """

    def __init__(self, *, m_try: int = 0, n_max_leaves: int = 100, node_size: int = 3,
                 use_contrasts: bool = False, random_state=None):
        self.m_try = int(m_try)
        self.n_max_leaves = int(n_max_leaves)
        self.node_size = int(node_size)
        self.use_contrasts = bool(use_contrasts)
        self.random_state = random_state

        self.root_: TreeNode | None = None
        self.n_leaves_: int = 0
        self.importance_: np.ndarray | None = None

    def grow(self, treedata, target_idx: int, sample_ics) -> "RootedTree":
        """
        Grow the tree on ``sample_ics`` (duplicates allowed).

        Raises
        ------
        ConfigurationError
            If ``target_idx`` is not a real feature or the parameters are
            invalid.
        """
        n = treedata.n_features
        if not 0 <= target_idx < n:
            raise ConfigurationError(f"target index {target_idx} is not a real feature")
        if self.node_size < 1 or self.n_max_leaves < 1:
            raise ConfigurationError("node_size and n_max_leaves must be positive")

        self.rng_ = np.random.default_rng(self.random_state)
        self.target_idx_ = int(target_idx)
        self.target_is_numerical_ = treedata.is_feature_numerical(target_idx)
        self.feature_names_ = treedata.feature_names()

        self.real_pool_ = np.array([i for i in range(n) if i != target_idx], dtype=np.intp)
        self.contrast_pool_ = self.real_pool_ + n
        self.m_try_ = resolve_m_try(self.m_try, max(self.real_pool_.size, 1))

        _, ics = treedata.filtered_feature_data(target_idx, sample_ics)
        self.n_root_ = max(int(ics.size), 1)
        self.n_leaves_ = 1
        self.importance_ = np.zeros(len(treedata), dtype=float)
        self.root_ = self._grow_node(treedata, ics)
        logger.debug("grew tree on %d samples: %d leaves", ics.size, self.n_leaves_)
        return self

    def _draw_candidates(self) -> np.ndarray:
        if self.real_pool_.size == 0:
            return self.real_pool_
        k = min(self.m_try_, self.real_pool_.size)
        picks = self.rng_.choice(self.real_pool_, size=k, replace=False)
        if self.use_contrasts:
            picks = np.concatenate([picks, self.rng_.choice(self.contrast_pool_, size=k, replace=False)])
        return picks

    def _grow_node(self, treedata, sample_ics) -> TreeNode:
        target_values, sample_ics = treedata.filtered_feature_data(self.target_idx_, sample_ics)
        node = TreeNode(is_leaf=True)
        node.prediction = _leaf_prediction(target_values, self.target_is_numerical_)
        node.n_samples = int(sample_ics.size)

        if node.n_samples < 2 * self.node_size or self.n_leaves_ >= self.n_max_leaves:
            return node

        split = find_best_split(treedata, self.target_idx_, self._draw_candidates(),
                                self.node_size, sample_ics)
        if not split.found:
            return node

        self.n_leaves_ += 1
        self.importance_[split.feature_idx] += split.fitness * split.n / self.n_root_

        node.is_leaf = False
        node.feature_index = int(split.feature_idx)
        node.fitness = float(split.fitness)
        if split.is_numerical:
            node.split_type = "numeric"
            node.threshold = split.split_value
        else:
            node.split_type = "categorical"
            node.split_left = split.split_left
            node.split_right = split.split_right
            labels = treedata.categories(split.feature_idx)
            node.labels_left = tuple(labels[int(c)] for c in sorted(split.split_left))
        node.children["left"] = self._grow_node(treedata, split.left_ics)
        node.children["right"] = self._grow_node(treedata, split.right_ics)
        return node

    # ------------------------------------------------------------------
    # Prediction
    # ------------------------------------------------------------------
    def _check_fitted(self):
        if self.root_ is None:
            raise ValueError("Tree not grown. Call grow(...) first.")

    def predict(self, treedata, sample_ics=None) -> np.ndarray:
        """Predictions for ``sample_ics`` (all samples by default)."""
        self._check_fitted()
        if sample_ics is None:
            sample_ics = np.arange(treedata.n_samples)
        sample_ics = np.asarray(sample_ics, dtype=np.intp).reshape(-1)
        columns: dict = {}
        out = np.empty(sample_ics.size, dtype=float)
        for k, s in enumerate(sample_ics):
            node = self.root_
            while not node.is_leaf:
                data = columns.get(node.feature_index)
                if data is None:
                    data = columns[node.feature_index] = treedata.feature_data(node.feature_index)
                child = node.child_for(data[s])
                if child is None:
                    break
                node = child
            out[k] = node.prediction
        return out

    # ------------------------------------------------------------------
    # Rules / printing / Graphviz
    # ------------------------------------------------------------------
    def _name(self, idx: int, fn=None) -> str:
        names = fn if fn is not None else self.feature_names_
        return names[idx] if 0 <= idx < len(names) else f"X[{idx}]"

    @staticmethod
    def _label_set(node: TreeNode) -> str:
        return "{" + ", ".join(node.labels_left) + "}"

    def _format_prediction(self, node: TreeNode) -> str:
        return f"{node.prediction:.6g}"

    def export_rules(self, feature_names=None) -> list[str]:
        """
        Export every root-to-leaf path as ``"<antecedent> => value=<prediction> (N=<n>)"``.
        """
        self._check_fitted()
        rules: list[str] = []
        self._collect_rules(self.root_, [], rules, feature_names)
        return rules

    def _collect_rules(self, node: TreeNode, parts, rules, fn):
        if node.is_leaf:
            body = " AND ".join(parts) if parts else "<root>"
            rules.append(f"{body} => value={self._format_prediction(node)} (N={node.n_samples})")
            return
        name = self._name(node.feature_index, fn)
        if node.split_type == "numeric":
            left = f"{name} < {node.threshold:.6g}"
            right = f"{name} >= {node.threshold:.6g}"
        else:
            left = f"{name} IN {self._label_set(node)}"
            right = f"{name} NOT IN {self._label_set(node)}"
        self._collect_rules(node.children["left"], parts + [left], rules, fn)
        self._collect_rules(node.children["right"], parts + [right], rules, fn)

    def print_tree(self, feature_names=None) -> None:
        """Pretty-print the tree to ``stdout``."""
        self._check_fitted()
        self._print_node(self.root_, "", feature_names)

    def _print_node(self, node: TreeNode, indent="", fn=None):
        if node.is_leaf:
            print(f"{indent}Predict {self._format_prediction(node)} (N={node.n_samples})")
            return
        name = self._name(node.feature_index, fn)
        if node.split_type == "numeric":
            print(f"{indent}if {name} < {node.threshold:.6g}:")
        else:
            print(f"{indent}if {name} in {self._label_set(node)}:")
        self._print_node(node.children["left"], indent + "  ", fn)
        print(f"{indent}else:")
        self._print_node(node.children["right"], indent + "  ", fn)

    def export_graphviz(self, filename: str | None = None, *, feature_names=None,
                        format: str = "png") -> str:
        """
        Export the tree with the optional ``graphviz`` package.

        With ``filename=None`` the DOT source is returned.  ``format='dot'``
        writes the DOT source without calling the external ``dot`` binary;
        other formats fall back to a ``.dot`` file when rendering fails.

        Returns
        -------
        str
            DOT source or the path of the written file.
        """
        self._check_fitted()
        try:
            import graphviz
        except ImportError as e:
            raise RuntimeError("Graphviz is required for export_graphviz but not installed.") from e
        dot = graphviz.Digraph(format=format)
        self._add_graph_nodes(dot, self.root_, "0", feature_names)
        if filename is None:
            return dot.source
        if format.lower() == "dot":
            path = f"{filename}.dot"
            dot.save(path)
            return path
        try:
            dot.render(filename, cleanup=True)
            return f"{filename}.{format}"
        except (graphviz.ExecutableNotFound, graphviz.CalledProcessError):
            fallback_path = f"{filename}.dot"
            dot.save(fallback_path)
            return fallback_path

    def _add_graph_nodes(self, dot, node: TreeNode, name: str, fn):
        if node.is_leaf:
            dot.node(name, f"value={self._format_prediction(node)}\nN={node.n_samples}",
                     shape="box", style="filled", color="lightgrey")
            return
        fname = self._name(node.feature_index, fn)
        if node.split_type == "numeric":
            label = f"{fname} < {node.threshold:.6g}"
        else:
            label = f"{fname} ∈ {self._label_set(node)}"
        dot.node(name, label, shape="ellipse", style="filled", color="lightblue")
        l_id, r_id = name + "L", name + "R"
        self._add_graph_nodes(dot, node.children["left"], l_id, fn)
        self._add_graph_nodes(dot, node.children["right"], r_id, fn)
        dot.edge(name, l_id, label="True")
        dot.edge(name, r_id, label="False")
