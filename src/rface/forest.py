# -*- coding: utf-8 -*-
"""
rface.forest
============

Tree ensembles grown on a :class:`~rface.treedata.Treedata`.

Two modes are supported:

``"RF"``
    Random forest.  Every tree is grown on a bootstrap sample of the samples
    with a real target value; the out-of-bag (OOB) samples of each tree are
    kept for :meth:`StochasticForest.oob_error`.  Predictions average the
    trees (numerical target) or take a majority vote (categorical target).

``"GBT"``
    Gradient boosted trees with squared loss, numerical targets only.  Every
    tree is fit to the current residuals on a subsample drawn without
    replacement; predictions are ``f0 + shrinkage * sum(tree predictions)``.
    The residuals are written into the target feature while growing and the
    original target is restored afterwards, also on failure.

The forest draws all of its randomness (bootstrap samples and candidate
features) from one generator, consumed sequentially.
"""

from __future__ import annotations

import logging

import numpy as np
from sklearn.base import BaseEstimator

from .datadefs import NUM_NAN
from .errors import ConfigurationError
from .options import (GBT_DEFAULT_SHRINKAGE, RF_DEFAULT_IN_BOX_FRACTION, RF_DEFAULT_M_TRY,
                      RF_DEFAULT_N_MAX_LEAVES, RF_DEFAULT_N_TREES, RF_DEFAULT_NODE_SIZE,
                      GBTOptions, RFOptions)
from .tree import RootedTree

logger = logging.getLogger(__name__)

MODES = ("RF", "GBT")


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def _vote(predictions: np.ndarray) -> np.ndarray:
    """Column-wise majority vote over ``(n_trees, n_samples)``; lowest code on ties."""
    out = np.full(predictions.shape[1], NUM_NAN)
    for j in range(predictions.shape[1]):
        col = predictions[:, j]
        col = col[~np.isnan(col)]
        if col.size:
            codes, counts = np.unique(col, return_counts=True)
            out[j] = codes[np.argmax(counts)]
    return out


# -----------------------------------------------------------------------------
# Forest
# -----------------------------------------------------------------------------
class StochasticForest(BaseEstimator):
    """
    Random forest or gradient boosted trees over a feature store.

    Parameters
    ----------
    mode : {"RF", "GBT"}, default="RF"
    n_trees : int, default=1000
    m_try : int, default=0
        Candidate features per node; 0 picks ``floor(0.1 * n_features)``.
    n_max_leaves : int, default=100
    node_size : int, default=3
        Minimum number of samples per branch.
    in_box_fraction : float, default=1.0
        Size of each tree's sample as a fraction of the real target samples.
    sample_with_replacement : bool, default=True
        Ignored in GBT mode, which always samples without replacement.
    use_contrasts : bool, default=False
        Let contrast features compete at every node.
    shrinkage : float, default=0.1
        GBT learning rate.
    random_state : int, numpy.random.Generator or None, default=None
    verbose : int, default=0
        Log every tree at INFO level when positive.
    """

    def __init__(
        self,
        mode: str = "RF",
        n_trees: int = RF_DEFAULT_N_TREES,
        m_try: int = RF_DEFAULT_M_TRY,
        n_max_leaves: int = RF_DEFAULT_N_MAX_LEAVES,
        node_size: int = RF_DEFAULT_NODE_SIZE,
        in_box_fraction: float = RF_DEFAULT_IN_BOX_FRACTION,
        sample_with_replacement: bool = True,
        use_contrasts: bool = False,
        shrinkage: float = GBT_DEFAULT_SHRINKAGE,
        random_state=None,
        verbose: int = 0,
    ):
        self.mode = mode
        self.n_trees = int(n_trees)
        self.m_try = int(m_try)
        self.n_max_leaves = int(n_max_leaves)
        self.node_size = int(node_size)
        self.in_box_fraction = float(in_box_fraction)
        self.sample_with_replacement = bool(sample_with_replacement)
        self.use_contrasts = bool(use_contrasts)
        self.shrinkage = float(shrinkage)
        self.random_state = random_state
        self.verbose = int(verbose)

    @classmethod
    def from_rf_options(cls, options: RFOptions, **kwargs) -> "StochasticForest":
        options.validate()
        return cls(mode="RF", n_trees=options.n_trees, m_try=options.m_try,
                   n_max_leaves=options.n_max_leaves, node_size=options.node_size, **kwargs)

    @classmethod
    def from_gbt_options(cls, options: GBTOptions, **kwargs) -> "StochasticForest":
        options.validate()
        kwargs.setdefault("node_size", RF_DEFAULT_NODE_SIZE)
        return cls(mode="GBT", n_trees=options.n_trees, n_max_leaves=options.n_max_leaves,
                   shrinkage=options.shrinkage, in_box_fraction=options.sub_sample_size,
                   sample_with_replacement=False, **kwargs)

    # ------------------------------------------------------------------
    # Fitting
    # ------------------------------------------------------------------
    def _check_params(self):
        if self.mode not in MODES:
            raise ConfigurationError(f"mode must be one of {MODES}, got {self.mode!r}")
        if self.n_trees < 1:
            raise ConfigurationError("n_trees must be positive")
        if not self.in_box_fraction > 0.0:
            raise ConfigurationError("in_box_fraction must be positive")
        if self.mode == "GBT" and not 0.0 < self.shrinkage <= 1.0:
            raise ConfigurationError("shrinkage must be in (0, 1]")

    def _resolve_target(self, treedata, target) -> int:
        idx = treedata.get_feature_idx(target) if isinstance(target, str) else int(target)
        if not 0 <= idx < treedata.n_features:
            raise ConfigurationError(f"target {target!r} is not a real feature")
        return idx

    def _new_tree(self) -> RootedTree:
        return RootedTree(m_try=self.m_try, n_max_leaves=self.n_max_leaves,
                          node_size=self.node_size, use_contrasts=self.use_contrasts,
                          random_state=self.rng_)

    def fit(self, treedata, target):
        """
        Grow ``n_trees`` trees predicting ``target`` (name or index).

        Returns
        -------
        self
        """
        self._check_params()
        target_idx = self._resolve_target(treedata, target)
        self.target_idx_ = target_idx
        self.target_name_ = treedata.get_feature_name(target_idx)
        self.target_is_numerical_ = treedata.is_feature_numerical(target_idx)
        self.target_categories_ = [] if self.target_is_numerical_ else treedata.categories(target_idx)
        self.n_features_ = treedata.n_features
        self.rng_ = np.random.default_rng(self.random_state)
        self.trees_: list[RootedTree] = []
        self.oob_ics_: list[np.ndarray] = []

        logger.info("growing %d %s trees for target '%s' on %r",
                    self.n_trees, self.mode, self.target_name_, treedata)
        if self.mode == "RF":
            self._fit_rf(treedata)
        else:
            self._fit_gbt(treedata)

        importance = np.zeros(len(treedata))
        for tree in self.trees_:
            importance += tree.importance_
        importance /= len(self.trees_)
        self.feature_importances_ = importance[:self.n_features_]
        self.contrast_importances_ = importance[self.n_features_:]
        return self

    def _log_tree(self, t: int, tree: RootedTree, n_in_box: int):
        level = logging.INFO if self.verbose > 0 else logging.DEBUG
        logger.log(level, "tree %d/%d: %d in-box samples, %d leaves",
                   t + 1, self.n_trees, n_in_box, tree.n_leaves_)

    def _fit_rf(self, treedata):
        for t in range(self.n_trees):
            ics, oob_ics = treedata.bootstrap_from_real_samples(
                self.sample_with_replacement, self.in_box_fraction, self.target_idx_, rng=self.rng_)
            tree = self._new_tree().grow(treedata, self.target_idx_, ics)
            self.trees_.append(tree)
            self.oob_ics_.append(oob_ics)
            self._log_tree(t, tree, ics.size)

    def _fit_gbt(self, treedata):
        if not self.target_is_numerical_:
            raise ConfigurationError("GBT mode supports numerical targets only")
        if self.in_box_fraction > 1.0:
            raise ConfigurationError("GBT in_box_fraction must be at most 1.0")

        original = treedata.feature_data(self.target_idx_)
        real = ~np.isnan(original)
        if not real.any():
            raise ConfigurationError(f"target '{self.target_name_}' has no real values")
        self.f0_ = float(original[real].mean())
        current = np.full(original.shape, self.f0_)
        try:
            for t in range(self.n_trees):
                treedata.replace_feature_data(self.target_idx_, original - current)
                ics, oob_ics = treedata.bootstrap_from_real_samples(
                    False, self.in_box_fraction, self.target_idx_, rng=self.rng_)
                tree = self._new_tree().grow(treedata, self.target_idx_, ics)
                current += self.shrinkage * tree.predict(treedata)
                self.trees_.append(tree)
                self.oob_ics_.append(oob_ics)
                self._log_tree(t, tree, ics.size)
        finally:
            treedata.replace_feature_data(self.target_idx_, original)

    # ------------------------------------------------------------------
    # Prediction
    # ------------------------------------------------------------------
    def _check_fitted(self):
        if not getattr(self, "trees_", None):
            raise ValueError("Model not fitted. Call fit(...) first.")

    def _combine(self, predictions: np.ndarray) -> np.ndarray:
        if self.mode == "GBT":
            return self.f0_ + self.shrinkage * predictions.sum(axis=0)
        if self.target_is_numerical_:
            out = np.full(predictions.shape[1], NUM_NAN)
            has = ~np.isnan(predictions).all(axis=0)
            out[has] = np.nanmean(predictions[:, has], axis=0)
            return out
        return _vote(predictions)

    def predict(self, treedata, sample_ics=None) -> np.ndarray:
        """
        Predict the target for ``sample_ics`` (all samples by default).

        Categorical targets are returned as category codes; see
        :meth:`predict_raw` for labels.
        """
        self._check_fitted()
        if sample_ics is None:
            sample_ics = np.arange(treedata.n_samples)
        predictions = np.vstack([tree.predict(treedata, sample_ics) for tree in self.trees_])
        return self._combine(predictions)

    def predict_raw(self, treedata, sample_ics=None) -> list[str]:
        """Predictions as strings: category labels or ``%g`` formatted numbers."""
        pred = self.predict(treedata, sample_ics)
        if self.target_is_numerical_:
            return ["NA" if np.isnan(p) else f"{p:g}" for p in pred]
        return ["NA" if np.isnan(p) else self.target_categories_[int(p)] for p in pred]

    def oob_error(self, treedata) -> float:
        """
        Out-of-bag error of an RF model.

        Each sample is predicted by the trees it was out of bag for.  Returns
        the mean squared error (numerical target) or the misclassification
        rate (categorical target) over the samples with at least one such
        tree; ``NaN`` when there are none.
        """
        self._check_fitted()
        if self.mode != "RF":
            raise ConfigurationError("OOB error is only defined in RF mode")
        n = treedata.n_samples
        predictions = np.full((len(self.trees_), n), NUM_NAN)
        for t, (tree, oob_ics) in enumerate(zip(self.trees_, self.oob_ics_)):
            if oob_ics.size:
                predictions[t, oob_ics] = tree.predict(treedata, oob_ics)

        combined = self._combine(predictions)
        truth = treedata.feature_data(self.target_idx_)
        mask = ~(np.isnan(combined) | np.isnan(truth))
        if not mask.any():
            return NUM_NAN
        if self.target_is_numerical_:
            return float(np.mean((combined[mask] - truth[mask]) ** 2))
        return float(np.mean(combined[mask] != truth[mask]))
