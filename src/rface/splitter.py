# -*- coding: utf-8 -*-
"""
rface.splitter
==============

Best binary split of a sample subset on one candidate feature.

The criterion depends on the *target*:

* numerical target: sum of squared errors (SSE).  Fitness is
  ``(se_tot - se_best) / se_tot``.
* categorical target: sum of squared class frequencies.  With ``n`` samples,
  total squared frequency ``sf_tot`` and ``nsf = sf_left / n_left +
  sf_right / n_right`` the fitness is
  ``(n * nsf_best - sf_tot) / (n**2 - sf_tot)``.

Both fitness values lie in ``[0, 1]``; higher is better.

The partition searched depends on the *split feature*:

* numerical feature: an ordered threshold.  Samples are sorted by feature
  value and every boundary between two distinct values is scored using
  prefix statistics (left) and a right-to-left running update (right).
  The returned ``split_value`` is the smallest feature value of the right
  branch, i.e. ``left = value < split_value``.
* categorical feature: a subset of categories.  Starting with all categories
  on the right, the category whose move to the left improves fitness the most
  is moved, and this repeats until no move helps or one category is left on
  the right.  This is a greedy forward selection, not an exhaustive subset
  search.  Categories are tried in ascending code order and only strict
  improvements are accepted, so ties go to the lowest code.

Only samples where both the target and the split feature are non-missing take
part.  When no partition satisfies the minimum branch size or improves on the
unsplit node, the result has ``fitness = NaN``; this is an ordinary outcome
(the caller makes a leaf), not an error.  Split searches keep no state between
calls and never modify their inputs.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional

import numpy as np

from .datadefs import (NUM_NAN, decrement_squared_error, decrement_squared_frequency,
                       increment_squared_error, increment_squared_frequency, map_data,
                       squared_error)

logger = logging.getLogger(__name__)


def _empty_ics() -> np.ndarray:
    return np.empty(0, dtype=np.intp)


@dataclass
class SplitResult:
    """
    Outcome of one split search.

    Attributes
    ----------
    fitness : float
        Normalized impurity reduction in ``[0, 1]``; ``NaN`` when no valid
        split exists.
    feature_idx : int or None
        Split feature.
    is_numerical : bool
        Whether the split feature is numerical (threshold split) or
        categorical (category subset split).
    split_value : float or None
        Threshold of a numerical split; left holds values ``< split_value``.
    split_left, split_right : frozenset of float
        Category codes sent left/right by a categorical split.
    left_ics, right_ics : ndarray of int
        Sample indices of the two branches.  Empty when no split was found.
    n : int
        Number of samples where target and feature were both non-missing.
    """

    fitness: float = NUM_NAN
    feature_idx: Optional[int] = None
    is_numerical: bool = True
    split_value: Optional[float] = None
    split_left: FrozenSet[float] = frozenset()
    split_right: FrozenSet[float] = frozenset()
    left_ics: np.ndarray = field(default_factory=_empty_ics)
    right_ics: np.ndarray = field(default_factory=_empty_ics)
    n: int = 0

    @property
    def found(self) -> bool:
        return not math.isnan(self.fitness)


# -----------------------------------------------------------------------------
# Fitness
# -----------------------------------------------------------------------------
def numerical_split_fitness(se_tot: float, se_best: float) -> float:
    return (se_tot - se_best) / se_tot


def categorical_split_fitness(sf_tot: float, nsf_best: float, n_tot: int) -> float:
    return (-1.0 * sf_tot + 1.0 * n_tot * nsf_best) / (1.0 * n_tot * n_tot - 1.0 * sf_tot)


# -----------------------------------------------------------------------------
# Threshold scans over sorted data
# -----------------------------------------------------------------------------
def _squared_error_scan(tv: list, fv: list, min_samples: int) -> tuple[Optional[int], float]:
    """Return ``(first index of the right branch, fitness)`` or ``(None, NaN)``."""
    n_tot = len(tv)

    # se_left[i] is the SSE of tv[0..i]
    se_left = [0.0] * n_tot
    mu, se = tv[0], 0.0
    for i in range(1, n_tot):
        mu, se = increment_squared_error(tv[i], i + 1, mu, se)
        se_left[i] = se

    se_tot = se_left[-1]
    if se_tot <= 0.0:
        return None, NUM_NAN
    se_best = se_tot
    best_idx = None

    n_right, mu_right, se_right = 0, 0.0, 0.0
    for i in range(n_tot - 1, min_samples - 1, -1):
        n_right += 1
        mu_right, se_right = increment_squared_error(tv[i], n_right, mu_right, se_right)
        if n_right < min_samples or fv[i - 1] == fv[i]:
            continue
        se_split = se_left[i - 1] + se_right
        if se_split < se_best:
            best_idx, se_best = i, se_split

    if best_idx is None:
        return None, NUM_NAN
    return best_idx, numerical_split_fitness(se_tot, se_best)


def _squared_frequency_scan(tv: list, fv: list, min_samples: int) -> tuple[Optional[int], float]:
    """Categorical-target counterpart of :func:`_squared_error_scan`."""
    n_tot = len(tv)

    # sf_left[i] is the squared frequency sum of tv[0..i]
    sf_left = [0] * n_tot
    freq_left: dict = {}
    sf = 0
    for i in range(n_tot):
        sf = increment_squared_frequency(tv[i], freq_left, sf)
        sf_left[i] = sf

    sf_tot = sf_left[-1]
    # best normalized squared frequency, kept as an exact fraction num / den
    best_num, best_den = sf_tot, n_tot
    best_idx = None

    freq_right: dict = {}
    n_right, sf_right = 0, 0
    for i in range(n_tot - 1, min_samples - 1, -1):
        n_right += 1
        sf_right = increment_squared_frequency(tv[i], freq_right, sf_right)
        if n_right < min_samples or fv[i - 1] == fv[i]:
            continue
        n_left = i
        num = n_right * sf_left[i - 1] + n_left * sf_right
        den = n_left * n_right
        if num * best_den > best_num * den:
            best_idx, best_num, best_den = i, num, den

    if best_idx is None:
        return None, NUM_NAN
    return best_idx, categorical_split_fitness(sf_tot, best_num / best_den, n_tot)


def numerical_feature_split(treedata, target_idx: int, feature_idx: int, min_samples: int,
                            sample_ics) -> SplitResult:
    """
    Best threshold split of ``sample_ics`` on a numerical feature.

    Parameters
    ----------
    treedata : Treedata
        Feature store.
    target_idx : int
        Target feature; its kind selects the impurity measure.
    feature_idx : int
        Numerical split feature.
    min_samples : int
        Minimum number of samples in each branch (values below 1 act as 1).
    sample_ics : array-like of int
        Samples at the node.  Not modified.

    Returns
    -------
    SplitResult
        ``left_ics`` and ``right_ics`` are in ascending feature-value order.
    """
    min_samples = max(int(min_samples), 1)
    tv, fv, ics = treedata.filtered_and_sorted(target_idx, feature_idx, sample_ics)
    n_tot = int(tv.size)
    no_split = SplitResult(feature_idx=feature_idx, is_numerical=True, n=n_tot)
    if n_tot < 2 * min_samples:
        return no_split

    if treedata.is_feature_numerical(target_idx):
        best_idx, fitness = _squared_error_scan(tv.tolist(), fv.tolist(), min_samples)
    else:
        best_idx, fitness = _squared_frequency_scan(tv.tolist(), fv.tolist(), min_samples)
    if best_idx is None:
        return no_split

    return SplitResult(fitness=fitness, feature_idx=feature_idx, is_numerical=True,
                       split_value=float(fv[best_idx]),
                       left_ics=ics[:best_idx].copy(), right_ics=ics[best_idx:].copy(),
                       n=n_tot)


# -----------------------------------------------------------------------------
# Greedy category selection
# -----------------------------------------------------------------------------
def _move_squared_error(tv: list, positions: list, state: tuple) -> tuple:
    n_left, mu_left, se_left, n_right, mu_right, se_right = state
    for p in positions:
        x = tv[p]
        n_left += 1
        mu_left, se_left = increment_squared_error(x, n_left, mu_left, se_left)
        n_right -= 1
        mu_right, se_right = decrement_squared_error(x, n_right, mu_right, se_right)
    return n_left, mu_left, se_left, n_right, mu_right, se_right


def _greedy_squared_error(tv: list, catmap: dict) -> tuple[list, float]:
    """Return ``(codes moved left, fitness)`` for a numerical target."""
    n_tot = len(tv)
    mu_tot = sum(tv) / n_tot
    se_tot = squared_error(tv, mu_tot)
    if se_tot <= 0.0:
        return [], NUM_NAN

    state = (0, 0.0, 0.0, n_tot, mu_tot, se_tot)
    se_best = se_tot
    right = dict(catmap)
    left: list = []

    while len(right) > 1:
        best_code, best_state = None, None
        for code, positions in right.items():
            trial = _move_squared_error(tv, positions, state)
            se_split = trial[2] + trial[5]
            if se_split < se_best:
                best_code, best_state, se_best = code, trial, se_split
        if best_code is None:
            break
        state = best_state
        left.append(best_code)
        del right[best_code]

    if not left:
        return [], NUM_NAN
    return left, numerical_split_fitness(se_tot, se_best)


def _greedy_squared_frequency(tv: list, catmap: dict) -> tuple[list, float]:
    """Return ``(codes moved left, fitness)`` for a categorical target."""
    n_tot = len(tv)
    freq_left: dict = {}
    freq_right: dict = {}
    sf_left, sf_right = 0, 0
    for x in tv:
        sf_right = increment_squared_frequency(x, freq_right, sf_right)
    sf_tot = sf_right
    n_left, n_right = 0, n_tot

    best_num, best_den = sf_tot, n_tot
    right = dict(catmap)
    left: list = []

    def move(positions, src, dst, sf_src, sf_dst):
        for p in positions:
            sf_dst = increment_squared_frequency(tv[p], dst, sf_dst)
            sf_src = decrement_squared_frequency(tv[p], src, sf_src)
        return sf_src, sf_dst

    while len(right) > 1:
        best_code = None
        for code, positions in right.items():
            k = len(positions)
            sf_right, sf_left = move(positions, freq_right, freq_left, sf_right, sf_left)
            num = (n_right - k) * sf_left + (n_left + k) * sf_right
            den = (n_left + k) * (n_right - k)
            if num * best_den > best_num * den:
                best_code, best_num, best_den = code, num, den
            sf_left, sf_right = move(positions, freq_left, freq_right, sf_left, sf_right)
        if best_code is None:
            break
        positions = right.pop(best_code)
        sf_right, sf_left = move(positions, freq_right, freq_left, sf_right, sf_left)
        n_left += len(positions)
        n_right -= len(positions)
        left.append(best_code)

    if not left:
        return [], NUM_NAN
    return left, categorical_split_fitness(sf_tot, best_num / best_den, n_tot)


def categorical_feature_split(treedata, target_idx: int, feature_idx: int, min_samples: int,
                              sample_ics) -> SplitResult:
    """
    Best category-subset split of ``sample_ics`` on a categorical feature.

    Parameters are as for :func:`numerical_feature_split`.  Branch sample
    indices are grouped by ascending category code, preserving the input
    order within a category.
    """
    min_samples = max(int(min_samples), 1)
    tv, fv, ics = treedata.filtered_pair(target_idx, feature_idx, sample_ics)
    n_tot = int(tv.size)
    no_split = SplitResult(feature_idx=feature_idx, is_numerical=False, n=n_tot)
    if n_tot < 2 * min_samples:
        return no_split

    catmap = map_data(fv)
    if len(catmap) < 2:
        return no_split

    if treedata.is_feature_numerical(target_idx):
        left_codes, fitness = _greedy_squared_error(tv.tolist(), catmap)
    else:
        left_codes, fitness = _greedy_squared_frequency(tv.tolist(), catmap)
    if not left_codes:
        return no_split

    left_set = frozenset(left_codes)
    right_codes = [c for c in catmap if c not in left_set]
    left_pos = [p for c in sorted(left_set) for p in catmap[c]]
    right_pos = [p for c in right_codes for p in catmap[c]]
    if len(left_pos) < min_samples or len(right_pos) < min_samples:
        return no_split

    return SplitResult(fitness=fitness, feature_idx=feature_idx, is_numerical=False,
                       split_left=left_set, split_right=frozenset(right_codes),
                       left_ics=ics[np.asarray(left_pos, dtype=np.intp)],
                       right_ics=ics[np.asarray(right_pos, dtype=np.intp)],
                       n=n_tot)


# -----------------------------------------------------------------------------
# Dispatch
# -----------------------------------------------------------------------------
def feature_split(treedata, target_idx: int, feature_idx: int, min_samples: int,
                  sample_ics) -> SplitResult:
    """Split on ``feature_idx`` with the search matching its kind."""
    if treedata.is_feature_numerical(feature_idx):
        return numerical_feature_split(treedata, target_idx, feature_idx, min_samples, sample_ics)
    return categorical_feature_split(treedata, target_idx, feature_idx, min_samples, sample_ics)


def find_best_split(treedata, target_idx: int, feature_ics: Iterable[int], min_samples: int,
                    sample_ics) -> SplitResult:
    """
    Best split over several candidate features.

    The highest fitness wins; on equal fitness the earlier candidate is kept.
    Returns a result with ``fitness = NaN`` if no candidate can split.
    """
    best = SplitResult()
    for feature_idx in feature_ics:
        result = feature_split(treedata, target_idx, feature_idx, min_samples, sample_ics)
        if result.found and (not best.found or result.fitness > best.fitness):
            best = result
    if best.found:
        logger.debug("best split on feature %d: fitness=%.4g, %d | %d samples",
                     best.feature_idx, best.fitness, best.left_ics.size, best.right_ics.size)
    return best
