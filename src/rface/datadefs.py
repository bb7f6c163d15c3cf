# -*- coding: utf-8 -*-
"""
rface.datadefs
==============

Numeric primitives shared by the feature store and the split search.

Missing values are always encoded as ``NaN`` (:data:`NUM_NAN`).  Raw text is
recognised as missing when, after stripping surrounding whitespace and
upper-casing, it belongs to :data:`NAN_STRINGS`::

    "", "NA", "NAN", "N/A", "?", "NULL", "NONE"

The incremental helpers at the bottom of this module implement the running
updates used by the split search: Welford-style mean / squared-error updates
for numerical targets and squared-frequency updates for categorical targets.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence

import numpy as np

from .errors import ConfigurationError

# -----------------------------------------------------------------------------
# Constants
# -----------------------------------------------------------------------------
NUM_NAN: float = float("nan")
STR_NAN: str = "NA"
NUM_INF: float = float("inf")
EPS: float = float(np.finfo(float).eps)

NAN_STRINGS: frozenset[str] = frozenset({"", "NA", "NAN", "N/A", "?", "NULL", "NONE"})


# -----------------------------------------------------------------------------
# String conversion
# -----------------------------------------------------------------------------
def is_nan_str(s: str) -> bool:
    return s.strip().upper() in NAN_STRINGS


def is_nan(value) -> bool:
    return value is None or (isinstance(value, (float, np.floating)) and math.isnan(value))


def str_to_num(s: str) -> float:
    """Parse one numerical cell; recognised missing markers become ``NaN``."""
    if is_nan_str(s):
        return NUM_NAN
    try:
        return float(s)
    except ValueError:
        raise ConfigurationError(f"cannot interpret '{s}' as a number") from None


def strv_to_numv(strvec: Iterable[str]) -> np.ndarray:
    return np.array([str_to_num(s) for s in strvec], dtype=float)


def strv_to_catv(strvec: Iterable[str]) -> tuple[np.ndarray, dict[str, float], dict[float, str]]:
    """
    Encode a column of category labels as numeric codes.

    Codes are assigned ``0.0, 1.0, ...`` in first-seen order.  Missing markers
    are encoded as ``NaN`` and never enter the mapping tables.

    Returns
    -------
    codes : ndarray of float
    mapping : dict
        label -> code
    back_mapping : dict
        code -> label
    """
    mapping: dict[str, float] = {}
    back_mapping: dict[float, str] = {}
    codes = []
    for s in strvec:
        if is_nan_str(s):
            codes.append(NUM_NAN)
            continue
        code = mapping.get(s)
        if code is None:
            code = float(len(mapping))
            mapping[s] = code
            back_mapping[code] = s
        codes.append(code)
    return np.array(codes, dtype=float), mapping, back_mapping


def is_unique(strvec: Sequence[str]) -> bool:
    return len(set(strvec)) == len(strvec)


# -----------------------------------------------------------------------------
# NaN-aware statistics
# -----------------------------------------------------------------------------
def count_real_values(data) -> int:
    data = np.asarray(data, dtype=float)
    return int(np.count_nonzero(~np.isnan(data)))


def mean(data) -> float:
    data = np.asarray(data, dtype=float)
    real = data[~np.isnan(data)]
    if real.size == 0:
        return NUM_NAN
    return float(real.mean())


def squared_error(data, mu: float | None = None) -> float:
    data = np.asarray(data, dtype=float)
    real = data[~np.isnan(data)]
    if real.size == 0:
        return 0.0
    if mu is None:
        mu = float(real.mean())
    return float(((real - mu) ** 2).sum())


def count_freq(data) -> tuple[dict[float, int], int]:
    """Return ``(category -> frequency, number of real values)``."""
    freq: dict[float, int] = {}
    n_real = 0
    for v in np.asarray(data, dtype=float):
        if math.isnan(v):
            continue
        freq[v] = freq.get(v, 0) + 1
        n_real += 1
    return freq, n_real


def map_data(data) -> dict[float, list[int]]:
    """Map every real value to the positions holding it, in ascending value order."""
    datamap: dict[float, list[int]] = {}
    for i, v in enumerate(np.asarray(data, dtype=float)):
        if math.isnan(v):
            continue
        datamap.setdefault(float(v), []).append(i)
    return {k: datamap[k] for k in sorted(datamap)}


def cardinality(data) -> int:
    data = np.asarray(data, dtype=float)
    return int(np.unique(data[~np.isnan(data)]).size)


def gini(data) -> float:
    """Gini index ``1 - sum(p_k^2)`` of a data vector or of a frequency dict."""
    if isinstance(data, dict):
        freq, n = data, sum(data.values())
    else:
        freq, n = count_freq(data)
    if n == 0:
        return 0.0
    return 1.0 - sum(f * f for f in freq.values()) / (n * n)


def pearson_correlation(x, y) -> float:
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    if x.shape != y.shape:
        raise ConfigurationError("pearson_correlation: vectors differ in length")
    keep = ~(np.isnan(x) | np.isnan(y))
    x, y = x[keep], y[keep]
    if x.size < 2:
        return NUM_NAN
    sx, sy = x.std(), y.std()
    if sx == 0.0 or sy == 0.0:
        return NUM_NAN
    return float(((x - x.mean()) * (y - y.mean())).mean() / (sx * sy))


# -----------------------------------------------------------------------------
# Incremental updates
# -----------------------------------------------------------------------------
def increment_squared_error(x: float, n: int, mu: float, se: float) -> tuple[float, float]:
    """
    Add ``x`` to a running (mean, squared error) pair.

    ``n`` is the number of values *after* adding ``x``.
    """
    delta = x - mu
    mu = mu + delta / n
    se = se + delta * (x - mu)
    return mu, se


def decrement_squared_error(x: float, n: int, mu: float, se: float) -> tuple[float, float]:
    """
    Remove ``x`` from a running (mean, squared error) pair.

    ``n`` is the number of values *after* removing ``x``.  Removing the last
    value resets the pair to ``(0.0, 0.0)``.
    """
    if n == 0:
        return 0.0, 0.0
    mu_new = (mu * (n + 1) - x) / n
    se = se - (x - mu_new) * (x - mu)
    # round-off can push an exact zero slightly negative
    return mu_new, max(se, 0.0)


def increment_squared_frequency(x: float, freq: dict[float, int], sf: int) -> int:
    """Count one more ``x`` in ``freq`` (in place) and return the new sum of squared frequencies."""
    f = freq.get(x, 0)
    freq[x] = f + 1
    return sf + 2 * f + 1


def decrement_squared_frequency(x: float, freq: dict[float, int], sf: int) -> int:
    """Count one less ``x`` in ``freq`` (in place) and return the new sum of squared frequencies."""
    f = freq[x] - 1
    if f == 0:
        del freq[x]
    else:
        freq[x] = f
    return sf - 2 * f - 1
