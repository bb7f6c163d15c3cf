# -*- coding: utf-8 -*-
"""
rface.treedata
==============

In-memory feature store used by the split search.

A :class:`Treedata` holds ``2 * n`` features built from ``n`` raw columns.
Indices ``[0, n)`` are the real features and ``[n, 2n)`` their *contrasts*:
copies named ``<name>_CONTRAST`` whose non-missing values are randomly
permuted once, at load time.  Contrasts carry no information about any other
feature and serve as a noise baseline for significance testing.

Every feature stores one float per sample; missing values are ``NaN``.
Categorical labels are encoded as codes in first-seen order.

Besides storage the class provides

* bootstrap sampling restricted to the non-missing samples of a feature
  (:meth:`Treedata.bootstrap_from_real_samples`), and
* the projections feeding the split search: jointly non-missing
  (target, feature) pairs, optionally sorted by feature value
  (:meth:`Treedata.filtered_pair`, :meth:`Treedata.filtered_and_sorted`).

The store owns its random generator.  It is consumed sequentially and must
not be shared between concurrent callers; parallel workers should pass their
own generator to :meth:`Treedata.bootstrap_from_real_samples`.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

import numpy as np

from . import datadefs
from .errors import ConfigurationError, FeatureNotFoundError
from .feature import CategoricalFeature, Feature, NumericalFeature, make_feature
from .readers import NO_SAMPLE_ID, read_data
from .options import (GENERAL_DEFAULT_DATA_DELIMITER, GENERAL_DEFAULT_HEADER_DELIMITER,
                      GeneralOptions)

logger = logging.getLogger(__name__)

CONTRAST_SUFFIX = "_CONTRAST"


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def _make_rng(random_state) -> tuple[np.random.Generator, int | None]:
    """Return ``(generator, seed)``; ``seed`` is ``None`` for a caller-supplied generator."""
    if isinstance(random_state, np.random.Generator):
        return random_state, None
    if random_state is None:
        seed = int(np.random.SeedSequence().entropy % (2 ** 32))
    elif isinstance(random_state, (int, np.integer)) and random_state >= 0:
        seed = int(random_state)
    else:
        raise ConfigurationError(f"invalid random_state {random_state!r}")
    return np.random.default_rng(seed), seed


def _as_index_array(sample_ics) -> np.ndarray:
    return np.asarray(sample_ics, dtype=np.intp).reshape(-1)


def _looks_categorical(values: np.ndarray) -> bool:
    if values.dtype.kind in "US":
        return True
    if values.dtype.kind == "O":
        return any(isinstance(v, str) for v in values)
    return False


# -----------------------------------------------------------------------------
# Feature store
# -----------------------------------------------------------------------------
class Treedata:
    """
    Feature store with real/contrast feature pairs.

    Parameters
    ----------
    raw_matrix : sequence of sequences of str
        One sequence of raw cell strings per feature, all of equal length.
    feature_headers : sequence of str
        Unique feature names, one per raw column.
    is_numerical : sequence of bool
        Kind of each feature.  Numerical columns are parsed as floats,
        categorical ones encoded in first-seen order.
    sample_headers : sequence of str, optional
        Sample identifiers.  Defaults to ``NO_SAMPLE_ID`` for every sample.
    random_state : int, numpy.random.Generator or None, default=None
        Seed or generator for contrast permutation and bootstrap sampling.
        ``None`` draws a seed from OS entropy; the seed used is kept in
        :attr:`seed`.

    Raises
    ------
    ConfigurationError
        On duplicate headers, dimension mismatches, unparsable numerical cells
        or an empty feature set.
    """

    def __init__(self, raw_matrix: Sequence[Sequence[str]], feature_headers: Sequence[str],
                 is_numerical: Sequence[bool], sample_headers: Sequence[str] | None = None,
                 random_state=None):
        feature_headers = [str(h) for h in feature_headers]
        n_features = len(feature_headers)
        if n_features == 0:
            raise ConfigurationError("at least one feature is required")
        if len(raw_matrix) != n_features:
            raise ConfigurationError(
                f"{len(raw_matrix)} raw columns but {n_features} feature headers")
        if len(is_numerical) != n_features:
            raise ConfigurationError(
                f"{len(is_numerical)} kind flags but {n_features} feature headers")

        n_samples = len(raw_matrix[0])
        for header, column in zip(feature_headers, raw_matrix):
            if len(column) != n_samples:
                raise ConfigurationError(
                    f"feature '{header}' has {len(column)} samples, expected {n_samples}")

        if sample_headers is None:
            sample_headers = [NO_SAMPLE_ID] * n_samples
        elif len(sample_headers) != n_samples:
            raise ConfigurationError(
                f"{len(sample_headers)} sample headers but {n_samples} samples")
        self._sample_headers = [str(s) for s in sample_headers]

        self._features: list[Feature] = []
        self._name2idx: dict[str, int] = {}
        for i, (header, column, numerical) in enumerate(zip(feature_headers, raw_matrix, is_numerical)):
            if header in self._name2idx:
                raise ConfigurationError(f"duplicate feature header '{header}' found")
            self._name2idx[header] = i
            self._features.append(make_feature(header, column, bool(numerical)))

        # contrasts start as exact copies and are permuted below
        for i in range(n_features):
            contrast = self._features[i].renamed(self._features[i].name + CONTRAST_SUFFIX)
            if contrast.name in self._name2idx:
                raise ConfigurationError(f"duplicate feature header '{contrast.name}' found")
            self._name2idx[contrast.name] = n_features + i
            self._features.append(contrast)

        self.rng, self.seed = _make_rng(random_state)
        self.permute_contrasts()

        logger.info("loaded %d features x %d samples (seed=%s)", n_features, n_samples, self.seed)

    # ------------------------------------------------------------------
    # Alternative constructors
    # ------------------------------------------------------------------
    @classmethod
    def from_file(cls, path, data_delimiter: str = GENERAL_DEFAULT_DATA_DELIMITER,
                  header_delimiter: str = GENERAL_DEFAULT_HEADER_DELIMITER,
                  random_state=None) -> "Treedata":
        """Read an AFM or ARFF file (chosen by suffix) into a new store."""
        raw = read_data(path, data_delimiter, header_delimiter)
        return cls(raw.raw_matrix, raw.feature_headers, raw.is_numerical,
                   sample_headers=raw.sample_headers, random_state=random_state)

    @classmethod
    def from_options(cls, options: GeneralOptions, random_state=None) -> "Treedata":
        """
        Load ``options.input`` and apply the white list, black list and
        feature pruning configured in ``options``.  The target feature is
        never pruned.
        """
        options.validate()
        treedata = cls.from_file(options.input, options.data_delimiter,
                                 options.header_delimiter, random_state=random_state)
        if options.whitelist:
            treedata.whitelist(set(options.whitelist) | {options.target})
        if options.blacklist:
            treedata.blacklist(options.blacklist)
        if options.prune_features > 0:
            treedata.prune_features(options.prune_features, protected=[options.target])
        return treedata

    # ------------------------------------------------------------------
    # Size and naming
    # ------------------------------------------------------------------
    def __len__(self) -> int:
        return len(self._features)

    def __repr__(self) -> str:
        return f"Treedata(n_features={self.n_features}, n_samples={self.n_samples})"

    @property
    def n_features(self) -> int:
        """Number of real features (contrasts excluded)."""
        return len(self._features) // 2

    @property
    def n_samples(self) -> int:
        return len(self._sample_headers)

    def _feature(self, feature_idx: int) -> Feature:
        if not 0 <= feature_idx < len(self._features):
            raise FeatureNotFoundError(feature_idx)
        return self._features[feature_idx]

    def get_feature_idx(self, feature_name: str) -> int:
        try:
            return self._name2idx[feature_name]
        except KeyError:
            raise FeatureNotFoundError(feature_name) from None

    def get_feature_name(self, feature_idx: int) -> str:
        return self._feature(feature_idx).name

    def feature_names(self) -> list[str]:
        return [f.name for f in self._features]

    def get_sample_name(self, sample_idx: int) -> str:
        return self._sample_headers[sample_idx]

    def is_contrast(self, feature_idx: int) -> bool:
        self._feature(feature_idx)
        return feature_idx >= self.n_features

    def contrast_idx(self, feature_idx: int) -> int:
        """Index of the partner of ``feature_idx`` (real <-> contrast)."""
        self._feature(feature_idx)
        n = self.n_features
        return feature_idx + n if feature_idx < n else feature_idx - n

    # ------------------------------------------------------------------
    # Feature kind and categories
    # ------------------------------------------------------------------
    def is_feature_numerical(self, feature_idx: int) -> bool:
        return self._feature(feature_idx).is_numerical

    def n_categories(self, feature_idx: int) -> int:
        return self._feature(feature_idx).n_categories()

    def n_max_categories(self) -> int:
        return max((f.n_categories() for f in self._features[:self.n_features]), default=0)

    def categories(self, feature_idx: int) -> list[str]:
        """Category labels in code order; empty for numerical features."""
        feature = self._feature(feature_idx)
        if feature.is_numerical:
            return []
        return feature.categories()

    # ------------------------------------------------------------------
    # Data access
    # ------------------------------------------------------------------
    def feature_data(self, feature_idx: int, sample_ics=None) -> np.ndarray:
        """Copy of the stored values, optionally restricted to ``sample_ics``."""
        data = self._feature(feature_idx).data
        if sample_ics is None:
            return data.copy()
        return data[_as_index_array(sample_ics)]

    def raw_feature_data(self, feature_idx: int, sample_idx: int | None = None):
        """
        Decode stored values back to strings.

        Returns the label (categorical), the ``%g`` formatted number
        (numerical) or ``STR_NAN`` (missing) for one sample, or a list for
        all samples when ``sample_idx`` is omitted.
        """
        feature = self._feature(feature_idx)
        if sample_idx is None:
            return [self._decode(feature, v) for v in feature.data]
        return self._decode(feature, feature.data[sample_idx])

    @staticmethod
    def _decode(feature: Feature, value: float) -> str:
        try:
            return feature.raw_value(value)
        except KeyError:
            raise ConfigurationError(
                f"unknown code {value!r} for feature '{feature.name}'") from None

    def n_real_samples(self, feature_idx: int, other_idx: int | None = None) -> int:
        """Number of samples that are non-missing in one feature, or jointly in two."""
        real = ~np.isnan(self._feature(feature_idx).data)
        if other_idx is not None:
            real &= ~np.isnan(self._feature(other_idx).data)
        return int(np.count_nonzero(real))

    def pearson_correlation(self, feature_idx1: int, feature_idx2: int) -> float:
        return datadefs.pearson_correlation(self._feature(feature_idx1).data,
                                            self._feature(feature_idx2).data)

    def replace_feature_data(self, feature_idx: int, values) -> None:
        """
        Replace the data of one feature wholesale.

        String data makes the feature categorical with freshly built mapping
        tables; numeric data makes it numerical and drops any tables.  The
        number of samples cannot change.

        Raises
        ------
        ConfigurationError
            If ``values`` does not have one entry per sample.
        """
        old = self._feature(feature_idx)
        values = np.asarray(values)
        if values.ndim != 1 or values.shape[0] != old.data.shape[0]:
            raise ConfigurationError(
                f"data dimension mismatch replacing '{old.name}': "
                f"got {values.shape}, expected ({old.data.shape[0]},)")
        if _looks_categorical(values):
            raw = ["" if datadefs.is_nan(v) else str(v) for v in values]
            self._features[feature_idx] = CategoricalFeature.from_strings(old.name, raw)
        else:
            self._features[feature_idx] = NumericalFeature(old.name, values.astype(float, copy=True))

    # ------------------------------------------------------------------
    # Feature filtering
    # ------------------------------------------------------------------
    def keep_features(self, keep_mask: Sequence[bool]) -> None:
        """
        Keep only the real features flagged in ``keep_mask`` together with
        their contrasts.  Indices are renumbered; the name index is rebuilt.
        """
        keep_mask = [bool(k) for k in keep_mask]
        n = self.n_features
        if len(keep_mask) != n:
            raise ConfigurationError(f"keep mask has {len(keep_mask)} entries, expected {n}")

        real: list[Feature] = []
        contrasts: list[Feature] = []
        for i, keep in enumerate(keep_mask):
            if not keep:
                continue
            feature, contrast = self._features[i], self._features[n + i]
            if contrast.name != feature.name + CONTRAST_SUFFIX:
                raise ConfigurationError(f"feature '{feature.name + CONTRAST_SUFFIX}' does not exist")
            real.append(feature)
            contrasts.append(contrast)

        self._features = real + contrasts
        self._name2idx = {f.name: i for i, f in enumerate(self._features)}
        logger.info("kept %d of %d features", len(real), n)

    def _real_feature_mask(self, names: Iterable[str], value: bool) -> list[bool]:
        mask = [not value] * self.n_features
        for name in names:
            idx = self.get_feature_idx(name)
            if idx >= self.n_features:
                raise ConfigurationError(f"cannot select contrast feature '{name}' directly")
            mask[idx] = value
        return mask

    def whitelist(self, feature_names: Iterable[str]) -> None:
        self.keep_features(self._real_feature_mask(feature_names, True))

    def blacklist(self, feature_names: Iterable[str]) -> None:
        self.keep_features(self._real_feature_mask(feature_names, False))

    def prune_features(self, min_samples: int, protected: Iterable[str] = ()) -> None:
        """Drop real features with fewer than ``min_samples`` non-missing values."""
        protected = set(protected)
        keep = []
        for i in range(self.n_features):
            name = self._features[i].name
            ok = name in protected or self.n_real_samples(i) >= min_samples
            if not ok:
                logger.warning("pruning feature '%s': fewer than %d real samples", name, min_samples)
            keep.append(ok)
        self.keep_features(keep)

    # ------------------------------------------------------------------
    # Randomization
    # ------------------------------------------------------------------
    def permute_contrasts(self) -> None:
        """
        Shuffle the non-missing values of every contrast feature in place.

        Missing positions stay missing.  Called once by the constructor.
        """
        for feature in self._features[self.n_features:]:
            real_ics = np.flatnonzero(~np.isnan(feature.data))
            values = feature.data[real_ics]
            self.rng.shuffle(values)
            feature.data[real_ics] = values

    def bootstrap_from_real_samples(self, with_replacement: bool, sample_size: float,
                                    feature_idx: int, rng: np.random.Generator | None = None
                                    ) -> tuple[np.ndarray, np.ndarray]:
        """
        Draw an in-bag sample among the samples where ``feature_idx`` is real.

        Parameters
        ----------
        with_replacement : bool
            Draw with or without replacement.
        sample_size : float
            Fraction of the real samples to draw; must be positive, and at most
            1.0 when sampling without replacement.
        feature_idx : int
            Feature whose non-missing samples form the population ``R``.
        rng : numpy.random.Generator, optional
            Generator to draw from instead of the store's own.

        Returns
        -------
        ics : ndarray of int
            ``floor(sample_size * |R|)`` sorted in-bag indices (duplicates
            possible when drawing with replacement).
        oob_ics : ndarray of int
            Sorted ``R`` minus ``ics``.
        """
        if not sample_size > 0.0:
            raise ConfigurationError("sample size must be positive")
        if not with_replacement and sample_size > 1.0:
            raise ConfigurationError(
                "when sampling without replacement, sample size must be at most 1.0")
        rng = self.rng if rng is None else rng

        all_ics = np.flatnonzero(~np.isnan(self._feature(feature_idx).data))
        n_real = all_ics.size
        n_draw = int(np.floor(sample_size * n_real))

        if n_draw == 0:
            ics = np.empty(0, dtype=all_ics.dtype)
        elif with_replacement:
            ics = all_ics[rng.integers(0, n_real, size=n_draw)]
        else:
            ics = all_ics[rng.permutation(n_real)[:n_draw]]
        ics = np.sort(ics)

        oob_ics = np.setdiff1d(all_ics, ics, assume_unique=False)
        return ics, oob_ics

    # ------------------------------------------------------------------
    # Projections for the split search
    # ------------------------------------------------------------------
    def filtered_feature_data(self, feature_idx: int, sample_ics) -> tuple[np.ndarray, np.ndarray]:
        """Values of one feature at ``sample_ics`` with missing samples dropped."""
        ics = _as_index_array(sample_ics)
        data = self._feature(feature_idx).data[ics]
        real = ~np.isnan(data)
        return data[real], ics[real]

    def filtered_pair(self, target_idx: int, feature_idx: int, sample_ics
                      ) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Target and feature values at the samples where both are non-missing.

        Returns ``(target_values, feature_values, sample_ics)`` in the input
        order.  The input index sequence is not modified.
        """
        ics = _as_index_array(sample_ics)
        tv = self._feature(target_idx).data[ics]
        fv = self._feature(feature_idx).data[ics]
        real = ~(np.isnan(tv) | np.isnan(fv))
        return tv[real], fv[real], ics[real]

    def filtered_and_sorted(self, target_idx: int, feature_idx: int, sample_ics
                            ) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """As :meth:`filtered_pair`, stably sorted by ascending feature value."""
        tv, fv, ics = self.filtered_pair(target_idx, feature_idx, sample_ics)
        order = np.argsort(fv, kind="mergesort")
        return tv[order], fv[order], ics[order]
