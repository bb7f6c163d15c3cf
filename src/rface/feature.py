"""Feature containers held by :class:`rface.treedata.Treedata`.

A feature is either numerical or categorical.  Only the categorical variant
carries the label <-> code tables, so code that needs them has to check the
kind first.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import ClassVar, Dict, Union

import numpy as np

from .datadefs import STR_NAN, strv_to_catv, strv_to_numv


@dataclass
class NumericalFeature:
    name: str
    data: np.ndarray

    is_numerical: ClassVar[bool] = True

    @classmethod
    def from_strings(cls, name: str, raw) -> "NumericalFeature":
        return cls(name, strv_to_numv(raw))

    def n_categories(self) -> int:
        return 0

    def raw_value(self, value: float) -> str:
        if np.isnan(value):
            return STR_NAN
        return format(float(value), "g")

    def renamed(self, name: str) -> "NumericalFeature":
        return replace(self, name=name, data=self.data.copy())


@dataclass
class CategoricalFeature:
    name: str
    data: np.ndarray
    # label -> code and code -> label
    mapping: Dict[str, float] = field(default_factory=dict)
    back_mapping: Dict[float, str] = field(default_factory=dict)

    is_numerical: ClassVar[bool] = False

    @classmethod
    def from_strings(cls, name: str, raw) -> "CategoricalFeature":
        data, mapping, back_mapping = strv_to_catv(raw)
        return cls(name, data, mapping, back_mapping)

    def n_categories(self) -> int:
        return len(self.mapping)

    def categories(self) -> list[str]:
        return [self.back_mapping[code] for code in sorted(self.back_mapping)]

    def raw_value(self, value: float) -> str:
        """Decode one stored code; unknown codes raise ``KeyError``."""
        if np.isnan(value):
            return STR_NAN
        return self.back_mapping[float(value)]

    def renamed(self, name: str) -> "CategoricalFeature":
        return replace(self, name=name, data=self.data.copy(),
                       mapping=dict(self.mapping), back_mapping=dict(self.back_mapping))


Feature = Union[NumericalFeature, CategoricalFeature]


def make_feature(name: str, raw, is_numerical: bool) -> Feature:
    if is_numerical:
        return NumericalFeature.from_strings(name, raw)
    return CategoricalFeature.from_strings(name, raw)
