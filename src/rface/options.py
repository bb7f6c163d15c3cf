"""
Run options and their defaults.

The option groups mirror the three parameter families of a training run:
general input handling, random forests (RF) and gradient boosted trees (GBT).
They are plain frozen dataclasses; command-line parsing is left to the caller.

Usage:
    from rface.options import GeneralOptions, RFOptions
    opts = GeneralOptions(input="data.afm", target="N:age")
    opts.validate()
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet

from .errors import ConfigurationError

# ==========================================================================
# Defaults
# ==========================================================================
GENERAL_DEFAULT_DATA_DELIMITER = "\t"
GENERAL_DEFAULT_HEADER_DELIMITER = ":"
GENERAL_DEFAULT_MIN_SAMPLES = 5

RF_DEFAULT_N_TREES = 1000
RF_DEFAULT_M_TRY = 0  # 0 -> estimated from the data
RF_DEFAULT_N_MAX_LEAVES = 100
RF_DEFAULT_NODE_SIZE = 3
RF_DEFAULT_IN_BOX_FRACTION = 1.0

GBT_DEFAULT_N_TREES = 100
GBT_DEFAULT_N_MAX_LEAVES = 6
GBT_DEFAULT_SHRINKAGE = 0.1
GBT_DEFAULT_SUB_SAMPLE_SIZE = 0.5


@dataclass(frozen=True)
class GeneralOptions:
    """Input and data handling options."""

    input: str = ""
    target: str = ""
    whitelist: FrozenSet[str] = field(default_factory=frozenset)
    blacklist: FrozenSet[str] = field(default_factory=frozenset)
    data_delimiter: str = GENERAL_DEFAULT_DATA_DELIMITER
    header_delimiter: str = GENERAL_DEFAULT_HEADER_DELIMITER
    # features with fewer real samples than this are dropped
    prune_features: int = GENERAL_DEFAULT_MIN_SAMPLES

    def validate(self) -> None:
        if not self.input:
            raise ConfigurationError("input file not specified")
        if not self.target:
            raise ConfigurationError("target not specified")
        if len(self.data_delimiter) != 1 or len(self.header_delimiter) != 1:
            raise ConfigurationError("delimiters must be single characters")
        if self.prune_features < 0:
            raise ConfigurationError("prune_features must be non-negative")


@dataclass(frozen=True)
class RFOptions:
    n_trees: int = RF_DEFAULT_N_TREES
    m_try: int = RF_DEFAULT_M_TRY
    n_max_leaves: int = RF_DEFAULT_N_MAX_LEAVES
    node_size: int = RF_DEFAULT_NODE_SIZE

    def validate(self) -> None:
        if self.n_trees < 1:
            raise ConfigurationError("RF n_trees must be positive")
        if self.node_size < 1:
            raise ConfigurationError("RF node_size must be positive")
        if self.n_max_leaves < 1:
            raise ConfigurationError("RF n_max_leaves must be positive")


@dataclass(frozen=True)
class GBTOptions:
    n_trees: int = GBT_DEFAULT_N_TREES
    n_max_leaves: int = GBT_DEFAULT_N_MAX_LEAVES
    shrinkage: float = GBT_DEFAULT_SHRINKAGE
    sub_sample_size: float = GBT_DEFAULT_SUB_SAMPLE_SIZE

    def validate(self) -> None:
        if self.n_trees < 1:
            raise ConfigurationError("GBT n_trees must be positive")
        if self.n_max_leaves < 1:
            raise ConfigurationError("GBT n_max_leaves must be positive")
        if not 0.0 < self.shrinkage <= 1.0:
            raise ConfigurationError("GBT shrinkage must be in (0, 1]")
        if not 0.0 < self.sub_sample_size <= 1.0:
            raise ConfigurationError("GBT sub_sample_size must be in (0, 1]")
