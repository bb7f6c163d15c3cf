# rface/__init__.py
"""
rface: feature store and split search for random forests with artificial
contrasts (scikit-learn style).

Exports:
    - Treedata
    - RootedTree
    - StochasticForest
    - find_best_split, SplitResult
    - GeneralOptions, RFOptions, GBTOptions
"""
from .errors import ConfigurationError, FeatureNotFoundError, RfaceError
from .forest import StochasticForest
from .options import GBTOptions, GeneralOptions, RFOptions
from .splitter import SplitResult, find_best_split
from .tree import RootedTree
from .treedata import Treedata

__all__ = [
    "Treedata",
    "RootedTree",
    "StochasticForest",
    "SplitResult",
    "find_best_split",
    "GeneralOptions",
    "RFOptions",
    "GBTOptions",
    "RfaceError",
    "ConfigurationError",
    "FeatureNotFoundError",
]
__version__ = "0.2.0"
