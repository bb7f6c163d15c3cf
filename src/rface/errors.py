"""Exception types raised by rface.

Configuration problems (malformed input, unknown features, bad sampling
parameters) are raised as soon as they are detected.  A split search that
cannot find a valid partition is *not* an error; see
:class:`rface.splitter.SplitResult`.
"""


class RfaceError(Exception):
    """Base class for all errors raised by rface."""


class ConfigurationError(RfaceError, ValueError):
    """Invalid input data or parameters."""


class FeatureNotFoundError(ConfigurationError):
    """A feature name or index does not exist in the feature store."""

    def __init__(self, feature):
        self.feature = feature
        super().__init__(f"feature '{feature}' does not exist")
