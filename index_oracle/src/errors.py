"""Exception hierarchy for the index price oracle.

Configuration errors are raised once, when a market configuration is loaded
or updated, and reject that configuration as a whole. Per-cycle data errors
(:class:`MissingPriceError`, :class:`ScalingError` on a zero inversion) are
caught by the aggregator and only shrink the candidate set of one ticker.
"""


class OracleError(Exception):
    """Base exception for oracle errors."""

    pass


class ConfigError(OracleError, ValueError):
    """Raised when a market configuration is invalid."""

    pass


class TickerValidationError(ConfigError):
    """Raised when a currency pair or ticker fails validation."""

    pass


class PathValidationError(ConfigError):
    """Raised when a conversion path is empty, disconnected, cyclic or mismatched."""

    pass


class MarketConfigError(ConfigError):
    """Raised when a market, provider config or market map is inconsistent."""

    pass


class ScalingError(OracleError, ArithmeticError):
    """Raised when a price cannot be rescaled or inverted."""

    pass


class MissingPriceError(OracleError, LookupError):
    """Raised when a conversion hop has no observation this cycle."""

    pass


class CompositionError(OracleError):
    """Raised when a path cannot be composed at all (e.g. no operations)."""

    pass


class ProviderError(OracleError):
    """Raised by price providers when a fetch cannot be completed."""

    pass
