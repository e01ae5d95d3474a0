"""
Index Oracle - Price Aggregation Module

This module turns per-provider price observations into one index price per
ticker:
- DecimalScaling: Fixed-point conversions between native and working precision
- Ticker: Currency pairs and tickers with validation
- ConversionPath: Hop sequences that synthesize a price from other pairs
- MarketConfig: Market map and conversion path configuration
- PriceStore: Concurrency-safe raw and index price tables
- MedianAggregator: Two-pass median aggregation
- PriceOracle: Cycle orchestrator
- providers: Price provider interface and implementations
"""

from .ConversionPath import (
    INDEX_PROVIDER_NAME,
    IndexPrice,
    NamedProvider,
    Operation,
    Path,
    PathsForTicker,
    PriceSource,
)
from .DecimalScaling import SCALED_DECIMALS, invert_price, scale_down, scale_up
from .errors import (
    CompositionError,
    ConfigError,
    MarketConfigError,
    MissingPriceError,
    OracleError,
    PathValidationError,
    ProviderError,
    ScalingError,
    TickerValidationError,
)
from .MarketConfig import (
    Market,
    MarketMap,
    OracleConfig,
    ProviderConfig,
    dump_config,
    fetch_config,
    load_config,
    parse_config,
)
from .MedianAggregator import AggregationReport, MedianAggregator, compute_median
from .PriceOracle import PriceOracle
from .PriceStore import AggregatedSnapshot, PriceStore
from .Ticker import CurrencyPair, Ticker

__all__ = [
    "AggregatedSnapshot",
    "AggregationReport",
    "CompositionError",
    "ConfigError",
    "CurrencyPair",
    "INDEX_PROVIDER_NAME",
    "IndexPrice",
    "Market",
    "MarketConfigError",
    "MarketMap",
    "MedianAggregator",
    "MissingPriceError",
    "NamedProvider",
    "Operation",
    "OracleConfig",
    "OracleError",
    "Path",
    "PathValidationError",
    "PathsForTicker",
    "PriceOracle",
    "PriceSource",
    "PriceStore",
    "ProviderConfig",
    "ProviderError",
    "SCALED_DECIMALS",
    "ScalingError",
    "Ticker",
    "TickerValidationError",
    "compute_median",
    "dump_config",
    "fetch_config",
    "invert_price",
    "load_config",
    "parse_config",
    "scale_down",
    "scale_up",
]
