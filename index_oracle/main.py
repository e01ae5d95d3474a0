#!/usr/bin/env python3
"""Index Oracle.

Fetches prices from the configured providers, aggregates them with two-pass
median aggregation (raw medians, then conversion paths) and logs the
resulting index prices every cycle.

Configure via CLI arguments or environment variables.
"""

import argparse
import asyncio
import logging
import os
import sys

from .src.errors import OracleError
from .src.MarketConfig import OracleConfig, fetch_config, load_config
from .src.PriceOracle import PriceOracle
from .src.PriceStore import PriceStore
from .src.providers import StaticProvider, get_available_providers

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def is_url(location: str) -> bool:
    """Return True if ``location`` is an http(s) URL rather than a file path."""
    return location.startswith(("http://", "https://"))


def read_config(location: str, timeout: float = 10.0) -> OracleConfig:
    """Load the market configuration from a file path or an http(s) URL.

    :param location: File path or URL.
    :param timeout: HTTP timeout in seconds.
    :returns: Validated OracleConfig.
    :raises ConfigError: If the configuration cannot be read or is invalid.
    """
    if is_url(location):
        return asyncio.run(fetch_config(location, timeout=timeout))
    return load_config(location)


def build_provider_options(sources: list[str], static_prices: str | None) -> dict[str, dict]:
    """Build per-source constructor options from CLI arguments."""
    options: dict[str, dict] = {}
    if static_prices and StaticProvider.name in sources:
        options[StaticProvider.name] = {"path": static_prices}
    return options


def main() -> None:
    """Main entry point for the Index Oracle CLI."""
    available_sources = get_available_providers()

    parser = argparse.ArgumentParser(
        description="Index Oracle: Median price aggregation with conversion paths",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Available price sources:
  {', '.join(available_sources)}

Examples:
  # Validate a market configuration
  python -m index_oracle.main --config markets.json --validate-only

  # Run three cycles against fixed prices
  python -m index_oracle.main --config markets.json \\
      --sources static-mock-provider --static-prices prices.json --cycles 3

  # Fetch the configuration from an HTTP endpoint
  python -m index_oracle.main --config https://config.example.org/markets.json

Environment variables (CLI args take precedence):
  MARKET_CONFIG, SOURCES, STATIC_PRICES, FETCH_PERIOD, FETCH_TIMEOUT,
  CYCLES, INDEX_HISTORY
""",
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Market configuration JSON file path or http(s) URL",
        default=os.environ.get("MARKET_CONFIG"),
    )

    parser.add_argument(
        "--sources",
        type=str,
        help=f"Comma-separated price sources. Available: {', '.join(available_sources)}",
        default=os.environ.get("SOURCES") or "static-mock-provider",
    )

    parser.add_argument(
        "--static-prices",
        dest="static_prices",
        type=str,
        help="JSON file with prices for the static-mock-provider source",
        default=os.environ.get("STATIC_PRICES"),
    )

    parser.add_argument(
        "--fetch-period",
        dest="fetch_period",
        type=int,
        help="Seconds between cycles (minimum: 1, default: 60)",
        default=int(os.environ.get("FETCH_PERIOD") or "60"),
    )

    parser.add_argument(
        "--fetch-timeout",
        dest="fetch_timeout",
        type=float,
        help="Timeout for each provider fetch in seconds (default: 10.0)",
        default=float(os.environ.get("FETCH_TIMEOUT") or "10.0"),
    )

    parser.add_argument(
        "--cycles",
        type=int,
        help="Number of cycles to run (default: 0, run forever)",
        default=int(os.environ.get("CYCLES") or "0"),
    )

    parser.add_argument(
        "--index-history",
        dest="index_history",
        type=int,
        help=f"Aggregated snapshots to retain (default: {PriceStore.DEFAULT_HISTORY})",
        default=int(os.environ.get("INDEX_HISTORY") or str(PriceStore.DEFAULT_HISTORY)),
    )

    parser.add_argument(
        "--validate-only",
        dest="validate_only",
        action="store_true",
        help="Validate the market configuration and exit",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    args = parser.parse_args()

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # Validate arguments
    if not args.config:
        parser.error("--config (or MARKET_CONFIG) is required")

    if args.fetch_period < 1:
        parser.error("--fetch-period must be at least 1 second")

    if args.cycles < 0:
        parser.error("--cycles must not be negative")

    if args.index_history < 1:
        parser.error("--index-history must be at least 1")

    sources = [s.strip().lower() for s in args.sources.split(",") if s.strip()]
    if not sources:
        parser.error("At least one source must be specified")

    invalid_sources = [s for s in sources if s not in available_sources]
    if invalid_sources:
        parser.error(
            f"Unknown sources: {invalid_sources}. "
            f"Available: {', '.join(available_sources)}"
        )

    try:
        config = read_config(args.config, timeout=args.fetch_timeout)
    except OracleError as e:
        logger.error(f"Invalid market configuration: {e}")
        sys.exit(1)

    if args.validate_only:
        logger.info(
            f"Market configuration is valid: {len(config.market_map.markets)} markets, "
            f"{len(config.paths)} conversion targets"
        )
        return

    # Log configuration
    logger.info("=" * 60)
    logger.info("Index Oracle - Median Aggregation")
    logger.info("=" * 60)
    logger.info(f"Config:            {args.config}")
    logger.info(f"Markets:           {len(config.market_map.markets)}")
    logger.info(f"Conversion Paths:  {len(config.paths)}")
    logger.info(f"Sources:           {', '.join(sources)}")
    logger.info(f"Fetch Period:      {args.fetch_period}s")
    logger.info(f"Fetch Timeout:     {args.fetch_timeout}s")
    logger.info(f"Cycles:            {args.cycles or 'unlimited'}")
    logger.info(f"Index History:     {args.index_history}")
    logger.info("=" * 60)

    try:
        price_oracle = PriceOracle(
            config=config,
            sources=sources,
            provider_options=build_provider_options(sources, args.static_prices),
            store=PriceStore(history=args.index_history),
            fetch_period=args.fetch_period,
            fetch_timeout=args.fetch_timeout,
        )
        asyncio.run(price_oracle.run(cycles=args.cycles or None))
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
