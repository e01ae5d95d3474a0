"""PriceOracle: Cycle orchestrator for index price aggregation.

Architecture:
    - One provider instance per configured source name
    - Every cycle resets the raw tables, then fetches from all providers
      concurrently, each bounded by ``fetch_timeout``
    - Each provider's observations are converted to integers at the ticker's
      native decimals, inverted and normalized by the previous index price of
      ``normalize_by_pair`` where configured, and written as that provider's
      whole table
    - The aggregator runs once all providers are done; its output is stored as
      the index prices the next cycle's conversion paths may reference
    - A failing provider logs a warning and contributes nothing this cycle
"""

from __future__ import annotations

import asyncio
import logging

from .DecimalScaling import (
    format_price,
    invert_price,
    multiply_scaled,
    scale_down,
    scale_up,
    to_native_price,
)
from .errors import MissingPriceError, ProviderError, ScalingError
from .MarketConfig import OracleConfig, ProviderConfig
from .MedianAggregator import AggregationReport, MedianAggregator
from .PriceStore import AggregatedPriceTable, PriceStore
from .providers import BaseProvider, ProviderPrice, get_available_providers, get_provider
from .Ticker import Ticker

logger = logging.getLogger(__name__)


class PriceOracle:
    """Runs fetch → aggregate → store cycles.

    :ivar config: Validated market configuration.
    :ivar store: Shared price store.
    :ivar aggregator: Median aggregator bound to ``store``.
    :ivar providers: Provider name → provider instance.
    :ivar fetch_period: Seconds between cycles.
    :ivar fetch_timeout: Per-provider fetch timeout in seconds.
    """

    def __init__(
        self,
        config: OracleConfig,
        sources: list[str] | None = None,
        providers: dict[str, BaseProvider] | None = None,
        provider_options: dict[str, dict] | None = None,
        store: PriceStore | None = None,
        fetch_period: float = 60,
        fetch_timeout: float = 10.0,
    ) -> None:
        """Initialize the oracle.

        :param config: Market configuration; validated by the aggregator.
        :param sources: Registered provider names to instantiate.
        :param providers: Ready provider instances keyed by name; these take
            precedence over ``sources`` entries of the same name.
        :param provider_options: Per-source constructor options.
        :param store: Price store (a new one is created if omitted).
        :param fetch_period: Seconds between cycles (minimum: 1, default: 60).
        :param fetch_timeout: Per-provider fetch timeout (default: 10.0).
        :raises ValueError: If a source is unknown or no provider is given.
        :raises ConfigError: If the configuration is invalid.
        """
        self.store = store if store is not None else PriceStore()
        self.aggregator = MedianAggregator(config, self.store)
        self.fetch_period = max(1, fetch_period)
        self.fetch_timeout = fetch_timeout

        sources = sources or []
        provider_options = provider_options or {}
        self.providers: dict[str, BaseProvider] = dict(providers or {})

        available = get_available_providers()
        invalid = [s for s in sources if s not in available and s not in self.providers]
        if invalid:
            raise ValueError(f"Unknown sources: {invalid}. Available: {available}")

        for source in sources:
            if source not in self.providers:
                self.providers[source] = get_provider(
                    source, **provider_options.get(source, {})
                )

        if not self.providers:
            raise ValueError("At least one price source must be specified")

        logger.info(
            f"PriceOracle initialized: sources={sorted(self.providers)}, "
            f"markets={len(config.market_map.markets)}, "
            f"fetch_period={self.fetch_period}s, fetch_timeout={self.fetch_timeout}s"
        )

    @property
    def config(self) -> OracleConfig:
        return self.aggregator.config

    def update_config(self, config: OracleConfig) -> None:
        """Validate and swap the configuration used from the next cycle on."""
        self.aggregator.update_config(config)

    def markets_for(self, source: str) -> dict[Ticker, ProviderConfig]:
        """Return the enabled markets ``source`` is configured to quote.

        A validated market lists each provider at most once.

        :param source: Provider name.
        :returns: Ticker → that provider's config for the market.
        """
        markets: dict[Ticker, ProviderConfig] = {}
        for market in self.config.market_map.markets.values():
            if not market.ticker.enabled:
                continue
            for cfg in market.provider_configs:
                if cfg.name == source:
                    markets[market.ticker] = cfg
                    break
        return markets

    async def fetch_all(self) -> dict[str, dict[Ticker, int]]:
        """Fetch from every provider concurrently and store the results.

        :returns: Source → ticker → native price, as stored.
        """
        names = list(self.providers)
        tasks = [self._fetch_source(name) for name in names]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        tables: dict[str, dict[Ticker, int]] = {}
        for name, result in zip(names, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning(f"[{name}] Fetch failed: {result}")
                result = {}
            tables[name] = result
            self.store.set_provider_data(name, result)
        return tables

    async def _fetch_source(self, source: str) -> dict[Ticker, int]:
        """Fetch one provider and convert its prices to native integers."""
        markets = self.markets_for(source)
        if not markets:
            logger.debug(f"[{source}] No markets configured")
            return {}

        provider = self.providers[source]
        try:
            observed = await asyncio.wait_for(
                provider.fetch_prices(markets),
                timeout=self.fetch_timeout,
            )
        except asyncio.TimeoutError as e:
            raise ProviderError(f"timeout after {self.fetch_timeout}s") from e

        prices: dict[Ticker, int] = {}
        index = self.store.get_aggregated_data()
        tickers = self.config.tickers()
        for ticker, value in (observed or {}).items():
            cfg = markets.get(ticker)
            if cfg is None:
                logger.debug(f"[{source}] Ignoring unrequested ticker {ticker}")
                continue
            native = self._to_native(source, ticker, cfg, value, index, tickers)
            if native is not None:
                prices[ticker] = native

        logger.debug(f"[{source}] {len(prices)}/{len(markets)} prices observed")
        return prices

    def _to_native(
        self,
        source: str,
        ticker: Ticker,
        cfg: ProviderConfig,
        value: ProviderPrice,
        index: AggregatedPriceTable,
        tickers: dict[str, Ticker],
    ) -> int | None:
        """Convert one observation to the market's quote at native decimals.

        Inverted quotes are inverted first. A quote normalized by another pair
        is multiplied by that pair's latest index price; without one the
        observation is discarded.
        """
        try:
            price = to_native_price(value, ticker.decimals)
            if cfg.invert:
                price = invert_price(price, ticker.decimals)
            if cfg.normalize_by_pair is not None:
                price = self._normalize(ticker, cfg, price, index, tickers)
        except (ScalingError, MissingPriceError) as e:
            logger.warning(f"[{source}] Discarding price {value!r} for {ticker}: {e}")
            return None
        return price

    @staticmethod
    def _normalize(
        ticker: Ticker,
        cfg: ProviderConfig,
        price: int,
        index: AggregatedPriceTable,
        tickers: dict[str, Ticker],
    ) -> int:
        key = str(cfg.normalize_by_pair)
        normalize_ticker = tickers.get(key)
        normalize_price = index.get(normalize_ticker) if normalize_ticker else None
        if normalize_price is None:
            raise MissingPriceError(f"no index price for {key}")

        scaled = multiply_scaled(
            scale_up(ticker.decimals, price),
            scale_up(normalize_ticker.decimals, normalize_price),
        )
        return scale_down(ticker.decimals, scaled)

    async def run_cycle(self) -> AggregationReport:
        """Run one cycle: reset, fetch all, aggregate, store index prices."""
        self.store.reset_provider_data()
        await self.fetch_all()
        return self.aggregator.aggregate_and_store()

    async def run(self, cycles: int | None = None) -> None:
        """Run cycles every ``fetch_period`` seconds.

        :param cycles: Number of cycles to run; forever if None.
        """
        count = 0
        while cycles is None or count < cycles:
            report = await self.run_cycle()
            count += 1
            for ticker in sorted(report.prices, key=str):
                logger.info(f"{ticker}: {format_price(report.prices[ticker], ticker.decimals)}")

            if cycles is not None and count >= cycles:
                break
            await asyncio.sleep(self.fetch_period)
