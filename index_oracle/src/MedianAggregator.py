"""MedianAggregator: Two-pass median aggregation with path composition.

Algorithm:
    1. Snapshot raw provider prices and the previous cycle's index prices
    2. Pass 1: per ticker, median across every provider that observed it,
       scaled up to the working precision
    3. Pass 2: per ticker with conversion paths, compose one candidate per
       path (hops multiplied at working precision, inverted where flagged)
       and take the median of the candidates that could be computed
    4. Merge: the composed median wins; otherwise the raw median is used
    5. Scale every price back down to the ticker's native decimals

A path whose hop has no observation is dropped for this cycle only; it never
aborts the cycle. A ticker with no price this cycle is absent from the result,
never zero.

.. code-block:: python

    >>> store = PriceStore()
    >>> aggregator = MedianAggregator(config, store)
    >>> store.set_provider_data("binance", {btc_usdt: 70_000 * 10**8})
    >>> store.set_aggregated_data({usdt_usd: 1_100_000})
    >>> aggregator.aggregate()[btc_usd]
    7700000000000
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Iterable

from .ConversionPath import IndexPrice, NamedProvider, Operation, Path
from .DecimalScaling import invert_price, multiply_scaled, scale_down, scale_up
from .errors import CompositionError, MissingPriceError, ScalingError
from .MarketConfig import OracleConfig
from .PriceStore import AggregatedPriceTable, PriceStore, RawPriceTable
from .Ticker import CurrencyPair, Ticker

logger = logging.getLogger(__name__)


def compute_median(values: Iterable[int]) -> int | None:
    """Return the median of integer prices.

    The middle element for an odd count; the mean of the two middle elements
    (floor division) for an even count.

    :param values: Integer prices.
    :returns: Median, or None if there are no values.

    .. code-block:: python

        >>> compute_median([3, 1, 2])
        2
        >>> compute_median([100, 200])
        150
    """
    ordered = sorted(values)
    if not ordered:
        return None

    middle = len(ordered) // 2
    if len(ordered) % 2 == 1:
        return ordered[middle]
    return (ordered[middle - 1] + ordered[middle]) // 2


@dataclass
class DroppedPath:
    """A path that produced no candidate this cycle.

    :ivar route: Rendered route of the path.
    :ivar reason: Why no candidate was produced.
    """

    route: str
    reason: str


@dataclass
class AggregationReport:
    """Result of one aggregation cycle.

    :ivar prices: Final prices at native decimals; the consumer's output.
    :ivar raw_medians: Pass 1 medians at native decimals.
    :ivar composed: Pass 2 medians at native decimals.
    :ivar candidate_counts: Number of successful path candidates per ticker.
    :ivar dropped: Paths that produced no candidate, per ticker.
    """

    prices: dict[Ticker, int] = field(default_factory=dict)
    raw_medians: dict[Ticker, int] = field(default_factory=dict)
    composed: dict[Ticker, int] = field(default_factory=dict)
    candidate_counts: dict[Ticker, int] = field(default_factory=dict)
    dropped: dict[Ticker, list[DroppedPath]] = field(default_factory=dict)

    @property
    def fallbacks(self) -> list[Ticker]:
        """Tickers with paths that fell back to their raw median."""
        return [
            t for t, count in self.candidate_counts.items()
            if count == 0 and t in self.prices
        ]


class MedianAggregator:
    """Aggregates provider prices into one median price per ticker.

    :ivar store: Injected price store shared with the providers.
    """

    def __init__(self, config: OracleConfig, store: PriceStore) -> None:
        """Initialize the aggregator.

        :param config: Market configuration; validated here.
        :param store: Price store the providers write into.
        :raises ConfigError: If the configuration is invalid.
        """
        config.validate()
        self.store = store
        self._lock = threading.Lock()
        self._config = config
        self._tickers = config.tickers()

    @property
    def config(self) -> OracleConfig:
        with self._lock:
            return self._config

    def update_config(self, config: OracleConfig) -> None:
        """Validate and atomically replace the configuration.

        :raises ConfigError: If the new configuration is invalid; the current
            configuration is kept.
        """
        config.validate()
        with self._lock:
            self._config = config
            self._tickers = config.tickers()
        logger.info(
            f"Market config updated: {len(config.market_map.markets)} markets, "
            f"{len(config.paths)} conversion targets"
        )

    def aggregate(self) -> dict[Ticker, int]:
        """Run one aggregation pass and return ticker → native price."""
        return self.aggregate_with_report().prices

    def aggregate_and_store(self) -> AggregationReport:
        """Aggregate and store the result as the next cycle's index prices."""
        report = self.aggregate_with_report()
        self.store.set_aggregated_data(report.prices)
        return report

    def aggregate_with_report(self) -> AggregationReport:
        """Run one aggregation pass.

        :returns: AggregationReport with the final prices and diagnostics.
        """
        with self._lock:
            config = self._config
            tickers = self._tickers

        raw, index = self.store.snapshot()
        report = AggregationReport()

        # Pass 1: median across providers, at working precision.
        medians = self.calculate_raw_medians(raw, tickers)
        for ticker, price in medians.items():
            report.raw_medians[ticker] = scale_down(ticker.decimals, price)

        # Pass 2: compose conversion paths.
        for key, entry in config.paths.items():
            ticker = tickers.get(key, entry.ticker)
            candidates: list[int] = []
            dropped: list[DroppedPath] = []

            for path in entry.paths:
                try:
                    candidates.append(
                        self.compose_path(path, raw, medians, index, tickers)
                    )
                except (MissingPriceError, ScalingError) as e:
                    logger.debug(f"[{ticker}] dropping path {path.show_route()}: {e}")
                    dropped.append(DroppedPath(path.show_route(), str(e)))
                except CompositionError as e:
                    logger.error(f"[{ticker}] cannot compose path {path.show_route()}: {e}")
                    dropped.append(DroppedPath(path.show_route(), str(e)))

            report.candidate_counts[ticker] = len(candidates)
            if dropped:
                report.dropped[ticker] = dropped

            median = compute_median(candidates)
            if median is None:
                logger.debug(f"[{ticker}] no conversion path produced a price")
                continue

            report.composed[ticker] = scale_down(ticker.decimals, median)
            logger.debug(
                f"[{ticker}] composed median {median} from {len(candidates)} "
                f"of {len(entry.paths)} paths"
            )

        # Merge: a composed price overrides the raw median. A ticker whose
        # paths all failed keeps its raw median.
        for ticker in {**report.raw_medians, **report.composed}:
            if not ticker.enabled:
                continue
            if ticker in report.composed:
                report.prices[ticker] = report.composed[ticker]
            else:
                report.prices[ticker] = report.raw_medians[ticker]

        missing = sorted(
            key for key, t in tickers.items() if t.enabled and t not in report.prices
        )
        logger.info(
            f"Aggregated {len(report.prices)} prices "
            f"({len(report.composed)} composed, {len(report.fallbacks)} raw fallbacks)"
        )
        if missing:
            logger.info(f"No price this cycle for: {', '.join(missing)}")

        return report

    def calculate_raw_medians(
        self,
        raw: RawPriceTable,
        tickers: dict[str, Ticker] | None = None,
    ) -> dict[Ticker, int]:
        """Pass 1: median of every ticker's provider observations.

        :param raw: Source → ticker → native price.
        :param tickers: Configured tickers; their decimals take precedence
            over those of the keys in ``raw``.
        :returns: Ticker → median price at working precision.
        """
        if tickers is None:
            tickers = self._tickers

        observations: dict[Ticker, list[int]] = {}
        for source in sorted(raw):
            for key, price in raw[source].items():
                if price is None:
                    continue
                ticker = tickers.get(str(key), key)
                observations.setdefault(ticker, []).append(price)

        medians: dict[Ticker, int] = {}
        for ticker, prices in observations.items():
            median = compute_median(prices)
            if median is None:
                continue
            try:
                medians[ticker] = scale_up(ticker.decimals, median)
            except ScalingError as e:
                logger.warning(f"[{ticker}] cannot scale raw median: {e}")
        return medians

    def get_hop_price(
        self,
        operation: Operation,
        raw: RawPriceTable,
        medians: dict[Ticker, int],
        index: AggregatedPriceTable,
        tickers: dict[str, Ticker] | None = None,
    ) -> int:
        """Look up the (uninverted) working-precision price of a hop.

        ``NamedProvider`` hops read that provider's raw observation.
        ``IndexPrice`` hops read this cycle's raw median, falling back to the
        previous cycle's index price.

        :raises MissingPriceError: If no observation is available.
        """
        if tickers is None:
            tickers = self._tickers

        ticker = self._ticker_for(operation.currency_pair, tickers)
        source = operation.source

        if isinstance(source, NamedProvider):
            price = raw.get(source.name, {}).get(ticker)
            if price is None:
                raise MissingPriceError(f"missing {source.name} price for {ticker}")
            return scale_up(ticker.decimals, price)

        if isinstance(source, IndexPrice):
            if ticker in medians:
                return medians[ticker]
            price = index.get(ticker)
            if price is None:
                raise MissingPriceError(f"missing index price for {ticker}")
            return scale_up(ticker.decimals, price)

        raise CompositionError(f"unknown price source {source!r}")

    def compose_path(
        self,
        path: Path,
        raw: RawPriceTable,
        medians: dict[Ticker, int],
        index: AggregatedPriceTable,
        tickers: dict[str, Ticker] | None = None,
    ) -> int:
        """Compose one candidate price along a path, at working precision.

        A hop priced at exactly zero yields a zero candidate without further
        multiplication or inversion.

        :raises CompositionError: If the path has no operations.
        :raises MissingPriceError: If a hop has no observation.
        """
        if not path.operations:
            raise CompositionError("cannot compose a path with no operations")

        running: int | None = None
        for operation in path.operations:
            price = self.get_hop_price(operation, raw, medians, index, tickers)
            if price == 0:
                return 0
            if operation.invert:
                price = invert_price(price)
            running = price if running is None else multiply_scaled(running, price)

        return running

    @staticmethod
    def _ticker_for(pair: CurrencyPair, tickers: dict[str, Ticker]) -> Ticker:
        ticker = tickers.get(str(pair))
        if ticker is None:
            raise CompositionError(f"{pair} is not a configured ticker")
        return ticker
