"""PriceStore: Concurrency-safe per-cycle price tables.

The store holds two tables guarded by one lock:

- raw prices: source name → ticker → integer price (native decimals). Each
  provider replaces its whole table every cycle; there is no merge.
- aggregated (index) prices: the output of previous cycles, kept as a small
  ring of versioned snapshots so staleness is visible.

Every getter returns a copy, so callers may not mutate the store through a
returned map.

.. code-block:: python

    >>> store = PriceStore()
    >>> store.set_provider_data("coinbase", {btc_usd: 7_000_000_000_000})
    >>> store.get_data_by_provider("coinbase")[btc_usd]
    7000000000000
    >>> store.reset_provider_data()
    >>> store.get_provider_data()
    {}
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field

from .Ticker import Ticker

logger = logging.getLogger(__name__)

RawPriceTable = dict[str, dict[Ticker, int]]
AggregatedPriceTable = dict[Ticker, int]


@dataclass(frozen=True)
class AggregatedSnapshot:
    """One cycle's aggregated prices.

    :ivar version: Monotonic version, starting at 1.
    :ivar prices: Ticker → price at native decimals.
    :ivar created_at: Unix timestamp when the snapshot was stored.
    """

    version: int
    prices: AggregatedPriceTable = field(default_factory=dict)
    created_at: float = 0.0

    @property
    def age(self) -> float:
        """Seconds since the snapshot was stored."""
        return time.time() - self.created_at


class PriceStore:
    """Thread-safe store for raw provider prices and aggregated index prices.

    :ivar history: Number of aggregated snapshots retained.
    """

    DEFAULT_HISTORY = 8

    def __init__(self, history: int = DEFAULT_HISTORY) -> None:
        """Initialize an empty store.

        :param history: Number of aggregated snapshots to keep (at least 1).
        :raises ValueError: If ``history`` is less than 1.
        """
        if history < 1:
            raise ValueError("history must be at least 1")

        self.history = history
        self._lock = threading.Lock()
        self._provider_data: RawPriceTable = {}
        self._aggregated: deque[AggregatedSnapshot] = deque(maxlen=history)
        self._version = 0

    def set_provider_data(self, source: str, prices: dict[Ticker, int] | None) -> None:
        """Replace the whole price table of ``source``.

        :param source: Provider name.
        :param prices: Ticker → native price. ``None`` is stored as empty.
        """
        with self._lock:
            self._provider_data[source] = dict(prices or {})

    def get_provider_data(self) -> RawPriceTable:
        """Return a copy of every provider's prices."""
        with self._lock:
            return {source: dict(prices) for source, prices in self._provider_data.items()}

    def get_data_by_provider(self, source: str) -> dict[Ticker, int]:
        """Return a copy of one provider's prices (empty if unknown)."""
        with self._lock:
            return dict(self._provider_data.get(source, {}))

    def reset_provider_data(self) -> None:
        """Drop all raw prices; call at the start of every cycle."""
        with self._lock:
            self._provider_data = {}

    def set_aggregated_data(self, prices: AggregatedPriceTable) -> AggregatedSnapshot:
        """Store a new aggregated snapshot.

        :param prices: Ticker → native price.
        :returns: The stored snapshot.
        """
        with self._lock:
            self._version += 1
            snapshot = AggregatedSnapshot(
                version=self._version,
                prices=dict(prices),
                created_at=time.time(),
            )
            self._aggregated.append(snapshot)

        logger.debug(f"Stored aggregated snapshot v{snapshot.version} ({len(prices)} prices)")
        return snapshot

    def get_aggregated_data(self) -> AggregatedPriceTable:
        """Return a copy of the latest aggregated prices (empty if none)."""
        with self._lock:
            if not self._aggregated:
                return {}
            return dict(self._aggregated[-1].prices)

    def get_aggregated_snapshot(self, version: int | None = None) -> AggregatedSnapshot | None:
        """Return a retained snapshot.

        :param version: Snapshot version; latest if None.
        :returns: A copy of the snapshot, or None if not retained.
        """
        with self._lock:
            for snapshot in reversed(self._aggregated):
                if version is None or snapshot.version == version:
                    return AggregatedSnapshot(
                        snapshot.version, dict(snapshot.prices), snapshot.created_at
                    )
        return None

    def get_aggregated_history(self) -> list[AggregatedSnapshot]:
        """Return copies of all retained snapshots, oldest first."""
        with self._lock:
            return [
                AggregatedSnapshot(s.version, dict(s.prices), s.created_at)
                for s in self._aggregated
            ]

    def snapshot(self) -> tuple[RawPriceTable, AggregatedPriceTable]:
        """Copy raw and latest aggregated prices under a single lock acquisition."""
        with self._lock:
            raw = {source: dict(prices) for source, prices in self._provider_data.items()}
            index = dict(self._aggregated[-1].prices) if self._aggregated else {}
        return raw, index
