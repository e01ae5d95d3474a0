"""ConversionPath: Hop sequences that synthesize a price from other pairs.

A :class:`Path` is an ordered chain of :class:`Operation` hops. Each hop
references a currency pair, optionally inverts it, and names where its price
comes from: a specific provider's raw feed (:class:`NamedProvider`) or the
aggregated index price (:class:`IndexPrice`).

Validation rules for a path:
    1. At least one operation
    2. Every referenced pair is well-formed
    3. Hops chain quote-to-base after each hop's own inversion
    4. No pair (or its inverse) is visited twice
    5. The overall (base, quote) equals the target pair

.. code-block:: python

    >>> path = Path((
    ...     Operation(CurrencyPair("BTC", "USDT"), source=NamedProvider("binance")),
    ...     Operation(CurrencyPair("USDT", "USD")),
    ... ))
    >>> path.validate()
    >>> path.show_route()
    'BTC/USDT -> USDT/USD'
    >>> str(path.get_pair())
    'BTC/USD'
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .errors import PathValidationError, TickerValidationError
from .Ticker import CurrencyPair, Ticker

# Reserved provider name used in JSON for the index price source.
INDEX_PROVIDER_NAME = "index"


@dataclass(frozen=True)
class NamedProvider:
    """Hop price taken from one provider's raw observations."""

    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class IndexPrice:
    """Hop price taken from the aggregated (index) prices."""

    def __str__(self) -> str:
        return INDEX_PROVIDER_NAME


PriceSource = NamedProvider | IndexPrice


def price_source_from_name(name: str) -> PriceSource:
    """Map a JSON provider name to a :data:`PriceSource`.

    :raises PathValidationError: If the name is empty.
    """
    if not name:
        raise PathValidationError("operation provider cannot be empty")
    if name == INDEX_PROVIDER_NAME:
        return IndexPrice()
    return NamedProvider(name)


@dataclass(frozen=True)
class Operation:
    """A single hop of a conversion path.

    :ivar currency_pair: Pair whose price is used.
    :ivar invert: Use ``1 / price`` instead of ``price``.
    :ivar source: Where the hop's price comes from.
    """

    currency_pair: CurrencyPair
    invert: bool = False
    source: PriceSource = field(default_factory=IndexPrice)

    def effective_pair(self) -> CurrencyPair:
        """Return the pair this hop contributes after inversion."""
        if self.invert:
            return self.currency_pair.invert()
        return self.currency_pair

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"currency_pair": self.currency_pair.to_dict()}
        if self.invert:
            data["invert"] = True
        data["provider"] = str(self.source)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Operation:
        if not isinstance(data, dict):
            raise PathValidationError(f"invalid operation {data!r}")
        try:
            pair = CurrencyPair.from_dict(data["currency_pair"])
            provider = data["provider"]
        except KeyError as e:
            raise PathValidationError(f"operation is missing field {e}") from e

        invert = data.get("invert", False)
        if not isinstance(invert, bool) or not isinstance(provider, str):
            raise PathValidationError(f"invalid operation {data!r}")
        return cls(pair, invert=invert, source=price_source_from_name(provider))


@dataclass(frozen=True)
class Path:
    """An ordered, non-empty chain of operations."""

    operations: tuple[Operation, ...]

    def __len__(self) -> int:
        return len(self.operations)

    def get_pair(self) -> CurrencyPair:
        """Return the overall (base, quote) from the first and last hop.

        :raises PathValidationError: If the path has no operations.
        """
        if not self.operations:
            raise PathValidationError("path has no operations")
        first = self.operations[0].effective_pair()
        last = self.operations[-1].effective_pair()
        return CurrencyPair(first.base, last.quote)

    def match(self, target: CurrencyPair) -> bool:
        """Check that the path resolves to ``target``."""
        return bool(self.operations) and self.get_pair() == target

    def show_route(self) -> str:
        """Render the hops as ``"A/B -> B/C -> C/D"``."""
        return " -> ".join(str(op.effective_pair()) for op in self.operations)

    def pairs(self) -> set[CurrencyPair]:
        """Return the set of pairs referenced by the path."""
        return {op.currency_pair for op in self.operations}

    def validate(self) -> None:
        """Validate that the path is a connected, acyclic chain.

        :raises PathValidationError: On an empty, malformed, disconnected or
            cyclic path.
        """
        if not self.operations:
            raise PathValidationError("path must contain at least one operation")

        for op in self.operations:
            try:
                op.currency_pair.validate()
            except TickerValidationError as e:
                raise PathValidationError(
                    f"invalid operation {op.currency_pair} in path {self.show_route()}: {e}"
                ) from e

        first = self.operations[0]
        seen = {first.currency_pair, first.currency_pair.invert()}
        current_quote = first.effective_pair().quote

        for op in self.operations[1:]:
            if op.currency_pair in seen:
                raise PathValidationError(
                    f"cycle detected in path {self.show_route()}: "
                    f"{op.currency_pair} appears more than once"
                )

            hop = op.effective_pair()
            if hop.base != current_quote:
                raise PathValidationError(
                    f"disconnected path {self.show_route()}: "
                    f"expected hop starting at {current_quote} but got {hop.base}"
                )

            seen.add(op.currency_pair)
            seen.add(op.currency_pair.invert())
            current_quote = hop.quote

    def to_dict(self) -> dict[str, Any]:
        return {"operations": [op.to_dict() for op in self.operations]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Path:
        if not isinstance(data, dict) or not isinstance(data.get("operations"), list):
            raise PathValidationError(f"invalid path {data!r}")
        return cls(tuple(Operation.from_dict(op) for op in data["operations"]))


@dataclass(frozen=True)
class PathsForTicker:
    """All conversion paths that resolve to one target ticker.

    :ivar ticker: Target ticker.
    :ivar paths: Candidate paths; each yields one price per cycle.
    """

    ticker: Ticker
    paths: tuple[Path, ...]

    def validate(self) -> None:
        """Validate the target and every path.

        :raises TickerValidationError: If the target ticker is invalid.
        :raises PathValidationError: If there are no paths, duplicate paths,
            or any path is invalid or resolves to a different pair.
        """
        self.ticker.validate()

        if not self.paths:
            raise PathValidationError(f"no conversion paths provided for {self.ticker}")

        seen: set[tuple[Operation, ...]] = set()
        for path in self.paths:
            if path.operations in seen:
                raise PathValidationError(
                    f"duplicate path {path.show_route()} for {self.ticker}"
                )
            seen.add(path.operations)

            path.validate()
            if not path.match(self.ticker.currency_pair):
                raise PathValidationError(
                    f"invalid path {path.show_route()}; expected {self.ticker} "
                    f"but got {path.get_pair()}"
                )

    def pairs(self) -> set[CurrencyPair]:
        """Return every pair referenced by any of the paths."""
        result: set[CurrencyPair] = set()
        for path in self.paths:
            result |= path.pairs()
        return result

    def to_dict(self) -> dict[str, Any]:
        return {
            "ticker": self.ticker.to_dict(),
            "paths": [path.to_dict() for path in self.paths],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PathsForTicker:
        if not isinstance(data, dict) or not isinstance(data.get("paths"), list):
            raise PathValidationError(f"invalid paths entry {data!r}")
        return cls(
            ticker=Ticker.from_dict(data.get("ticker")),
            paths=tuple(Path.from_dict(p) for p in data["paths"]),
        )
