"""Ticker: Canonical currency pair identity and ticker validation.

A :class:`CurrencyPair` is the identity of a tradable pair (``"BTC/USD"``).
A :class:`Ticker` attaches the pair's native decimals, the minimum number of
providers a market must configure, an enabled flag and an opaque metadata
blob. Tickers hash and compare by their pair string so they can key price
tables.

The feed hash is computed as:
    keccak256("BASE/QUOTE")

.. code-block:: python

    >>> pair = CurrencyPair.from_string("btc/usd")
    >>> str(pair)
    'BTC/USD'
    >>> ticker = Ticker(pair, decimals=8)
    >>> ticker.validate()
    >>> str(ticker)
    'BTC/USD'
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from web3 import Web3

from .DecimalScaling import SCALED_DECIMALS
from .errors import TickerValidationError

# Maximum length of a base or quote asset string.
MAX_CP_FIELD_LENGTH = 256

# Maximum length of an opaque metadata JSON blob.
MAX_METADATA_JSON_FIELD_LENGTH = 16384

# DeFi assets are encoded as "TOKEN,ADDRESS,CHAIN_ID".
DEFI_FIELD_SEPARATOR = ","
DEFI_FIELD_COUNT = 3


def validate_metadata_json(metadata_json: str) -> None:
    """Check that an opaque metadata blob is empty or well-formed JSON.

    :param metadata_json: Metadata string.
    :raises TickerValidationError: If the blob is too long or not valid JSON.
    """
    if not metadata_json:
        return

    if len(metadata_json) > MAX_METADATA_JSON_FIELD_LENGTH:
        raise TickerValidationError(
            f"metadata exceeds maximum length of {MAX_METADATA_JSON_FIELD_LENGTH}"
        )

    try:
        json.loads(metadata_json)
    except json.JSONDecodeError as e:
        raise TickerValidationError(f"metadata is not valid JSON: {e}") from e


def _validate_legacy_asset(asset: str) -> None:
    if asset.upper() != asset:
        raise TickerValidationError(
            f"incorrectly formatted asset string, expected: {asset.upper()} got: {asset}"
        )


def _validate_asset(kind: str, asset: str) -> None:
    if not asset:
        raise TickerValidationError(f"{kind} asset cannot be empty")

    if len(asset) > MAX_CP_FIELD_LENGTH:
        raise TickerValidationError(
            f"{kind} asset exceeds maximum length of {MAX_CP_FIELD_LENGTH}"
        )

    if DEFI_FIELD_SEPARATOR not in asset:
        _validate_legacy_asset(asset)
        return

    fields = asset.split(DEFI_FIELD_SEPARATOR)
    if len(fields) != DEFI_FIELD_COUNT:
        raise TickerValidationError(
            f"{kind} defi asset '{asset}' has wrong number of fields, "
            f"expected: {DEFI_FIELD_COUNT} got: {len(fields)}"
        )
    _validate_legacy_asset(fields[0])


@dataclass(frozen=True)
class CurrencyPair:
    """A base/quote asset pair.

    :ivar base: Base asset symbol (upper-case).
    :ivar quote: Quote asset symbol (upper-case).
    """

    base: str
    quote: str

    def __str__(self) -> str:
        return f"{self.base}/{self.quote}"

    def validate(self) -> None:
        """Validate base and quote assets.

        Plain assets must be non-empty and upper-case. DeFi assets
        (``TOKEN,ADDRESS,CHAIN_ID``) must have three fields with an upper-case
        token.

        :raises TickerValidationError: If either asset is malformed.
        """
        _validate_asset("base", self.base)
        _validate_asset("quote", self.quote)

    def invert(self) -> CurrencyPair:
        """Return the pair with base and quote swapped."""
        return CurrencyPair(self.quote, self.base)

    def compute_feed_hash(self) -> bytes:
        """Compute the keccak256 hash of the pair string.

        :returns: 32-byte hash used by consumers as the storage key.
        """
        return Web3.keccak(text=str(self))

    def feed_id(self) -> int:
        """Return a stable 64-bit numeric ID derived from the feed hash."""
        return int.from_bytes(self.compute_feed_hash()[:8], "big")

    def to_dict(self) -> dict[str, str]:
        return {"Base": self.base, "Quote": self.quote}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CurrencyPair:
        """Build a pair from its JSON form ``{"Base": ..., "Quote": ...}``.

        :raises TickerValidationError: If a field is missing or not a string.
        """
        try:
            base, quote = data["Base"], data["Quote"]
        except (KeyError, TypeError) as e:
            raise TickerValidationError(f"invalid currency pair {data!r}") from e
        if not isinstance(base, str) or not isinstance(quote, str):
            raise TickerValidationError(f"invalid currency pair {data!r}")
        return cls(base, quote)

    @classmethod
    def from_string(cls, pair_str: str) -> CurrencyPair:
        """Parse a pair string in format "base/quote".

        The assets are upper-cased before validation.

        :param pair_str: Pair string like "btc/usd".
        :returns: New validated CurrencyPair instance.
        :raises TickerValidationError: If the string is malformed.
        """
        parts = pair_str.split("/")
        if len(parts) != 2:
            raise TickerValidationError(
                f"Invalid pair format '{pair_str}'. Expected 'BASE/QUOTE' (e.g., 'BTC/USD')"
            )
        pair = cls(parts[0].upper(), parts[1].upper())
        pair.validate()
        return pair


@dataclass(frozen=True, eq=False)
class Ticker:
    """A currency pair plus its price reporting policy.

    :ivar currency_pair: Identity of the ticker.
    :ivar decimals: Native decimals prices are reported at.
    :ivar min_provider_count: Minimum number of providers a market must
        configure for this ticker.
    :ivar enabled: Whether prices for this ticker are published.
    :ivar metadata_json: Opaque JSON metadata, not interpreted here.
    """

    currency_pair: CurrencyPair
    decimals: int = 8
    min_provider_count: int = 1
    enabled: bool = True
    metadata_json: str = ""

    def __str__(self) -> str:
        return str(self.currency_pair)

    def __hash__(self) -> int:
        return hash(str(self))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Ticker):
            return NotImplemented
        return str(self) == str(other)

    def same_as(self, other: Ticker) -> bool:
        """Check that every field, not only the pair identity, matches."""
        return (
            self.currency_pair == other.currency_pair
            and self.decimals == other.decimals
            and self.min_provider_count == other.min_provider_count
            and self.enabled == other.enabled
            and self.metadata_json == other.metadata_json
        )

    def validate(self) -> None:
        """Validate the ticker.

        :raises TickerValidationError: If decimals are outside
            ``1..SCALED_DECIMALS``, the minimum provider count is below one,
            the pair is malformed, or the metadata is not valid JSON.
        """
        if not 1 <= self.decimals <= SCALED_DECIMALS:
            raise TickerValidationError(
                f"ticker {self} decimals must be between 1 and {SCALED_DECIMALS}, "
                f"got {self.decimals}"
            )
        if self.min_provider_count < 1:
            raise TickerValidationError(
                f"ticker {self} min_provider_count must be at least 1"
            )
        self.currency_pair.validate()
        validate_metadata_json(self.metadata_json)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "currency_pair": self.currency_pair.to_dict(),
            "decimals": self.decimals,
            "min_provider_count": self.min_provider_count,
            "enabled": self.enabled,
        }
        if self.metadata_json:
            data["metadata_JSON"] = self.metadata_json
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Ticker:
        """Build a ticker from its JSON form.

        A missing ``min_provider_count`` defaults to 1 and a missing
        ``enabled`` to ``False``. :meth:`to_dict` always writes both, so input
        round-trips unchanged only in canonical form.

        :raises TickerValidationError: If required fields are missing or of
            the wrong type.
        """
        if not isinstance(data, dict):
            raise TickerValidationError(f"invalid ticker {data!r}")
        try:
            pair = CurrencyPair.from_dict(data["currency_pair"])
            decimals = data["decimals"]
            min_provider_count = data.get("min_provider_count", 1)
        except KeyError as e:
            raise TickerValidationError(f"ticker is missing field {e}") from e

        enabled = data.get("enabled", False)
        metadata_json = data.get("metadata_JSON", "")
        for name, value, kind in (
            ("decimals", decimals, int),
            ("min_provider_count", min_provider_count, int),
            ("enabled", enabled, bool),
            ("metadata_JSON", metadata_json, str),
        ):
            # bool is an int subclass; reject it for numeric fields
            if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
                raise TickerValidationError(
                    f"ticker {pair} field {name} must be {kind.__name__}, got {value!r}"
                )

        return cls(
            currency_pair=pair,
            decimals=decimals,
            min_provider_count=min_provider_count,
            enabled=enabled,
            metadata_json=metadata_json,
        )
