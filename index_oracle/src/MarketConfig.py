"""MarketConfig: Operator-authored market configuration and its validation.

The configuration is a JSON document with two sections:

- ``markets``: ticker → market (ticker + ordered provider configs), the set of
  pairs the oracle tracks and how each provider names them off-chain.
- ``paths`` (optional): ticker → conversion paths used to synthesize prices.

Validation is all-or-nothing. Any invalid ticker, duplicate provider entry,
unresolved normalization reference, invalid path or key/identity mismatch
raises :class:`~index_oracle.src.errors.ConfigError` before anything is
fetched or computed.

.. code-block:: python

    >>> config = load_config("markets.json")
    >>> config.validate()
    >>> sorted(config.market_map.markets)
    ['BTC/USD', 'BTC/USDT', 'USDT/USD']
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path as FilePath
from typing import Any

import httpx

from .ConversionPath import PathsForTicker
from .errors import ConfigError, MarketConfigError, TickerValidationError
from .Ticker import (
    MAX_CP_FIELD_LENGTH,
    CurrencyPair,
    Ticker,
    validate_metadata_json,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderConfig:
    """How one provider quotes a market.

    :ivar name: Provider (source) name.
    :ivar off_chain_ticker: Symbol the provider uses for the market.
    :ivar invert: The provider quotes the inverse pair.
    :ivar normalize_by_pair: Pair whose index price converts the provider's
        quote into the market's quote.
    :ivar metadata_json: Opaque provider-specific JSON.
    """

    name: str
    off_chain_ticker: str
    invert: bool = False
    normalize_by_pair: CurrencyPair | None = None
    metadata_json: str = ""

    def validate(self) -> None:
        """Validate the provider entry.

        :raises MarketConfigError: If the name or off-chain ticker is empty or
            too long, the normalize pair is malformed, or the metadata is not
            valid JSON.
        """
        if not self.name or len(self.name) > MAX_CP_FIELD_LENGTH:
            raise MarketConfigError(f"invalid provider name {self.name!r}")
        if not self.off_chain_ticker or len(self.off_chain_ticker) > MAX_CP_FIELD_LENGTH:
            raise MarketConfigError(
                f"invalid off-chain ticker {self.off_chain_ticker!r} for provider {self.name}"
            )
        try:
            if self.normalize_by_pair is not None:
                self.normalize_by_pair.validate()
            validate_metadata_json(self.metadata_json)
        except TickerValidationError as e:
            raise MarketConfigError(f"provider {self.name}: {e}") from e

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "off_chain_ticker": self.off_chain_ticker,
        }
        if self.invert:
            data["invert"] = True
        if self.normalize_by_pair is not None:
            data["normalize_by_pair"] = self.normalize_by_pair.to_dict()
        if self.metadata_json:
            data["metadata_JSON"] = self.metadata_json
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProviderConfig:
        if not isinstance(data, dict):
            raise MarketConfigError(f"invalid provider config {data!r}")
        try:
            name = data["name"]
            off_chain_ticker = data["off_chain_ticker"]
        except KeyError as e:
            raise MarketConfigError(f"provider config is missing field {e}") from e

        invert = data.get("invert", False)
        metadata_json = data.get("metadata_JSON", "")
        if not (
            isinstance(name, str)
            and isinstance(off_chain_ticker, str)
            and isinstance(invert, bool)
            and isinstance(metadata_json, str)
        ):
            raise MarketConfigError(f"invalid provider config {data!r}")

        normalize_by_pair = None
        if data.get("normalize_by_pair") is not None:
            try:
                normalize_by_pair = CurrencyPair.from_dict(data["normalize_by_pair"])
            except TickerValidationError as e:
                raise MarketConfigError(f"provider {name}: {e}") from e

        return cls(
            name=name,
            off_chain_ticker=off_chain_ticker,
            invert=invert,
            normalize_by_pair=normalize_by_pair,
            metadata_json=metadata_json,
        )


@dataclass(frozen=True)
class Market:
    """A ticker and the ordered providers that quote it."""

    ticker: Ticker
    provider_configs: tuple[ProviderConfig, ...] = ()

    def validate(self) -> None:
        """Validate the ticker and its provider configs.

        :raises ConfigError: If the ticker is invalid, too few providers are
            configured, or a (provider, off-chain ticker) pair is repeated.
        """
        self.ticker.validate()

        if len(self.provider_configs) < self.ticker.min_provider_count:
            raise MarketConfigError(
                f"market {self.ticker} has {len(self.provider_configs)} provider configs; "
                f"expected at least {self.ticker.min_provider_count}"
            )

        seen: set[tuple[str, str]] = set()
        names: set[str] = set()
        for cfg in self.provider_configs:
            cfg.validate()
            key = (cfg.name, cfg.off_chain_ticker)
            if key in seen:
                raise MarketConfigError(
                    f"duplicate provider config {cfg.name}/{cfg.off_chain_ticker} "
                    f"for market {self.ticker}"
                )
            # Raw prices hold one observation per source and ticker.
            if cfg.name in names:
                raise MarketConfigError(
                    f"provider {cfg.name} is configured more than once for market {self.ticker}"
                )
            seen.add(key)
            names.add(cfg.name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ticker": self.ticker.to_dict(),
            "provider_configs": [cfg.to_dict() for cfg in self.provider_configs],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Market:
        if not isinstance(data, dict):
            raise MarketConfigError(f"invalid market {data!r}")
        configs = data.get("provider_configs", [])
        if not isinstance(configs, list):
            raise MarketConfigError(f"provider_configs must be a list, got {configs!r}")
        return cls(
            ticker=Ticker.from_dict(data.get("ticker")),
            provider_configs=tuple(ProviderConfig.from_dict(c) for c in configs),
        )


@dataclass(frozen=True)
class MarketMap:
    """The full set of markets keyed by ticker string."""

    markets: dict[str, Market] = field(default_factory=dict)

    def validate(self) -> None:
        """Validate every market and cross-market references.

        :raises ConfigError: On any invalid market, a key that does not equal
            its ticker string, a normalize pair with no market, or an enabled
            market normalized by a disabled one.
        """
        for key, market in self.markets.items():
            if key != str(market.ticker):
                raise MarketConfigError(
                    f"market key {key} does not match ticker {market.ticker}"
                )
            market.validate()

        for key, market in self.markets.items():
            for cfg in market.provider_configs:
                if cfg.normalize_by_pair is None:
                    continue

                normalize_key = str(cfg.normalize_by_pair)
                normalize_market = self.markets.get(normalize_key)
                if normalize_market is None:
                    raise MarketConfigError(
                        f"provider {cfg.name} of market {key} normalizes by "
                        f"{normalize_key} which is not in the market map"
                    )
                if market.ticker.enabled and not normalize_market.ticker.enabled:
                    raise MarketConfigError(
                        f"enabled market {key} cannot normalize by disabled market {normalize_key}"
                    )

    def tickers(self) -> dict[str, Ticker]:
        return {key: market.ticker for key, market in self.markets.items()}

    def to_dict(self) -> dict[str, Any]:
        return {"markets": {key: m.to_dict() for key, m in self.markets.items()}}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MarketMap:
        if not isinstance(data, dict) or not isinstance(data.get("markets"), dict):
            raise MarketConfigError("market map must be an object with a 'markets' object")
        return cls({key: Market.from_dict(m) for key, m in data["markets"].items()})


@dataclass(frozen=True)
class OracleConfig:
    """Markets plus the conversion paths used to price them.

    :ivar market_map: Tracked markets and their providers.
    :ivar paths: Target ticker string → conversion paths.
    """

    market_map: MarketMap = field(default_factory=MarketMap)
    paths: dict[str, PathsForTicker] = field(default_factory=dict)

    def validate(self) -> None:
        """Validate the whole configuration atomically.

        :raises ConfigError: If the market map or any conversion path is
            invalid, a paths key does not equal its ticker, a target is not a
            declared market, or a hop references an undeclared market.
        """
        self.market_map.validate()
        markets = self.market_map.markets

        for key, entry in self.paths.items():
            if key != str(entry.ticker):
                raise MarketConfigError(
                    f"paths key {key} does not match ticker {entry.ticker}"
                )

            market = markets.get(key)
            if market is None:
                raise MarketConfigError(f"paths target {key} is not in the market map")
            if not market.ticker.same_as(entry.ticker):
                raise MarketConfigError(
                    f"paths ticker {key} does not match the market's ticker definition"
                )

            entry.validate()

            for pair in entry.pairs():
                hop_market = markets.get(str(pair))
                if hop_market is None:
                    raise MarketConfigError(
                        f"conversion path for {key} references {pair} "
                        "which is not in the market map"
                    )
                if market.ticker.enabled and not hop_market.ticker.enabled:
                    raise MarketConfigError(
                        f"conversion path for enabled market {key} "
                        f"references disabled market {pair}"
                    )

    def tickers(self) -> dict[str, Ticker]:
        """Return every configured ticker keyed by its pair string."""
        return self.market_map.tickers()

    def to_dict(self) -> dict[str, Any]:
        data = self.market_map.to_dict()
        if self.paths:
            data["paths"] = {key: p.to_dict() for key, p in self.paths.items()}
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OracleConfig:
        """Parse a configuration document (without validating it).

        Omitted optional fields take their defaults, so :meth:`to_dict`
        reproduces the input exactly only for canonical documents: every
        ticker lists ``min_provider_count`` and ``enabled``, and provider
        configs leave out ``invert``, ``normalize_by_pair`` and
        ``metadata_JSON`` when they hold their defaults.

        :raises ConfigError: If the document structure is malformed.
        """
        market_map = MarketMap.from_dict(data)
        raw_paths = data.get("paths", {})
        if not isinstance(raw_paths, dict):
            raise ConfigError("'paths' must be an object")
        paths = {key: PathsForTicker.from_dict(p) for key, p in raw_paths.items()}
        return cls(market_map=market_map, paths=paths)


def parse_config(text: str) -> OracleConfig:
    """Parse and validate a JSON configuration document.

    :param text: JSON text.
    :returns: Validated OracleConfig.
    :raises ConfigError: If the text is not JSON or the config is invalid.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigError(f"market config is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError("market config must be a JSON object")

    config = OracleConfig.from_dict(data)
    config.validate()
    return config


def load_config(path: str | FilePath) -> OracleConfig:
    """Load and validate a configuration file.

    :param path: Path of the JSON file.
    :returns: Validated OracleConfig.
    :raises ConfigError: If the file cannot be read or is invalid.
    """
    try:
        text = FilePath(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"cannot read market config {path}: {e}") from e

    config = parse_config(text)
    logger.info(
        f"Loaded market config from {path}: {len(config.market_map.markets)} markets, "
        f"{len(config.paths)} conversion targets"
    )
    return config


async def fetch_config(
    url: str,
    *,
    timeout: float = 10.0,
    client: httpx.AsyncClient | None = None,
) -> OracleConfig:
    """Fetch and validate a configuration document served over HTTP.

    :param url: URL of the JSON document.
    :param timeout: Request timeout in seconds.
    :param client: Optional client to reuse (a temporary one is created
        otherwise).
    :returns: Validated OracleConfig.
    :raises ConfigError: On HTTP/network failure or an invalid document.
    """
    own_client = client is None
    if client is None:
        client = httpx.AsyncClient(timeout=httpx.Timeout(timeout), follow_redirects=True)

    try:
        response = await client.get(url, timeout=timeout)
        if not response.is_success:
            raise ConfigError(
                f"fetching market config from {url} failed with HTTP "
                f"{response.status_code}: {response.text[:200]}"
            )
        text = response.text
    except httpx.TimeoutException as e:
        raise ConfigError(f"timeout fetching market config from {url}: {e}") from e
    except httpx.RequestError as e:
        raise ConfigError(f"failed to fetch market config from {url}: {e}") from e
    finally:
        if own_client:
            await client.aclose()

    config = parse_config(text)
    logger.info(
        f"Fetched market config from {url}: {len(config.market_map.markets)} markets, "
        f"{len(config.paths)} conversion targets"
    )
    return config


def dump_config(config: OracleConfig, path: str | FilePath | None = None) -> str:
    """Serialize a configuration to JSON, optionally writing it to ``path``."""
    text = json.dumps(config.to_dict(), indent=2) + "\n"
    if path is not None:
        FilePath(path).write_text(text, encoding="utf-8")
    return text
