"""Static provider serving fixed prices.

Prices come either from a mapping passed at construction or from a JSON file
of the form ``{"tokens": {"BTC/USD": "70000.5", ...}}``. Keys are ticker
strings; lookups are done by the market's ticker, so the provider's
off-chain symbol is not used. Meant for local runs and tests.
"""

import json
import logging
from decimal import Decimal, InvalidOperation
from pathlib import Path

from ..errors import ProviderError
from ..MarketConfig import ProviderConfig
from ..Ticker import CurrencyPair, Ticker
from .base import BaseProvider, ProviderPrice, register_provider

logger = logging.getLogger(__name__)


@register_provider
class StaticProvider(BaseProvider):
    """Provider returning the same configured prices every cycle."""

    name = "static-mock-provider"

    def __init__(
        self,
        prices: dict[str, ProviderPrice] | None = None,
        path: str | None = None,
        **options,
    ) -> None:
        """Initialize the provider.

        :param prices: Ticker string → price.
        :param path: JSON file to read prices from (merged over ``prices``).
        :raises ProviderError: If the file cannot be read or holds an invalid
            price or pair.
        """
        super().__init__(**options)
        raw = dict(prices or {})
        if path:
            raw.update(self._read_file(path))

        self.prices: dict[str, Decimal] = {}
        for pair_str, value in raw.items():
            try:
                pair = CurrencyPair.from_string(pair_str)
                self.prices[str(pair)] = Decimal(str(value))
            except (ValueError, InvalidOperation) as e:
                raise ProviderError(
                    f"[{self.name}] invalid static price {pair_str}={value!r}: {e}"
                ) from e

    @staticmethod
    def _read_file(path: str) -> dict[str, ProviderPrice]:
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ProviderError(f"cannot read static prices from {path}: {e}") from e

        tokens = data.get("tokens") if isinstance(data, dict) else None
        if not isinstance(tokens, dict):
            raise ProviderError(f"static prices file {path} has no 'tokens' object")
        return tokens

    async def fetch_prices(
        self, markets: dict[Ticker, ProviderConfig]
    ) -> dict[Ticker, ProviderPrice]:
        """Return the configured price of every requested market.

        :param markets: Ticker → provider config.
        :returns: Ticker → price for the markets with a configured price.
        """
        result: dict[Ticker, ProviderPrice] = {}
        for ticker in markets:
            price = self.prices.get(str(ticker))
            if price is None:
                logger.debug(f"[{self.name}] no static price for {ticker}")
                continue
            result[ticker] = price
        return result
