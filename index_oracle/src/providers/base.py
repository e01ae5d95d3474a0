"""Base provider interface and registry.

A provider supplies, once per cycle, a ticker → price map for the tickers it
is configured for. Prices are decimal values (``Decimal``, decimal strings or
integers); the orchestrator converts them to integers at each ticker's native
decimals. A ticker missing from the map means "no observation", never zero.

.. code-block:: python

    @register_provider
    class MyProvider(BaseProvider):
        name = "myprovider"

        async def fetch_prices(self, markets):
            return {ticker: Decimal("1.0") for ticker in markets}
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, ClassVar

from ..MarketConfig import ProviderConfig
from ..Ticker import Ticker

logger = logging.getLogger(__name__)

ProviderPrice = Decimal | str | int


class BaseProvider(ABC):
    """Abstract base class for price providers.

    Subclasses must implement:
        - name: Class variable identifying the source (e.g., "coinbase")
        - fetch_prices(): Async method returning ticker → price

    :cvar name: Unique identifier for this provider.
    :ivar options: Provider-specific options passed at construction.
    """

    name: ClassVar[str] = ""

    def __init__(self, **options: Any) -> None:
        self.options = options

    @abstractmethod
    async def fetch_prices(
        self, markets: dict[Ticker, ProviderConfig]
    ) -> dict[Ticker, ProviderPrice]:
        """Fetch the current prices for the configured markets.

        :param markets: Ticker → this provider's config for that market.
        :returns: Ticker → observed price; absent tickers were not observed.
        :raises ProviderError: If the fetch fails as a whole.
        """
        pass


# Registry of available providers (populated by subclass imports)
PROVIDER_REGISTRY: dict[str, type[BaseProvider]] = {}


def register_provider(cls: type[BaseProvider]) -> type[BaseProvider]:
    """Decorator to register a provider class in the global registry.

    :param cls: Provider class to register.
    :returns: The registered class (unchanged).
    :raises ValueError: If the provider has no name defined.
    """
    if not cls.name:
        raise ValueError(f"Provider {cls.__name__} must define a 'name' class variable")
    PROVIDER_REGISTRY[cls.name] = cls
    return cls


def get_provider(name: str, **options: Any) -> BaseProvider:
    """Get a provider instance by name.

    :param name: Provider name.
    :param options: Options forwarded to the provider constructor.
    :returns: Provider instance.
    :raises ValueError: If the provider name is unknown.
    """
    if name not in PROVIDER_REGISTRY:
        available = ", ".join(sorted(PROVIDER_REGISTRY.keys()))
        raise ValueError(f"Unknown provider '{name}'. Available: {available}")
    return PROVIDER_REGISTRY[name](**options)


def get_available_providers() -> list[str]:
    """Get the sorted list of registered provider names."""
    return sorted(PROVIDER_REGISTRY.keys())
