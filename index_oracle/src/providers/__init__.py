"""
Price providers feeding the aggregator.

Usage:
    from index_oracle.src.providers import get_provider, get_available_providers

    # Get list of available providers
    available = get_available_providers()
    # ['static-mock-provider']

    # Create a provider instance
    provider = get_provider("static-mock-provider", prices={"BTC/USD": "70000"})
    prices = await provider.fetch_prices(markets)
"""

# Import base classes and utilities
from .base import (
    PROVIDER_REGISTRY,
    BaseProvider,
    ProviderPrice,
    get_available_providers,
    get_provider,
    register_provider,
)

# Import all provider implementations to trigger registration
from .static import StaticProvider

__all__ = [
    # Base classes
    "BaseProvider",
    "ProviderPrice",
    # Registry functions
    "register_provider",
    "get_provider",
    "get_available_providers",
    "PROVIDER_REGISTRY",
    # Provider implementations
    "StaticProvider",
]
