"""Shared fixtures: a small market configuration with conversion paths.

Markets:
    BTC/USD   8 decimals, coinbase
    BTC/USDT  8 decimals, binance + kraken
    USDT/USD  6 decimals, kraken
    ETH/USD   18 decimals, coinbase, disabled

BTC/USD has three conversion paths:
    BTC/USD (coinbase)
    BTC/USDT (binance) -> USDT/USD (index)
    BTC/USDT (kraken) -> USDT/USD (index)
"""

import copy

import pytest

from index_oracle.src.MarketConfig import OracleConfig
from index_oracle.src.Ticker import Ticker


def pair(base: str, quote: str) -> dict:
    return {"Base": base, "Quote": quote}


def ticker(base: str, quote: str, decimals: int, enabled: bool = True) -> dict:
    return {
        "currency_pair": pair(base, quote),
        "decimals": decimals,
        "min_provider_count": 1,
        "enabled": enabled,
    }


CONFIG_DICT = {
    "markets": {
        "BTC/USD": {
            "ticker": ticker("BTC", "USD", 8),
            "provider_configs": [
                {"name": "coinbase", "off_chain_ticker": "BTC-USD"},
            ],
        },
        "BTC/USDT": {
            "ticker": ticker("BTC", "USDT", 8),
            "provider_configs": [
                {"name": "binance", "off_chain_ticker": "BTCUSDT"},
                {"name": "kraken", "off_chain_ticker": "XBTUSDT"},
            ],
        },
        "USDT/USD": {
            "ticker": ticker("USDT", "USD", 6),
            "provider_configs": [
                {"name": "kraken", "off_chain_ticker": "USDTZUSD"},
            ],
        },
        "ETH/USD": {
            "ticker": ticker("ETH", "USD", 18, enabled=False),
            "provider_configs": [
                {"name": "coinbase", "off_chain_ticker": "ETH-USD"},
            ],
        },
    },
    "paths": {
        "BTC/USD": {
            "ticker": ticker("BTC", "USD", 8),
            "paths": [
                {"operations": [
                    {"currency_pair": pair("BTC", "USD"), "provider": "coinbase"},
                ]},
                {"operations": [
                    {"currency_pair": pair("BTC", "USDT"), "provider": "binance"},
                    {"currency_pair": pair("USDT", "USD"), "provider": "index"},
                ]},
                {"operations": [
                    {"currency_pair": pair("BTC", "USDT"), "provider": "kraken"},
                    {"currency_pair": pair("USDT", "USD"), "provider": "index"},
                ]},
            ],
        },
    },
}


@pytest.fixture
def config_dict() -> dict:
    """A fresh, mutable copy of the canonical configuration document."""
    return copy.deepcopy(CONFIG_DICT)


@pytest.fixture
def config(config_dict: dict) -> OracleConfig:
    """The canonical configuration, parsed and validated."""
    cfg = OracleConfig.from_dict(config_dict)
    cfg.validate()
    return cfg


@pytest.fixture
def tickers(config: OracleConfig) -> dict[str, Ticker]:
    """Configured tickers keyed by pair string."""
    return config.tickers()
