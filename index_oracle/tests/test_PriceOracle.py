"""Unit tests for the PriceOracle cycle orchestrator."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from index_oracle.src.errors import ProviderError
from index_oracle.src.MarketConfig import OracleConfig
from index_oracle.src.PriceOracle import PriceOracle
from index_oracle.src.PriceStore import PriceStore
from index_oracle.src.providers import BaseProvider, StaticProvider
from index_oracle.src.Ticker import CurrencyPair, Ticker

BTC_USD = Ticker(CurrencyPair("BTC", "USD"), decimals=8)
BTC_USDT = Ticker(CurrencyPair("BTC", "USDT"), decimals=8)
USDT_USD = Ticker(CurrencyPair("USDT", "USD"), decimals=6)
ETH_USD = Ticker(CurrencyPair("ETH", "USD"), decimals=18)


class FailingProvider(BaseProvider):
    name = "failing"

    async def fetch_prices(self, markets):
        raise ProviderError("upstream unavailable")


class SlowProvider(BaseProvider):
    name = "slow"

    async def fetch_prices(self, markets):
        await asyncio.sleep(5)
        return {ticker: "1" for ticker in markets}


class RecordingProvider(BaseProvider):
    """Returns fixed values and records the markets it was asked for."""

    name = "recording"

    def __init__(self, prices: dict, **options) -> None:
        super().__init__(**options)
        self.prices = prices
        self.requested: list[dict] = []

    async def fetch_prices(self, markets):
        self.requested.append(dict(markets))
        return dict(self.prices)


def make_oracle(config: OracleConfig, providers: dict, **kwargs) -> PriceOracle:
    return PriceOracle(config, providers=providers, **kwargs)


class TestPriceOracleInit:
    """Test orchestrator construction."""

    def test_registered_source(self, config: OracleConfig) -> None:
        """Registered sources are instantiated with their options."""
        oracle = PriceOracle(
            config,
            sources=["static-mock-provider"],
            provider_options={"static-mock-provider": {"prices": {"BTC/USD": "1"}}},
        )
        provider = oracle.providers["static-mock-provider"]
        assert isinstance(provider, StaticProvider)
        assert provider.prices == {"BTC/USD": 1}

    def test_unknown_source(self, config: OracleConfig) -> None:
        """Unknown sources are rejected."""
        with pytest.raises(ValueError, match="Unknown sources"):
            PriceOracle(config, sources=["nope"])

    def test_no_sources(self, config: OracleConfig) -> None:
        """At least one provider is required."""
        with pytest.raises(ValueError, match="At least one price source"):
            PriceOracle(config)

    def test_fetch_period_minimum(self, config: OracleConfig) -> None:
        """fetch_period is at least one second."""
        oracle = make_oracle(config, {"binance": StaticProvider()}, fetch_period=0)
        assert oracle.fetch_period == 1

    def test_markets_for(self, config: OracleConfig) -> None:
        """Providers are asked only for their enabled markets."""
        oracle = make_oracle(config, {"coinbase": StaticProvider()})
        assert set(oracle.markets_for("kraken")) == {BTC_USDT, USDT_USD}
        assert set(oracle.markets_for("coinbase")) == {BTC_USD}
        assert oracle.markets_for("kraken")[USDT_USD].off_chain_ticker == "USDTZUSD"
        assert oracle.markets_for("nobody") == {}


class TestRunCycle:
    """Test a full fetch → aggregate → store cycle."""

    def test_cycle(self, config: OracleConfig) -> None:
        """Provider prices flow through conversion paths into the index."""
        store = PriceStore()
        oracle = make_oracle(
            config,
            {
                "binance": StaticProvider(prices={"BTC/USDT": "70000"}),
                "kraken": StaticProvider(prices={"USDT/USD": "1.1"}),
            },
            store=store,
        )

        report = asyncio.run(oracle.run_cycle())

        assert report.prices == {BTC_USD: 77_000 * 10**8, BTC_USDT: 70_000 * 10**8, USDT_USD: 1_100_000}
        assert store.get_aggregated_data() == report.prices
        assert store.get_data_by_provider("kraken") == {USDT_USD: 1_100_000}

    def test_index_carries_over(self, config: OracleConfig) -> None:
        """Index prices from one cycle feed the next."""
        kraken = StaticProvider(prices={"USDT/USD": "1.1"})
        oracle = make_oracle(
            config,
            {"binance": StaticProvider(prices={"BTC/USDT": "70000"}), "kraken": kraken},
        )
        asyncio.run(oracle.run_cycle())

        kraken.prices = {}
        report = asyncio.run(oracle.run_cycle())

        assert report.prices[BTC_USD] == 77_000 * 10**8
        assert USDT_USD not in report.prices
        assert oracle.store.get_data_by_provider("kraken") == {}

    def test_failing_provider(self, config: OracleConfig) -> None:
        """A failing provider contributes an empty table."""
        oracle = make_oracle(
            config,
            {
                "coinbase": FailingProvider(),
                "binance": StaticProvider(prices={"BTC/USDT": "70000"}),
            },
        )
        report = asyncio.run(oracle.run_cycle())

        assert oracle.store.get_data_by_provider("coinbase") == {}
        assert report.prices == {BTC_USDT: 70_000 * 10**8}

    def test_timeout(self, config: OracleConfig) -> None:
        """Slow providers are cut off at fetch_timeout."""
        oracle = make_oracle(
            config,
            {"coinbase": SlowProvider(), "kraken": StaticProvider(prices={"USDT/USD": "1"})},
            fetch_timeout=0.05,
        )
        tables = asyncio.run(oracle.fetch_all())
        assert tables == {"coinbase": {}, "kraken": {USDT_USD: 1_000_000}}

    def test_disabled_markets_not_requested(self, config: OracleConfig) -> None:
        """Disabled markets are never requested."""
        provider = RecordingProvider({})
        oracle = make_oracle(config, {"coinbase": provider})
        asyncio.run(oracle.run_cycle())
        assert set(provider.requested[0]) == {BTC_USD}

    def test_unrequested_and_invalid_prices_dropped(self, config: OracleConfig) -> None:
        """Unrequested tickers and unusable values are discarded."""
        provider = RecordingProvider({BTC_USDT: 1.5, USDT_USD: "1.0", ETH_USD: "3000"})
        oracle = make_oracle(config, {"kraken": provider})

        tables = asyncio.run(oracle.fetch_all())

        assert tables == {"kraken": {USDT_USD: 1_000_000}}

    def test_inverted_provider_quote(self, config_dict: dict) -> None:
        """Providers quoting the inverse pair are inverted at native decimals."""
        config_dict["markets"]["USDT/USD"]["provider_configs"][0]["invert"] = True
        config = OracleConfig.from_dict(config_dict)
        oracle = make_oracle(config, {"kraken": StaticProvider(prices={"USDT/USD": "0.8"})})

        tables = asyncio.run(oracle.fetch_all())

        assert tables["kraken"] == {USDT_USD: 1_250_000}

    def test_reset_between_cycles(self, config: OracleConfig) -> None:
        """Providers removed from the oracle leave no stale table behind."""
        oracle = make_oracle(config, {"binance": StaticProvider(prices={"BTC/USDT": "70000"})})
        oracle.store.set_provider_data("stale", {BTC_USD: 1})
        asyncio.run(oracle.run_cycle())
        assert "stale" not in oracle.store.get_provider_data()


def normalize_btc_usd(config_dict: dict, invert: bool = False) -> OracleConfig:
    """Quote BTC/USD via binance in USDT, normalized by USDT/USD."""
    config_dict["markets"]["BTC/USD"]["provider_configs"] = [
        {
            "name": "binance",
            "off_chain_ticker": "BTCUSDT",
            "invert": invert,
            "normalize_by_pair": {"Base": "USDT", "Quote": "USD"},
        }
    ]
    del config_dict["paths"]
    return OracleConfig.from_dict(config_dict)


@pytest.fixture
def normalized_config(config_dict: dict) -> OracleConfig:
    return normalize_btc_usd(config_dict)


class TestNormalization:
    """Test provider quotes normalized by another market's index price."""

    def test_normalized_by_index_price(self, normalized_config: OracleConfig) -> None:
        """The provider quote is multiplied by the previous index price."""
        store = PriceStore()
        store.set_aggregated_data({USDT_USD: 1_100_000})
        oracle = make_oracle(
            normalized_config,
            {"binance": StaticProvider(prices={"BTC/USD": "70000"})},
            store=store,
        )

        report = asyncio.run(oracle.run_cycle())

        assert store.get_data_by_provider("binance") == {BTC_USD: 77_000 * 10**8}
        assert report.prices[BTC_USD] == 77_000 * 10**8

    def test_missing_index_price_discards(self, normalized_config: OracleConfig) -> None:
        """Without an index price for the normalizing pair the quote is dropped."""
        oracle = make_oracle(
            normalized_config,
            {"binance": StaticProvider(prices={"BTC/USD": "70000"})},
        )

        tables = asyncio.run(oracle.fetch_all())

        assert tables == {"binance": {}}

    def test_inverted_then_normalized(self, config_dict: dict) -> None:
        """Inversion happens before normalization."""
        store = PriceStore()
        store.set_aggregated_data({USDT_USD: 2_000_000})
        oracle = make_oracle(
            normalize_btc_usd(config_dict, invert=True),
            {"binance": StaticProvider(prices={"BTC/USD": "0.5"})},
            store=store,
        )

        tables = asyncio.run(oracle.fetch_all())

        assert tables["binance"] == {BTC_USD: 4 * 10**8}


class TestRun:
    """Test the cycle loop."""

    def test_run_cycles(self, config: OracleConfig) -> None:
        """run(cycles=n) runs n cycles and sleeps between them."""
        oracle = make_oracle(
            config,
            {"kraken": StaticProvider(prices={"USDT/USD": "1.1"})},
            fetch_period=30,
        )

        with patch("index_oracle.src.PriceOracle.asyncio.sleep", new=AsyncMock()) as sleep:
            asyncio.run(oracle.run(cycles=3))

        assert sleep.await_count == 2
        sleep.assert_awaited_with(30)
        assert oracle.store.get_aggregated_snapshot().version == 3

    def test_update_config(self, config: OracleConfig, config_dict: dict) -> None:
        """A config update applies from the next cycle on."""
        oracle = make_oracle(config, {"kraken": StaticProvider(prices={"USDT/USD": "1.1"})})
        config_dict["markets"]["USDT/USD"]["ticker"]["enabled"] = False
        del config_dict["paths"]
        oracle.update_config(OracleConfig.from_dict(config_dict))

        report = asyncio.run(oracle.run_cycle())

        assert report.prices == {}
