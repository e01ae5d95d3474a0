"""Unit tests for PriceStore."""

import threading
from unittest.mock import patch

import pytest

from index_oracle.src.PriceStore import PriceStore
from index_oracle.src.Ticker import CurrencyPair, Ticker

BTC_USD = Ticker(CurrencyPair("BTC", "USD"), decimals=8)
ETH_USD = Ticker(CurrencyPair("ETH", "USD"), decimals=8)


class TestProviderData:
    """Test raw per-provider tables."""

    def test_set_and_get(self) -> None:
        """A provider's table can be read back."""
        store = PriceStore()
        store.set_provider_data("coinbase", {BTC_USD: 100})
        assert store.get_data_by_provider("coinbase") == {BTC_USD: 100}
        assert store.get_provider_data() == {"coinbase": {BTC_USD: 100}}

    def test_set_replaces_whole_table(self) -> None:
        """Setting a table replaces it rather than merging."""
        store = PriceStore()
        store.set_provider_data("coinbase", {BTC_USD: 100, ETH_USD: 10})
        store.set_provider_data("coinbase", {BTC_USD: 101})
        assert store.get_data_by_provider("coinbase") == {BTC_USD: 101}

    def test_none_stored_as_empty(self) -> None:
        """A None table is stored as empty."""
        store = PriceStore()
        store.set_provider_data("kraken", None)
        assert store.get_provider_data() == {"kraken": {}}

    def test_unknown_provider(self) -> None:
        """Unknown providers read as empty."""
        assert PriceStore().get_data_by_provider("nobody") == {}

    def test_reset(self) -> None:
        """reset_provider_data drops every table."""
        store = PriceStore()
        store.set_provider_data("coinbase", {BTC_USD: 100})
        store.reset_provider_data()
        assert store.get_provider_data() == {}

    def test_reset_keeps_aggregated(self) -> None:
        """Index prices survive a raw reset."""
        store = PriceStore()
        store.set_aggregated_data({BTC_USD: 100})
        store.reset_provider_data()
        assert store.get_aggregated_data() == {BTC_USD: 100}

    def test_returned_maps_are_copies(self) -> None:
        """Mutating a returned map does not affect the store."""
        store = PriceStore()
        prices = {BTC_USD: 100}
        store.set_provider_data("coinbase", prices)
        prices[ETH_USD] = 1

        store.get_provider_data()["coinbase"][BTC_USD] = 0
        store.get_data_by_provider("coinbase")[BTC_USD] = 0

        assert store.get_data_by_provider("coinbase") == {BTC_USD: 100}


class TestAggregatedData:
    """Test the versioned aggregated snapshots."""

    def test_empty(self) -> None:
        """A new store has no index prices."""
        store = PriceStore()
        assert store.get_aggregated_data() == {}
        assert store.get_aggregated_snapshot() is None

    def test_versions_increase(self) -> None:
        """Each stored snapshot gets the next version."""
        store = PriceStore()
        first = store.set_aggregated_data({BTC_USD: 100})
        second = store.set_aggregated_data({BTC_USD: 101})
        assert (first.version, second.version) == (1, 2)
        assert store.get_aggregated_data() == {BTC_USD: 101}
        assert store.get_aggregated_snapshot(1).prices == {BTC_USD: 100}

    def test_history_is_bounded(self) -> None:
        """Only the newest ``history`` snapshots are kept."""
        store = PriceStore(history=2)
        for price in (100, 101, 102):
            store.set_aggregated_data({BTC_USD: price})
        assert [s.version for s in store.get_aggregated_history()] == [2, 3]
        assert store.get_aggregated_snapshot(1) is None

    def test_invalid_history(self) -> None:
        """history must be at least one."""
        with pytest.raises(ValueError, match="history must be at least 1"):
            PriceStore(history=0)

    @patch("index_oracle.src.PriceStore.time.time")
    def test_snapshot_age(self, mock_time) -> None:
        """Snapshot age is measured from when it was stored."""
        mock_time.return_value = 1000.0
        snapshot = PriceStore().set_aggregated_data({BTC_USD: 100})
        mock_time.return_value = 1030.0
        assert snapshot.created_at == 1000.0
        assert snapshot.age == 30.0

    def test_snapshot_copies(self) -> None:
        """snapshot() returns raw and latest index tables as copies."""
        store = PriceStore()
        store.set_provider_data("coinbase", {BTC_USD: 100})
        store.set_aggregated_data({ETH_USD: 5})

        raw, index = store.snapshot()
        raw["coinbase"][BTC_USD] = 0
        index[ETH_USD] = 0

        assert store.snapshot() == ({"coinbase": {BTC_USD: 100}}, {ETH_USD: 5})


class TestConcurrency:
    """Test concurrent writers."""

    def test_parallel_providers(self) -> None:
        """Concurrent writers each keep their whole table."""
        store = PriceStore()

        def write(source: str, price: int) -> None:
            for _ in range(200):
                store.set_provider_data(source, {BTC_USD: price, ETH_USD: price})

        threads = [
            threading.Thread(target=write, args=(f"source-{i}", i)) for i in range(8)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        data = store.get_provider_data()
        assert len(data) == 8
        for i in range(8):
            assert data[f"source-{i}"] == {BTC_USD: i, ETH_USD: i}
