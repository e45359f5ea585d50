import pytest

from dataflow.ingestion.upstream import ConnectionKey
from engine.registry.connections import ConnectionRegistry
from engine.registry.subscriptions import SubscriptionRegistry


class StubConnection:
    def __init__(self):
        self.stopped = False

    async def stop(self):
        self.stopped = True


def test_subscribe_counts_unique_subscribers():
    registry = SubscriptionRegistry()
    assert registry.subscribe("binance", "BTCUSDT", "5m", "u1") == 1
    assert registry.subscribe("binance", "BTCUSDT", "5m", "u1") == 1
    assert registry.subscribe("binance", "BTCUSDT", "5m", "u2") == 2
    assert registry.subscriber_counts() == {"binance-BTCUSDT-5m": 2}


def test_unsubscribe_deletes_empty_keys_and_reports_pair_interest():
    registry = SubscriptionRegistry()
    registry.subscribe("binance", "BTCUSDT", "5m", "u1")
    registry.subscribe("binance", "BTCUSDT", "1h", "u2")

    assert registry.unsubscribe("binance", "BTCUSDT", "5m", "u1") is True
    assert registry.keys() == [("binance", "BTCUSDT", "1h")]

    assert registry.unsubscribe("binance", "BTCUSDT", "1h", "u2") is False
    assert len(registry) == 0


def test_unsubscribe_unknown_is_noop():
    registry = SubscriptionRegistry()
    registry.subscribe("binance", "BTCUSDT", "5m", "u1")

    assert registry.unsubscribe("binance", "BTCUSDT", "5m", "ghost") is True
    assert registry.unsubscribe("bybit", "ETHUSDT", "1m", "u1") is False
    assert registry.subscribers("binance", "BTCUSDT", "5m") == {"u1"}


def test_interest_uses_exact_symbol_not_prefix():
    registry = SubscriptionRegistry()
    registry.subscribe("binance", "BTCUSDT", "5m", "u1")

    assert registry.has_interest("binance", "BTCUSDT") is True
    assert registry.has_interest("binance", "BTC") is False
    assert registry.interested_subscribers("binance", "BTC") == []


def test_interested_subscribers_is_a_snapshot():
    registry = SubscriptionRegistry()
    registry.subscribe("binance", "BTCUSDT", "1m", "u1")
    registry.subscribe("binance", "BTCUSDT", "5m", "u2")
    registry.subscribe("bybit", "BTCUSDT", "5m", "u3")

    pairs = registry.interested_subscribers("binance", "BTCUSDT")
    visited = []
    for timeframe, subscriber_id in pairs:
        registry.unsubscribe("binance", "BTCUSDT", "5m", "u2")
        registry.subscribe("binance", "BTCUSDT", "15m", "u4")
        visited.append((timeframe, subscriber_id))

    assert sorted(visited) == [("1m", "u1"), ("5m", "u2")]


@pytest.mark.asyncio
async def test_acquire_is_idempotent_and_release_stops():
    registry = ConnectionRegistry()
    key = ConnectionKey("binance", "BTCUSDT", "1m")
    created = []

    def factory():
        conn = StubConnection()
        created.append(conn)
        return conn

    first = registry.acquire(key, factory)
    second = registry.acquire(key, factory)

    assert first is second
    assert len(created) == 1
    assert key in registry

    assert await registry.release(key) is True
    assert first.stopped is True
    assert await registry.release(key) is False
    assert len(registry) == 0


def test_discard_removes_without_stopping():
    registry = ConnectionRegistry()
    key = ConnectionKey("bybit", "ETHUSDT", "1m")
    conn = registry.acquire(key, StubConnection)

    registry.discard(key)

    assert registry.get(key) is None
    assert conn.stopped is False
    assert str(key) == "bybit-ETHUSDT-1m"
