import asyncio

from fastapi.testclient import TestClient

from dataflow.delivery.dispatcher import DeliveryDispatcher
from dataflow.ingestion.gateway import main as gateway
from dataflow.ingestion.gateway.main import create_app
from engine.config.loader import BridgeConfig
from engine.runtime.coordinator import StreamCoordinator

from conftest import FakeConnector, RecordingSink


def make_client(config=None):
    connector = FakeConnector()
    coordinator = StreamCoordinator(
        DeliveryDispatcher(RecordingSink(), observer=lambda outcome: None),
        connector=connector,
    )
    app = create_app(config or BridgeConfig(), coordinator=coordinator)
    return TestClient(app), coordinator, connector


def test_health_endpoints():
    client, _, _ = make_client()
    with client:
        assert client.get("/").json()["status"] == "running"

        health = client.get("/health").json()
        assert health["status"] == "ok"
        assert health["connections"] == 0
        assert health["uptime"] >= 0


def test_subscribe_and_unsubscribe_flow():
    client, coordinator, connector = make_client()
    body = {"exchange": "binance", "symbol": "BTCUSDT", "timeframe": "5m", "subscriber": "u1"}

    with client:
        response = client.post("/subscribe", json=body)
        assert response.status_code == 200
        assert response.json()["subscribers"] == 1
        assert response.json()["total_connections"] == 1

        second = client.post("/connect", json=dict(body, subscriber="u2")).json()
        assert second["subscribers"] == 2
        assert second["total_connections"] == 1

        status = client.get("/connections").json()
        assert status["total"] == 1
        assert status["active_connections"] == ["binance-BTCUSDT-1m"]
        assert status["subscriber_counts"] == {"binance-BTCUSDT-5m": 2}

        client.post("/unsubscribe", json=body)
        assert client.post("/disconnect", json=dict(body, subscriber="u2")).json()["success"] is True
        assert client.get("/connections").json()["total"] == 0


def test_missing_fields_are_rejected_with_400():
    client, coordinator, _ = make_client()
    with client:
        response = client.post("/subscribe", json={"exchange": "binance", "symbol": "BTCUSDT"})
        assert response.status_code == 400
        assert "timeframe" in response.json()["error"]
        assert "detail" not in response.json()

        response = client.post("/unsubscribe", json={"exchange": "binance"})
        assert response.status_code == 400

    assert len(coordinator.subscriptions) == 0


def test_unsupported_exchange_is_rejected_with_400():
    client, _, connector = make_client()
    with client:
        response = client.post(
            "/subscribe",
            json={"exchange": "kraken", "symbol": "XBTUSD", "timeframe": "1m", "subscriber": "u1"},
        )
    assert response.status_code == 400
    assert response.json() == {"error": "Unsupported exchange: kraken"}
    assert connector.attempts == 0


def test_startup_subscriptions_from_yaml(tmp_path):
    path = tmp_path / "subscriptions.yaml"
    path.write_text(
        "subscriptions:\n"
        "  - {exchange: binance, symbol: BTCUSDT, timeframe: 5m, subscriber: dash}\n"
        "  - {exchange: bybit, symbol: ETHUSDT, timeframe: 1h, subscriber: dash}\n"
        "  - {exchange: kraken, symbol: XBTUSD, timeframe: 1m, subscriber: dash}\n"
    )
    client, _, _ = make_client(BridgeConfig(subscriptions_file=path))

    with client:
        status = client.get("/connections").json()

    assert sorted(status["active_connections"]) == ["binance-BTCUSDT-1m", "bybit-ETHUSDT-1m"]


def test_proxy_reports_transport_errors():
    client, _, _ = make_client()
    with client:
        response = client.post("/proxy/binance", json={"url": "not-a-url"})
    assert response.status_code == 500
    assert "error" in response.json()


def test_proxy_reports_timeouts_as_json(monkeypatch):
    class TimingOutSession:
        async def __aenter__(self):
            return self

        async def __aexit__(self, *exc):
            return False

        def request(self, method, url, **kwargs):
            raise asyncio.TimeoutError()

    monkeypatch.setattr(gateway.aiohttp, "ClientSession", TimingOutSession)
    client, _, _ = make_client()
    with client:
        response = client.post("/proxy/binance", json={"url": "https://fapi.binance.com/fapi/v1/time"})

    assert response.status_code == 500
    assert response.json() == {"error": "TimeoutError"}
