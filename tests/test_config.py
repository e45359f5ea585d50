from pathlib import Path

import pytest

from engine.config.loader import BridgeConfig, ConfigLoader


def test_bridge_config_from_env(monkeypatch):
    monkeypatch.setenv("BRIDGE_BASE_INTERVAL", "5m")
    monkeypatch.setenv("BRIDGE_RECONNECT_DELAY", "2.5")
    monkeypatch.setenv("BRIDGE_SINK", "NATS")
    monkeypatch.setenv("BRIDGE_SUBSCRIPTIONS_FILE", "config/subscriptions.yaml")
    monkeypatch.setenv("WORKER_URL", "https://worker.example")
    monkeypatch.setenv("PORT", "8080")

    config = BridgeConfig.from_env()

    assert config.base_interval == "5m"
    assert config.reconnect_delay == 2.5
    assert config.sink == "nats"
    assert config.subscriptions_file == Path("config/subscriptions.yaml")
    assert config.worker_url == "https://worker.example"
    assert config.port == 8080


def test_bridge_config_defaults(monkeypatch):
    for name in ["BRIDGE_SINK", "BRIDGE_SUBSCRIPTIONS_FILE", "BRIDGE_RECONNECT_DELAY"]:
        monkeypatch.delenv(name, raising=False)

    config = BridgeConfig.from_env()

    assert config.reconnect_delay == 5.0
    assert config.sink == "http"
    assert config.subscriptions_file is None


def test_bridge_config_rejects_unknown_sink(monkeypatch):
    monkeypatch.setenv("BRIDGE_SINK", "kafka")
    with pytest.raises(ValueError, match="kafka"):
        BridgeConfig.from_env()


def test_load_subscriptions(tmp_path):
    path = tmp_path / "subs.yaml"
    path.write_text(
        "subscriptions:\n"
        "  - exchange: binance\n"
        "    symbol: BTCUSDT\n"
        "    timeframe: 15m\n"
        "    subscriber: alerts\n"
    )

    [sub] = ConfigLoader(path).load_subscriptions()

    assert (sub.exchange, sub.symbol, sub.timeframe, sub.subscriber) == (
        "binance", "BTCUSDT", "15m", "alerts",
    )


def test_load_subscriptions_errors(tmp_path):
    with pytest.raises(ValueError, match="not found"):
        ConfigLoader(tmp_path / "missing.yaml").load_subscriptions()

    bad = tmp_path / "bad.yaml"
    bad.write_text("subscriptions:\n  - exchange: binance\n")
    with pytest.raises(ValueError, match="Failed to load"):
        ConfigLoader(bad).load_subscriptions()

    empty = tmp_path / "empty.yaml"
    empty.write_text("")
    assert ConfigLoader(empty).load_subscriptions() == []
