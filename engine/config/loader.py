"""
Config Loader

Bridge settings from environment variables, and startup subscriptions
from YAML files.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


@dataclass
class BridgeConfig:
    """Candle bridge runtime configuration"""
    base_interval: str = "1m"
    reconnect_delay: float = 5.0
    heartbeat_interval: float = 20.0
    sink: str = "http"  # "http" or "nats"
    worker_url: str = "http://localhost:8787"
    delivery_path: str = "/api/new-candle"
    subscriber_header: str = "X-Subscriber-Id"
    delivery_timeout: float = 10.0
    subscriptions_file: Optional[Path] = None
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, prefix: str = "BRIDGE") -> "BridgeConfig":
        """Create config from environment variables"""
        subscriptions_file = os.getenv(f"{prefix}_SUBSCRIPTIONS_FILE")
        sink = os.getenv(f"{prefix}_SINK", "http").lower()
        if sink not in ("http", "nats"):
            raise ValueError(f"{prefix}_SINK must be 'http' or 'nats', got {sink!r}")

        return cls(
            base_interval=os.getenv(f"{prefix}_BASE_INTERVAL", "1m"),
            reconnect_delay=float(os.getenv(f"{prefix}_RECONNECT_DELAY", "5.0")),
            heartbeat_interval=float(os.getenv(f"{prefix}_HEARTBEAT_INTERVAL", "20.0")),
            sink=sink,
            worker_url=os.getenv("WORKER_URL", "http://localhost:8787"),
            delivery_path=os.getenv(f"{prefix}_DELIVERY_PATH", "/api/new-candle"),
            subscriber_header=os.getenv(f"{prefix}_SUBSCRIBER_HEADER", "X-Subscriber-Id"),
            delivery_timeout=float(os.getenv(f"{prefix}_DELIVERY_TIMEOUT", "10.0")),
            subscriptions_file=Path(subscriptions_file) if subscriptions_file else None,
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "3000")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


class SubscriptionConfig(BaseModel):
    """One startup subscription"""
    exchange: str
    symbol: str
    timeframe: str
    subscriber: str


class SubscriptionsFile(BaseModel):
    """Top-level layout of a subscriptions YAML file"""
    subscriptions: List[SubscriptionConfig] = Field(default_factory=list)


class ConfigLoader:
    """
    Loads startup subscriptions from YAML.

    File layout:
        subscriptions:
          - exchange: binance
            symbol: BTCUSDT
            timeframe: 5m
            subscriber: dashboard
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def load_subscriptions(self) -> List[SubscriptionConfig]:
        """
        Read and validate the subscriptions file.

        Raises:
            ValueError: If the file is missing or invalid
        """
        if not self.path.exists():
            raise ValueError(f"Subscriptions file not found: {self.path}")

        try:
            with open(self.path) as f:
                raw = yaml.safe_load(f) or {}
            config = SubscriptionsFile(**raw)
        except Exception as e:
            logger.error(f"Failed to load {self.path}: {e}")
            raise ValueError(f"Failed to load {self.path}: {e}")

        logger.info(f"Loaded {len(config.subscriptions)} subscriptions from {self.path.name}")
        return config.subscriptions
