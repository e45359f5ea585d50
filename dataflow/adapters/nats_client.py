"""
NATS Client Adapter

Async NATS client used to publish delivered candles.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Optional

import nats
from nats.aio.client import Client as NatsConnection

logger = logging.getLogger(__name__)


@dataclass
class NatsConfig:
    """NATS connection configuration"""
    servers: list[str] = field(default_factory=lambda: ["nats://localhost:4222"])
    name: str = "candle-bridge"
    reconnect_time_wait: float = 2.0
    max_reconnect_attempts: int = -1  # Infinite reconnects
    ping_interval: int = 20
    max_outstanding_pings: int = 3

    @classmethod
    def from_env(cls, prefix: str = "NATS") -> "NatsConfig":
        """Create config from environment variables"""
        servers = os.getenv(f"{prefix}_SERVERS", "nats://localhost:4222")
        return cls(
            servers=servers.split(","),
            name=os.getenv(f"{prefix}_CLIENT_NAME", "candle-bridge"),
        )


class NatsClient:
    """
    Async NATS publisher.

    Topic Patterns:
    - deliveries.{subscriber}.{exchange}.{symbol}.{tf}   - Per-subscriber delivery
    """

    def __init__(self, config: Optional[NatsConfig] = None):
        self.config = config or NatsConfig()
        self._nc: Optional[NatsConnection] = None
        self._connected = False

    @property
    def is_connected(self) -> bool:
        """Check if client is connected"""
        return self._connected and self._nc is not None and self._nc.is_connected

    async def connect(self) -> None:
        """Establish connection to NATS server"""
        if self._connected:
            return

        async def error_handler(e):
            logger.error(f"NATS error: {e}")

        async def closed_handler():
            logger.warning("NATS connection closed")
            self._connected = False

        async def reconnected_handler():
            logger.info("NATS reconnected")
            self._connected = True

        async def disconnected_handler():
            logger.warning("NATS disconnected")
            self._connected = False

        try:
            self._nc = await nats.connect(
                servers=self.config.servers,
                name=self.config.name,
                reconnect_time_wait=self.config.reconnect_time_wait,
                max_reconnect_attempts=self.config.max_reconnect_attempts,
                ping_interval=self.config.ping_interval,
                max_outstanding_pings=self.config.max_outstanding_pings,
                error_cb=error_handler,
                closed_cb=closed_handler,
                reconnected_cb=reconnected_handler,
                disconnected_cb=disconnected_handler,
            )
            self._connected = True
            logger.info(f"Connected to NATS: {self.config.servers}")
        except Exception as e:
            logger.error(f"Failed to connect to NATS: {e}")
            raise

    async def close(self) -> None:
        """Close NATS connection"""
        if self._nc:
            await self._nc.drain()
            await self._nc.close()
            self._connected = False
            logger.info("NATS connection closed")

    async def publish(
        self, subject: str, data: bytes, headers: Optional[Dict[str, str]] = None
    ) -> None:
        """
        Publish data to a NATS subject.

        Args:
            subject: NATS subject (e.g., "candles.binance.BTCUSDT.5m")
            data: Bytes payload (typically JSON)
            headers: Optional NATS message headers
        """
        if not self.is_connected:
            raise RuntimeError("NATS client not connected")
        await self._nc.publish(subject, data, headers=headers)
        logger.debug(f"Published to {subject}: {len(data)} bytes")

    async def publish_json(
        self, subject: str, data: str, headers: Optional[Dict[str, str]] = None
    ) -> None:
        """Publish JSON string to a NATS subject"""
        await self.publish(subject, data.encode("utf-8"), headers=headers)


class Topics:
    """NATS topic name builders"""

    @staticmethod
    def _sanitize(name: str) -> str:
        """
        Sanitize a name for use in NATS topics.

        NATS topic segments can only contain alphanumeric characters,
        hyphens, and underscores.
        """
        sanitized = name.replace(" ", "_")
        sanitized = "".join(c if c.isalnum() or c in "-_" else "_" for c in sanitized)
        return sanitized

    @staticmethod
    def deliveries(subscriber_id: str, exchange: str, symbol: str, timeframe: str) -> str:
        """Per-subscriber delivery topic"""
        return (
            f"deliveries.{Topics._sanitize(subscriber_id)}."
            f"{Topics._sanitize(exchange)}.{Topics._sanitize(symbol)}.{timeframe}"
        )
