"""
Stream Coordinator

Owns all bridge state: the subscription map, the upstream connection pool
and the aggregation buffers. Routes each finalized base candle to every
interested subscriber, aggregating where the subscriber asked for a
coarser timeframe.
"""

import logging
from typing import Any, Callable, Dict, Optional

from dataflow.candle_aggregation.aggregator import TimeframeAggregator
from dataflow.delivery.dispatcher import DeliveryDispatcher
from dataflow.errors import InvalidArgument
from dataflow.ingestion.exchanges import ExchangeCodec, resolve_codec
from dataflow.ingestion.upstream import ConnectionKey, UpstreamConnection
from schemas.market_data import Candle

from ..registry.connections import ConnectionRegistry
from ..registry.subscriptions import SubscriptionRegistry
from ..scheduler.reconnect import ReconnectSupervisor

logger = logging.getLogger(__name__)


def _require(field_name: str, value: Optional[str]) -> str:
    if value is None or not str(value).strip():
        raise InvalidArgument(f"Missing required field: {field_name}")
    return str(value).strip()


class StreamCoordinator:
    """
    Multiplexes exchange candle streams to subscribers.

    The coordinator:
    1. Validates and records subscriptions
    2. Opens one upstream connection per exchange+symbol+base interval
    3. Aggregates base candles per subscriber timeframe
    4. Hands finished candles to the delivery dispatcher
    5. Releases connections once nobody is subscribed

    Example usage:
        dispatcher = DeliveryDispatcher(HttpCandleSink(worker_url))
        coordinator = StreamCoordinator(dispatcher)

        await coordinator.subscribe("binance", "BTCUSDT", "5m", "u1")
        ...
        await coordinator.unsubscribe("binance", "BTCUSDT", "5m", "u1")
        await coordinator.close()
    """

    def __init__(
        self,
        dispatcher: DeliveryDispatcher,
        base_interval: str = "1m",
        reconnect_delay: float = 5.0,
        heartbeat_interval: float = 20.0,
        connector: Optional[Callable] = None,
    ):
        """
        Args:
            dispatcher: Delivery dispatcher for finished candles
            base_interval: Interval subscribed upstream and folded into coarser timeframes
            reconnect_delay: Seconds between a disconnect and the reconnect attempt
            heartbeat_interval: Seconds between application pings, for exchanges that need them
            connector: WebSocket connect function (defaults to websockets.connect)
        """
        self.dispatcher = dispatcher
        self.base_interval = base_interval
        self.reconnect_delay = reconnect_delay
        self.heartbeat_interval = heartbeat_interval
        self.connector = connector

        self.subscriptions = SubscriptionRegistry()
        self.connections = ConnectionRegistry()
        self.aggregator = TimeframeAggregator(base_interval)

        self.candles_received = 0

    def _normalize(self, exchange, symbol, timeframe, subscriber_id):
        return (
            _require("exchange", exchange).lower(),
            _require("symbol", symbol).upper(),
            _require("timeframe", timeframe).lower(),
            _require("subscriber", subscriber_id),
        )

    async def subscribe(
        self, exchange: str, symbol: str, timeframe: str, subscriber_id: str
    ) -> int:
        """
        Subscribe to an exchange stream at a timeframe.

        Returns:
            Number of subscribers for this (exchange, symbol, timeframe)

        Raises:
            InvalidArgument: If a field is missing or the timeframe is unsupported
            UnsupportedExchange: If the exchange has no codec
        """
        exchange, symbol, timeframe, subscriber_id = self._normalize(
            exchange, symbol, timeframe, subscriber_id
        )
        codec = resolve_codec(exchange)
        self.aggregator.required_candles(timeframe)

        count = self.subscriptions.subscribe(exchange, symbol, timeframe, subscriber_id)

        key = ConnectionKey(exchange, symbol, self.base_interval)
        self.connections.acquire(key, lambda: self._open_connection(key, codec))
        return count

    async def unsubscribe(
        self, exchange: str, symbol: str, timeframe: str, subscriber_id: str
    ) -> None:
        """
        Remove a subscription; no-op if it does not exist.

        Raises:
            InvalidArgument: If a field is missing
        """
        exchange, symbol, timeframe, subscriber_id = self._normalize(
            exchange, symbol, timeframe, subscriber_id
        )

        still_wanted = self.subscriptions.unsubscribe(exchange, symbol, timeframe, subscriber_id)
        self.aggregator.discard(subscriber_id, exchange, symbol, timeframe)

        if not still_wanted:
            key = ConnectionKey(exchange, symbol, self.base_interval)
            if await self.connections.release(key):
                logger.info(f"Last subscriber left {exchange}/{symbol}, connection closed")

    def _open_connection(self, key: ConnectionKey, codec: ExchangeCodec) -> ReconnectSupervisor:
        connection = UpstreamConnection(
            key,
            codec,
            self._handle_candle,
            connector=self.connector,
            heartbeat_interval=self.heartbeat_interval,
        )
        supervisor = ReconnectSupervisor(
            connection,
            has_interest=self._has_interest,
            on_released=self._on_released,
            reconnect_delay=self.reconnect_delay,
        )
        return supervisor.start()

    def _has_interest(self, key: ConnectionKey) -> bool:
        return self.subscriptions.has_interest(key.exchange, key.symbol)

    def _on_released(self, key: ConnectionKey) -> None:
        self.connections.discard(key)
        dropped = self.aggregator.discard_pair(key.exchange, key.symbol)
        logger.info(f"Released {key} after disconnect ({dropped} buffers dropped)")

    async def _handle_candle(self, candle: Candle) -> None:
        """
        Route one finalized base candle from an upstream connection.

        Runs without suspending: deliveries are scheduled, not awaited.
        """
        self.candles_received += 1
        # Codecs label candles with the exchange name they were built for,
        # which matches the normalized name used in subscription keys.
        pairs = self.subscriptions.interested_subscribers(candle.exchange, candle.symbol)
        if not pairs:
            logger.debug(f"No subscribers for {candle.exchange}/{candle.symbol}, dropping candle")
            return

        for timeframe, subscriber_id in pairs:
            try:
                derived = self.aggregator.on_base_candle(subscriber_id, timeframe, candle)
            except Exception as e:
                logger.error(
                    f"Failed to aggregate {timeframe} candle for {subscriber_id}: {e}",
                    exc_info=True,
                )
                continue

            if derived is not None:
                self.dispatcher.deliver(derived, subscriber_id)

    def status(self) -> Dict[str, Any]:
        """Active connections and subscriber counts"""
        return {
            "active_connections": [str(key) for key in self.connections.keys()],
            "subscriber_counts": self.subscriptions.subscriber_counts(),
            "connections": {
                str(key): self.connections.get(key).get_metrics()
                for key in self.connections.keys()
            },
        }

    async def close(self) -> None:
        """Release every connection, finish in-flight deliveries, close the sink"""
        for key in self.connections.keys():
            await self.connections.release(key)
        await self.dispatcher.close()
        logger.info("Stream coordinator stopped")

    def get_metrics(self) -> Dict[str, Any]:
        return {
            "connections": len(self.connections),
            "subscription_keys": len(self.subscriptions),
            "aggregation_buffers": len(self.aggregator),
            "candles_received": self.candles_received,
            "deliveries_ok": self.dispatcher.delivered,
            "deliveries_failed": self.dispatcher.failed,
            "deliveries_pending": self.dispatcher.pending,
        }
