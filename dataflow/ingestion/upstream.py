"""
Upstream Connection

Owns one WebSocket session to one exchange kline stream and emits a
canonical Candle for every closed interval. Retrying is left to
ReconnectSupervisor; a single `run()` call covers one session.
"""

import asyncio
import contextlib
import logging
import time
from typing import Awaitable, Callable, NamedTuple, Optional

import websockets

from dataflow.ingestion.exchanges import DECODE_ERRORS, ExchangeCodec
from schemas.market_data import Candle

logger = logging.getLogger(__name__)

CandleHandler = Callable[[Candle], Awaitable[None]]


class ConnectionKey(NamedTuple):
    """Identifies one upstream socket"""
    exchange: str
    symbol: str
    base_interval: str

    def __str__(self) -> str:
        return f"{self.exchange}-{self.symbol}-{self.base_interval}"


class UpstreamConnection:
    """
    One exchange kline WebSocket.

    States: idle -> connecting -> open -> closed. A closed connection can be
    run again.

    Example usage:
        key = ConnectionKey("binance", "BTCUSDT", "1m")
        conn = UpstreamConnection(key, resolve_codec("binance"), on_candle)
        await conn.run()  # returns when the socket closes
    """

    def __init__(
        self,
        key: ConnectionKey,
        codec: ExchangeCodec,
        on_candle: CandleHandler,
        connector: Optional[Callable] = None,
        heartbeat_interval: float = 20.0,
    ):
        self.key = key
        self.codec = codec
        self.on_candle = on_candle
        self.heartbeat_interval = heartbeat_interval
        self._connect = connector or websockets.connect
        self._ws = None

        self.state = "idle"
        self.messages_received = 0
        self.candles_emitted = 0
        self.decode_errors = 0
        self.last_message_at: Optional[float] = None

    @property
    def url(self) -> str:
        return self.codec.url(self.key.symbol, self.key.base_interval)

    async def run(self) -> None:
        """Connect, stream until the socket closes, then return"""
        self.state = "connecting"
        logger.info(f"Connecting to {self.key} ({self.url})...")
        heartbeat: Optional[asyncio.Task] = None

        try:
            async with self._connect(
                self.url, ping_interval=20, ping_timeout=20
            ) as ws:
                self._ws = ws
                self.state = "open"
                logger.info(f"Connected: {self.key}")

                subscribe = self.codec.subscribe_message(
                    self.key.symbol, self.key.base_interval
                )
                if subscribe is not None:
                    await ws.send(subscribe)
                    logger.debug(f"Sent subscribe for {self.key}: {subscribe}")

                if self.codec.heartbeat_message() is not None:
                    heartbeat = asyncio.create_task(self._heartbeat(ws))

                async for raw in ws:
                    await self._handle_message(raw)

        except Exception as e:
            logger.error(f"WebSocket error ({self.key}): {e}")
        finally:
            if heartbeat is not None:
                heartbeat.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await heartbeat
            self._ws = None
            self.state = "closed"
            logger.warning(f"Disconnected: {self.key}")

    async def _handle_message(self, raw) -> None:
        self.messages_received += 1
        self.last_message_at = time.time()

        try:
            candles = self.codec.decode(raw, self.key.symbol, self.key.base_interval)
        except DECODE_ERRORS as e:
            self.decode_errors += 1
            logger.warning(f"Message parse error ({self.key}): {e}")
            return

        for candle in candles:
            self.candles_emitted += 1
            await self.on_candle(candle)

    async def _heartbeat(self, ws) -> None:
        message = self.codec.heartbeat_message()
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            try:
                await ws.send(message)
            except Exception as e:
                logger.warning(f"Heartbeat failed ({self.key}): {e}")
                return

    async def close(self) -> None:
        """Close the socket if open; `run()` returns once it has closed"""
        if self._ws is not None:
            await self._ws.close()

    def get_metrics(self) -> dict:
        return {
            "state": self.state,
            "url": self.url,
            "messages_received": self.messages_received,
            "candles_emitted": self.candles_emitted,
            "decode_errors": self.decode_errors,
            "last_message_at": self.last_message_at,
        }
