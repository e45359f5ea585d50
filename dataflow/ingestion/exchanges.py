"""
Exchange Codecs

Per-exchange knowledge of kline WebSocket streams: endpoint URLs, the
optional subscribe/heartbeat control messages, and decoding of raw frames
into canonical Candle records.

Supported exchanges (a "-testnet" suffix selects the sandbox endpoint):
- binance, binance-testnet  (USD-M futures kline streams)
- bybit, bybit-testnet      (v5 public linear kline topics)
"""

import json
import logging
from typing import Any, Dict, List, Optional, Tuple, Type

from dataflow.errors import UnsupportedExchange
from schemas.market_data import Candle

logger = logging.getLogger(__name__)

TESTNET_SUFFIX = "-testnet"

# Raised by codecs on malformed frames or entries
DECODE_ERRORS = (ValueError, KeyError, TypeError, AttributeError)


def normalize_exchange(exchange: str) -> Tuple[str, bool]:
    """
    Split an exchange name into its base exchange and testnet flag.

    Example:
        normalize_exchange("Bybit-Testnet") -> ("bybit", True)
    """
    name = exchange.strip().lower()
    if name.endswith(TESTNET_SUFFIX):
        return name[: -len(TESTNET_SUFFIX)], True
    return name, False


class ExchangeCodec:
    """
    Base class for exchange stream codecs.

    Subclasses provide the endpoint URLs and implement `decode`.
    """

    base_name: str = ""
    mainnet_url: str = ""
    testnet_url: str = ""

    def __init__(self, testnet: bool = False):
        self.testnet = testnet
        self.skipped_entries = 0

    @property
    def name(self) -> str:
        """Exchange label carried on every decoded candle"""
        return self.base_name + (TESTNET_SUFFIX if self.testnet else "")

    def url(self, symbol: str, interval: str) -> str:
        template = self.testnet_url if self.testnet else self.mainnet_url
        return template.format(symbol=symbol.lower(), interval=interval)

    def subscribe_message(self, symbol: str, interval: str) -> Optional[str]:
        """Control frame to send right after the socket opens, if any"""
        return None

    def heartbeat_message(self) -> Optional[str]:
        """Application-level keepalive frame, if the exchange requires one"""
        return None

    def decode(self, raw: Any, symbol: str, interval: str) -> List[Candle]:
        """
        Decode one raw frame into zero or more closed candles.

        Raises:
            ValueError, KeyError, TypeError: If the frame is malformed
        """
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}(testnet={self.testnet})"


class BinanceCodec(ExchangeCodec):
    """
    Binance kline stream.

    Frame shape:
        {"e": "kline", "k": {"t": 1700000000000, "o": "1.0", "h": "2.0",
                             "l": "0.5", "c": "1.5", "v": "10", "x": true}}
    """

    base_name = "binance"
    mainnet_url = "wss://fstream.binance.com/ws/{symbol}@kline_{interval}"
    testnet_url = "wss://stream.binancefuture.com/ws/{symbol}@kline_{interval}"

    def decode(self, raw: Any, symbol: str, interval: str) -> List[Candle]:
        message = json.loads(raw)

        # Combined streams wrap the event: {"stream": "...", "data": {...}}
        if isinstance(message.get("data"), dict) and "stream" in message:
            message = message["data"]

        kline = message.get("k")
        if message.get("e") != "kline" or not kline or not kline["x"]:
            return []

        return [
            Candle(
                exchange=self.name,
                symbol=symbol,
                timeframe=interval,
                open_time=int(kline["t"]),
                open=float(kline["o"]),
                high=float(kline["h"]),
                low=float(kline["l"]),
                close=float(kline["c"]),
                volume=float(kline["v"]),
            )
        ]


class BybitCodec(ExchangeCodec):
    """
    Bybit v5 kline topic.

    Requires a subscribe frame naming `kline.<interval code>.<symbol>` and a
    {"op": "ping"} heartbeat. Data frames batch one or more klines:
        {"topic": "kline.1.BTCUSDT", "data": [{"start": ..., "open": "...",
         ..., "confirm": true}]}
    """

    base_name = "bybit"
    mainnet_url = "wss://stream.bybit.com/v5/public/linear"
    testnet_url = "wss://stream-demo.bybit.com/v5/public/linear"

    INTERVAL_CODES = {
        "1m": "1",
        "3m": "3",
        "5m": "5",
        "15m": "15",
        "30m": "30",
        "1h": "60",
        "2h": "120",
        "4h": "240",
        "6h": "360",
        "12h": "720",
        "1d": "D",
    }

    def topic(self, symbol: str, interval: str) -> str:
        return f"kline.{self.INTERVAL_CODES.get(interval, interval)}.{symbol}"

    def subscribe_message(self, symbol: str, interval: str) -> Optional[str]:
        return json.dumps({"op": "subscribe", "args": [self.topic(symbol, interval)]})

    def heartbeat_message(self) -> Optional[str]:
        return json.dumps({"op": "ping"})

    def decode(self, raw: Any, symbol: str, interval: str) -> List[Candle]:
        message = json.loads(raw)

        topic = message.get("topic")
        if not topic or not topic.startswith("kline") or not message.get("data"):
            # Subscribe acks and pongs carry no topic
            return []

        candles = []
        for kline in message["data"]:
            try:
                if not kline.get("confirm"):
                    continue
                candles.append(
                    Candle(
                        exchange=self.name,
                        symbol=symbol,
                        timeframe=interval,
                        open_time=int(kline["start"]),
                        open=float(kline["open"]),
                        high=float(kline["high"]),
                        low=float(kline["low"]),
                        close=float(kline["close"]),
                        volume=float(kline["volume"]),
                    )
                )
            except DECODE_ERRORS as e:
                self.skipped_entries += 1
                logger.warning(f"Skipping malformed {self.name} kline for {symbol}: {e}")
        return candles


EXCHANGES: Dict[str, Type[ExchangeCodec]] = {
    BinanceCodec.base_name: BinanceCodec,
    BybitCodec.base_name: BybitCodec,
}


def resolve_codec(exchange: str) -> ExchangeCodec:
    """
    Create the codec for an exchange name.

    Raises:
        UnsupportedExchange: If no codec is registered for the base exchange
    """
    base, testnet = normalize_exchange(exchange)
    codec_cls = EXCHANGES.get(base)
    if codec_cls is None:
        raise UnsupportedExchange(exchange)
    return codec_cls(testnet=testnet)
