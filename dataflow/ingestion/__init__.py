"""
Ingestion

Exchange kline streams: codecs and upstream WebSocket connections.
"""

from dataflow.ingestion.exchanges import (
    BinanceCodec,
    BybitCodec,
    ExchangeCodec,
    normalize_exchange,
    resolve_codec,
)
from dataflow.ingestion.upstream import ConnectionKey, UpstreamConnection

__all__ = [
    "BinanceCodec",
    "BybitCodec",
    "ConnectionKey",
    "ExchangeCodec",
    "UpstreamConnection",
    "normalize_exchange",
    "resolve_codec",
]
