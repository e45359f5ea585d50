import asyncio
import json

import pytest

from dataflow.errors import DeliveryError
from schemas.market_data import Candle

_CLOSED = object()


class FakeWebSocket:
    """In-memory stand-in for a websockets client connection"""

    def __init__(self, url):
        self.url = url
        self.sent = []
        self.closed = False
        self._queue = asyncio.Queue()

    def feed(self, raw):
        self._queue.put_nowait(raw)

    def drop(self):
        """Simulate the exchange closing the socket"""
        self._queue.put_nowait(_CLOSED)

    async def send(self, data):
        self.sent.append(data)

    async def close(self):
        if not self.closed:
            self.closed = True
            self._queue.put_nowait(_CLOSED)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._queue.get()
        if item is _CLOSED:
            self.closed = True
            raise StopAsyncIteration
        return item


class _Session:
    def __init__(self, ws):
        self.ws = ws

    async def __aenter__(self):
        return self.ws

    async def __aexit__(self, *exc):
        await self.ws.close()
        return False


class FakeConnector:
    """Replaces websockets.connect; records every connection attempt"""

    def __init__(self):
        self.sockets = []
        self.kwargs = []

    def __call__(self, url, **kwargs):
        ws = FakeWebSocket(url)
        self.sockets.append(ws)
        self.kwargs.append(kwargs)
        return _Session(ws)

    @property
    def attempts(self):
        return len(self.sockets)

    @property
    def latest(self):
        return self.sockets[-1]


class RecordingSink:
    """Collects delivered (subscriber_id, candle) pairs; can fail chosen subscribers"""

    def __init__(self, failing=()):
        self.received = []
        self.failing = set(failing)
        self.closed = False

    async def send(self, candle, subscriber_id):
        await asyncio.sleep(0)
        if subscriber_id in self.failing:
            raise DeliveryError("Worker responded with 500")
        self.received.append((subscriber_id, candle))

    async def close(self):
        self.closed = True

    def for_subscriber(self, subscriber_id):
        return [candle for sid, candle in self.received if sid == subscriber_id]


async def wait_for(predicate, timeout=1.0):
    """Yield to the event loop until predicate() holds"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.001)


def make_candle(open_time=0, open=100.0, high=101.0, low=99.0, close=100.5,
                volume=1.0, exchange="binance", symbol="BTCUSDT", timeframe="1m"):
    return Candle(
        exchange=exchange,
        symbol=symbol,
        timeframe=timeframe,
        open_time=open_time,
        open=open,
        high=high,
        low=low,
        close=close,
        volume=volume,
    )


def binance_kline(open_time, open, high, low, close, volume, closed=True):
    return json.dumps({
        "e": "kline",
        "E": open_time + 60_000,
        "s": "BTCUSDT",
        "k": {
            "t": open_time,
            "T": open_time + 59_999,
            "s": "BTCUSDT",
            "i": "1m",
            "o": str(open),
            "h": str(high),
            "l": str(low),
            "c": str(close),
            "v": str(volume),
            "x": closed,
        },
    })


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def sink():
    return RecordingSink()
