"""
Candle Sinks

Concrete delivery targets for DeliveryDispatcher:
- HttpCandleSink: POST the JSON candle to a forwarding worker
- NatsCandleSink: publish the JSON candle to a per-subscriber NATS subject
"""

import json
import logging
from typing import Optional

import aiohttp

from dataflow.adapters.nats_client import NatsClient, Topics
from dataflow.errors import DeliveryError
from schemas.market_data import Candle

logger = logging.getLogger(__name__)

DEFAULT_SUBSCRIBER_HEADER = "X-Subscriber-Id"


class HttpCandleSink:
    """
    Delivers candles with an HTTP POST to `{worker_url}{path}`.

    The subscriber identity travels in a request header; the body is the
    candle's JSON form.
    """

    def __init__(
        self,
        worker_url: str,
        path: str = "/api/new-candle",
        subscriber_header: str = DEFAULT_SUBSCRIBER_HEADER,
        timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.endpoint = worker_url.rstrip("/") + path
        self.subscriber_header = subscriber_header
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
            self._owns_session = True
        return self._session

    async def send(self, candle: Candle, subscriber_id: str) -> None:
        session = self._get_session()
        try:
            async with session.post(
                self.endpoint,
                json=candle.to_dict(),
                headers={self.subscriber_header: subscriber_id},
            ) as response:
                if response.status >= 400:
                    raise DeliveryError(f"Worker responded with {response.status}")
        except aiohttp.ClientError as e:
            raise DeliveryError(f"Worker unreachable: {e}") from e

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
            logger.info("HTTP delivery session closed")


class NatsCandleSink:
    """Delivers candles by publishing to deliveries.{subscriber}.{exchange}.{symbol}.{tf}"""

    def __init__(self, nats_client: NatsClient, subscriber_header: str = DEFAULT_SUBSCRIBER_HEADER):
        self.nats = nats_client
        self.subscriber_header = subscriber_header

    async def send(self, candle: Candle, subscriber_id: str) -> None:
        topic = Topics.deliveries(subscriber_id, candle.exchange, candle.symbol, candle.timeframe)
        payload = dict(candle.to_dict(), subscriber=subscriber_id)
        try:
            await self.nats.publish_json(
                topic, json.dumps(payload), headers={self.subscriber_header: subscriber_id}
            )
        except Exception as e:
            raise DeliveryError(f"NATS publish to {topic} failed: {e}") from e

    async def close(self) -> None:
        await self.nats.close()
