"""
Delivery Dispatcher

Fans finalized candles out to subscribers through a CandleSink.
Every delivery runs as its own task so a slow or failing subscriber never
holds up the others; the result of each attempt is reported to an observer.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Set

from schemas.market_data import Candle

logger = logging.getLogger(__name__)


class CandleSink(Protocol):
    """
    Destination for delivered candles.

    `send` raises DeliveryError (or any transport error) on failure.
    """

    async def send(self, candle: Candle, subscriber_id: str) -> None:
        ...

    async def close(self) -> None:
        ...


@dataclass(frozen=True)
class DeliveryOutcome:
    """Result of delivering one candle to one subscriber"""
    subscriber_id: str
    candle: Candle
    delivered: bool
    reason: Optional[str] = None

    @classmethod
    def success(cls, candle: Candle, subscriber_id: str) -> "DeliveryOutcome":
        return cls(subscriber_id=subscriber_id, candle=candle, delivered=True)

    @classmethod
    def failure(cls, candle: Candle, subscriber_id: str, reason: str) -> "DeliveryOutcome":
        return cls(subscriber_id=subscriber_id, candle=candle, delivered=False, reason=reason)


OutcomeObserver = Callable[[DeliveryOutcome], None]


def log_outcome(outcome: DeliveryOutcome) -> None:
    """Default observer: one log line per delivery"""
    candle = outcome.candle
    if outcome.delivered:
        logger.info(
            f"✓ Candle sent to {outcome.subscriber_id}: {candle.exchange} "
            f"{candle.symbol} {candle.timeframe} "
            f"O={candle.open:.2f} H={candle.high:.2f} "
            f"L={candle.low:.2f} C={candle.close:.2f} V={candle.volume:.2f}"
        )
    else:
        logger.error(
            f"Failed to send {candle.exchange} {candle.symbol} {candle.timeframe} "
            f"candle to {outcome.subscriber_id}: {outcome.reason}"
        )


class DeliveryDispatcher:
    """
    Fire-and-forget candle delivery.

    Example usage:
        dispatcher = DeliveryDispatcher(HttpCandleSink(worker_url))
        dispatcher.deliver(candle, "u1")
        ...
        await dispatcher.drain()
    """

    def __init__(self, sink: CandleSink, observer: Optional[OutcomeObserver] = None):
        self.sink = sink
        self.observer = observer or log_outcome
        self._pending: Set[asyncio.Task] = set()

        self.delivered = 0
        self.failed = 0

    def deliver(self, candle: Candle, subscriber_id: str) -> asyncio.Task:
        """Schedule delivery of a candle to one subscriber and return at once"""
        task = asyncio.create_task(self._deliver(candle, subscriber_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _deliver(self, candle: Candle, subscriber_id: str) -> DeliveryOutcome:
        try:
            await self.sink.send(candle, subscriber_id)
            outcome = DeliveryOutcome.success(candle, subscriber_id)
            self.delivered += 1
        except Exception as e:
            outcome = DeliveryOutcome.failure(candle, subscriber_id, str(e) or type(e).__name__)
            self.failed += 1

        try:
            self.observer(outcome)
        except Exception as e:
            logger.error(f"Delivery observer failed: {e}", exc_info=True)
        return outcome

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every in-flight delivery to finish"""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
        await self.sink.close()
