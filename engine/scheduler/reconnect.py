"""
Reconnect Supervisor

Keeps an UpstreamConnection alive for as long as someone is subscribed to
it. After every disconnect it waits a fixed delay, then asks whether the
connection still has subscribers; if not, it releases the connection
instead of reconnecting.
"""

import asyncio
import logging
from typing import Callable, Optional

from dataflow.ingestion.upstream import ConnectionKey, UpstreamConnection

logger = logging.getLogger(__name__)


class ReconnectSupervisor:
    """
    Runs one connection as a cancellable task.

    There is no backoff growth and no attempt limit: an endpoint that stays
    down is retried every `reconnect_delay` seconds while interest lasts.

    Example usage:
        supervisor = ReconnectSupervisor(
            connection,
            has_interest=lambda key: registry.has_interest(key.exchange, key.symbol),
            on_released=lambda key: connections.discard(key),
        )
        supervisor.start()
        ...
        await supervisor.stop()
    """

    def __init__(
        self,
        connection: UpstreamConnection,
        has_interest: Callable[[ConnectionKey], bool],
        on_released: Callable[[ConnectionKey], None],
        reconnect_delay: float = 5.0,
    ):
        self.connection = connection
        self.has_interest = has_interest
        self.on_released = on_released
        self.reconnect_delay = reconnect_delay

        self.attempts = 0
        self.reconnects = 0
        self._stopped = False
        self._task: Optional[asyncio.Task] = None

    @property
    def key(self) -> ConnectionKey:
        return self.connection.key

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> "ReconnectSupervisor":
        """Start supervising on the running event loop"""
        if self._task is None:
            self._task = asyncio.create_task(self._supervise(), name=f"upstream:{self.key}")
        return self

    async def _supervise(self) -> None:
        while not self._stopped:
            self.attempts += 1
            await self.connection.run()

            if self._stopped:
                return

            logger.info(f"Reconnecting {self.key} in {self.reconnect_delay:g}s")
            await asyncio.sleep(self.reconnect_delay)

            # Interest is checked when the timer fires: unsubscribes may
            # have landed while we were waiting.
            if self._stopped:
                return
            if not self.has_interest(self.key):
                logger.info(f"No subscribers remain for {self.key}, not reconnecting")
                self._stopped = True
                self.on_released(self.key)
                return

            self.reconnects += 1
            logger.info(f"🔄 Reconnecting: {self.key} (reconnect #{self.reconnects})")

    async def stop(self) -> None:
        """Close the socket and cancel any pending reconnect"""
        self._stopped = True
        await self.connection.close()

        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info(f"Stopped supervising {self.key}")

    def get_metrics(self) -> dict:
        metrics = self.connection.get_metrics()
        metrics.update({"attempts": self.attempts, "reconnects": self.reconnects})
        return metrics
