"""
Connection Registry

Keyed pool of supervised upstream connections, at most one per
ConnectionKey.
"""

import logging
from typing import Callable, Dict, List, Optional, Protocol

from dataflow.ingestion.upstream import ConnectionKey

logger = logging.getLogger(__name__)


class ManagedConnection(Protocol):
    """Anything the registry can hold and stop"""

    async def stop(self) -> None:
        ...


class ConnectionRegistry:
    """
    Pool of live upstream connections.

    `acquire` never suspends between lookup and insert, so repeated
    subscribe calls for the same key on the event loop share one connection.

    Example usage:
        registry = ConnectionRegistry()
        conn = registry.acquire(key, lambda: open_connection(key))
        same = registry.acquire(key, lambda: open_connection(key))  # no new socket
        await registry.release(key)
    """

    def __init__(self):
        self._connections: Dict[ConnectionKey, ManagedConnection] = {}

    def acquire(
        self, key: ConnectionKey, factory: Callable[[], ManagedConnection]
    ) -> ManagedConnection:
        """
        Return the connection for `key`, creating it with `factory` if absent.
        """
        existing = self._connections.get(key)
        if existing is not None:
            logger.debug(f"Already connected: {key}")
            return existing

        connection = factory()
        self._connections[key] = connection
        logger.info(f"Registered connection: {key} ({len(self._connections)} total)")
        return connection

    async def release(self, key: ConnectionKey) -> bool:
        """
        Stop and remove the connection for `key`.

        Returns:
            True if a connection was released, False if none was registered
        """
        connection = self._connections.pop(key, None)
        if connection is None:
            return False

        await connection.stop()
        logger.info(f"Released connection: {key} ({len(self._connections)} remaining)")
        return True

    def discard(self, key: ConnectionKey) -> None:
        """Remove the entry for `key` without stopping it"""
        if self._connections.pop(key, None) is not None:
            logger.info(f"Discarded connection: {key} ({len(self._connections)} remaining)")

    def get(self, key: ConnectionKey) -> Optional[ManagedConnection]:
        return self._connections.get(key)

    def keys(self) -> List[ConnectionKey]:
        return list(self._connections)

    def __contains__(self, key: ConnectionKey) -> bool:
        return key in self._connections

    def __len__(self) -> int:
        return len(self._connections)
