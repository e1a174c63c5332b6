"""
Session registry.

The set of connections currently open on the server. All membership changes and
broadcast iteration go through the registry lock.
"""

import asyncio
import logging

logger = logging.getLogger(__name__)


class SessionRegistry:
    """
    Collection of open client connections.

    Iteration (for_each, broadcast) works on a snapshot taken under the lock, so
    a connection unregistered while a broadcast is in flight never breaks it.
    """

    def __init__(self, display):
        """
        Args:
            display: display sink receiving delivery failure reports
        """
        self.display = display
        self._connections = set()
        self._lock = asyncio.Lock()

    def __len__(self):
        return len(self._connections)

    def __contains__(self, connection):
        return connection in self._connections

    async def register(self, connection):
        async with self._lock:
            self._connections.add(connection)
        logger.debug(f"Registered {connection!r}, {len(self._connections)} open")

    async def unregister(self, connection):
        """Remove connection. Returns False if it was not registered."""
        async with self._lock:
            if connection not in self._connections:
                return False
            self._connections.discard(connection)
        logger.debug(f"Unregistered {connection!r}, {len(self._connections)} open")
        return True

    async def snapshot(self):
        async with self._lock:
            return list(self._connections)

    async def reserve_login(self, connection, login_id):
        """
        Assign login_id to connection unless a registered connection holds it.

        Returns:
            True if the identity was assigned.
        """
        async with self._lock:
            if any(c.login_id == login_id for c in self._connections):
                return False
            return connection.set_login_id(login_id)

    async def for_each(self, fn):
        """Await fn(connection) for every registered connection, concurrently."""
        await asyncio.gather(*(fn(connection) for connection in await self.snapshot()))

    async def broadcast(self, text):
        """
        Send text to every registered connection.

        A failed delivery is reported and skipped, the remaining connections
        still receive the message.

        Returns:
            List of (connection, error) for the failed deliveries.
        """
        failed = []

        async def deliver(connection):
            error = await connection.send(text)
            if error is not None:
                self.display(f"Could not deliver message to {connection.format_addr()}: {error}")
                failed.append((connection, error))

        logger.debug(f"broadcast(): {text}")
        await self.for_each(deliver)
        return failed
