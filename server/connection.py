"""
Client connection management.

Wraps the stream pair of one accepted client together with its login identity.
"""

import logging
from typing import Optional

logger = logging.getLogger(__name__)

# Errors a stream can raise while writing to or closing a peer
WRITE_ERRORS = (ConnectionResetError, BrokenPipeError, ConnectionAbortedError, OSError)


class Connection:
    """
    Represents a single connected client.

    Manages:
    - Line based reading and writing
    - The login identity, assigned at most once
    - Idempotent close
    """

    def __init__(self, reader, writer, addr):
        """
        Initialize client connection.

        Args:
            reader: asyncio StreamReader for this client
            writer: asyncio StreamWriter for this client
            addr: Client address tuple (host, port)
        """
        self.reader = reader
        self.writer = writer
        self.addr = addr
        self.login_id: Optional[str] = None
        self.failure: Optional[Exception] = None
        self._closed = False

    def format_addr(self):
        """Format address as IP:Port string."""
        if not self.addr:
            return "unknown"
        return f"{self.addr[0]}:{self.addr[1]}"

    def __repr__(self):
        return f"<Connection {self.format_addr()} login_id={self.login_id!r}>"

    @property
    def closed(self):
        return self._closed

    def set_login_id(self, login_id):
        """Assign the login identity. Returns False if one is already set."""
        if self.login_id is not None:
            return False
        self.login_id = login_id
        return True

    async def readline(self):
        """
        Read the next line from the client.

        Returns:
            The line without its terminator, or None at end of stream.
        """
        data = await self.reader.readline()
        if not data:
            return None
        return data.decode(errors="replace").rstrip("\r\n")

    async def send(self, text):
        """
        Send one line to the client.

        Returns:
            None on success, otherwise the error. A failed connection is closed
            and keeps the first error in self.failure.
        """
        if self._closed:
            return ConnectionError(f"connection to {self.format_addr()} is closed")
        try:
            self.writer.write(text.encode() + b'\n')
            await self.writer.drain()
        except WRITE_ERRORS as e:
            logger.error(f"Error@{self.format_addr()} in send(): {e}")
            if self.failure is None:
                self.failure = e
            await self.close()
            return e
        return None

    async def close(self):
        """
        Close the connection. Calling it again is a no-op.

        Returns:
            None, or the error raised while closing the stream.
        """
        if self._closed:
            return None
        self._closed = True
        logger.debug(f"Closing connection {self.format_addr()}")
        try:
            if not self.writer.is_closing():
                self.writer.close()
            await self.writer.wait_closed()
        except WRITE_ERRORS as e:
            logger.debug(f"Error@{self.format_addr()} while closing: {e}")
            return e
        return None
