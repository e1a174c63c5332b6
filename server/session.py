"""
Server side session handling.

One ServerSession drives one Connection from accept to close: it enforces the
login handshake, relays chat lines through the registry and reports lifecycle
changes to the display sink.
"""

import logging
from enum import Enum

from common.commands import SERVER_COMMANDS, Admin, Chat, EmptyCommandError, parse

logger = logging.getLogger(__name__)

INVALID_COMMAND = "Invalid command"
LOGIN_REQUIRED = "Error, you must log in with #login <id> first"
ALREADY_LOGGED_IN = "Error, user already logged in"


class SessionState(Enum):
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"
    CLOSED = "closed"


class ServerSession:
    """
    State machine for one client connection.

    CONNECTED -> AUTHENTICATED after the first, valid #login <id>.
    Any state -> CLOSED on end of stream, I/O error or protocol violation.
    """

    def __init__(self, connection, registry, display):
        self.connection = connection
        self.registry = registry
        self.display = display
        self.state = SessionState.CONNECTED

    async def run(self):
        """Register the connection and process its lines until it closes."""
        addr = self.connection.format_addr()
        await self.registry.register(self.connection)
        self.display(f"A client: {addr} has connected to the server.")
        try:
            while self.state is not SessionState.CLOSED:
                line = await self.connection.readline()
                if line is None:
                    logger.info(f"{addr} disconnected (EOF)")
                    break
                logger.debug(f"Received msg from {addr}: {line}")
                await self.handle_line(line)
        except (ConnectionResetError, ConnectionAbortedError, OSError) as e:
            logger.error(f"ERROR: {addr} has connection error: {e}")
            await self.close(error=e)
        except ValueError as e:
            # readline raises ValueError when a line exceeds the stream limit
            logger.error(f"ERROR: {addr} sent an unreadable line: {e}")
            await self.close(error=e)
        finally:
            await self.close()

    async def handle_line(self, line):
        """Dispatch one line received from the client."""
        if self.state is SessionState.CLOSED:
            return
        try:
            command = parse(line, SERVER_COMMANDS)
        except EmptyCommandError:
            command = None

        if self.state is SessionState.CONNECTED:
            await self._handle_handshake(command)
        elif isinstance(command, Admin) and command.name == "login":
            await self.reject(ALREADY_LOGGED_IN)
        elif isinstance(command, Chat):
            await self._relay(command.text)
        else:
            self.display(f"{INVALID_COMMAND} from {self.connection.format_addr()}: {line!r}")
            await self.reply(INVALID_COMMAND)

    async def _handle_handshake(self, command):
        if not (isinstance(command, Admin) and command.name == "login"):
            await self.reject(LOGIN_REQUIRED)
            return
        login_id = command.args[0]
        if not await self.registry.reserve_login(self.connection, login_id):
            await self.reject(f"Error, login ID {login_id} is already in use")
            return
        self.state = SessionState.AUTHENTICATED
        self.display(f"A client: {self.connection.format_addr()} has logged in as {login_id}.")

    async def _relay(self, text):
        login_id = self.connection.login_id
        self.display(f"Message received: {text} from {self.connection.format_addr()} with ID of {login_id}")
        await self.registry.broadcast(f"{login_id} > {text}")

    async def reply(self, text):
        """Send text to this client only."""
        error = await self.connection.send(text)
        if error is not None:
            await self.close(error=error)

    async def reject(self, text):
        """Report a protocol error to this client and close its connection."""
        self.display(f"Rejected {self.connection.format_addr()}: {text}")
        await self.reply(text)
        await self.close()

    async def close(self, error=None):
        """
        Close the session. Only the first call has any effect.

        Args:
            error: the I/O error that ended the session, if any

        Returns:
            True if this call closed the session.
        """
        if self.state is SessionState.CLOSED:
            return False
        self.state = SessionState.CLOSED
        error = error or self.connection.failure
        addr = self.connection.format_addr()

        await self.registry.unregister(self.connection)
        close_error = await self.connection.close()
        if close_error is not None:
            self.display(f"Error closing connection to {addr}: {close_error}")

        if error is None:
            self.display(f"A client: {addr} has disconnected from the server.")
        else:
            self.display(f"A client: {addr} has disconnected from the server due to an error: {error}")
        return True
