"""
Main client implementation
Handles the connection to the chat server, the login handshake, user commands and message relay
"""

import argparse
import asyncio
import logging
import sys
from enum import Enum
from typing import AsyncIterable, Callable, Optional

from common.commands import CLIENT_COMMANDS, Admin, Chat, EmptyCommandError, parse
from common.config import DEFAULT_HOST, DEFAULT_PORT, MAX_PORT, parse_port
from common.console import ConsoleDisplay, read_lines

logger = logging.getLogger(__name__)

ALREADY_CONNECTED = "Error, already connected"


class ClientState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


class ChatClient():
    """
    Async chat client

    Features:
    - Login handshake sent as the first line of every connection
    - Client commands (#quit, #logoff, #login, #gethost, #sethost, ...)
    - Concurrent receive loop, idempotent close
    """
    def __init__(self, login_id: str, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT,
                 display: Optional[Callable[[str], None]] = None) -> None:
        """
        Initialize client
        Args:
            login_id: identity sent to the server with #login
            host: ip of the server to connect to
            port: port of the server to connect to
            display: display sink for server messages and status lines
        """
        self.login_id = login_id
        self.host = host
        self.port = port
        self.display = display or ConsoleDisplay()
        self.state = ClientState.DISCONNECTED
        self.quit_requested = asyncio.Event()
        self.writer: Optional[asyncio.StreamWriter] = None
        self._receiver_task: Optional[asyncio.Task] = None

    @property
    def is_connected(self) -> bool:
        return self.state is ClientState.CONNECTED

    async def start(self) -> bool:
        """Open the first connection. Returns False if the client has to terminate."""
        if not self.login_id:
            self.display("ERROR - No login ID specified.  Connection aborted.")
            self.quit_requested.set()
            return False
        error = await self.open_connection()
        if error is not None:
            self.display("Error: Can't setup connection! Terminating client.")
            await self.quit()
            return False
        return True

    async def open_connection(self) -> Optional[Exception]:
        """Connect to the server and send the login handshake. Returns the error, if any."""
        try:
            reader, writer = await asyncio.open_connection(self.host, self.port)
        except OSError as e:
            logger.error(f"ERROR: Could not connect to {self.host}:{self.port}: {e}")
            return e
        logger.info(f"Connected to {self.host}:{self.port}")
        self.writer = writer
        self.state = ClientState.CONNECTED
        self._receiver_task = asyncio.create_task(self.receive_messages(reader, writer))

        error = await self.send_to_server(f"#login {self.login_id}")
        if error is not None:
            await self.close_connection(error)
        return error

    async def send_to_server(self, message: str) -> Optional[Exception]:
        """Send one line to the server. Returns the error, if any."""
        writer = self.writer
        if writer is None:
            return ConnectionError("not connected")
        try:
            writer.write(message.encode() + b'\n')
            await writer.drain()
        except (ConnectionResetError, BrokenPipeError, ConnectionAbortedError, OSError) as e:
            logger.error(f"Send failed: {e}")
            return e
        return None

    async def receive_messages(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        """Hand every line received from the server to the display sink"""
        error = None
        try:
            while True:
                data = await reader.readline()
                if not data:
                    logger.info("Server disconnected")
                    break
                self.display(data.decode(errors="replace").rstrip("\r\n"))
        except (ConnectionResetError, ConnectionAbortedError, BrokenPipeError, OSError) as e:
            logger.error(f"Connection ERROR: {e}")
            error = e
        # a stale receiver must not close a newer connection
        if self.writer is writer:
            await self.close_connection(error)

    async def close_connection(self, error: Optional[Exception] = None) -> bool:
        """
        Close the current connection. Safe to call again or from the receive loop.

        Returns:
            True if this call closed the connection.
        """
        writer = self.writer
        if writer is None:
            return False
        self.writer = None
        self.state = ClientState.DISCONNECTED
        receiver, self._receiver_task = self._receiver_task, None

        if not writer.is_closing():
            writer.close()
        try:
            await writer.wait_closed()
        except (ConnectionResetError, BrokenPipeError, ConnectionAbortedError, OSError) as e:
            logger.debug(f"Error while closing: {e}")

        if receiver is not None and receiver is not asyncio.current_task():
            receiver.cancel()
            try:
                await receiver
            except asyncio.CancelledError:
                pass

        if error is None:
            self.display("Connection with the server has closed.")
        else:
            self.display("Connection with the server has closed due to the following error:")
            self.display(str(error))
        return True

    async def quit(self) -> None:
        """Close the connection and ask the caller to terminate"""
        await self.close_connection()
        self.quit_requested.set()

    async def handle_user_line(self, line: str) -> None:
        """Dispatch one line typed by the user"""
        try:
            command = parse(line, CLIENT_COMMANDS)
        except EmptyCommandError:
            self.display("Error, empty input")
            return

        if isinstance(command, Chat):
            await self._send_chat(command.text)
        elif isinstance(command, Admin):
            handler = getattr(self, f"_command_{command.name}")
            await handler(*command.args)
        else:
            logger.debug(f"Invalid command {command.line!r}: {command.reason.value}")
            self.display("Invalid command")

    async def _send_chat(self, text: str) -> None:
        if not self.is_connected:
            self.display("Error, not connected")
            return
        error = await self.send_to_server(text)
        if error is not None:
            self.display("Could not send message to server.  Terminating client.")
            await self.quit()

    async def _command_quit(self) -> None:
        await self.quit()

    async def _command_logoff(self) -> None:
        if not await self.close_connection():
            self.display("Error, not connected")

    async def _command_login(self) -> None:
        if self.is_connected:
            self.display(ALREADY_CONNECTED)
            return
        error = await self.open_connection()
        if error is not None:
            self.display(f"Error, could not connect to {self.host}:{self.port}: {error}")

    async def _command_gethost(self) -> None:
        self.display(self.host)

    async def _command_getport(self) -> None:
        self.display(str(self.port))

    async def _command_sethost(self, host: str) -> None:
        if self.is_connected:
            self.display(ALREADY_CONNECTED)
            return
        self.host = host
        self.display(f"Host set to {host}")

    async def _command_setport(self, value: str) -> None:
        if self.is_connected:
            self.display(ALREADY_CONNECTED)
            return
        port = parse_port(value)
        if port is None:
            self.display(f"Error, port must be a number between 0 and {MAX_PORT}")
            return
        self.port = port
        self.display(f"Port set to {port}")

    async def run(self, lines: AsyncIterable[str]) -> int:
        """
        Main client loop
        Returns the process exit code
        """
        if not await self.start():
            # no login id ends the client like #quit, a failed connection is an error
            return 1 if self.login_id else 0
        try:
            async for line in lines:
                await self.handle_user_line(line)
                if self.quit_requested.is_set():
                    break
        finally:
            await self.close_connection()
        return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Chat Client")
    parser.add_argument('login_id', nargs='?', default='', help='Login ID sent to the server')
    parser.add_argument('host', nargs='?', default=DEFAULT_HOST, help='Server host')
    parser.add_argument('port', nargs='?', default=None, help=f'Server port (default {DEFAULT_PORT})')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    args = parser.parse_args(argv)
    # setup logging
    level = logging.DEBUG if args.debug else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    port = parse_port(args.port)
    if port is None:
        port = DEFAULT_PORT

    async def chat():
        client = ChatClient(args.login_id, args.host, port)
        return await client.run(read_lines())

    try:
        return asyncio.run(chat())
    except KeyboardInterrupt:
        logger.info("\nClient Stopped by user")
        return 0


if __name__ == "__main__":
    sys.exit(main())
