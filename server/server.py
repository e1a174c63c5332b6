"""
Main chat server implementation.

Handles the listening endpoint, client sessions and the operator console.
"""

import argparse
import asyncio
import logging
import sys

from common.commands import OPERATOR_COMMANDS, Admin, Chat, EmptyCommandError, parse
from common.config import DEFAULT_HOST, DEFAULT_PORT, MAX_PORT, parse_port
from common.console import ConsoleDisplay, read_lines
from server.connection import Connection
from server.registry import SessionRegistry
from server.session import ServerSession

logger = logging.getLogger(__name__)

SERVER_MSG_PREFIX = "SERVER MSG>"


class ChatServer:
    """
    Line based chat server.

    Features:
    - Multiple concurrent clients, one task each
    - Login handshake and broadcast relay (see ServerSession)
    - Operator commands to stop, restart and close the listener
    """

    def __init__(self, port=DEFAULT_PORT, host=DEFAULT_HOST, display=None):
        """
        Initialize server.

        Args:
            port: Port to listen on
            host: Interface to bind
            display: display sink for status lines, prints to stdout by default
        """
        self.port = port
        self.host = host
        self.display = display or ConsoleDisplay()
        self.registry = SessionRegistry(self.display)
        self.shutdown_requested = asyncio.Event()
        self._listener = None

    @property
    def is_listening(self):
        return self._listener is not None

    @property
    def listening_port(self):
        """Port actually bound, which differs from self.port when port 0 was requested."""
        if self._listener is None:
            return None
        return self._listener.sockets[0].getsockname()[1]

    async def client_handler(self, reader, writer):
        """Handle a single client connection."""
        connection = Connection(reader, writer, writer.get_extra_info("peername"))
        session = ServerSession(connection, self.registry, self.display)
        await session.run()

    async def listen(self):
        """
        Start accepting connections.

        Raises:
            OSError: if the endpoint cannot be bound
        """
        self._listener = await asyncio.start_server(self.client_handler, self.host, self.port)
        self.display(f"Server listening for connections on port {self.listening_port}")

    def stop_listening(self):
        """Stop accepting new connections, open ones stay connected."""
        if self._listener is None:
            return False
        # wait_closed() would block until every client has gone
        self._listener.close()
        self._listener = None
        self.display("Server has stopped listening for connections.")
        return True

    async def close(self):
        """Stop listening and close every open connection."""
        self.stop_listening()
        await self.registry.for_each(lambda connection: connection.close())

    async def handle_operator_line(self, line):
        """Dispatch one line typed on the server console."""
        try:
            command = parse(line, OPERATOR_COMMANDS)
        except EmptyCommandError:
            self.display("Error, empty input")
            return

        if isinstance(command, Chat):
            message = SERVER_MSG_PREFIX + command.text
            self.display(message)
            await self.registry.broadcast(message)
        elif isinstance(command, Admin):
            handler = getattr(self, f"_operator_{command.name}")
            await handler(*command.args)
        else:
            logger.debug(f"Invalid operator command {command.line!r}: {command.reason.value}")
            self.display("Invalid command")

    async def _operator_quit(self):
        await self.close()
        self.shutdown_requested.set()

    async def _operator_stop(self):
        if not self.stop_listening():
            self.display("Error, server is not listening")

    async def _operator_close(self):
        await self.close()

    async def _operator_start(self):
        if self.is_listening:
            self.display("Error, server is already listening")
            return
        try:
            await self.listen()
        except OSError as e:
            self.display(f"Error, could not listen for clients: {e}")

    async def _operator_getport(self):
        self.display(str(self.port))

    async def _operator_setport(self, value):
        if len(self.registry) > 0:
            self.display("Error, already connected")
            return
        port = parse_port(value)
        if port is None:
            self.display(f"Error, port must be a number between 0 and {MAX_PORT}")
            return
        self.port = port
        self.display(f"Port set to {port}")

    async def serve_operator(self, lines):
        """
        Process operator lines, then wait until quit is requested.

        Args:
            lines: async iterable of operator input lines
        """
        async for line in lines:
            await self.handle_operator_line(line)
            if self.shutdown_requested.is_set():
                break
        else:
            logger.info("Operator input closed, still serving clients")
        await self.shutdown_requested.wait()


def main(argv=None):
    """Entry point for server"""
    parser = argparse.ArgumentParser(description="Chat Server")
    parser.add_argument('port', nargs='?', default=None,
                        help=f'Port to listen on (default {DEFAULT_PORT})')
    parser.add_argument('--host', default=DEFAULT_HOST, help='Interface to bind')
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
        if args.port is not None:
            logger.warning(f"Invalid port {args.port!r}, using {DEFAULT_PORT}")
        port = DEFAULT_PORT

    async def serve():
        server = ChatServer(port, args.host)
        try:
            await server.listen()
        except OSError as e:
            logger.error(f"Could not bind {args.host}:{port}: {e}")
            server.display("ERROR - Could not listen for clients!")
            return 1
        await server.serve_operator(read_lines())
        return 0

    try:
        return asyncio.run(serve())
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
        return 0


if __name__ == "__main__":
    sys.exit(main())
