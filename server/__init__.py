"""
Chat server package.

Main exports:
- ChatServer: Listener and operator console dispatch
- ServerSession: Per-client login and relay state machine
- SessionRegistry: Open connections and broadcast
- Connection: Individual client stream
"""

from server.connection import Connection
from server.registry import SessionRegistry
from server.session import ServerSession, SessionState
from server.server import ChatServer

__version__ = "1.0.0"
__all__ = ['ChatServer', 'ServerSession', 'SessionState', 'SessionRegistry', 'Connection']
