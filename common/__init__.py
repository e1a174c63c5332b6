"""
Code shared by the chat server and the chat client.

Main exports:
- parse: Command parser for '#'-prefixed command lines
- ConsoleDisplay, read_lines: Console I/O helpers
"""

from common.commands import Admin, Chat, EmptyCommandError, Invalid, parse
from common.console import ConsoleDisplay, read_lines

__all__ = ['Admin', 'Chat', 'EmptyCommandError', 'Invalid', 'parse', 'ConsoleDisplay', 'read_lines']
