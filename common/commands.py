"""
Command line grammar.

A line starting with '#' is a command: it is split on single spaces, the first
token selects the command and the rest are its arguments. Any other line is a
chat payload and is passed through untouched.

Server, client and operator consoles share the grammar but each recognizes its
own vocabulary, given as a mapping of command name to exact argument count.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple, Union

COMMAND_PREFIX = "#"

# Lines received from a connected client
SERVER_COMMANDS: Dict[str, int] = {
    "login": 1,
}

# Lines typed into the chat client
CLIENT_COMMANDS: Dict[str, int] = {
    "quit": 0,
    "logoff": 0,
    "login": 0,
    "gethost": 0,
    "getport": 0,
    "sethost": 1,
    "setport": 1,
}

# Lines typed into the server console
OPERATOR_COMMANDS: Dict[str, int] = {
    "quit": 0,
    "stop": 0,
    "close": 0,
    "start": 0,
    "getport": 0,
    "setport": 1,
}


class EmptyCommandError(ValueError):
    """Raised when an empty line is handed to the parser."""


class InvalidReason(Enum):
    UNKNOWN = "unknown command"
    ARITY = "wrong number of arguments"


@dataclass(frozen=True)
class Chat:
    text: str


@dataclass(frozen=True)
class Admin:
    name: str
    args: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Invalid:
    line: str
    reason: InvalidReason


Command = Union[Chat, Admin, Invalid]


def parse(line: str, vocabulary: Dict[str, int]) -> Command:
    """
    Parse one raw line against a command vocabulary.

    Args:
        line: the line as typed or received, without its line terminator
        vocabulary: command name -> required number of arguments

    Returns:
        Chat for plain text, Admin for a recognized command with the exact
        number of non-empty arguments, Invalid otherwise.

    Raises:
        EmptyCommandError: if line is empty
    """
    if not line:
        raise EmptyCommandError("empty input is neither a command nor a chat message")
    if not line.startswith(COMMAND_PREFIX):
        return Chat(line)

    tokens = line.split(" ")
    name = tokens[0][len(COMMAND_PREFIX):]
    args = tuple(tokens[1:])
    expected = vocabulary.get(name)
    if expected is None:
        return Invalid(line, InvalidReason.UNKNOWN)
    # an empty token (trailing or doubled space) is not an argument
    if len(args) != expected or "" in args:
        return Invalid(line, InvalidReason.ARITY)
    return Admin(name, args)
