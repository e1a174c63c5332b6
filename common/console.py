"""
Console I/O glue.

The chat core writes human readable status lines to a display sink (any
callable taking a string) and consumes operator or user input from a line
source (an async iterable of strings). These are the console versions.
"""

import asyncio
import sys
from typing import AsyncIterator, Callable, Optional, TextIO

Display = Callable[[str], None]


class ConsoleDisplay:
    """Display sink printing each line to a text stream."""

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self.stream = stream

    def __call__(self, text: str) -> None:
        print(text, file=self.stream or sys.stdout, flush=True)


async def read_lines(stream: Optional[TextIO] = None) -> AsyncIterator[str]:
    """Yield lines typed on stream (stdin by default) until end of input."""
    stream = stream or sys.stdin
    loop = asyncio.get_running_loop()
    while True:
        # readline blocks, keep it off the event loop
        line = await loop.run_in_executor(None, stream.readline)
        if not line:
            break
        yield line.rstrip("\r\n")
