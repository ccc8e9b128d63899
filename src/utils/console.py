"""
Console Input
=============

One reader for stdin, shared by the chat REPL and the permission prompt.

input() cannot be interrupted once it is waiting in a worker thread. When
a caller stops waiting (the permission prompt timed out, say), the read
stays pending and the line the user types next goes to whoever reads
next, instead of vanishing into the abandoned thread.
"""

import asyncio
from typing import Callable


class ConsoleReader:
    """
    Example:
        reader = ConsoleReader()
        line = await reader.read("you > ")
    """

    def __init__(self, input_func: Callable[[str], str] = input):
        self._input = input_func
        self._pending: asyncio.Future | None = None

    @property
    def has_pending_read(self) -> bool:
        return self._pending is not None

    async def read(self, prompt: str) -> str:
        """
        Read one line.

        Raises:
            EOFError: When stdin is closed
        """
        if self._pending is None:
            self._pending = asyncio.ensure_future(asyncio.to_thread(self._input, prompt))
        else:
            # The earlier prompt is stale; show ours before the carried-over read
            print(prompt, end="", flush=True)

        read = self._pending
        try:
            return await asyncio.shield(read)
        finally:
            if read.done() and self._pending is read:
                self._pending = None
