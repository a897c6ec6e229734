import asyncio
import logging
import sys
from typing import Any, AsyncIterator, TextIO

from authrelay.transport.stdio.shared import serialize_message

logger = logging.getLogger(__name__)

# asyncio's default 64 KiB line limit is too small for large tool results
MAX_LINE_BYTES = 16 * 1024 * 1024


class StdioTransport:
    """Newline-delimited JSON over the process's stdin and stdout.

    Reads one line per inbound message and writes one line per outbound
    message. stdout carries nothing else; logs go to stderr.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader | None = None,
        stdout: TextIO | None = None,
    ) -> None:
        """Initialize stdio transport.

        Args:
            reader: Pre-built reader, used instead of stdin when given
            stdout: Stream for outbound messages, defaults to sys.stdout
        """
        self._stdin_reader = reader
        self._stdout = stdout

    async def _setup_stdin_reader(self) -> None:
        """Set up async stdin reader using protocol."""
        if self._stdin_reader is not None:
            return  # Already set up

        self._stdin_reader = asyncio.StreamReader(limit=MAX_LINE_BYTES)
        protocol = asyncio.StreamReaderProtocol(self._stdin_reader)
        await asyncio.get_running_loop().connect_read_pipe(lambda: protocol, sys.stdin)

    async def send(self, message: Any) -> None:
        """Write one message as a single line.

        Raises:
            ValueError: If message is invalid
            ConnectionError: If stdout is closed or write fails
        """
        json_str = serialize_message(message)
        try:
            print(json_str, file=self._stdout or sys.stdout, flush=True)
        except Exception as e:
            raise ConnectionError(f"Failed to send message: {e}") from e

    def lines(self) -> AsyncIterator[str]:
        """Stream of raw inbound lines, ending at end of input."""
        return self._line_iterator()

    async def _line_iterator(self) -> AsyncIterator[str]:
        await self._setup_stdin_reader()

        while True:
            try:
                line_bytes = await self._stdin_reader.readline()
            except ValueError as e:
                # Line longer than the limit; the reader has dropped it
                logger.error(f"Discarding oversized input line: {e}")
                yield ""
                continue
            except Exception as e:
                raise ConnectionError(f"Failed to read from stdin: {e}") from e

            if not line_bytes:
                logger.debug("End of input")
                return

            yield line_bytes.decode("utf-8", errors="replace")
