import asyncio
import io
import sys
from unittest.mock import patch

import pytest

from authrelay.transport.stdio.server import StdioTransport


def reader_with(data: bytes, limit: int = 2**16) -> asyncio.StreamReader:
    reader = asyncio.StreamReader(limit=limit)
    reader.feed_data(data)
    reader.feed_eof()
    return reader


async def collect(transport: StdioTransport) -> list[str]:
    return [line async for line in transport.lines()]


class TestSend:
    @patch("builtins.print")
    async def test_send_writes_message_to_stdout(self, mock_print):
        """Test that send writes one JSON line to stdout."""
        # Arrange
        transport = StdioTransport()
        message = {"jsonrpc": "2.0", "result": {}, "id": 1}

        # Act
        await transport.send(message)

        # Assert
        mock_print.assert_called_once_with(
            '{"jsonrpc":"2.0","result":{},"id":1}', file=sys.stdout, flush=True
        )

    async def test_send_to_custom_stream(self):
        stream = io.StringIO()
        transport = StdioTransport(stdout=stream)

        await transport.send([{"id": 1}, {"id": 2}])

        assert stream.getvalue() == '[{"id":1},{"id":2}]\n'

    async def test_send_raises_value_error_for_invalid_message(self):
        transport = StdioTransport(stdout=io.StringIO())

        with pytest.raises(ValueError):
            await transport.send({"method": lambda: None})

    async def test_closed_stream_raises_connection_error(self):
        stream = io.StringIO()
        stream.close()
        transport = StdioTransport(stdout=stream)

        with pytest.raises(ConnectionError):
            await transport.send({"id": 1})


class TestLines:
    async def test_yields_each_line_until_eof(self):
        # Arrange
        transport = StdioTransport(reader=reader_with(b'{"id":1}\n\n{"id":2}\n'))

        # Act
        lines = await collect(transport)

        # Assert
        assert lines == ['{"id":1}\n', "\n", '{"id":2}\n']

    async def test_final_line_without_newline(self):
        transport = StdioTransport(reader=reader_with(b'{"id":1}'))

        assert await collect(transport) == ['{"id":1}']

    async def test_oversized_line_is_skipped(self):
        # Arrange
        data = b'{"blob":"' + b"x" * 200 + b'"}\n{"id":2}\n'
        transport = StdioTransport(reader=reader_with(data, limit=64))

        # Act
        lines = await collect(transport)

        # Assert
        assert lines == ["", '{"id":2}\n']

    async def test_invalid_utf8_is_replaced(self):
        transport = StdioTransport(reader=reader_with(b'{"name":"\xff"}\n'))

        assert await collect(transport) == ['{"name":"�"}\n']
