import asyncio
from unittest.mock import AsyncMock, MagicMock

from authrelay.relay.loop import RelayLoop


class ScriptedTransport:
    """Feeds fixed lines and records what is sent back."""

    def __init__(self, lines: list[str]):
        self._lines = lines
        self.sent: list = []

    async def lines(self):
        for line in self._lines:
            yield line
            await asyncio.sleep(0)

    async def send(self, message) -> None:
        self.sent.append(message)


def echo_processor() -> MagicMock:
    async def handle_message(payload):
        return {"jsonrpc": "2.0", "id": payload.get("id"), "result": {}}

    processor = MagicMock()
    processor.handle_message = AsyncMock(side_effect=handle_message)
    return processor


class TestDispatch:
    async def test_replies_to_each_request(self):
        # Arrange
        transport = ScriptedTransport(['{"id":1}\n', '{"id":2}\n'])
        relay = RelayLoop(echo_processor(), transport, shutdown_grace=5)

        # Act
        await relay.run()

        # Assert
        assert sorted(m["id"] for m in transport.sent) == [1, 2]

    async def test_blank_lines_are_ignored(self):
        processor = echo_processor()
        transport = ScriptedTransport(["\n", "   \n", '{"id":1}\n'])
        relay = RelayLoop(processor, transport, shutdown_grace=5)

        await relay.run()

        assert transport.sent == [{"jsonrpc": "2.0", "id": 1, "result": {}}]
        processor.handle_message.assert_awaited_once()

    async def test_parse_error_does_not_stop_the_loop(self):
        # Arrange
        transport = ScriptedTransport(["not json\n", '{"id":2}\n'])
        relay = RelayLoop(echo_processor(), transport, shutdown_grace=5)

        # Act
        await relay.run()

        # Assert
        assert transport.sent == [
            {"jsonrpc": "2.0", "id": None, "error": {"code": -32700, "message": "Parse error"}},
            {"jsonrpc": "2.0", "id": 2, "result": {}},
        ]

    async def test_non_object_payload_is_invalid_request(self):
        processor = echo_processor()
        transport = ScriptedTransport(['"hello"\n'])
        relay = RelayLoop(processor, transport, shutdown_grace=5)

        await relay.run()

        assert transport.sent == [
            {"jsonrpc": "2.0", "id": None, "error": {"code": -32600, "message": "Invalid Request"}}
        ]
        processor.handle_message.assert_not_awaited()

    async def test_empty_reply_writes_nothing(self):
        processor = MagicMock()
        processor.handle_message = AsyncMock(return_value=None)
        transport = ScriptedTransport(['{"jsonrpc":"2.0","method":"notify"}\n'])
        relay = RelayLoop(processor, transport, shutdown_grace=5)

        await relay.run()

        assert transport.sent == []


class TestConcurrency:
    async def test_replies_in_completion_order(self):
        # Arrange - request 1 finishes only after request 2 has
        second_done = asyncio.Event()

        async def handle_message(payload):
            if payload["id"] == 1:
                await second_done.wait()
            else:
                second_done.set()
            return {"id": payload["id"]}

        processor = MagicMock()
        processor.handle_message = AsyncMock(side_effect=handle_message)
        transport = ScriptedTransport(['{"id":1}\n', '{"id":2}\n'])
        relay = RelayLoop(processor, transport, shutdown_grace=5)

        # Act
        await relay.run()

        # Assert
        assert transport.sent == [{"id": 2}, {"id": 1}]

    async def test_in_flight_requests_are_bounded(self):
        # Arrange
        running = 0
        peak = 0

        async def handle_message(payload):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1
            return {"id": payload["id"]}

        processor = MagicMock()
        processor.handle_message = AsyncMock(side_effect=handle_message)
        transport = ScriptedTransport([f'{{"id":{i}}}\n' for i in range(6)])
        relay = RelayLoop(processor, transport, max_concurrency=2, shutdown_grace=5)

        # Act
        await relay.run()

        # Assert
        assert peak == 2
        assert len(transport.sent) == 6


class TestShutdown:
    async def test_pending_requests_are_cancelled_without_grace(self):
        # Arrange
        cancelled = asyncio.Event()

        async def handle_message(payload):
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                cancelled.set()
                raise

        processor = MagicMock()
        processor.handle_message = AsyncMock(side_effect=handle_message)
        transport = ScriptedTransport(['{"id":1}\n'])
        relay = RelayLoop(processor, transport)

        # Act
        await relay.run()

        # Assert
        assert cancelled.is_set()
        assert transport.sent == []
        assert relay.in_flight == 0

    async def test_grace_period_lets_requests_finish(self):
        async def handle_message(payload):
            await asyncio.sleep(0.05)
            return {"id": payload["id"]}

        processor = MagicMock()
        processor.handle_message = AsyncMock(side_effect=handle_message)
        transport = ScriptedTransport(['{"id":1}\n'])
        relay = RelayLoop(processor, transport, shutdown_grace=5)

        await relay.run()

        assert transport.sent == [{"id": 1}]
