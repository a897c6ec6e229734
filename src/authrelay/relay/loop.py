"""The relay loop: read NDJSON lines, dispatch each one, write replies."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from authrelay.relay.messages import INVALID_REQUEST, error_response, parse_error
from authrelay.relay.processor import RelayProcessor
from authrelay.transport.stdio.server import StdioTransport
from authrelay.transport.stdio.shared import parse_json_message

logger = logging.getLogger(__name__)


class RelayLoop:
    """Dispatches every inbound line as its own task.

    Tasks suspend independently at network calls and at the login callback,
    so several requests can be in flight at once; at most
    ``max_concurrency`` run concurrently and reading pauses while the limit
    is reached. Replies are written in completion order.
    """

    def __init__(
        self,
        processor: RelayProcessor,
        transport: StdioTransport,
        max_concurrency: int = 16,
        shutdown_grace: float = 0.0,
    ):
        self._processor = processor
        self._transport = transport
        self._shutdown_grace = shutdown_grace
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._tasks: set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def run(self) -> None:
        """Process lines until end of input, then shut down."""
        try:
            async for line in self._transport.lines():
                await self._dispatch(line)
        finally:
            await self._shutdown()

    async def _dispatch(self, line: str) -> None:
        if not line.strip():
            return  # Ignore empty lines

        try:
            payload = parse_json_message(line)
        except ValueError:
            logger.warning(f"Invalid JSON received: {line.strip()[:200]}")
            await self._send(parse_error())
            return

        if not isinstance(payload, (dict, list)):
            await self._send(error_response(None, INVALID_REQUEST, "Invalid Request"))
            return

        await self._semaphore.acquire()
        task = asyncio.create_task(self._process(payload))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _process(self, payload: Any) -> None:
        try:
            reply = await self._processor.handle_message(payload)
            if reply is not None:
                await self._send(reply)
        finally:
            self._semaphore.release()

    async def _send(self, message: Any) -> None:
        try:
            await self._transport.send(message)
        except (ValueError, ConnectionError) as e:
            logger.error(f"Failed to write response: {e}")

    async def _shutdown(self) -> None:
        if not self._tasks:
            return

        pending = set(self._tasks)
        if self._shutdown_grace > 0:
            _, pending = await asyncio.wait(pending, timeout=self._shutdown_grace)

        if pending:
            logger.info(f"Abandoning {len(pending)} in-flight request(s) at shutdown")
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
