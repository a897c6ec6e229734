"""
STDIO to HTTP relay for remote MCP endpoints behind OAuth 2.1.

Point it at the remote with AUTHRELAY_REMOTE_URL (environment or .env) and
launch it as a stdio server from your MCP client. The first request opens
a browser for login; tokens are cached and refreshed afterwards.
"""

import asyncio
import logging
import sys

import httpx
from dotenv import load_dotenv

from authrelay.auth.client.oauth_client import OAuth2Client
from authrelay.config import ConfigError, RelayConfig
from authrelay.relay.forwarder import RemoteForwarder
from authrelay.relay.loop import RelayLoop
from authrelay.relay.processor import RelayProcessor
from authrelay.storage.cache import JsonFileCache
from authrelay.transport.stdio.server import StdioTransport

logger = logging.getLogger("authrelay")


def configure_logging(level: str) -> None:
    # stdout is reserved for the protocol stream
    logging.basicConfig(
        level=level,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    for noisy in ("httpx", "httpcore", "uvicorn", "uvicorn.error"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


async def run(config: RelayConfig) -> None:
    cache = JsonFileCache(config.resolved_cache_dir)

    async with httpx.AsyncClient(timeout=config.http_timeout) as http_client:
        auth = OAuth2Client.from_config(config, cache, http_client=http_client)
        forwarder = RemoteForwarder(
            config.remote_url, timeout=config.http_timeout, http_client=http_client
        )
        relay = RelayLoop(
            RelayProcessor(auth, forwarder),
            StdioTransport(),
            max_concurrency=config.max_concurrency,
            shutdown_grace=config.shutdown_grace,
        )

        logger.info(
            f"STDIO relay ready for {config.remote_url} "
            f"(cache: {config.resolved_cache_dir})"
        )
        await relay.run()


def main() -> None:
    load_dotenv()

    try:
        config = RelayConfig.from_env()
    except ConfigError as e:
        print(f"authrelay: {e}", file=sys.stderr)
        sys.exit(2)

    configure_logging(config.log_level)

    try:
        asyncio.run(run(config))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
