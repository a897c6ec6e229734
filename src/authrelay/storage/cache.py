"""Durable key-value storage for the relay's cached OAuth records.

Three records live here: the discovery document, the client registration
and the token record. Each key maps to one JSON file inside the cache
directory. A record that is missing or cannot be parsed reads back as
``None``; callers re-derive it instead of failing.

Writes fully replace a record. They go through a temporary file in the same
directory followed by ``os.replace`` so a reader never observes a partial
write, and files are created ``0o600`` because the token record holds
secrets.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)

DISCOVERY_KEY = "discovery"
CLIENT_KEY = "client"
TOKENS_KEY = "tokens"


class KeyValueCache(Protocol):
    """Get/put storage for small JSON records."""

    def get(self, key: str) -> dict[str, Any] | None:
        """Return the stored record, or None when absent or unreadable."""
        ...

    def put(self, key: str, record: dict[str, Any]) -> None:
        """Replace the stored record."""
        ...


class JsonFileCache:
    """Key-value cache backed by one JSON file per key.

    Args:
        directory: Directory holding the record files. Created on first write.
    """

    _FILENAMES = {
        DISCOVERY_KEY: "oauth-discovery.json",
        CLIENT_KEY: "client-registration.json",
        TOKENS_KEY: "tokens.json",
    }

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory).expanduser()

    def path_for(self, key: str) -> Path:
        """Filesystem path of the record stored under ``key``."""
        return self.directory / self._FILENAMES.get(key, f"{key}.json")

    def get(self, key: str) -> dict[str, Any] | None:
        path = self.path_for(key)
        try:
            with path.open("r", encoding="utf-8") as f:
                record = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable cache record {path}: {e}")
            return None

        if not isinstance(record, dict):
            logger.warning(f"Ignoring non-object cache record {path}")
            return None
        return record

    def put(self, key: str, record: dict[str, Any]) -> None:
        path = self.path_for(key)
        text = json.dumps(record, indent=2) + "\n"

        self.directory.mkdir(parents=True, exist_ok=True)

        fd = None
        tmp_path: str | None = None
        try:
            fd = tempfile.NamedTemporaryFile(
                mode="w",
                dir=self.directory,
                prefix=f".{path.name}.",
                suffix=".tmp",
                delete=False,
                encoding="utf-8",
            )
            tmp_path = fd.name
            os.chmod(tmp_path, 0o600)
            fd.write(text)
            fd.flush()
            os.fsync(fd.fileno())
            fd.close()
            fd = None
            os.replace(tmp_path, path)
        except BaseException:
            if fd is not None:
                fd.close()
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass
            raise

        logger.debug(f"Wrote cache record '{key}' to {path}")


class MemoryCache:
    """In-process key-value cache holding deep copies of each record."""

    def __init__(self, initial: dict[str, dict[str, Any]] | None = None) -> None:
        self._records: dict[str, dict[str, Any]] = copy.deepcopy(initial or {})

    def get(self, key: str) -> dict[str, Any] | None:
        record = self._records.get(key)
        return copy.deepcopy(record) if record is not None else None

    def put(self, key: str, record: dict[str, Any]) -> None:
        self._records[key] = copy.deepcopy(record)
