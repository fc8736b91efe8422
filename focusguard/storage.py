"""
Key-value persistence adapters.

Every component owns a disjoint key and writes a whole snapshot per mutation.
Reads of a missing key return None ("no prior state").

    store = JsonFileStore(config.data_dir / config.state_file)
    await store.set("timer_snapshot", snapshot.to_dict())
    data = await store.get("timer_snapshot")
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from .errors import PersistenceFailure

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Optional[Any]: ...

    async def set(self, key: str, value: Any) -> None: ...


class MemoryStore:
    """In-process store. Used for tests and memory-only operation."""

    def __init__(self):
        self._data: Dict[str, Any] = {}
        self.fail_writes = False
        self.fail_reads = False

    async def get(self, key: str) -> Optional[Any]:
        if self.fail_reads:
            raise PersistenceFailure(key, "store unreachable")
        value = self._data.get(key)
        return copy.deepcopy(value)

    async def set(self, key: str, value: Any) -> None:
        if self.fail_writes:
            raise PersistenceFailure(key, "store unreachable")
        self._data[key] = copy.deepcopy(value)

    def keys(self) -> list[str]:
        return sorted(self._data)


class JsonFileStore:
    """
    All keys live in one JSON document on disk. Blocking file IO runs on the
    default executor so the event loop is never stalled; writes replace the
    file atomically.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._cache: Optional[Dict[str, Any]] = None
        self._io_lock = threading.Lock()     # executor threads share one document

    async def get(self, key: str) -> Optional[Any]:
        loop = asyncio.get_event_loop()
        data = await loop.run_in_executor(None, self._read_all)
        value = data.get(key)
        return copy.deepcopy(value)

    async def set(self, key: str, value: Any) -> None:
        loop = asyncio.get_event_loop()
        await loop.run_in_executor(None, self._write_key, key, value)

    # ------------------------------------------------------------------
    # Blocking helpers
    # ------------------------------------------------------------------

    def _read_all(self) -> Dict[str, Any]:
        with self._io_lock:
            return self._read_unlocked()

    def _read_unlocked(self) -> Dict[str, Any]:
        if self._cache is not None:
            return self._cache
        if not self.path.exists():
            self._cache = {}
            return self._cache
        try:
            loaded = json.loads(self.path.read_text())
        except json.JSONDecodeError:
            logger.warning("Malformed state file %s, starting empty", self.path)
            loaded = {}
        except OSError as e:
            raise PersistenceFailure(str(self.path), str(e)) from e
        self._cache = loaded if isinstance(loaded, dict) else {}
        return self._cache

    def _write_key(self, key: str, value: Any) -> None:
        with self._io_lock:
            self._write_unlocked(key, value)

    def _write_unlocked(self, key: str, value: Any) -> None:
        data = dict(self._read_unlocked())
        data[key] = value
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            payload = json.dumps(data, indent=2)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(payload)
            os.replace(tmp, self.path)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceFailure(key, str(e)) from e
        self._cache = data
