"""Durable stores the result cache mirrors successful scrapes into.

Two backends are provided: one JSON file per product on local disk, and
Redis. Both store the same ``{"timestamp": ..., "data": {...}}`` payload so
either one can warm the in-memory cache after a restart.
"""

import asyncio
import json
import os
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import structlog
from redis.asyncio import Redis, from_url
from redis.exceptions import RedisError

logger = structlog.get_logger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")

StoredEntry = Dict[str, Any]


def sanitize_key(key: str) -> str:
    """Make a cache key safe to use as a file name."""
    cleaned = _UNSAFE_KEY_CHARS.sub("_", key).strip("._")
    return cleaned or "_"


class ResultStore(ABC):
    """Persistence collaborator of ResultCache."""

    @abstractmethod
    async def persist(self, key: str, entry: StoredEntry) -> None:
        """Write ``{"timestamp", "data"}`` for a key, replacing any previous value."""
        pass

    @abstractmethod
    async def list_all(self) -> List[Tuple[str, StoredEntry]]:
        """Return every stored (key, entry) pair."""
        pass

    async def close(self) -> None:
        """Release connections held by the store."""


class JsonFileResultStore(ResultStore):
    """Stores each product as ``<key>.json`` in a directory."""

    def __init__(self, directory: str):
        self.directory = Path(directory)
        self.logger = logger.bind(service="json_file_store")

    def _path_for(self, key: str) -> Path:
        return self.directory / f"{sanitize_key(key)}.json"

    async def persist(self, key: str, entry: StoredEntry) -> None:
        await asyncio.to_thread(self._write, key, entry)
        self.logger.debug("result_persisted", key=key)

    def _write(self, key: str, entry: StoredEntry) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path_for(key)
        tmp_path = path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump({"key": key, **entry}, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, path)

    async def list_all(self) -> List[Tuple[str, StoredEntry]]:
        return await asyncio.to_thread(self._read_all)

    def _read_all(self) -> List[Tuple[str, StoredEntry]]:
        if not self.directory.is_dir():
            return []

        entries = []
        for path in sorted(self.directory.glob("*.json")):
            try:
                with open(path, encoding="utf-8") as f:
                    payload = json.load(f)
            except (OSError, ValueError) as e:
                self.logger.warning("stored_result_unreadable", path=str(path), error=str(e))
                continue
            if not isinstance(payload, dict) or "data" not in payload:
                continue
            key = payload.pop("key", None) or path.stem
            entries.append((key, payload))
        return entries


class RedisResultStore(ResultStore):
    """Stores results as JSON strings under ``<prefix><key>`` in Redis."""

    def __init__(self, redis_url: str, prefix: str = "product:", redis: Optional[Redis] = None):
        """Initialize Redis store.

        Args:
            redis_url: Redis connection URL (e.g., "redis://localhost:6379/0")
            prefix: Key prefix for stored products
            redis: Pre-built client, mainly for tests
        """
        self.redis_url = redis_url
        self.prefix = prefix
        self._redis = redis
        self.logger = logger.bind(service="redis_store")

    async def _get_redis(self) -> Redis:
        if self._redis is None:
            self._redis = from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
            )
            self.logger.info("redis_connection_created", url=self.redis_url)
        return self._redis

    async def persist(self, key: str, entry: StoredEntry) -> None:
        redis = await self._get_redis()
        await redis.set(f"{self.prefix}{key}", json.dumps(entry, ensure_ascii=False))
        self.logger.debug("result_persisted", key=key)

    async def list_all(self) -> List[Tuple[str, StoredEntry]]:
        try:
            redis = await self._get_redis()
            entries = []
            async for redis_key in redis.scan_iter(match=f"{self.prefix}*", count=100):
                raw = await redis.get(redis_key)
                if not raw:
                    continue
                try:
                    payload = json.loads(raw)
                except ValueError:
                    self.logger.warning("stored_result_unreadable", key=redis_key)
                    continue
                entries.append((redis_key[len(self.prefix):], payload))
            return entries

        except RedisError as e:
            self.logger.error("redis_list_failed", error=str(e), exc_info=True)
            return []

    async def close(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            self.logger.info("redis_connection_closed")


def build_result_store(backend: str, cache_dir: str, redis_url: str) -> Optional[ResultStore]:
    """Create the store selected by CACHE_BACKEND ("memory" means none)."""
    if backend == "file":
        return JsonFileResultStore(cache_dir)
    if backend == "redis":
        return RedisResultStore(redis_url)
    return None
