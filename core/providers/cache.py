"""Disk-backed LRU response cache."""

from __future__ import annotations

import asyncio
import json
import time
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

import aiofiles
import structlog

logger = structlog.get_logger(__name__)

DEFAULT_MAX_SIZE = 1000
DEFAULT_TTL = 60 * 60 * 24


@dataclass(frozen=True)
class CacheEntry:
    """Cache entry with its storage and expiry times (epoch seconds)."""
    key: str
    value: str
    stored_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        """Check if entry has expired."""
        return now >= self.expires_at

    def to_record(self) -> Dict[str, Any]:
        # ``expires`` is kept in epoch milliseconds on disk
        return {"value": self.value, "expires": int(self.expires_at * 1000)}


class PersistentLRUCache:
    """
    LRU cache with a fixed TTL, mirrored to a JSON file.

    Reads never touch the disk. Every ``set`` schedules a background write of
    the whole in-memory set; an entry pushed out by the size bound is written
    to the file before the full write runs, so recent responses keep a
    durable copy. Writes merge with the unexpired records already on disk,
    and the file keeps at most ``max_size`` records, the latest-expiring ones.

    Nothing here takes a file lock: two processes sharing the file race and
    the last writer wins.
    """

    def __init__(
        self,
        path: Union[str, Path],
        *,
        max_size: int = DEFAULT_MAX_SIZE,
        ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.path = Path(path)
        self.max_size = max_size
        self.ttl = ttl
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._pending: Set[asyncio.Task] = set()
        self._io_lock = asyncio.Lock()
        self._reset_stats()

    def _reset_stats(self) -> None:
        self.hits = 0
        self.misses = 0
        self.evictions = 0
        self.disk_reads = 0
        self.disk_writes = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        entry = self._entries.get(key)  # type: ignore[arg-type]
        return entry is not None and not entry.is_expired(self._clock())

    async def __aenter__(self) -> "PersistentLRUCache":
        await self.load_from_disk()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.shutdown()

    async def get(self, key: str) -> Optional[str]:
        """Return the cached value, or ``None`` on a miss or expired entry."""
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None

        if entry.is_expired(self._clock()):
            del self._entries[key]
            self.misses += 1
            return None

        # Recency only; expiry is fixed at store time
        self._entries.move_to_end(key)
        self.hits += 1
        return entry.value

    async def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key`` and schedule persistence."""
        now = self._clock()
        entry = CacheEntry(key=key, value=value, stored_at=now, expires_at=now + self.ttl)
        for evicted in self._insert(entry):
            logger.debug("cache_evicted", key=evicted.key[:16])
            self._spawn(self._write({evicted.key: evicted}))
        self._spawn(self.persist())

    def _insert(self, entry: CacheEntry) -> List[CacheEntry]:
        self._entries.pop(entry.key, None)
        self._entries[entry.key] = entry

        evicted: List[CacheEntry] = []
        while len(self._entries) > self.max_size:
            _, oldest = self._entries.popitem(last=False)
            self.evictions += 1
            evicted.append(oldest)
        return evicted

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def flush(self) -> None:
        """Wait for every scheduled background write to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def load_from_disk(self) -> int:
        """Load unexpired entries from the cache file.

        A missing or unreadable file leaves the cache empty. Entries already
        held in memory win over their on-disk copies. Returns the number of
        entries inserted.
        """
        async with self._io_lock:
            records = await self._read_records()
        self.disk_reads += 1

        now_ms = self._clock() * 1000
        loaded = 0
        # Oldest first so the freshest records end up most recently used
        for key, record in sorted(records.items(), key=lambda kv: kv[1]["expires"]):
            if record["expires"] <= now_ms or key in self._entries:
                continue
            expires_at = record["expires"] / 1000
            self._insert(
                CacheEntry(
                    key=key,
                    value=record["value"],
                    stored_at=expires_at - self.ttl,
                    expires_at=expires_at,
                )
            )
            loaded += 1

        if loaded:
            logger.info("cache_loaded", path=str(self.path), entries=loaded)
        return loaded

    async def persist(self) -> None:
        """Write the in-memory entries to disk. Failures are only logged."""
        await self._write(dict(self._entries))

    async def _read_records(self) -> Dict[str, Dict[str, Any]]:
        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                raw = await f.read()
        except FileNotFoundError:
            return {}
        except OSError as e:
            logger.warning("cache_read_failed", path=str(self.path), error=str(e))
            return {}

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("cache_file_corrupt", path=str(self.path), error=str(e))
            return {}
        if not isinstance(data, dict):
            logger.warning("cache_file_corrupt", path=str(self.path), error="not an object")
            return {}

        records: Dict[str, Dict[str, Any]] = {}
        for key, record in data.items():
            if not isinstance(record, dict):
                continue
            value = record.get("value")
            expires = record.get("expires")
            if isinstance(value, str) and isinstance(expires, (int, float)):
                records[key] = {"value": value, "expires": expires}
        return records

    async def _write(self, updates: Dict[str, CacheEntry]) -> None:
        async with self._io_lock:
            try:
                now = self._clock()
                merged = {
                    k: r
                    for k, r in (await self._read_records()).items()
                    if r["expires"] > now * 1000
                }
                for key, entry in updates.items():
                    if not entry.is_expired(now):
                        merged[key] = entry.to_record()
                if len(merged) > self.max_size:
                    newest = sorted(merged.items(), key=lambda kv: kv[1]["expires"], reverse=True)
                    merged = dict(newest[: self.max_size])

                self.path.parent.mkdir(parents=True, exist_ok=True)
                async with aiofiles.open(self.path, "w", encoding="utf-8") as f:
                    await f.write(json.dumps(merged, indent=2))
                self.disk_writes += 1
            except (OSError, TypeError, ValueError) as e:
                logger.warning("cache_persist_failed", path=str(self.path), error=str(e))

    def purge_expired(self) -> int:
        """Drop expired entries from memory and return how many were removed."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.is_expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    async def clear(self) -> int:
        """Empty the cache and delete its file. Returns entries removed."""
        await self.flush()
        count = len(self._entries)
        self._entries.clear()
        self._reset_stats()

        async with self._io_lock:
            try:
                self.path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("cache_clear_failed", path=str(self.path), error=str(e))

        logger.info("cache_cleared", path=str(self.path), entries=count)
        return count

    async def shutdown(self) -> None:
        """Finish background writes and persist the current entries."""
        await self.flush()
        if self._entries:
            await self.persist()

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        lookups = self.hits + self.misses
        return {
            "type": "persistent_lru",
            "path": str(self.path),
            "max_size": self.max_size,
            "size": len(self._entries),
            "ttl": self.ttl,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hits / lookups if lookups else 0.0,
            "evictions": self.evictions,
            "disk_reads": self.disk_reads,
            "disk_writes": self.disk_writes,
        }
