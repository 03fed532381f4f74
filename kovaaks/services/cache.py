"""
PersistentCache - TTL response cache mirrored to a JSON file on disk.

Features:
- In-memory map with per-entry expiry, checked lazily on read
- Periodic purge + save via an APScheduler interval job
- Synchronous flush on process exit through ShutdownHooks
- Global enable/disable toggle

The cache file is a single JSON object mapping each key to
``{"data", "timestamp", "expiresAt"}`` (epoch seconds). Values must be
JSON-serializable; the cache never inspects them. No file locking is done,
so one cache file must only be used by one process at a time.
"""

import asyncio
import json
import os
import time
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable, Generic, TypeVar

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from kovaaks.services.errors import ParameterError
from kovaaks.services.lifecycle import ShutdownHooks
from kovaaks.settings import Settings

T = TypeVar("T")

AUTOSAVE_JOB_ID = "kovaaks_cache_autosave"

# Buckets reported by get_stats(), in seconds until expiry
EXPIRY_BUCKETS = [
    ("1min", 60),
    ("5min", 5 * 60),
    ("15min", 15 * 60),
    ("1hour", 60 * 60),
    ("1day", 24 * 60 * 60),
]


@dataclass
class CacheConfig:
    """Configuration for the persistent cache."""

    default_ttl: timedelta = timedelta(minutes=5)
    enable_caching: bool = True
    cache_directory: Path = field(
        default_factory=lambda: Path.home() / ".kovaaks-api-cache"
    )
    cache_file_name: str = "cache.json"
    # timedelta(0) disables periodic saves; the cache is then saved on exit only
    auto_save_interval: timedelta = timedelta(minutes=5)

    @classmethod
    def from_settings(cls, settings: Settings) -> "CacheConfig":
        return cls(
            default_ttl=timedelta(seconds=settings.default_cache_ttl_seconds),
            enable_caching=settings.enable_caching,
            cache_directory=Path(settings.cache_directory).expanduser(),
            cache_file_name=settings.cache_file_name,
            auto_save_interval=timedelta(
                seconds=settings.auto_save_interval_seconds
            ),
        )

    @property
    def cache_file(self) -> Path:
        return Path(self.cache_directory) / self.cache_file_name


@dataclass
class CacheEntry(Generic[T]):
    """A single cache entry. Entries are replaced, never edited."""

    key: str
    data: T
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": self.data,
            "timestamp": self.created_at,
            "expiresAt": self.expires_at,
        }

    @classmethod
    def from_dict(cls, key: str, raw: Any) -> "CacheEntry[Any] | None":
        """Rebuild an entry from its file form; None if the record is malformed."""
        if not isinstance(raw, dict) or "data" not in raw:
            return None
        created_at = raw.get("timestamp")
        expires_at = raw.get("expiresAt")
        if not isinstance(created_at, (int, float)) or not isinstance(
            expires_at, (int, float)
        ):
            return None
        if expires_at <= created_at:
            return None
        return cls(
            key=key,
            data=raw["data"],
            created_at=float(created_at),
            expires_at=float(expires_at),
        )


@dataclass
class CacheResult(Generic[T]):
    """Result from cache lookup."""

    data: T
    created_at: float
    expires_at: float


class PersistentCache:
    """
    TTL cache with a durable on-disk mirror.

    Usage:
        cache = PersistentCache(CacheConfig(cache_directory=Path("/tmp/cache")))
        await cache.start()

        result = cache.get("my_key")
        if result:
            return result.data

        data = await fetch_data()
        cache.set("my_key", data, ttl=timedelta(minutes=15))

        await cache.stop()
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        shutdown_hooks: ShutdownHooks | None = None,
        clock: Callable[[], float] = time.time,
        debug: bool = False,
    ):
        self._config = config or CacheConfig()
        self._enabled = self._config.enable_caching
        self._memory: dict[str, CacheEntry[Any]] = {}
        self._shutdown_hooks = shutdown_hooks
        self._clock = clock
        self._debug = debug
        self._scheduler: AsyncIOScheduler | None = None
        self._started = False
        self._stats = CacheStats()

    # ------------------------------------------------------------------ #
    # Configuration
    # ------------------------------------------------------------------ #

    @property
    def config(self) -> CacheConfig:
        return self._config

    @property
    def cache_file(self) -> Path:
        return self._config.cache_file

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, value: bool) -> None:
        """Enable or disable caching. Disabling drops every in-memory entry."""
        self._enabled = value
        if not value:
            self.clear()
        logger.info(f"Response caching {'enabled' if value else 'disabled'}")

    @property
    def size(self) -> int:
        return len(self._memory)

    def __len__(self) -> int:
        return len(self._memory)

    # ------------------------------------------------------------------ #
    # Entry operations
    # ------------------------------------------------------------------ #

    def get(self, key: str) -> CacheResult[Any] | None:
        """
        Get value from cache.

        Returns None if the key is absent, caching is disabled, or the
        entry has expired (an expired entry is removed as a side effect).
        """
        if not self._enabled:
            return None

        entry = self._memory.get(key)
        if entry is None:
            self._stats.misses += 1
            self._log(f"MISS: {key[:50]}...")
            return None

        if entry.is_expired(self._clock()):
            del self._memory[key]
            self._stats.misses += 1
            self._stats.expirations += 1
            self._log(f"EXPIRED: {key[:50]}...")
            return None

        self._stats.hits += 1
        self._log(f"HIT: {key[:50]}...")
        return CacheResult(
            data=entry.data,
            created_at=entry.created_at,
            expires_at=entry.expires_at,
        )

    def set(self, key: str, data: Any, ttl: timedelta | None = None) -> None:
        """
        Store a value, replacing any existing entry for the key.

        Args:
            key: Cache key
            data: JSON-serializable value
            ttl: Time to live (uses the configured default if not specified)

        Raises:
            ParameterError: If ttl is not positive
        """
        if not self._enabled:
            return

        ttl = ttl if ttl is not None else self._config.default_ttl
        seconds = ttl.total_seconds()
        if seconds <= 0:
            raise ParameterError(f"Cache TTL must be positive, got {seconds}s")

        now = self._clock()
        self._memory[key] = CacheEntry(
            key=key,
            data=data,
            created_at=now,
            expires_at=now + seconds,
        )
        self._log(f"SET: {key[:50]}... (TTL: {seconds}s)")

    def has(self, key: str) -> bool:
        """Check if a key exists and is not expired."""
        if not self._enabled:
            return False

        entry = self._memory.get(key)
        if entry is None:
            return False

        if entry.is_expired(self._clock()):
            del self._memory[key]
            return False

        return True

    def delete(self, key: str) -> bool:
        """Delete a specific key from cache."""
        if key in self._memory:
            del self._memory[key]
            self._log(f"DELETE: {key[:50]}...")
            return True
        return False

    def invalidate(self, pattern: str) -> int:
        """
        Invalidate all keys matching a pattern.

        Args:
            pattern: Substring to match in keys

        Returns:
            Number of entries invalidated
        """
        keys_to_delete = [k for k in self._memory if pattern in k]
        for key in keys_to_delete:
            del self._memory[key]

        if keys_to_delete:
            self._log(f"INVALIDATE: {len(keys_to_delete)} entries matching '{pattern}'")

        return len(keys_to_delete)

    def clear(self) -> None:
        """Clear all in-memory entries. The file is rewritten on the next save."""
        count = len(self._memory)
        self._memory.clear()
        self._log(f"CLEAR: {count} entries removed")

    def purge_expired(self) -> int:
        """Remove all expired entries. Returns count of removed entries."""
        now = self._clock()
        expired_keys = [k for k, v in self._memory.items() if v.is_expired(now)]
        for key in expired_keys:
            del self._memory[key]

        if expired_keys:
            self._stats.expirations += len(expired_keys)
            self._log(f"PURGE: {len(expired_keys)} expired entries removed")

        return len(expired_keys)

    # ------------------------------------------------------------------ #
    # Persistence
    # ------------------------------------------------------------------ #

    def _snapshot(self) -> str | None:
        """Serialize live entries; None when there is nothing to persist."""
        now = self._clock()
        serializable = {
            key: entry.to_dict()
            for key, entry in self._memory.items()
            if not entry.is_expired(now)
        }
        if not serializable:
            return None
        return json.dumps(serializable)

    def _write_file(self, payload: str | None) -> None:
        path = self.cache_file

        if payload is None:
            # Nothing live: remove the file rather than write an empty payload
            if path.exists():
                path.unlink()
                self._log(f"Removed empty cache file {path}")
            return

        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(f"{path.name}.tmp")
        tmp_path.write_text(payload, encoding="utf-8")
        os.replace(tmp_path, path)

    def save_to_disk_sync(self) -> None:
        """Persist live entries synchronously. Used by exit hooks."""
        try:
            self._write_file(self._snapshot())
            self._log(f"Saved {len(self._memory)} entries to {self.cache_file}")
        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"Failed to save cache to disk: {e}")

    async def save_to_disk(self) -> None:
        """Persist live entries; the file write runs in a worker thread."""
        try:
            payload = self._snapshot()
            await asyncio.to_thread(self._write_file, payload)
            self._log(f"Saved {len(self._memory)} entries to {self.cache_file}")
        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"Failed to save cache to disk: {e}")

    def _read_file(self) -> Any:
        with open(self.cache_file, encoding="utf-8") as f:
            return json.load(f)

    async def load_from_disk(self) -> int:
        """
        Load non-expired entries from the cache file.

        A missing or unreadable file is not an error: the cache simply
        starts empty. Entries already in memory are kept over file entries.

        Returns:
            Number of entries loaded
        """
        if not self._enabled:
            return 0

        if not self.cache_file.exists():
            logger.info("No existing cache file found")
            return 0

        try:
            parsed = await asyncio.to_thread(self._read_file)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load cache from disk: {e}")
            return 0

        if not isinstance(parsed, dict):
            logger.warning(f"Ignoring cache file {self.cache_file}: not a JSON object")
            return 0

        now = self._clock()
        loaded = 0
        skipped = 0
        for key, raw in parsed.items():
            entry = CacheEntry.from_dict(key, raw)
            if entry is None or entry.is_expired(now):
                skipped += 1
                continue
            if key in self._memory:
                continue
            self._memory[key] = entry
            loaded += 1

        logger.info(
            f"Loaded {loaded} cache entries from disk "
            f"({skipped} expired or invalid entries skipped)"
        )
        return loaded

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def start(self) -> None:
        """Create the cache directory, load from disk and start autosave."""
        if self._started:
            return

        try:
            Path(self._config.cache_directory).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(f"Failed to create cache directory: {e}")

        await self.load_from_disk()
        self._start_autosave()

        if self._shutdown_hooks is not None:
            self._shutdown_hooks.register(self.save_to_disk_sync)

        self._started = True
        logger.debug(f"PersistentCache started ({self.cache_file})")

    async def stop(self) -> None:
        """Stop autosave and flush to disk synchronously."""
        self._stop_autosave()

        if self._shutdown_hooks is not None:
            self._shutdown_hooks.unregister(self.save_to_disk_sync)

        if self._started:
            self.save_to_disk_sync()
        self._started = False
        logger.debug("PersistentCache stopped")

    async def _autosave(self) -> None:
        """Scheduled job: purge expired entries, then persist."""
        self.purge_expired()
        await self.save_to_disk()

    def _start_autosave(self) -> None:
        interval = self._config.auto_save_interval.total_seconds()
        if interval <= 0:
            self._log("Autosave disabled, cache is saved on exit only")
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self._autosave,
            trigger="interval",
            seconds=interval,
            id=AUTOSAVE_JOB_ID,
            name="Cache Autosave",
            replace_existing=True,
        )
        self._scheduler.start()
        self._log(f"Autosave scheduled every {interval}s")

    def _stop_autosave(self) -> None:
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

    @property
    def started(self) -> bool:
        return self._started

    @property
    def autosave_running(self) -> bool:
        return self._scheduler is not None

    async def update_config(
        self,
        default_ttl: timedelta | None = None,
        cache_directory: Path | str | None = None,
        cache_file_name: str | None = None,
        auto_save_interval: timedelta | None = None,
    ) -> None:
        """
        Update configuration after initialization.

        Changing the directory or file name reloads entries from the new
        location. Changing the autosave interval restarts the job.
        """
        if default_ttl is not None:
            if default_ttl.total_seconds() <= 0:
                raise ParameterError("Default cache TTL must be positive")
            self._config.default_ttl = default_ttl

        if cache_directory is not None or cache_file_name is not None:
            if cache_directory is not None:
                self._config.cache_directory = Path(cache_directory)
            if cache_file_name is not None:
                self._config.cache_file_name = cache_file_name
            try:
                Path(self._config.cache_directory).mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.warning(f"Failed to create cache directory: {e}")
            await self.load_from_disk()

        if auto_save_interval is not None:
            self._config.auto_save_interval = auto_save_interval
            if self._started:
                self._stop_autosave()
                self._start_autosave()

    # ------------------------------------------------------------------ #
    # Stats
    # ------------------------------------------------------------------ #

    def get_stats(self) -> "CacheStats":
        """Get cache statistics, including expiry buckets and entry ages."""
        now = self._clock()
        stats = self._stats
        stats.size = len(self._memory)
        stats.enabled = self._enabled
        stats.expiring_within = {name: 0 for name, _ in EXPIRY_BUCKETS}
        stats.expiring_within["later"] = 0
        stats.oldest_entry = None
        stats.newest_entry = None

        oldest: CacheEntry[Any] | None = None
        newest: CacheEntry[Any] | None = None
        for entry in self._memory.values():
            remaining = entry.expires_at - now
            for name, limit in EXPIRY_BUCKETS:
                if remaining <= limit:
                    stats.expiring_within[name] += 1
                    break
            else:
                stats.expiring_within["later"] += 1

            if oldest is None or entry.created_at < oldest.created_at:
                oldest = entry
            if newest is None or entry.created_at > newest.created_at:
                newest = entry

        if oldest is not None:
            stats.oldest_entry = {"key": oldest.key, "age": now - oldest.created_at}
        if newest is not None:
            stats.newest_entry = {"key": newest.key, "age": now - newest.created_at}

        return stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[PersistentCache] {message}")


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    expirations: int = 0
    size: int = 0
    enabled: bool = True
    expiring_within: dict[str, int] = field(default_factory=dict)
    oldest_entry: dict[str, Any] | None = None
    newest_entry: dict[str, Any] | None = None

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "enabled": self.enabled,
            "hits": self.hits,
            "misses": self.misses,
            "expirations": self.expirations,
            "size": self.size,
            "hit_rate": f"{self.hit_rate:.2%}",
            "expiring_within": dict(self.expiring_within),
            "oldest_entry": self.oldest_entry,
            "newest_entry": self.newest_entry,
        }
