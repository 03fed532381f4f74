"""
RequestDeduplicator - Prevents duplicate concurrent requests.

When multiple callers request the same key simultaneously, only one
underlying call is made and every caller receives the same result (or the
same exception object).

Each pending record carries a TTL: once it lapses, the key is eligible for
a fresh call even if the old one never settled.
"""

import asyncio
import functools
import json
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

T = TypeVar("T")

# Network-level records are short-lived, logical operations get longer
DEFAULT_REQUEST_TTL = timedelta(seconds=30)
DEFAULT_CALL_TTL = timedelta(minutes=2)


@dataclass
class PendingCall:
    """An in-flight call shared by every requester of its key."""

    key: str
    task: "asyncio.Future[Any]"
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class RequestDeduplicator:
    """
    Deduplicates concurrent async requests.

    Usage:
        dedup = RequestDeduplicator()

        async def fetch_data(url: str):
            return await dedup.dedupe(
                key=url,
                request_fn=lambda: http_client.get(url),
            )
    """

    def __init__(
        self,
        default_ttl: timedelta = DEFAULT_REQUEST_TTL,
        name: str = "Deduplicator",
        clock: Callable[[], float] = time.monotonic,
        debug: bool = False,
    ):
        self._in_flight: dict[str, PendingCall] = {}
        self._default_ttl = default_ttl
        self._name = name
        self._clock = clock
        self._debug = debug
        self._stats = DeduplicatorStats()

    async def dedupe(
        self,
        key: str,
        request_fn: Callable[[], Awaitable[T]],
        ttl: timedelta | None = None,
    ) -> T:
        """
        Execute request with deduplication.

        If a live request with the same key is already in flight, wait for
        and return its result instead of making a new request.

        Args:
            key: Unique identifier for this request
            request_fn: Async function to execute if no duplicate exists
            ttl: How long the pending record may be shared

        Returns:
            Result from request_fn (either fresh or from in-flight request)
        """
        self.cleanup_expired()
        now = self._clock()

        record = self._in_flight.get(key)
        if record is not None and not record.task.done():
            self._stats.shared += 1
            self._log(f"DEDUPE: Waiting for in-flight request: {key[:50]}...")
        else:
            self._stats.started += 1
            self._log(f"NEW: Starting request: {key[:50]}...")
            lifetime = (ttl or self._default_ttl).total_seconds()
            record = PendingCall(
                key=key,
                task=asyncio.ensure_future(request_fn()),
                created_at=now,
                expires_at=now + lifetime,
            )
            self._in_flight[key] = record
            record.task.add_done_callback(functools.partial(self._on_settled, record))

        # Shielded so a cancelled waiter does not cancel the shared call
        return await asyncio.shield(record.task)

    def _on_settled(self, record: PendingCall, task: "asyncio.Future[Any]") -> None:
        """Remove the record, unless a newer one replaced it already."""
        if self._in_flight.get(record.key) is record:
            del self._in_flight[record.key]
            self._log(f"DONE: Request completed: {record.key[:50]}...")

        # Mark the exception retrieved when every waiter has gone away
        if not task.cancelled():
            task.exception()

    def cleanup_expired(self) -> int:
        """Drop records whose TTL lapsed. The calls themselves keep running."""
        now = self._clock()
        expired = [k for k, r in self._in_flight.items() if r.is_expired(now)]
        for key in expired:
            del self._in_flight[key]
            self._log(f"EXPIRED: Pending record dropped: {key[:50]}...")
        self._stats.expired += len(expired)
        return len(expired)

    async def cancel(self, key: str) -> bool:
        """Cancel an in-flight request."""
        record = self._in_flight.pop(key, None)
        if record is None:
            return False
        record.task.cancel()
        self._log(f"CANCEL: Request cancelled: {key[:50]}...")
        return True

    async def cancel_all(self) -> int:
        """Cancel all in-flight requests."""
        count = len(self._in_flight)
        for record in self._in_flight.values():
            record.task.cancel()
        self._in_flight.clear()
        if count:
            self._log(f"CANCEL_ALL: {count} requests cancelled")
        return count

    def get_in_flight_count(self) -> int:
        """Get number of in-flight requests."""
        return len(self._in_flight)

    def get_in_flight_keys(self) -> list[str]:
        """Get keys of all in-flight requests."""
        return list(self._in_flight.keys())

    def get_stats(self) -> "DeduplicatorStats":
        """Get deduplication statistics."""
        self._stats.in_flight = len(self._in_flight)
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[{self._name}] {message}")


@dataclass
class DeduplicatorStats:
    """Counters for one deduplicator. ``started`` counts real executions."""

    started: int = 0
    shared: int = 0
    expired: int = 0
    in_flight: int = 0

    @property
    def dedup_rate(self) -> float:
        calls = self.started + self.shared
        return self.shared / calls if calls else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_requests": self.started,
            "deduplicated": self.shared,
            "expired": self.expired,
            "in_flight": self.in_flight,
            "dedup_rate": f"{self.dedup_rate:.2%}",
        }


def make_call_key(name: str, *args: Any, **kwargs: Any) -> str:
    """Build a logical dedup key from an operation name and its arguments."""
    payload = json.dumps([list(args), kwargs], sort_keys=True, default=str)
    return f"{name}:{payload}"


def deduplicate_calls(
    deduplicator: RequestDeduplicator,
    key_fn: Callable[..., str] | None = None,
    ttl: timedelta | None = None,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Decorator sharing one execution between concurrent identical calls.

    Usage:
        @deduplicate_calls(call_dedup)
        async def load_profile(username: str) -> dict: ...
    """

    def decorator(fn: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            if key_fn is not None:
                key = key_fn(*args, **kwargs)
            else:
                key = make_call_key(fn.__qualname__, *args, **kwargs)
            return await deduplicator.dedupe(key, lambda: fn(*args, **kwargs), ttl=ttl)

        return wrapper

    return decorator
