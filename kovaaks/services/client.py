"""
ApiClient - request orchestration for the KovaaK's API.

Combines:
- PersistentCache for response caching across restarts
- RequestDeduplicator for concurrent request sharing (network and logical level)
- RetryExecutor for transient failure recovery
- HttpTransport for the actual HTTP call
"""

import asyncio
import hashlib
import json
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Awaitable, Callable, Generic, TypeVar

from loguru import logger

from kovaaks.services.cache import CacheConfig, PersistentCache
from kovaaks.services.deduplicator import RequestDeduplicator
from kovaaks.services.errors import RawOutcome, RequestContext
from kovaaks.services.lifecycle import ShutdownHooks, shutdown_hooks
from kovaaks.services.retry import ExecutionResult, RetryExecutor, RetryPolicy
from kovaaks.services.transport import HttpTransport
from kovaaks.settings import Settings, global_settings

T = TypeVar("T")

# Routes where a 404 means "does not exist" rather than a failure
MISSING_BY_DESIGN_ROUTES = ("/webapp-backend/scenario",)
INVALID_ROUTE_BODY = "Invalid Route"

MAX_KEY_LENGTH = 200


@dataclass
class RequestResult(Generic[T]):
    """Result from an orchestrated request."""

    data: T
    from_cache: bool = False
    attempts: int = 0  # 0 when served from cache
    key: str | None = None


def build_request_key(
    method: str,
    url: str,
    params: dict[str, Any] | None = None,
    body: Any = None,
) -> str:
    """Generate a cache/dedup key from method, URL, params and body."""
    full_key = ":".join(
        [
            method.upper(),
            url,
            json.dumps(params or {}, sort_keys=True, default=str),
            json.dumps(body or {}, sort_keys=True, default=str),
        ]
    )

    # Hash long keys
    if len(full_key) > MAX_KEY_LENGTH:
        hash_val = hashlib.sha256(full_key.encode()).hexdigest()[:32]
        return f"{method.upper()}:{url}:#{hash_val}"

    return full_key


def is_missing_by_design(url: str) -> bool:
    """Check whether a 404 from this URL is an expected empty answer."""
    path = url.split("?", 1)[0].rstrip("/")
    return any(path.endswith(route) for route in MISSING_BY_DESIGN_ROUTES)


class ApiClient:
    """
    HTTP client with persistent caching, deduplication and retry.

    Usage:
        async with ApiClient() as client:
            result = await client.request(
                "GET",
                "/webapp-backend/user/profile/by-username",
                params={"username": "alice"},
                cache_ttl=timedelta(minutes=15),
            )
            print(result.data)
    """

    def __init__(
        self,
        settings: Settings | None = None,
        cache: PersistentCache | None = None,
        transport: HttpTransport | None = None,
        executor: RetryExecutor | None = None,
        request_deduplicator: RequestDeduplicator | None = None,
        call_deduplicator: RequestDeduplicator | None = None,
        hooks: ShutdownHooks | None = None,
    ):
        self._settings = settings or global_settings
        debug = self._settings.debug

        # Initialize components
        self._cache = cache or PersistentCache(
            CacheConfig.from_settings(self._settings),
            shutdown_hooks=hooks,
            debug=debug,
        )
        self._transport = transport or HttpTransport(
            base_url=self._settings.base_url,
            timeout=self._settings.request_timeout,
            token=self._settings.api_token or None,
        )
        self._executor = executor or RetryExecutor(
            RetryPolicy.from_settings(self._settings), debug=debug
        )
        self._request_dedup = request_deduplicator or RequestDeduplicator(
            default_ttl=timedelta(seconds=self._settings.pending_request_ttl_seconds),
            name="RequestDeduplicator",
            debug=debug,
        )
        self._call_dedup = call_deduplicator or RequestDeduplicator(
            default_ttl=timedelta(seconds=self._settings.pending_call_ttl_seconds),
            name="CallDeduplicator",
            debug=debug,
        )
        self._debug = debug
        self._start_lock = asyncio.Lock()

    @property
    def cache(self) -> PersistentCache:
        return self._cache

    @property
    def transport(self) -> HttpTransport:
        return self._transport

    # ------------------------------------------------------------------ #
    # Auth and caching toggles
    # ------------------------------------------------------------------ #

    def set_token(self, token: str) -> None:
        """Set the bearer token sent with every request."""
        self._transport.set_token(token)

    def remove_token(self) -> None:
        self._transport.remove_token()

    def set_caching(self, enabled: bool) -> None:
        """Enable or disable response caching globally."""
        self._cache.set_enabled(enabled)

    def is_caching_enabled(self) -> bool:
        return self._cache.enabled

    # ------------------------------------------------------------------ #
    # Requests
    # ------------------------------------------------------------------ #

    async def request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        body: Any = None,
        *,
        skip_cache: bool = False,
        skip_dedup: bool = False,
        cache_ttl: timedelta | None = None,
        retry: RetryPolicy | None = None,
        missing_ok: bool | None = None,
        headers: dict[str, str] | None = None,
    ) -> RequestResult[Any]:
        """
        Make an HTTP request through cache, deduplication and retry.

        Args:
            method: HTTP method (GET or POST)
            url: Path relative to the API base URL
            params: Query parameters
            body: JSON body
            skip_cache: Neither read nor write the response cache
            skip_dedup: Do not share an identical in-flight request
            cache_ttl: Override the default cache TTL
            retry: Override the retry policy
            missing_ok: Resolve a 404 to None; defaults to True on routes
                that are missing by design
            headers: Additional headers

        Returns:
            RequestResult with response data

        Raises:
            KovaaksError: Classified error once retries are exhausted
        """
        await self.ensure_started()

        method = method.upper()
        key = build_request_key(method, url, params, body)

        # Check cache first
        if not skip_cache:
            cached = self._cache.get(key)
            if cached is not None:
                logger.debug(f"Cache hit: {method} {url}")
                return RequestResult(data=cached.data, from_cache=True, key=key)
            self._log(f"Cache miss: {method} {url}")

        context = RequestContext(method=method, url=url, params=params)
        allow_missing = is_missing_by_design(url) if missing_ok is None else missing_ok

        def treat_as_missing(outcome: RawOutcome) -> bool:
            return allow_missing or outcome.data == INVALID_ROUTE_BODY

        async def do_request() -> ExecutionResult[Any]:
            execution = await self._executor.execute(
                lambda: self._transport.send(method, url, params, body, headers),
                policy=retry,
                context=context,
                treat_as_missing=treat_as_missing,
            )
            if not skip_cache and not execution.missing:
                self._cache.set(key, execution.value, cache_ttl)
            return execution

        if skip_dedup:
            execution = await do_request()
        else:
            execution = await self._request_dedup.dedupe(key, do_request)

        return RequestResult(
            data=execution.value,
            from_cache=False,
            attempts=execution.attempts,
            key=key,
        )

    async def get(
        self, url: str, params: dict[str, Any] | None = None, **kwargs: Any
    ) -> Any:
        """GET ``url`` and return only the response data."""
        result = await self.request("GET", url, params, **kwargs)
        return result.data

    async def post(self, url: str, body: Any = None, **kwargs: Any) -> Any:
        """POST ``body`` to ``url`` and return only the response data."""
        result = await self.request("POST", url, body=body, **kwargs)
        return result.data

    async def dedupe(
        self,
        key: str,
        producer: Callable[[], Awaitable[T]],
        ttl: timedelta | None = None,
    ) -> T:
        """Share one execution of a logical operation between concurrent callers."""
        return await self._call_dedup.dedupe(key, producer, ttl=ttl)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def start(self) -> None:
        """Load the persisted cache and start autosave."""
        await self._cache.start()

    async def ensure_started(self) -> None:
        """Start on first use so the persisted cache is read before any lookup."""
        if self._cache.started:
            return
        async with self._start_lock:
            await self.start()

    async def close(self) -> None:
        """Close the HTTP client, flush the cache and cancel pending calls."""
        await self._transport.close()
        await self._request_dedup.cancel_all()
        await self._call_dedup.cancel_all()
        await self._cache.stop()
        logger.debug("ApiClient closed")

    async def __aenter__(self) -> "ApiClient":
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    # Health and status methods

    def get_health_status(self) -> dict[str, Any]:
        """Get status of cache and deduplicators."""
        return {
            "cache": self._cache.get_stats().to_dict(),
            "request_deduplicator": self._request_dedup.get_stats().to_dict(),
            "call_deduplicator": self._call_dedup.get_stats().to_dict(),
            "authenticated": self._transport.token is not None,
        }

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[ApiClient] {message}")


# Global client instance
_global_client: ApiClient | None = None


def get_api_client() -> ApiClient:
    """Get the global API client instance, flushed to disk on process exit."""
    global _global_client
    if _global_client is None:
        _global_client = ApiClient(hooks=shutdown_hooks)
    return _global_client


async def close_api_client() -> None:
    """Close the global API client."""
    global _global_client
    if _global_client:
        await _global_client.close()
        _global_client = None
