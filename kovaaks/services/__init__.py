"""
Service layer infrastructure - request execution and caching for API calls.

Provides:
- PersistentCache: TTL cache persisted to disk across restarts
- RequestDeduplicator: Prevents duplicate concurrent requests
- RetryExecutor: Exponential backoff with jitter
- classify: Maps failed outcomes to an ErrorKind
- ApiClient: Unified client combining all patterns
"""

from kovaaks.services.errors import (
    ErrorKind,
    KovaaksError,
    NetworkError,
    RequestTimeoutError,
    ServerError,
    RateLimitError,
    AuthenticationError,
    AuthorizationError,
    ValidationError,
    NotFoundError,
    ParameterError,
    ConfigurationError,
    UnknownApiError,
    RawOutcome,
    RequestContext,
    TransportError,
)
from kovaaks.services.classifier import classify, build_error, outcome_from_exception
from kovaaks.services.cache import CacheConfig, CacheEntry, CacheResult, PersistentCache
from kovaaks.services.deduplicator import (
    RequestDeduplicator,
    deduplicate_calls,
    make_call_key,
)
from kovaaks.services.retry import (
    RetryExecutor,
    RetryPolicy,
    compute_backoff_delay,
)
from kovaaks.services.lifecycle import ShutdownHooks, shutdown_hooks
from kovaaks.services.batch import batch_calls
from kovaaks.services.transport import HttpTransport
from kovaaks.services.client import (
    ApiClient,
    RequestResult,
    build_request_key,
    close_api_client,
    get_api_client,
)

__all__ = [
    # Errors
    "ErrorKind",
    "KovaaksError",
    "NetworkError",
    "RequestTimeoutError",
    "ServerError",
    "RateLimitError",
    "AuthenticationError",
    "AuthorizationError",
    "ValidationError",
    "NotFoundError",
    "ParameterError",
    "ConfigurationError",
    "UnknownApiError",
    "RawOutcome",
    "RequestContext",
    "TransportError",
    # Classifier
    "classify",
    "build_error",
    "outcome_from_exception",
    # Cache
    "CacheConfig",
    "CacheEntry",
    "CacheResult",
    "PersistentCache",
    # Deduplicator
    "RequestDeduplicator",
    "deduplicate_calls",
    "make_call_key",
    # Retry
    "RetryExecutor",
    "RetryPolicy",
    "compute_backoff_delay",
    # Lifecycle
    "ShutdownHooks",
    "shutdown_hooks",
    # Batch
    "batch_calls",
    # Client
    "HttpTransport",
    "ApiClient",
    "RequestResult",
    "build_request_key",
    "get_api_client",
    "close_api_client",
]
