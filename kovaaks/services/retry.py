"""
RetryExecutor - bounded exponential backoff with jitter around a single call.

The retry decision checks the classified kind before the status allow-list:
a non-retryable kind (authentication, validation, ...) is never retried even
if its status appears in ``retryable_statuses``.
"""

import asyncio
import random
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Generic, TypeVar

from loguru import logger

from kovaaks.services.classifier import build_error, classify
from kovaaks.services.errors import (
    NON_RETRYABLE_KINDS,
    RETRYABLE_KINDS,
    ErrorKind,
    RawOutcome,
    RequestContext,
    TransportError,
)
from kovaaks.settings import Settings

T = TypeVar("T")

DEFAULT_RETRYABLE_STATUSES = frozenset({408, 429, 500, 502, 503, 504})

JITTER_MIN = 0.8
JITTER_MAX = 1.2


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration. Delays are in seconds."""

    max_retries: int = 3
    initial_delay: float = 0.3
    max_delay: float = 10.0
    backoff_factor: float = 2.0
    retryable_statuses: frozenset[int] = DEFAULT_RETRYABLE_STATUSES
    enabled: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_retries=settings.max_retries,
            initial_delay=settings.retry_initial_delay,
            max_delay=settings.retry_max_delay,
            backoff_factor=settings.retry_backoff_factor,
        )

    @classmethod
    def disabled(cls) -> "RetryPolicy":
        return cls(enabled=False)

    def merged(self, **overrides: Any) -> "RetryPolicy":
        """Return a copy with some fields replaced."""
        if "retryable_statuses" in overrides:
            overrides["retryable_statuses"] = frozenset(overrides["retryable_statuses"])
        return replace(self, **overrides)


@dataclass
class ExecutionResult(Generic[T]):
    """Value returned by a successful execution."""

    value: T
    attempts: int
    missing: bool = False


def compute_backoff_delay(
    attempt: int,
    policy: RetryPolicy,
    jitter: float | None = None,
) -> float:
    """
    Delay before retry number ``attempt + 1``.

    ``initial_delay * backoff_factor ** attempt``, scaled by a jitter factor
    drawn from [0.8, 1.2] and capped at ``max_delay``.
    """
    if jitter is None:
        jitter = random.uniform(JITTER_MIN, JITTER_MAX)
    exponential = policy.initial_delay * policy.backoff_factor**attempt
    return min(exponential * jitter, policy.max_delay)


def should_retry(
    kind: ErrorKind,
    outcome: RawOutcome,
    attempt: int,
    policy: RetryPolicy,
) -> bool:
    """Decide whether a failed attempt (0-based) gets another try."""
    if not policy.enabled or attempt >= policy.max_retries:
        return False
    if kind in NON_RETRYABLE_KINDS:
        return False
    if outcome.status:
        return outcome.status in policy.retryable_statuses
    return kind in (ErrorKind.TIMEOUT, ErrorKind.NETWORK_ERROR)


def is_retryable(kind: ErrorKind, outcome: RawOutcome, policy: RetryPolicy) -> bool:
    """Whether a manual retry later is sensible, reported on the final error."""
    if kind in NON_RETRYABLE_KINDS:
        return False
    return kind in RETRYABLE_KINDS or outcome.status in policy.retryable_statuses


class RetryExecutor:
    """
    Runs a call with retry.

    Usage:
        executor = RetryExecutor(RetryPolicy(max_retries=2))
        result = await executor.execute(lambda: transport.send("GET", "/x"))
        print(result.value, result.attempts)
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        debug: bool = False,
    ):
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._debug = debug

    async def execute(
        self,
        call: Callable[[], Awaitable[T]],
        policy: RetryPolicy | None = None,
        context: RequestContext | None = None,
        treat_as_missing: Callable[[RawOutcome], bool] | None = None,
    ) -> ExecutionResult[T | None]:
        """
        Attempt ``call`` until it succeeds or the policy gives up.

        Args:
            call: Zero-argument coroutine factory; raises TransportError on failure
            policy: Override the executor's default policy
            context: Request details attached to the final error
            treat_as_missing: Predicate marking a NOT_FOUND outcome as an
                expected "resource does not exist" answer, resolved as None

        Returns:
            ExecutionResult with the value and the number of attempts made

        Raises:
            KovaaksError: Classified error once retries are exhausted
        """
        policy = policy or self.policy
        attempt = 0

        while True:
            try:
                value = await call()
                if attempt:
                    self._log(f"Request succeeded after {attempt + 1} attempts")
                return ExecutionResult(value=value, attempts=attempt + 1)
            except TransportError as exc:
                failure = exc

            outcome = failure.outcome
            kind = classify(outcome)

            if (
                kind is ErrorKind.NOT_FOUND
                and treat_as_missing is not None
                and treat_as_missing(outcome)
            ):
                self._log("Resource missing by design, resolving to None")
                return ExecutionResult(value=None, attempts=attempt + 1, missing=True)

            if not should_retry(kind, outcome, attempt, policy):
                raise build_error(
                    outcome,
                    context=context,
                    attempts=attempt + 1,
                    retryable=is_retryable(kind, outcome, policy),
                    kind=kind,
                ) from failure

            delay = compute_backoff_delay(attempt, policy)
            logger.warning(
                f"API request failed ({kind.value}: {outcome.status or 'unknown error'}), "
                f"retrying in {round(delay * 1000)}ms "
                f"(attempt {attempt + 1}/{policy.max_retries})"
            )
            await self._sleep(delay)
            attempt += 1

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[RetryExecutor] {message}")
