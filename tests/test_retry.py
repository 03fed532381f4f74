"""Tests for the retrying executor."""

import pytest

from kovaaks.services.errors import (
    AuthenticationError,
    ErrorKind,
    KovaaksError,
    NetworkError,
    RawOutcome,
    RequestContext,
    ServerError,
    TransportError,
    ValidationError,
)
from kovaaks.services.retry import (
    RetryExecutor,
    RetryPolicy,
    compute_backoff_delay,
    should_retry,
)


class ScriptedCall:
    """Fails with the given outcomes in order, then returns ``result``."""

    def __init__(self, *failures: RawOutcome, result="ok"):
        self.failures = list(failures)
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.failures:
            raise TransportError(self.failures.pop(0))
        return self.result


def always(outcome: RawOutcome, times: int = 100) -> ScriptedCall:
    return ScriptedCall(*([outcome] * times))


class TestBackoff:
    """Tests for compute_backoff_delay()."""

    def test_exponential_without_jitter(self):
        policy = RetryPolicy(initial_delay=0.3, backoff_factor=2.0, max_delay=10.0)
        assert compute_backoff_delay(0, policy, jitter=1.0) == pytest.approx(0.3)
        assert compute_backoff_delay(1, policy, jitter=1.0) == pytest.approx(0.6)
        assert compute_backoff_delay(2, policy, jitter=1.0) == pytest.approx(1.2)

    def test_capped_at_max_delay(self):
        policy = RetryPolicy(initial_delay=1.0, backoff_factor=10.0, max_delay=5.0)
        assert compute_backoff_delay(3, policy, jitter=1.2) == 5.0

    def test_jitter_bounds(self):
        policy = RetryPolicy()
        for attempt in range(3):
            base = policy.initial_delay * policy.backoff_factor**attempt
            for _ in range(50):
                delay = compute_backoff_delay(attempt, policy)
                assert base * 0.8 <= delay <= base * 1.2


class TestShouldRetry:
    """Tests for the retry decision."""

    def test_non_retryable_kind_beats_status_list(self):
        policy = RetryPolicy(retryable_statuses=frozenset({422}))
        outcome = RawOutcome(status=422)
        assert not should_retry(ErrorKind.VALIDATION_ERROR, outcome, 0, policy)

    def test_unknown_kind_defers_to_status_list(self):
        outcome = RawOutcome(status=408)
        assert should_retry(ErrorKind.UNKNOWN_ERROR, outcome, 0, RetryPolicy())

    def test_server_error_not_in_list(self):
        outcome = RawOutcome(status=501)
        assert not should_retry(ErrorKind.SERVER_ERROR, outcome, 0, RetryPolicy())

    def test_no_status_network_and_timeout(self):
        policy = RetryPolicy()
        assert should_retry(ErrorKind.NETWORK_ERROR, RawOutcome(), 0, policy)
        assert should_retry(ErrorKind.TIMEOUT, RawOutcome(), 0, policy)

    def test_exhausted(self):
        policy = RetryPolicy(max_retries=2)
        assert not should_retry(ErrorKind.SERVER_ERROR, RawOutcome(status=503), 2, policy)

    def test_disabled(self):
        outcome = RawOutcome(status=503)
        assert not should_retry(ErrorKind.SERVER_ERROR, outcome, 0, RetryPolicy.disabled())


class TestRetryExecutor:
    """Tests for RetryExecutor.execute()."""

    @pytest.mark.asyncio
    async def test_success_first_try(self, fake_sleep):
        executor = RetryExecutor(sleep=fake_sleep)
        result = await executor.execute(ScriptedCall(result={"a": 1}))

        assert result.value == {"a": 1}
        assert result.attempts == 1
        assert fake_sleep.delays == []

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self, fake_sleep):
        executor = RetryExecutor(sleep=fake_sleep)
        call = ScriptedCall(RawOutcome(status=503), RawOutcome(status=502), result="ok")

        result = await executor.execute(call)

        assert result.value == "ok"
        assert result.attempts == 3
        assert len(fake_sleep.delays) == 2

    @pytest.mark.asyncio
    async def test_persistent_503_exhausts_retries(self, fake_sleep):
        executor = RetryExecutor(RetryPolicy(max_retries=3), sleep=fake_sleep)
        call = always(RawOutcome(status=503, message="unavailable"))
        context = RequestContext(method="GET", url="/x")

        with pytest.raises(ServerError) as exc_info:
            await executor.execute(call, context=context)

        error = exc_info.value
        assert call.calls == 4
        assert error.attempts == 4
        assert error.retryable is True
        assert error.status == 503
        assert error.context is context
        assert isinstance(error.__cause__, TransportError)

        # 0.3, 0.6, 1.2 each with +/-20% jitter
        for delay, base in zip(fake_sleep.delays, [0.3, 0.6, 1.2]):
            assert base * 0.8 <= delay <= base * 1.2

    @pytest.mark.asyncio
    async def test_401_is_not_retried(self, fake_sleep):
        executor = RetryExecutor(sleep=fake_sleep)
        call = always(RawOutcome(status=401))

        with pytest.raises(AuthenticationError) as exc_info:
            await executor.execute(call)

        assert call.calls == 1
        assert exc_info.value.attempts == 1
        assert exc_info.value.retryable is False
        assert fake_sleep.delays == []

    @pytest.mark.asyncio
    async def test_422_not_retried_even_when_listed(self, fake_sleep):
        policy = RetryPolicy(retryable_statuses=frozenset({422, 503}))
        executor = RetryExecutor(policy, sleep=fake_sleep)
        call = always(RawOutcome(status=422))

        with pytest.raises(ValidationError) as exc_info:
            await executor.execute(call)

        assert call.calls == 1
        assert exc_info.value.retryable is False

    @pytest.mark.asyncio
    async def test_network_error_retried(self, fake_sleep):
        executor = RetryExecutor(RetryPolicy(max_retries=1), sleep=fake_sleep)
        call = always(RawOutcome(message="connection reset"))

        with pytest.raises(NetworkError) as exc_info:
            await executor.execute(call)

        assert call.calls == 2
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_disabled_policy_tries_once(self, fake_sleep):
        executor = RetryExecutor(sleep=fake_sleep)
        call = always(RawOutcome(status=503))

        with pytest.raises(KovaaksError):
            await executor.execute(call, policy=RetryPolicy.disabled())

        assert call.calls == 1

    @pytest.mark.asyncio
    async def test_not_found_missing_by_design(self, fake_sleep):
        executor = RetryExecutor(sleep=fake_sleep)
        call = always(RawOutcome(status=404, data="Invalid Route"))

        result = await executor.execute(call, treat_as_missing=lambda outcome: True)

        assert result.value is None
        assert result.missing is True
        assert result.attempts == 1

    @pytest.mark.asyncio
    async def test_not_found_raises_without_predicate(self, fake_sleep):
        executor = RetryExecutor(sleep=fake_sleep)

        with pytest.raises(KovaaksError) as exc_info:
            await executor.execute(always(RawOutcome(status=404)))

        assert exc_info.value.kind is ErrorKind.NOT_FOUND

    def test_policy_merged(self):
        policy = RetryPolicy().merged(max_retries=5, retryable_statuses=[500])
        assert policy.max_retries == 5
        assert policy.retryable_statuses == frozenset({500})
