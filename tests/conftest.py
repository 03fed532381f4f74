"""Shared fixtures for the kovaaks test suite."""

import atexit
from typing import Callable

import httpx
import pytest

from kovaaks.services.client import ApiClient
from kovaaks.services.retry import RetryExecutor, RetryPolicy
from kovaaks.services.transport import HttpTransport
from kovaaks.settings import Settings

BASE_URL = "https://kovaaks.test"


class FakeSleep:
    """Records backoff delays instead of sleeping."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def atexit_registrations(monkeypatch) -> list:
    """Collect atexit registrations instead of hooking the test process."""
    registered: list = []
    monkeypatch.setattr(atexit, "register", registered.append)
    return registered


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        base_url=BASE_URL,
        cache_directory=str(tmp_path / "cache"),
        auto_save_interval_seconds=0,
        api_token="",
    )


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_api(settings, fake_sleep) -> Callable[..., ApiClient]:
    """Build an ApiClient whose HTTP traffic goes to ``handler``."""

    def factory(handler, policy: RetryPolicy | None = None, **kwargs) -> ApiClient:
        transport = HttpTransport(
            base_url=BASE_URL, transport=httpx.MockTransport(handler)
        )
        executor = RetryExecutor(
            policy or RetryPolicy.from_settings(settings), sleep=fake_sleep
        )
        return ApiClient(
            settings=settings, transport=transport, executor=executor, **kwargs
        )

    return factory
