"""Tests for the request orchestrator."""

import asyncio
import json
import time
from datetime import timedelta

import httpx
import pytest

from kovaaks.services.cache import CacheConfig, PersistentCache
from kovaaks.services.client import (
    ApiClient,
    build_request_key,
    is_missing_by_design,
)
from kovaaks.services.errors import (
    AuthenticationError,
    NotFoundError,
    RateLimitError,
    ServerError,
)
from kovaaks.services.retry import RetryPolicy


class CountingHandler:
    """MockTransport handler that records every request."""

    def __init__(self, respond, delay: float = 0.0):
        self.respond = respond
        self.delay = delay
        self.requests: list[httpx.Request] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.respond(request)

    @property
    def count(self) -> int:
        return len(self.requests)


class TestRequestKey:
    """Tests for request key derivation."""

    def test_param_order_does_not_matter(self):
        assert build_request_key("GET", "/x", {"a": 1, "b": 2}) == build_request_key(
            "get", "/x", {"b": 2, "a": 1}
        )

    def test_distinguishes_method_params_and_body(self):
        keys = {
            build_request_key("GET", "/x"),
            build_request_key("POST", "/x"),
            build_request_key("GET", "/x", {"a": 1}),
            build_request_key("POST", "/x", body={"a": 1}),
        }
        assert len(keys) == 4

    def test_long_keys_are_hashed(self):
        key = build_request_key("GET", "/x", {"names": ["n" * 50] * 10})
        assert key.startswith("GET:/x:#")
        assert len(key) < 100

    def test_missing_by_design_routes(self):
        assert is_missing_by_design("/webapp-backend/scenario")
        assert is_missing_by_design("/webapp-backend/scenario/?id=1")
        assert not is_missing_by_design("/webapp-backend/scenario/popular")
        assert not is_missing_by_design("/webapp-backend/user/profile")


class TestApiClientRequest:
    """Tests for ApiClient.request()."""

    @pytest.mark.asyncio
    async def test_second_request_served_from_cache(self, make_api):
        handler = CountingHandler(lambda r: httpx.Response(200, json={"name": "alice"}))
        api = make_api(handler)

        first = await api.request("GET", "/user", {"username": "alice"})
        second = await api.request("GET", "/user", {"username": "alice"})

        assert handler.count == 1
        assert first.from_cache is False
        assert first.attempts == 1
        assert second.from_cache is True
        assert second.attempts == 0
        assert second.data == {"name": "alice"}
        await api.close()

    @pytest.mark.asyncio
    async def test_cache_ttl_override(self, make_api):
        handler = CountingHandler(lambda r: httpx.Response(200, json=[]))
        api = make_api(handler)

        result = await api.request("GET", "/x", cache_ttl=timedelta(hours=1))
        cached = api.cache.get(result.key)

        assert cached.expires_at - cached.created_at == pytest.approx(3600)
        await api.close()

    @pytest.mark.asyncio
    async def test_concurrent_identical_requests_share_one_call(self, make_api):
        handler = CountingHandler(
            lambda r: httpx.Response(200, json={"rank": 1}), delay=0.2
        )
        api = make_api(handler)

        started = time.monotonic()
        results = await asyncio.gather(
            *(api.request("GET", "/leaderboard", {"page": 0}) for _ in range(3))
        )
        elapsed = time.monotonic() - started

        assert handler.count == 1
        assert all(r.data == {"rank": 1} for r in results)
        assert results[0].data is results[1].data is results[2].data
        assert elapsed < 0.5
        await api.close()

    @pytest.mark.asyncio
    async def test_skip_cache_always_hits_network(self, make_api):
        handler = CountingHandler(lambda r: httpx.Response(200, json={}))
        api = make_api(handler)

        await api.request("GET", "/x", skip_cache=True)
        await api.request("GET", "/x", skip_cache=True)

        assert handler.count == 2
        assert api.cache.size == 0
        await api.close()

    @pytest.mark.asyncio
    async def test_caching_disabled(self, make_api):
        handler = CountingHandler(lambda r: httpx.Response(200, json={}))
        api = make_api(handler)
        api.set_caching(False)

        await api.get("/x")
        await api.get("/x")

        assert not api.is_caching_enabled()
        assert handler.count == 2
        await api.close()

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, make_api, fake_sleep):
        statuses = iter([503, 500, 200])
        handler = CountingHandler(
            lambda r: httpx.Response(next(statuses), json={"ok": True})
        )
        api = make_api(handler)

        result = await api.request("GET", "/x")

        assert result.data == {"ok": True}
        assert result.attempts == 3
        assert len(fake_sleep.delays) == 2
        await api.close()

    @pytest.mark.asyncio
    async def test_persistent_503(self, make_api):
        handler = CountingHandler(lambda r: httpx.Response(503, json={"error": "down"}))
        api = make_api(handler)

        with pytest.raises(ServerError) as exc_info:
            await api.request("GET", "/x")

        assert handler.count == 4
        assert exc_info.value.attempts == 4
        assert exc_info.value.retryable is True
        assert exc_info.value.context.url == "/x"
        assert api.cache.size == 0
        await api.close()

    @pytest.mark.asyncio
    async def test_401_not_retried(self, make_api):
        handler = CountingHandler(lambda r: httpx.Response(401, json={}))
        api = make_api(handler)

        with pytest.raises(AuthenticationError):
            await api.request("GET", "/webapp-backend/user/profile")

        assert handler.count == 1
        await api.close()

    @pytest.mark.asyncio
    async def test_per_request_retry_override(self, make_api):
        handler = CountingHandler(lambda r: httpx.Response(429, json={}))
        api = make_api(handler)

        with pytest.raises(RateLimitError):
            await api.request("GET", "/x", retry=RetryPolicy(max_retries=1))

        assert handler.count == 2
        await api.close()

    @pytest.mark.asyncio
    async def test_scenario_details_404_resolves_to_none(self, make_api):
        handler = CountingHandler(lambda r: httpx.Response(404, json={"error": "nope"}))
        api = make_api(handler)

        result = await api.request("GET", "/webapp-backend/scenario", {"id": 42})
        again = await api.request("GET", "/webapp-backend/scenario", {"id": 42})

        assert result.data is None
        assert again.data is None
        assert handler.count == 2  # None results are not cached
        await api.close()

    @pytest.mark.asyncio
    async def test_invalid_route_body_resolves_to_none(self, make_api):
        handler = CountingHandler(lambda r: httpx.Response(404, text="Invalid Route"))
        api = make_api(handler)

        assert await api.get("/webapp-backend/some/removed/route") is None
        await api.close()

    @pytest.mark.asyncio
    async def test_other_404_raises(self, make_api):
        handler = CountingHandler(lambda r: httpx.Response(404, json={}))
        api = make_api(handler)

        with pytest.raises(NotFoundError):
            await api.get("/webapp-backend/user/profile/by-username")

        assert handler.count == 1
        await api.close()

    @pytest.mark.asyncio
    async def test_post_body_is_sent(self, make_api):
        handler = CountingHandler(
            lambda r: httpx.Response(200, json={"echo": json.loads(r.content)})
        )
        api = make_api(handler)

        data = await api.post("/x", {"a": 1}, skip_cache=True)

        assert handler.requests[0].method == "POST"
        assert data == {"echo": {"a": 1}}
        await api.close()

    @pytest.mark.asyncio
    async def test_token_is_sent(self, make_api):
        handler = CountingHandler(lambda r: httpx.Response(200, json={}))
        api = make_api(handler)

        api.set_token("jwt-1")
        await api.get("/x", skip_cache=True)
        api.remove_token()
        await api.get("/x", skip_cache=True)

        assert handler.requests[0].headers["Authorization"] == "Bearer jwt-1"
        assert "Authorization" not in handler.requests[1].headers
        await api.close()


class TestApiClientLogicalDedupe:
    """Tests for ApiClient.dedupe()."""

    @pytest.mark.asyncio
    async def test_logical_calls_collapse(self, make_api):
        api = make_api(CountingHandler(lambda r: httpx.Response(200, json={})))
        calls = []
        gate = asyncio.Event()

        async def build_profile():
            calls.append(1)
            await gate.wait()
            return {"complete": True}

        waiters = [
            asyncio.create_task(api.dedupe("profile:alice", build_profile))
            for _ in range(3)
        ]
        await asyncio.sleep(0)
        gate.set()

        results = await asyncio.gather(*waiters)
        assert len(calls) == 1
        assert results[0] is results[1] is results[2]
        await api.close()

    @pytest.mark.asyncio
    async def test_slow_logical_call_runs_once(self, make_api):
        api = make_api(CountingHandler(lambda r: httpx.Response(200, json={})))
        calls = []

        async def load_profile():
            calls.append(1)
            await asyncio.sleep(0.2)
            return {"username": "alice"}

        started = time.monotonic()
        first, second = await asyncio.gather(
            api.dedupe("profile:alice", load_profile),
            api.dedupe("profile:alice", load_profile),
        )
        elapsed = time.monotonic() - started

        assert len(calls) == 1
        assert first is second
        assert elapsed < 0.35
        await api.close()


class TestApiClientLifecycle:
    """Tests for start/close and persistence through the client."""

    @pytest.mark.asyncio
    async def test_cache_survives_restart(self, make_api):
        handler = CountingHandler(lambda r: httpx.Response(200, json={"n": 1}))

        async with make_api(handler) as api:
            await api.get("/x")

        async with make_api(handler) as api:
            result = await api.request("GET", "/x")

        assert result.from_cache is True
        assert handler.count == 1

    @pytest.mark.asyncio
    async def test_unstarted_client_serves_persisted_entry(self, make_api, settings):
        writer = PersistentCache(CacheConfig.from_settings(settings))
        writer.set(build_request_key("GET", "/x"), {"v": 1})
        writer.save_to_disk_sync()
        handler = CountingHandler(lambda r: httpx.Response(200, json={"v": 2}))
        api = make_api(handler)

        assert await api.get("/x") == {"v": 1}
        assert handler.count == 0
        assert api.cache.started
        await api.close()

    @pytest.mark.asyncio
    async def test_close_flushes_without_explicit_start(self, make_api):
        api = make_api(CountingHandler(lambda r: httpx.Response(200, json={"n": 1})))

        await api.get("/x")
        await api.close()

        assert build_request_key("GET", "/x") in json.loads(api.cache.cache_file.read_text())

    @pytest.mark.asyncio
    async def test_health_status(self, make_api):
        api = make_api(CountingHandler(lambda r: httpx.Response(200, json={})))
        await api.get("/x")

        status = api.get_health_status()

        assert status["cache"]["size"] == 1
        assert status["request_deduplicator"]["total_requests"] == 1
        assert status["authenticated"] is False
        await api.close()

    def test_defaults_from_settings(self, settings):
        api = ApiClient(settings=settings)
        assert api.transport.base_url == settings.base_url
        assert api.is_caching_enabled()
