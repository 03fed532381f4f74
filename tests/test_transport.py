"""Tests for the httpx transport wrapper."""

import httpx
import pytest

from kovaaks.services.errors import TransportError
from kovaaks.services.transport import HttpTransport, basic_auth_header


def make_transport(handler, **kwargs) -> HttpTransport:
    return HttpTransport(
        base_url="https://kovaaks.test",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestHttpTransport:
    """Tests for HttpTransport.send()."""

    @pytest.mark.asyncio
    async def test_json_response_and_params(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["accept"] = request.headers["Accept"]
            return httpx.Response(200, json={"ok": True})

        transport = make_transport(handler)
        data = await transport.send(
            "get", "/webapp-backend/user/profile/by-username", {"username": "alice", "x": None}
        )

        assert data == {"ok": True}
        assert seen["url"] == (
            "https://kovaaks.test/webapp-backend/user/profile/by-username?username=alice"
        )
        assert seen["accept"] == "application/json"
        await transport.close()

    @pytest.mark.asyncio
    async def test_list_params_repeat(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["params"] = request.url.params.get_list("sort_param[]")
            return httpx.Response(200, json=[])

        transport = make_transport(handler)
        await transport.send("GET", "/x", {"sort_param[]": ["a", "b"]})

        assert seen["params"] == ["a", "b"]
        await transport.close()

    @pytest.mark.asyncio
    async def test_text_and_empty_bodies(self):
        responses = iter([httpx.Response(200, text="plain"), httpx.Response(204)])
        transport = make_transport(lambda request: next(responses))

        assert await transport.send("GET", "/a") == "plain"
        assert await transport.send("GET", "/b") is None
        await transport.close()

    @pytest.mark.asyncio
    async def test_error_status_raises_transport_error(self):
        transport = make_transport(
            lambda request: httpx.Response(503, json={"error": "down"})
        )

        with pytest.raises(TransportError) as exc_info:
            await transport.send("GET", "/x")

        assert exc_info.value.outcome.status == 503
        assert exc_info.value.outcome.data == {"error": "down"}
        await transport.close()

    @pytest.mark.asyncio
    async def test_connection_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        transport = make_transport(handler)

        with pytest.raises(TransportError) as exc_info:
            await transport.send("GET", "/x")

        assert exc_info.value.outcome.status is None
        await transport.close()

    @pytest.mark.asyncio
    async def test_bearer_token_can_be_set_and_removed(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers.get("Authorization"))
            return httpx.Response(200, json={})

        transport = make_transport(handler, token="initial")
        await transport.send("GET", "/x")
        transport.set_token("jwt-123")
        await transport.send("GET", "/x")
        transport.remove_token()
        await transport.send("GET", "/x")

        assert seen == ["Bearer initial", "Bearer jwt-123", None]
        await transport.close()

    @pytest.mark.asyncio
    async def test_explicit_header_overrides_token(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers.get("Authorization"))
            return httpx.Response(200, json={})

        transport = make_transport(handler, token="jwt")
        await transport.send("POST", "/login", headers={"Authorization": "Basic abc"})

        assert seen == ["Basic abc"]
        await transport.close()


def test_basic_auth_header():
    assert basic_auth_header("user", "pass") == "Basic dXNlcjpwYXNz"
