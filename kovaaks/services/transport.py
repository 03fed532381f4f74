"""
HttpTransport - thin httpx wrapper that owns the connection, headers and token.

Every failure is raised as TransportError carrying a RawOutcome, so callers
never have to know about httpx exception types.
"""

import base64
from typing import Any

import httpx
from loguru import logger

from kovaaks.services.classifier import outcome_from_exception
from kovaaks.services.errors import TransportError

DEFAULT_BASE_URL = "https://kovaaks.com"
DEFAULT_TIMEOUT = 60.0
DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}


def basic_auth_header(username: str, password: str) -> str:
    """Create the Basic Auth header value."""
    credentials = f"{username}:{password}".encode("utf-8")
    return f"Basic {base64.b64encode(credentials).decode('ascii')}"


class HttpTransport:
    """
    Async HTTP transport for the KovaaK's API.

    Usage:
        transport = HttpTransport(token="...")
        data = await transport.send("GET", "/webapp-backend/user/profile")
        await transport.close()
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        headers: dict[str, str] | None = None,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url
        self._timeout = timeout
        self._headers = {**DEFAULT_HEADERS, **(headers or {})}
        self._token = token or None
        self._transport = transport

        # HTTP client (lazy initialization)
        self._http_client: httpx.AsyncClient | None = None

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def token(self) -> str | None:
        return self._token

    def set_token(self, token: str) -> None:
        """Attach a bearer token to every subsequent request."""
        self._token = token
        logger.debug("Authorization token set")

    def remove_token(self) -> None:
        """Stop sending the bearer token."""
        self._token = None
        logger.debug("Authorization token removed")

    def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(self._timeout),
                headers=self._headers,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._http_client

    def build_headers(self, headers: dict[str, str] | None = None) -> dict[str, str]:
        """Per-request headers: bearer token first, explicit headers win."""
        merged: dict[str, str] = {}
        if self._token:
            merged["Authorization"] = f"Bearer {self._token}"
        if headers:
            merged.update(headers)
        return merged

    async def send(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        json_body: Any = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """
        Execute one HTTP request and return the decoded body.

        Returns:
            Parsed JSON, the raw text if the body is not JSON, or None for
            an empty body

        Raises:
            TransportError: For any status >= 400 or connection failure
        """
        client = self._get_http_client()

        try:
            response = await client.request(
                method=method.upper(),
                url=url,
                params=_clean_params(params),
                json=json_body,
                headers=self.build_headers(headers),
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise TransportError(outcome_from_exception(e)) from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


def _clean_params(params: dict[str, Any] | None) -> dict[str, Any] | None:
    """Drop None values; the API treats absent and null parameters alike."""
    if not params:
        return None
    return {k: v for k, v in params.items() if v is not None}
