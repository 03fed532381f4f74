"""
Authentication endpoints.

Login uses HTTP Basic auth and yields a JWT that is then sent as a bearer
token on every subsequent request.
"""

from typing import Any

from loguru import logger

from kovaaks.endpoints.base import BaseEndpoints
from kovaaks.services.errors import AuthenticationError, KovaaksError
from kovaaks.services.retry import RetryPolicy
from kovaaks.services.transport import basic_auth_header

LOGIN_URL = "/auth/webapp/login"
VERIFY_TOKEN_URL = "/auth/webapp/verify-token"


class AuthEndpoints(BaseEndpoints):
    """Login, token verification and logout."""

    async def login(self, username: str, password: str) -> dict[str, Any]:
        """
        Log in with username and password.

        Credentials are never cached, shared or retried.

        Returns:
            The authentication response, including ``auth.jwt``

        Raises:
            ParameterError: Username or password is empty
            AuthenticationError: Credentials rejected or response has no token
        """
        self.require(username, "username")
        self.require(password, "password")

        response = await self.client.post(
            LOGIN_URL,
            headers={"Authorization": basic_auth_header(username, password)},
            skip_cache=True,
            skip_dedup=True,
            retry=RetryPolicy.disabled(),
        )

        jwt = _extract_jwt(response)
        if not jwt:
            raise AuthenticationError(
                "Invalid response from authentication server", data=response
            )

        self.client.set_token(jwt)
        logger.info(f"Logged in as {username}")
        return response

    async def verify_token(self) -> bool:
        """Check whether the current bearer token is still accepted."""
        try:
            response = await self.client.get(
                VERIFY_TOKEN_URL,
                skip_cache=True,
                retry=RetryPolicy.disabled(),
            )
        except KovaaksError as e:
            logger.debug(f"Token verification failed: {e}")
            return False

        return isinstance(response, dict) and response.get("success") is True

    def logout(self) -> None:
        """Forget the bearer token."""
        self.client.remove_token()


def _extract_jwt(response: Any) -> str | None:
    if not isinstance(response, dict):
        return None
    auth = response.get("auth")
    if not isinstance(auth, dict):
        return None
    return auth.get("jwt") or None
