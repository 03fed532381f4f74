"""
KovaaksClient - one object exposing every endpoint group over a shared ApiClient.
"""

from loguru import logger

from kovaaks.endpoints import (
    AuthEndpoints,
    BenchmarkEndpoints,
    GameSettingsEndpoints,
    LeaderboardEndpoints,
    ScenarioEndpoints,
    UserEndpoints,
)
from kovaaks.services.client import ApiClient
from kovaaks.services.lifecycle import shutdown_hooks
from kovaaks.settings import Settings


class KovaaksClient:
    """
    High-level KovaaK's API client.

    Usage:
        async with KovaaksClient() as kovaaks:
            profile = await kovaaks.users.get_profile("alice")
            top = await kovaaks.leaderboards.get_global(max_items=10)
    """

    def __init__(
        self,
        settings: Settings | None = None,
        api: ApiClient | None = None,
    ):
        self.api = api or ApiClient(settings=settings, hooks=shutdown_hooks)

        self.auth = AuthEndpoints(self.api)
        self.users = UserEndpoints(self.api)
        self.leaderboards = LeaderboardEndpoints(self.api)
        self.benchmarks = BenchmarkEndpoints(self.api)
        self.scenarios = ScenarioEndpoints(self.api)
        self.game_settings = GameSettingsEndpoints(self.api)

    def set_token(self, token: str) -> None:
        self.api.set_token(token)

    def set_caching(self, enabled: bool) -> None:
        """Enable or disable response caching. Disabling drops cached entries."""
        self.api.set_caching(enabled)
        logger.info(f"API caching {'enabled' if enabled else 'disabled'}")

    def is_caching_enabled(self) -> bool:
        return self.api.is_caching_enabled()

    async def start(self) -> None:
        await self.api.start()

    async def close(self) -> None:
        await self.api.close()

    async def __aenter__(self) -> "KovaaksClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
