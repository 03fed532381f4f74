"""
Game settings endpoint (sensitivity conversion data and similar).
"""

from typing import Any

from kovaaks.endpoints.base import BaseEndpoints, CacheTTL

GAME_SETTINGS_URL = "/webapp-backend/game-settings"


class GameSettingsEndpoints(BaseEndpoints):
    async def get(self) -> Any:
        return await self.client.get(GAME_SETTINGS_URL, cache_ttl=CacheTTL.GAME_SETTINGS)
