"""
Scenario endpoints.
"""

from typing import Any

from kovaaks.endpoints.base import BaseEndpoints, CacheTTL
from kovaaks.endpoints.pagination import Page, normalize_page

POPULAR_URL = "/webapp-backend/scenario/popular"
TRENDING_URL = "/webapp-backend/scenario/trending"
DETAILS_URL = "/webapp-backend/scenario"


class ScenarioEndpoints(BaseEndpoints):
    """Popular and trending scenarios, and per-leaderboard details."""

    async def get_popular(
        self, page: int = 1, max_items: int = 10, name_search: str | None = None
    ) -> Page:
        """
        Most played scenarios, optionally filtered by name. Pages start at 1.
        """
        self.check_pagination(page, max_items)

        params: dict[str, Any] = {"page": page, "max": max_items}
        if name_search:
            params["scenarioNameSearch"] = name_search

        data = await self.client.get(
            POPULAR_URL, params, cache_ttl=CacheTTL.POPULAR_SCENARIOS
        )
        return normalize_page(data, page, max_items)

    async def get_trending(self) -> list[dict[str, Any]]:
        data = await self.client.get(TRENDING_URL, cache_ttl=CacheTTL.TRENDING_SCENARIOS)
        return data or []

    async def get_details(self, leaderboard_id: int) -> dict[str, Any] | None:
        """
        Scenario metadata (aim type, authors, description).

        Many leaderboards have no details page; the API answers 404 and this
        returns None instead of raising.
        """
        self.require(leaderboard_id, "leaderboard_id")
        return await self.client.get(
            DETAILS_URL,
            {"id": leaderboard_id},
            cache_ttl=CacheTTL.POPULAR_SCENARIOS,
        )
