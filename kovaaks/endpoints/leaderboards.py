"""
Leaderboard endpoints.

Note: the global leaderboard is 0-indexed, the country and region rankings
are 1-indexed.
"""

import re
from typing import Any, Sequence

from loguru import logger

from kovaaks.endpoints.base import BaseEndpoints, CacheTTL
from kovaaks.endpoints.pagination import Page, normalize_page
from kovaaks.services.errors import KovaaksError

GLOBAL_SCORES_URL = "/webapp-backend/leaderboard/global/scores"
SEARCH_ACCOUNT_NAMES_URL = "/webapp-backend/leaderboard/global/search/account-names"
SEARCH_STEAM_IDS_URL = "/webapp-backend/leaderboard/global/search/steam-ids"

MAX_USERNAME_LENGTH = 30
SIMPLIFIED_USERNAME_LENGTH = 20


class LeaderboardEndpoints(BaseEndpoints):
    """Global, country and region rankings plus player search."""

    async def get_global(
        self, page: int = 0, max_items: int = 20, country: str | None = None
    ) -> Page:
        """
        Global player rankings.

        Args:
            page: Page number, 0-indexed
            max_items: Page size
            country: Optional country code filter (case-insensitive)
        """
        self.check_pagination(page, max_items, first_page=0)

        params: dict[str, Any] = {"page": page, "max": max_items}
        if country:
            params["filter_country"] = country.upper()

        data = await self.client.get(
            GLOBAL_SCORES_URL, params, cache_ttl=CacheTTL.LEADERBOARD
        )
        return normalize_page(data, page, max_items)

    async def get_by_country(self, page: int = 1, max_items: int = 10) -> Page:
        return await self._get_grouped("country", page, max_items)

    async def get_by_region(self, page: int = 1, max_items: int = 10) -> Page:
        return await self._get_grouped("region", page, max_items)

    async def _get_grouped(self, group: str, page: int, max_items: int) -> Page:
        self.check_pagination(page, max_items, first_page=1)
        data = await self.client.get(
            GLOBAL_SCORES_URL,
            {"page": page, "max": max_items, "group": group},
            cache_ttl=CacheTTL.LEADERBOARD,
        )
        return normalize_page(data, page, max_items)

    async def search_by_username(self, username: str) -> list[dict[str, Any]]:
        """
        Search ranked players by account name.

        The API rejects some usernames with a 400 about their length. In that
        case the search is repeated once with a simplified name.
        """
        self.require(username, "username")

        try:
            results = await self._search_account_names(username)
        except KovaaksError as e:
            simplified = _simplify_username(username)
            if not _is_username_length_error(e) or simplified == username:
                raise
            logger.warning(
                f"Username rejected: {username!r}, retrying search as {simplified!r}"
            )
            results = await self._search_account_names(simplified)

        return results or []

    async def _search_account_names(self, username: str) -> Any:
        return await self.client.get(
            SEARCH_ACCOUNT_NAMES_URL,
            {"username": username},
            cache_ttl=CacheTTL.USER_SEARCH,
        )

    async def search_by_steam_ids(
        self, steam_ids: Sequence[str], username: str | None = None
    ) -> list[dict[str, Any]]:
        """
        Look up ranked players by Steam ID.

        The endpoint requires a ``username`` parameter even when searching by
        Steam ID; a placeholder is sent when none is given.
        """
        self.require(list(steam_ids), "steam_ids")

        data = await self.client.get(
            SEARCH_STEAM_IDS_URL,
            {"steamIds": list(steam_ids), "username": username or "steamid-search"},
            cache_ttl=CacheTTL.USER_SEARCH,
        )
        return data or []


def _is_username_length_error(error: KovaaksError) -> bool:
    if error.status != 400 or not isinstance(error.data, dict):
        return False
    detail = str(error.data.get("error", ""))
    return "username" in detail and "length" in detail


def _simplify_username(username: str) -> str:
    if not username.isascii():
        simplified = re.sub(r"[^\w\s]", "", username, flags=re.ASCII)
        return re.sub(r"\s+", "_", simplified)[:SIMPLIFIED_USERNAME_LENGTH]
    if len(username) > MAX_USERNAME_LENGTH:
        return username[:MAX_USERNAME_LENGTH]
    return username
