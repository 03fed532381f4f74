"""
User profile and activity endpoints.
"""

import asyncio
import functools
import math
from typing import Any, Sequence

from loguru import logger

from kovaaks.endpoints.base import BaseEndpoints, CacheTTL
from kovaaks.endpoints.pagination import Page, normalize_page
from kovaaks.services.batch import batch_calls
from kovaaks.services.deduplicator import make_call_key
from kovaaks.services.errors import KovaaksError

MY_PROFILE_URL = "/webapp-backend/user/profile"
PROFILE_URL = "/webapp-backend/user/profile/by-username"
RECENT_ACTIVITY_URL = "/webapp-backend/user/activity/recent"
SCENARIO_SCORES_URL = "/webapp-backend/user/scenario/total-play"
MONTHLY_PLAYERS_URL = "/webapp-backend/user/monthly-players"


class UserEndpoints(BaseEndpoints):
    """User profiles, activity and scenario scores."""

    async def get_my_profile(self) -> dict[str, Any]:
        """Profile of the authenticated user. Requires a token."""
        return await self.client.get(MY_PROFILE_URL, cache_ttl=CacheTTL.PROFILE)

    async def get_profile(self, username: str) -> dict[str, Any] | None:
        """
        Profile of any user by username.

        Concurrent lookups of the same user (in any letter case) share one
        execution.
        """
        self.require(username, "username")

        key = make_call_key("user.get_profile", username.lower())
        return await self.client.dedupe(
            key,
            lambda: self.client.get(
                PROFILE_URL,
                {"username": username},
                cache_ttl=CacheTTL.PROFILE,
            ),
        )

    async def get_recent_activity(self, username: str) -> list[dict[str, Any]]:
        self.require(username, "username")
        data = await self.client.get(
            RECENT_ACTIVITY_URL,
            {"username": username},
            cache_ttl=CacheTTL.RECENT_ACTIVITY,
        )
        return data or []

    async def get_scenario_scores(
        self,
        username: str,
        page: int = 1,
        max_items: int = 10,
        sort_params: Sequence[str] | None = None,
    ) -> Page:
        """
        Scenario scores played by a user. Pages start at 1.

        Args:
            username: Player to look up
            page: Page number, 1-indexed
            max_items: Page size
            sort_params: Values for the repeated ``sort_param[]`` parameter
        """
        self.require(username, "username")
        self.check_pagination(page, max_items, first_page=1)

        params: dict[str, Any] = {"username": username, "page": page, "max": max_items}
        if sort_params:
            params["sort_param[]"] = list(sort_params)

        data = await self.client.get(
            SCENARIO_SCORES_URL, params, cache_ttl=CacheTTL.USER_SCENARIOS
        )
        return normalize_page(data, page, max_items)

    async def get_monthly_players_count(self) -> int:
        data = await self.client.get(MONTHLY_PLAYERS_URL, cache_ttl=CacheTTL.LEADERBOARD)
        if isinstance(data, dict):
            return int(data.get("count", 0))
        return 0

    async def get_all_scenario_scores(
        self,
        username: str,
        max_pages: int = 10,
        page_size: int = 100,
        sort_params: Sequence[str] | None = None,
        cancel_event: asyncio.Event | None = None,
        force_refresh: bool = False,
        concurrency: int = 3,
    ) -> list[dict[str, Any]]:
        """
        Walk every page of a user's scenario scores.

        The first page gives the total, which bounds the page count together
        with ``max_pages``. Remaining pages are fetched in batches. Once
        ``cancel_event`` is set no more pages are requested and whatever was
        collected is returned without being cached.

        Returns:
            Scores from all fetched pages in page order; [] on API errors
        """
        self.require(username, "username")
        self.check_pagination(1, page_size, first_page=1)

        sort_params = list(sort_params or [])
        key = make_call_key("user.all_scenario_scores", username.lower(), sort_params)

        await self.client.ensure_started()
        if not force_refresh:
            cached = self.client.cache.get(key)
            if cached is not None:
                return cached.data

        try:
            first = await self.get_scenario_scores(username, 1, page_size, sort_params)
            if not first.data or (cancel_event is not None and cancel_event.is_set()):
                return []

            total_pages = max(1, min(math.ceil(first.total / page_size), max_pages))
            scores = list(first.data)

            calls = [
                functools.partial(
                    self.get_scenario_scores, username, page, page_size, sort_params
                )
                for page in range(2, total_pages + 1)
            ]
            pages = await batch_calls(
                calls, concurrency=concurrency, delay=0, cancel_event=cancel_event
            )
        except KovaaksError as e:
            logger.warning(f"Failed to fetch scenario scores for {username}: {e}")
            return []

        for page in pages:
            if page is not None:
                scores.extend(page.data)

        if cancel_event is not None and cancel_event.is_set():
            return scores

        logger.debug(
            f"Fetched {len(scores)} scenario scores for {username} "
            f"across {total_pages} pages"
        )
        self.client.cache.set(key, scores, CacheTTL.USER_SCENARIOS)
        return scores

    async def get_scenario_scores_for_users(
        self,
        usernames: Sequence[str],
        max_pages: int = 5,
        page_size: int = 100,
        sort_params: Sequence[str] | None = None,
        cancel_event: asyncio.Event | None = None,
        concurrency: int = 3,
        delay: float = 0.5,
    ) -> dict[str, list[dict[str, Any]]]:
        """
        All scenario scores for several users, a few users at a time.

        Duplicate and empty usernames are dropped. Users whose batch was not
        run because of cancellation are missing from the result.
        """
        unique = list(dict.fromkeys(name for name in usernames if name))
        calls = [
            functools.partial(
                self.get_all_scenario_scores,
                name,
                max_pages=max_pages,
                page_size=page_size,
                sort_params=sort_params,
                cancel_event=cancel_event,
            )
            for name in unique
        ]
        results = await batch_calls(
            calls, concurrency=concurrency, delay=delay, cancel_event=cancel_event
        )
        return {
            name: scores
            for name, scores in zip(unique, results)
            if scores is not None
        }

    async def get_profiles(
        self,
        usernames: Sequence[str],
        cancel_event: asyncio.Event | None = None,
        concurrency: int = 3,
        delay: float = 0.2,
    ) -> list[dict[str, Any] | None]:
        """
        Look up many profiles in small batches.

        Returns:
            One entry per username in input order; None for users whose
            lookup failed and for slots not fetched because ``cancel_event``
            was set
        """

        async def fetch(username: str) -> dict[str, Any] | None:
            try:
                return await self.get_profile(username)
            except KovaaksError as e:
                logger.warning(f"Failed to fetch profile for {username}: {e}")
                return None

        calls = [functools.partial(fetch, name) for name in usernames]
        profiles = await batch_calls(
            calls, concurrency=concurrency, delay=delay, cancel_event=cancel_event
        )
        logger.info(
            f"Fetched {sum(p is not None for p in profiles)}/{len(usernames)} profiles"
        )
        return profiles
