"""
Benchmark endpoints. All benchmark listings are 1-indexed.
"""

from typing import Any

from kovaaks.endpoints.base import BaseEndpoints, CacheTTL
from kovaaks.endpoints.pagination import Page, normalize_page

PLAYER_PROGRESS_URL = "/webapp-backend/benchmarks/player-progress-rank-benchmark"
PLAYER_BENCHMARKS_URL = "/webapp-backend/benchmarks/player-progress-rank"
SEARCH_URL = "/webapp-backend/benchmarks/search"


class BenchmarkEndpoints(BaseEndpoints):
    async def get_player_progress(
        self,
        benchmark_id: int,
        steam_id: str,
        page: int = 1,
        max_items: int = 10,
    ) -> dict[str, Any] | None:
        """
        A player's progress through one benchmark.

        Returns:
            Progress with per-category and per-scenario ranks, or None if the
            API has nothing for this player
        """
        self.require(benchmark_id, "benchmark_id")
        self.require(steam_id, "steam_id")
        self.check_pagination(page, max_items)

        return await self.client.get(
            PLAYER_PROGRESS_URL,
            {
                "benchmarkId": benchmark_id,
                "steamId": steam_id,
                "page": page,
                "max": max_items,
            },
            cache_ttl=CacheTTL.BENCHMARK_PROGRESS,
        )

    async def search_player_benchmarks(
        self, username: str, page: int = 1, max_items: int = 10
    ) -> Page:
        """Benchmarks a user has progress in."""
        self.require(username, "username")
        self.check_pagination(page, max_items)

        data = await self.client.get(
            PLAYER_BENCHMARKS_URL,
            {"username": username, "page": page, "max": max_items},
            cache_ttl=CacheTTL.BENCHMARK_SEARCH,
        )
        return normalize_page(data, page, max_items)

    async def search(self, page: int = 1, max_items: int = 10) -> Page:
        self.check_pagination(page, max_items)

        data = await self.client.get(
            SEARCH_URL,
            {"page": page, "max": max_items},
            cache_ttl=CacheTTL.BENCHMARK_SEARCH,
        )
        return normalize_page(data, page, max_items)
