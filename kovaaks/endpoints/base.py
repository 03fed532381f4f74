"""
Base endpoint group interface.
"""

from datetime import timedelta

from kovaaks.services.client import ApiClient
from kovaaks.services.errors import ParameterError


class BaseEndpoints:
    """
    Base class for all endpoint groups.

    All endpoint groups should:
    - Use ApiClient for HTTP requests (with caching, dedup, retry)
    - Pass a TTL suited to how often the data changes
    - Validate arguments locally and raise ParameterError
    """

    def __init__(self, client: ApiClient | None = None):
        from kovaaks.services.client import get_api_client

        self.client = client or get_api_client()

    @staticmethod
    def require(value: object, name: str) -> None:
        """Raise ParameterError when a required argument is empty."""
        if value is None or value == "" or value == []:
            raise ParameterError(f"{name} is required")

    @staticmethod
    def check_pagination(page: int, max_items: int, first_page: int = 1) -> None:
        if page < first_page:
            raise ParameterError(f"page must be >= {first_page}, got {page}")
        if max_items < 1:
            raise ParameterError(f"max must be >= 1, got {max_items}")


class CacheTTL:
    """Cache lifetimes per data category."""

    PROFILE = timedelta(minutes=15)
    RECENT_ACTIVITY = timedelta(minutes=5)
    LEADERBOARD = timedelta(hours=1)
    USER_SEARCH = timedelta(minutes=15)
    BENCHMARK_PROGRESS = timedelta(hours=1)
    BENCHMARK_SEARCH = timedelta(hours=24)
    POPULAR_SCENARIOS = timedelta(hours=24)
    TRENDING_SCENARIOS = timedelta(hours=6)
    USER_SCENARIOS = timedelta(minutes=30)
    GAME_SETTINGS = timedelta(hours=24)
