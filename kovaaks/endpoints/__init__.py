"""
Endpoint groups for the KovaaK's web API.
"""

from kovaaks.endpoints.base import BaseEndpoints, CacheTTL
from kovaaks.endpoints.pagination import Page, normalize_page
from kovaaks.endpoints.auth import AuthEndpoints
from kovaaks.endpoints.users import UserEndpoints
from kovaaks.endpoints.leaderboards import LeaderboardEndpoints
from kovaaks.endpoints.benchmarks import BenchmarkEndpoints
from kovaaks.endpoints.scenarios import ScenarioEndpoints
from kovaaks.endpoints.game_settings import GameSettingsEndpoints

__all__ = [
    "BaseEndpoints",
    "CacheTTL",
    "Page",
    "normalize_page",
    "AuthEndpoints",
    "UserEndpoints",
    "LeaderboardEndpoints",
    "BenchmarkEndpoints",
    "ScenarioEndpoints",
    "GameSettingsEndpoints",
]
