"""
Async client for the KovaaK's aim trainer web API.
"""

from kovaaks.client import KovaaksClient
from kovaaks.endpoints import Page
from kovaaks.services import (
    ApiClient,
    ErrorKind,
    KovaaksError,
    ParameterError,
    RetryPolicy,
    close_api_client,
    get_api_client,
)
from kovaaks.settings import Settings, global_settings

__version__ = "0.1.0"

__all__ = [
    "KovaaksClient",
    "Page",
    "ApiClient",
    "ErrorKind",
    "KovaaksError",
    "ParameterError",
    "RetryPolicy",
    "get_api_client",
    "close_api_client",
    "Settings",
    "global_settings",
]
