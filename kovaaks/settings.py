import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

load_dotenv()


class Settings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # API Configuration
    base_url: str = Field(default="https://kovaaks.com", alias="KOVAAKS_BASE_URL")
    request_timeout: float = Field(default=60.0, alias="KOVAAKS_REQUEST_TIMEOUT")
    api_token: str = Field(default="", alias="KOVAAKS_API_TOKEN")

    # Cache Configuration
    enable_caching: bool = Field(default=True, alias="KOVAAKS_ENABLE_CACHING")
    default_cache_ttl_seconds: float = Field(
        default=300.0, gt=0, alias="KOVAAKS_CACHE_TTL"
    )
    cache_directory: str = Field(
        default=str(Path.home() / ".kovaaks-api-cache"), alias="KOVAAKS_CACHE_DIR"
    )
    cache_file_name: str = Field(default="cache.json", alias="KOVAAKS_CACHE_FILE")
    # 0 disables the periodic save; the cache is then only persisted on exit
    auto_save_interval_seconds: float = Field(
        default=300.0, ge=0, alias="KOVAAKS_CACHE_AUTOSAVE_INTERVAL"
    )

    # Retry Configuration
    max_retries: int = Field(default=3, ge=0, alias="KOVAAKS_MAX_RETRIES")
    retry_initial_delay: float = Field(
        default=0.3, ge=0, alias="KOVAAKS_RETRY_INITIAL_DELAY"
    )
    retry_max_delay: float = Field(default=10.0, ge=0, alias="KOVAAKS_RETRY_MAX_DELAY")
    retry_backoff_factor: float = Field(
        default=2.0, ge=1, alias="KOVAAKS_RETRY_BACKOFF_FACTOR"
    )

    # Deduplication Configuration
    pending_request_ttl_seconds: float = Field(
        default=30.0, gt=0, alias="KOVAAKS_PENDING_REQUEST_TTL"
    )
    pending_call_ttl_seconds: float = Field(
        default=120.0, gt=0, alias="KOVAAKS_PENDING_CALL_TTL"
    )

    debug: bool = Field(default=False, alias="KOVAAKS_DEBUG")

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment (after .env is loaded)."""
        return cls.model_validate(dict(os.environ))


global_settings = Settings.from_env()
