"""Feed client settings loaded from environment variables."""

import os
from datetime import timedelta
from typing import Dict

from pydantic import BaseModel, ConfigDict, Field, PositiveFloat, PositiveInt

DEFAULT_BASE_URL = "http://localhost:5001"

# Max age per cache type
CACHE_MAX_AGES: Dict[str, timedelta] = {
    "default": timedelta(minutes=10),
    "videos": timedelta(minutes=60),
    "ads": timedelta(minutes=10),
    "video_metadata": timedelta(hours=2),
    "user_profile": timedelta(hours=24),
}


class FeedSettings(BaseModel):
    """Runtime configuration for the feed client and gateway."""

    base_url: str = DEFAULT_BASE_URL
    request_timeout: PositiveFloat = 15.0
    max_attempts: PositiveInt = 2
    retry_base_delay: float = Field(default=1.0, ge=0)
    ad_stride: PositiveInt = 3
    page_size: PositiveInt = 10
    upload_timeout: PositiveFloat = 600.0
    upload_poll_interval: PositiveFloat = 3.0
    upload_max_wait: PositiveFloat = 1800.0
    invalidate_pages: int = Field(default=3, ge=0)
    environment: str = "development"
    log_level: str = "INFO"

    model_config = ConfigDict(extra="forbid", frozen=True)

    @classmethod
    def from_env(cls) -> "FeedSettings":
        """Build settings from ``FEED_*`` variables, falling back to defaults."""
        env_map = {
            "base_url": "FEED_API_BASE_URL",
            "request_timeout": "FEED_REQUEST_TIMEOUT",
            "max_attempts": "FEED_MAX_ATTEMPTS",
            "retry_base_delay": "FEED_RETRY_BASE_DELAY",
            "ad_stride": "FEED_AD_STRIDE",
            "page_size": "FEED_PAGE_SIZE",
            "upload_timeout": "FEED_UPLOAD_TIMEOUT",
            "upload_poll_interval": "FEED_UPLOAD_POLL_INTERVAL",
            "upload_max_wait": "FEED_UPLOAD_MAX_WAIT",
            "invalidate_pages": "FEED_INVALIDATE_PAGES",
            "environment": "ENVIRONMENT",
            "log_level": "LOG_LEVEL",
        }
        values = {
            field: os.environ[var] for field, var in env_map.items() if os.getenv(var)
        }
        if "base_url" in values:
            values["base_url"] = values["base_url"].rstrip("/")
        return cls(**values)
