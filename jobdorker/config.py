"""
Scraper configuration via environment variables.
"""

import json
import logging
from functools import lru_cache
from typing import Any, List, Optional, Union

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"


def _parse_list(v: Any) -> List[str]:
    """Parse a list setting from a JSON string or comma-separated list."""
    if v is None:
        return []
    if isinstance(v, (list, tuple)):
        return [x.strip() for x in v if isinstance(x, str) and x.strip()]
    if isinstance(v, str):
        if not v.strip():
            return []
        # Try JSON list first
        try:
            parsed = json.loads(v)
            if isinstance(parsed, list):
                return [x.strip() for x in parsed if isinstance(x, str) and x.strip()]
        except (json.JSONDecodeError, TypeError):
            pass
        return [x.strip() for x in v.split(",") if x.strip()]
    return []


class Settings(BaseSettings):
    """Scrape engine settings loaded from environment variables."""

    # Request executor
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    request_delay_s: float = Field(default=2.0, ge=0)
    retries: int = Field(default=3, ge=0)
    timeout_s: float = Field(default=30.0, gt=0)
    requests_per_second: float = Field(default=0.5, gt=0)
    burst: int = Field(default=2, ge=1)
    rate_limit_max_wait_s: float = Field(default=60.0, ge=0)
    backoff_base_s: float = Field(default=1.0, gt=0)
    backoff_cap_s: float = Field(default=30.0, gt=0)
    error_history_limit: int = Field(default=100, ge=1)

    # Browser pool
    use_browser: bool = True
    headless: bool = True
    browser_pool_size: int = Field(default=3, ge=0)
    post_load_delay_min_s: float = Field(default=0.5, ge=0)
    post_load_delay_max_s: float = Field(default=1.5, ge=0)

    # Strategy selection
    min_static_candidates: int = Field(default=1, ge=0)

    # Orchestration
    search_engine: str = "google"
    # NOTE: Union[...] prevents pydantic-settings from crashing on non-JSON env strings.
    direct_sites: Union[str, List[str], None] = []
    query_concurrency: int = Field(default=1, ge=1)
    session_deadline_s: Optional[float] = None
    max_queries: int = Field(default=20, ge=1)

    # Proxy
    proxy_url: Optional[str] = None

    # Logging
    log_level: str = "INFO"

    @field_validator("direct_sites", mode="before")
    @classmethod
    def parse_direct_sites(cls, v: Any) -> List[str]:
        return [s.lower() for s in _parse_list(v)]

    @model_validator(mode="after")
    def check_delay_window(self) -> "Settings":
        if self.post_load_delay_max_s < self.post_load_delay_min_s:
            raise ValueError("post_load_delay_max_s must be >= post_load_delay_min_s")
        if self.backoff_cap_s < self.backoff_base_s:
            raise ValueError("backoff_cap_s must be >= backoff_base_s")
        return self

    class Config:
        env_prefix = "JOBDORKER_"
        env_file = ".env"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def configure_logging(level: Union[int, str, None] = None) -> logging.Logger:
    """Attach a single stream handler to the package logger."""
    if level is None:
        level = get_settings().log_level
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logger = logging.getLogger("jobdorker")
    logger.setLevel(level)
    if not any(getattr(h, "_jobdorker", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._jobdorker = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    return logger
