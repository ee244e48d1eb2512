"""Application configuration and settings management."""

from typing import Any, Literal

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="ROUTEOPT_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Route Optimization API"
    api_prefix: str = "/api"
    osrm_base_url: str = Field(
        default="http://router.project-osrm.org",
        description="Base URL for the OSRM routing service (e.g., http://localhost:5000).",
    )
    osrm_profile: Literal["driving", "driving-hgv"] = Field(
        default="driving",
        description="OSRM profile to use when optimizing trips.",
    )
    osrm_timeout_seconds: float = Field(default=30.0, gt=0.0)
    osrm_max_retries: int = Field(default=3, ge=0)
    osrm_backoff_seconds: float = Field(default=1.0, ge=0.0)

    batching_enabled: bool = Field(
        default=True,
        description="Route large requests through the batch queue instead of a single OSRM call.",
    )
    batch_threshold: int = Field(
        default=50,
        ge=0,
        description="Requests with more stops than this are split into batches.",
    )
    batch_size: int = Field(default=50, ge=1, description="Maximum stops per batch.")
    worker_count: int = Field(default=4, ge=1, description="Concurrent batch workers.")
    job_timeout_seconds: float = Field(
        default=180.0,
        gt=0.0,
        description="How long a client waits for all batches of a job to arrive.",
    )

    queue_max_size: int = Field(default=1000, ge=0, description="0 means unbounded.")
    publish_timeout_seconds: float = Field(default=5.0, ge=0.0)
    publish_max_retries: int = Field(default=2, ge=0)
    publish_backoff_seconds: float = Field(default=0.1, ge=0.0)
    max_deliveries: int = Field(
        default=3,
        ge=1,
        description="Delivery attempts per batch message before it is dropped.",
    )

    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    @field_validator("osrm_base_url", mode="before")
    @classmethod
    def _strip_trailing_slash(cls, value: Any) -> str:
        return str(value).rstrip("/")

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            # Try JSON first
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            # Try comma-separated
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()


settings = Settings()
