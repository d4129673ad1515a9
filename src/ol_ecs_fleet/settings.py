"""Runtime settings for fleet operations.

Values are read once at process start from ``ECS_FLEET_*`` environment variables
and may be overridden by CLI options. The resulting object is never mutated.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_REPLACEMENT_POLL_SECONDS = 15
DEFAULT_DRAIN_WARMUP_SECONDS = 120
DEFAULT_DRAIN_POLL_SECONDS = 30


class OLBaseSettings(BaseSettings):
    model_config = SettingsConfigDict(case_sensitive=False)


class FleetSettings(OLBaseSettings):
    model_config = SettingsConfigDict(env_prefix="ecs_fleet_", frozen=True)

    aws_region: str | None = None
    aws_profile: str | None = None

    replacement_poll_seconds: float = Field(
        default=DEFAULT_REPLACEMENT_POLL_SECONDS, ge=0
    )
    replacement_timeout_seconds: float = Field(default=30 * 60, gt=0)
    drain_warmup_seconds: float = Field(default=DEFAULT_DRAIN_WARMUP_SECONDS, ge=0)
    drain_poll_seconds: float = Field(default=DEFAULT_DRAIN_POLL_SECONDS, ge=0)
    drain_timeout_seconds: float = Field(default=60 * 60, gt=0)

    api_max_attempts: int = Field(default=5, gt=0)
    api_backoff_max_seconds: float = Field(default=20, ge=0)

    log_level: str = "INFO"
