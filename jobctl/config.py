from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

JOB_QUEUE_KEY = "jobs:queue"
JOB_DATA_PREFIX = "jobs:data:"
JOB_TTL_SECONDS = 7 * 24 * 60 * 60  # 7 days

DEFAULT_CONFIG = {
    "max_attempts_default": 3,
    "max_jobs_per_run": 50,
    "max_run_seconds": 25,
    "link_check_timeout": 5.0,
    "favorites_starting_soon_hours": 24,
}


class Settings(BaseSettings):
    """Runtime configuration, resolved once per invocation and passed down."""

    model_config = SettingsConfigDict(
        env_prefix="JOBCTL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Queue store
    redis_url: Optional[str] = Field(default=None, description="Redis connection URL")
    job_ttl_seconds: int = Field(default=JOB_TTL_SECONDS, description="Envelope expiry")
    max_attempts_default: int = Field(
        default=DEFAULT_CONFIG["max_attempts_default"], ge=1
    )

    # Driver
    max_jobs_per_run: int = Field(default=DEFAULT_CONFIG["max_jobs_per_run"], ge=1)
    max_run_seconds: float = Field(default=DEFAULT_CONFIG["max_run_seconds"], gt=0)

    # Relational store
    database_path: str = Field(default="jobctl.db", description="sqlite database file")

    # Handlers
    link_check_timeout: float = Field(default=DEFAULT_CONFIG["link_check_timeout"], gt=0)
    enable_emails: bool = Field(default=False, description="Global email switch for triggers")
    favorites_starting_soon_enabled: bool = False
    favorites_starting_soon_hours: int = Field(
        default=DEFAULT_CONFIG["favorites_starting_soon_hours"], ge=1
    )
    seller_weekly_enabled: bool = False
    site_url: str = "https://lootaura.com"
    display_timezone: str = "America/New_York"

    # Email delivery
    email_provider: Literal["console", "smtp"] = "console"
    email_from: str = "LootAura <no-reply@lootaura.com>"
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_use_tls: bool = True

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    debug: bool = False

    def public_dict(self) -> dict:
        """Settings safe to print (secrets masked)."""
        data = self.model_dump()
        if data.get("smtp_password"):
            data["smtp_password"] = "***"
        return data
