from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SchedulerSettings(BaseSettings):
    """
    Runtime configuration for the scheduler, read from ``CMS_*`` environment
    variables or a ``.env`` file.
    """
    model_config = SettingsConfigDict(
        env_prefix="CMS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    database_url: str = Field("sqlite+aiosqlite:///./scheduler.db", description="SQLAlchemy async database URL")
    db_prefix: str = Field("tooty_", description="Table namespace prefix, also used to derive the scheduler lock name")
    tick_limit: int = Field(50, ge=1, le=100, description="Maximum number of due entries processed per tick")
    action_timeout_seconds: float = Field(30.0, gt=0, description="Upper bound on a single dispatched action")
    http_timeout_seconds: float = Field(15.0, gt=0, description="Total timeout for outbound ping requests")
    lock_ttl_seconds: int = Field(300, ge=1, description="Expiry of table-backed scheduler locks")
    tick_interval_seconds: float = Field(60.0, gt=0, description="Sleep between ticks for the interval driver")
    cron_run_token: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("cms_cron_run_token", "cron_run_token"),
        description="Bearer token accepted by the cron endpoint",
    )
    auth_bearer_token: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("cms_auth_bearer_token", "auth_bearer_token"),
        description="Fallback bearer token for the cron endpoint",
    )

    @field_validator("db_prefix")
    def normalize_prefix(cls, v: str) -> str:
        v = (v or "").strip() or "tooty_"
        return v if v.endswith("_") else f"{v}_"

    @property
    def lock_name(self) -> str:
        return f"{self.db_prefix}scheduler_lock"

    @property
    def effective_cron_token(self) -> str:
        return (self.cron_run_token or self.auth_bearer_token or "").strip()
