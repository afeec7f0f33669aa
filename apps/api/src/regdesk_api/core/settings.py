from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"
    redis_url: str = "redis://localhost:6379/0"

    # Internal API security
    admin_api_key: str = ""
    report_token: str = ""

    # Scheduled chair reports
    report_scheduler_enabled: bool = False
    report_scheduler_interval_seconds: int = 60 * 60
    report_retry_delays_seconds: Annotated[list[float], NoDecode] = Field(default_factory=lambda: [2.0, 5.0, 10.0])
    report_lease_ttl_seconds: int = 15 * 60
    report_run_deadline_seconds: float | None = 20 * 60
    report_cursor_namespace: str = "itemcfg"
    report_reject_unknown_frequency: bool = False
    report_heartbeat_key: str = "cron:reports:last-run"
    reports_bcc: Annotated[list[str], NoDecode] = Field(default_factory=list)

    @field_validator("report_retry_delays_seconds", mode="before")
    @classmethod
    def _parse_delay_list(cls, value: object) -> list[float]:
        if value is None:
            return []
        if isinstance(value, str):
            return [float(item.strip()) for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple)):
            return [float(item) for item in value]
        return []

    @field_validator("reports_bcc", mode="before")
    @classmethod
    def _parse_recipient_list(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple, set)):
            return [str(item).strip() for item in value if str(item).strip()]
        return []

    # Order integrity
    order_patch_audit_limit: int = 100

    # Email / notification settings
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_use_tls: bool = True
    smtp_sender_email: str | None = None


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
