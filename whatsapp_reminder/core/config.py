from datetime import timedelta
from functools import lru_cache
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from whatsapp_reminder.core.durations import parse_duration
from whatsapp_reminder.core.enums import StoreBackend
from whatsapp_reminder.core.exceptions import ConfigurationError


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    app_env: Literal["dev", "prod"] = "dev"
    project_name: str = "WhatsApp Reminder"
    api_v1_prefix: str = "/api/v1"
    log_level: str = "INFO"

    store_backend: StoreBackend = StoreBackend.CSV
    csv_store_path: str = "reminders.csv"
    database_url: str = "sqlite+aiosqlite:///./reminders.db"

    mail_service_url: str = ""
    mail_timeout_sec: float = 30.0
    mail_health_timeout_sec: float = 10.0
    mail_subject: str = "WhatsApp Reminder"
    email_origin_address: str = ""
    email_origin_name: str = ""

    time_location: str = "UTC"
    retention_time: timedelta = timedelta(hours=24)
    schedule_interval: timedelta = timedelta(hours=1)
    run_on_startup: bool = True
    dispatch_timeout_sec: float = 120.0

    @field_validator("retention_time", "schedule_interval", mode="before")
    @classmethod
    def parse_durations(cls, value: object) -> timedelta:
        duration = parse_duration(value)
        if duration <= timedelta(0):
            raise ValueError("duration must be positive")
        return duration

    @field_validator("time_location")
    @classmethod
    def check_time_location(cls, value: str) -> str:
        name = value.strip() or "UTC"
        try:
            ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown time zone {value!r}") from exc
        return name

    @field_validator("mail_service_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.strip().rstrip("/")

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.time_location)

    def validate_for_run(self) -> None:
        missing: list[str] = []
        if not self.mail_service_url:
            missing.append("mail_service_url")
        if not self.email_origin_address.strip():
            missing.append("email_origin_address")
        if not self.email_origin_name.strip():
            missing.append("email_origin_name")
        if self.store_backend == StoreBackend.CSV and not self.csv_store_path.strip():
            missing.append("csv_store_path")
        if self.store_backend == StoreBackend.SQL and not self.database_url.strip():
            missing.append("database_url")
        if missing:
            raise ConfigurationError(
                f"Missing required settings: {', '.join(missing)}",
                details={"missing": missing},
            )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
