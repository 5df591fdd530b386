"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[2]


class Settings(BaseSettings):
    APP_NAME: str = "SLA Compliance Engine"
    ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str = "postgresql+psycopg://postgres@localhost:5432/helpdesk"
    DB_STATEMENT_TIMEOUT_MS: int = 5000

    # single business calendar
    BUSINESS_TIMEZONE: str = "UTC"
    DEFAULT_BUSINESS_OPEN: str = "08:00"
    DEFAULT_BUSINESS_CLOSE: str = "18:00"
    DEFAULT_BUSINESS_DAYS: str = "0,1,2,3,4"

    SLA_SCHEDULER_ENABLED: bool = True
    SLA_SCHEDULER_INTERVAL_SECONDS: int = 3600
    SLA_SCHEDULER_STARTUP_DELAY_SECONDS: int = 0
    SLA_COMPANY_FILTER: str = "*"
    SLA_ALLOWED_WINDOW_ENABLED: bool = True
    SLA_ALLOWED_WINDOW_START: str = "06:01"
    SLA_ALLOWED_WINDOW_END: str = "20:59"
    SLA_MAX_WORKERS: int = 4
    SLA_TICKET_TIMEOUT_SECONDS: float = 30.0
    SLA_WRITE_MAX_ATTEMPTS: int = 3
    SLA_NOTIFY_MAX_ATTEMPTS: int = 2
    SLA_RETRY_BACKOFF_SECONDS: float = 0.5
    SLA_NOTIFY_TIMEOUT_SECONDS: float = 10.0
    SLA_NOTIFICATION_WEBHOOK_URL: str = ""

    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_WINDOW_SECONDS: int = 60
    RATE_LIMIT_TRIGGER_MAX_REQUESTS: int = 6

    model_config = SettingsConfigDict(env_file=str(BASE_DIR / ".env"), env_file_encoding="utf-8")

    @property
    def scheduler_interval_seconds(self) -> int:
        return max(30, self.SLA_SCHEDULER_INTERVAL_SECONDS)

    @property
    def default_business_days(self) -> list[int]:
        days: list[int] = []
        for token in self.DEFAULT_BUSINESS_DAYS.split(","):
            token = token.strip()
            if token.isdigit() and int(token) <= 6:
                days.append(int(token))
        return days

    @property
    def is_postgres(self) -> bool:
        return self.DATABASE_URL.startswith("postgresql")


settings = Settings()
