"""Application configuration.

Loads settings from environment variables (prefixed ``BUDGETFLOW_``) or a
``.env`` file, with sensible defaults for local development.
"""

from datetime import timedelta
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from budgetflow.domain.deadlines import DeadlinePolicy


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API
    api_version: str = "0.1.0"
    debug: bool = False

    # Authentication
    api_key: str = "dev-api-key-change-in-production"

    # Storage
    storage_backend: Literal["memory", "sql"] = "memory"
    database_url: str = "postgresql+asyncpg://budgetflow:budgetflow_dev_password@db:5432/budgetflow"

    # Approval deadlines
    checker_deadline_hours: float = Field(default=48, gt=0)
    manager_deadline_hours: float = Field(default=72, gt=0)
    finance_deadline_hours: float = Field(default=120, gt=0)
    due_soon_days: float = Field(default=2, ge=0)

    # Budgets
    default_currency: str = "KES"

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    model_config = SettingsConfigDict(
        env_prefix="BUDGETFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def deadline_policy(self) -> DeadlinePolicy:
        return DeadlinePolicy.from_hours(
            checker=self.checker_deadline_hours,
            manager=self.manager_deadline_hours,
            finance=self.finance_deadline_hours,
        )

    @property
    def due_soon_window(self) -> timedelta:
        return timedelta(days=self.due_soon_days)


settings = Settings()
