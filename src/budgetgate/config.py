"""Configuration module using Pydantic Settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from budgetgate.budget.types import (
    DEFAULT_BUDGETS,
    BudgetConfig,
    RequestType,
    load_budget_configs,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Replenishment
    tick_interval_seconds: float = 1.0
    authoritative: bool = True  # Only the authoritative side replenishes budgets
    budget_config_path: str | None = None  # JSON file overriding the built-in budgets

    # Scheduler
    scheduler_timezone: str = "UTC"

    # Logging
    log_level: str = "INFO"

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    def budget_configs(self) -> dict[RequestType, BudgetConfig]:
        """Budgets from budget_config_path, or the built-in defaults."""
        if self.budget_config_path:
            return load_budget_configs(self.budget_config_path)
        return dict(DEFAULT_BUDGETS)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
