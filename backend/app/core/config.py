"""Application configuration."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App
    APP_NAME: str = "Aura"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    ENV: str = "development"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    WORKERS: int = 1

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./aura.db"
    DATABASE_ECHO: bool = False

    # Text generation
    OPENAI_API_KEY: str | None = None
    OPENAI_API_BASE_URL: str | None = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    LLM_TEMPERATURE: float = 0.7
    LLM_MAX_TOKENS: int = 1000
    LLM_TIMEOUT_SECONDS: float = 30.0
    LLM_MAX_ATTEMPTS: int = 3
    LLM_RETRY_BASE_DELAY: float = 1.0

    # Notifications
    TELEGRAM_BOT_TOKEN: str | None = None
    TELEGRAM_API_BASE: str = "https://api.telegram.org"
    NOTIFICATION_TIMEOUT_SECONDS: float = 10.0

    # Scheduled jobs (server local wall-clock, HH:MM)
    SCHEDULER_ENABLED: bool = False
    JOB_TASK_GENERATION_AT: str = "06:00"
    JOB_DAILY_REMINDERS_AT: str = "06:00"
    JOB_DUE_REMINDERS_AT: str = "08:00"
    JOB_OVERDUE_SWEEP_AT: str = "09:00"
    JOB_WEEKLY_SUMMARY_AT: str = "18:00"
    JOB_WEEKLY_COACHING_AT: str = "19:00"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENV == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENV == "production"

    @property
    def llm_enabled(self) -> bool:
        return bool(self.OPENAI_API_KEY)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
