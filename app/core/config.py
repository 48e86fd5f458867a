from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "postgresql://doglog:doglog@db:5432/doglog"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    # "text" or "json" (one JSON object per line, via python-json-logger).
    LOG_FORMAT: str = "text"

    # Comma-separated allowed origins, or "*" to allow all.
    # Example: "https://doglog.example.com,https://api.doglog.example.com"
    CORS_ORIGINS: str = "*"

    # Upper bound on events accepted by a single POST /events/batch.
    EVENT_BATCH_MAX: int = 500

    # Step generation / goal suggestion. No key means deterministic fallback.
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    AI_TIMEOUT_SECONDS: float = 20.0

    @property
    def cors_origins_list(self) -> list[str]:
        if self.CORS_ORIGINS.strip() == "*":
            return ["*"]
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


class ClientSettings(BaseSettings):
    """Settings for the offline-first logging client (env prefix DOGLOG_)."""
    model_config = SettingsConfigDict(env_prefix="DOGLOG_", env_file=".env", extra="ignore")

    API_URL: str = "http://localhost:8000"
    DATA_DIR: Path = Path.home() / ".doglog"
    TIMEOUT_SECONDS: float = 10.0


settings = Settings()
