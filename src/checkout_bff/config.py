# src/checkout_bff/config.py

from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Determine the base directory of this config file
# .env is at the project root, two levels up from src/checkout_bff/
CONFIG_FILE_DIR = Path(__file__).resolve().parent
PROJECT_ROOT_DIR = CONFIG_FILE_DIR.parent.parent
ENV_FILE_PATH = PROJECT_ROOT_DIR / ".env"

ENV_FILE_FOUND = ENV_FILE_PATH.exists()
if ENV_FILE_FOUND:
    load_dotenv(dotenv_path=ENV_FILE_PATH, override=True)


class Settings(BaseSettings):
    # === Backend-as-a-service (Supabase) Details ===
    SUPABASE_URL: str = "http://localhost:54321"
    SUPABASE_ANON_KEY: str = ""
    # Needed only to resolve user e-mails during payment recovery
    SUPABASE_SERVICE_ROLE_KEY: str = ""

    # === Frontend ===
    # Prefix for produced redirects; empty keeps them relative to this origin
    FRONTEND_BASE_URL: str = ""

    # === Session Management ===
    SESSION_SECRET_KEY: str = ""
    SECURE_COOKIES: bool = False

    # === Payment Session Recovery ===
    SESSION_BACKUP_TTL_MINUTES: int = 60
    MAX_RESTORATION_ATTEMPTS: int = 5
    RESTORATION_BACKOFF_BASE_SECONDS: float = 2.0

    HTTP_TIMEOUT_SECONDS: float = 10.0

    # === Logging ===
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # === Derived endpoints ===
    @property
    def AUTH_BASE_URL(self) -> str:
        return f"{self.SUPABASE_URL}/auth/v1"

    @property
    def REST_BASE_URL(self) -> str:
        return f"{self.SUPABASE_URL}/rest/v1"

    @property
    def SESSION_BACKUP_TTL_SECONDS(self) -> int:
        return self.SESSION_BACKUP_TTL_MINUTES * 60

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False
    )

    @field_validator("SUPABASE_URL", "FRONTEND_BASE_URL", mode='before')
    @classmethod
    def strip_trailing_slash(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().rstrip("/")
        return v

    @field_validator("LOG_LEVEL", mode='before')
    @classmethod
    def normalize_log_level(cls, v: Any) -> str:
        if v is None:
            return "INFO"
        level = str(v).strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"LOG_LEVEL must be a standard logging level name, got {v!r}.")
        return level

    @model_validator(mode='after')
    def check_recovery_bounds(self) -> 'Settings':
        if self.MAX_RESTORATION_ATTEMPTS < 1:
            raise ValueError("MAX_RESTORATION_ATTEMPTS must be at least 1.")
        if self.SESSION_BACKUP_TTL_MINUTES <= 0:
            raise ValueError("SESSION_BACKUP_TTL_MINUTES must be positive.")
        if self.RESTORATION_BACKOFF_BASE_SECONDS < 0:
            raise ValueError("RESTORATION_BACKOFF_BASE_SECONDS must not be negative.")
        return self


settings = Settings()
