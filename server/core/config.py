import os
import re
from pathlib import Path
from typing import Literal, Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def find_env_file() -> str:
    """Find .env file by checking multiple possible locations"""
    this_file_dir = Path(__file__).resolve().parent

    # Possible .env locations (in priority order)
    possible_paths = [
        Path.cwd() / ".env",  # Current working directory
        this_file_dir / ".env",  # Same dir as this file
        this_file_dir.parent / ".env",  # server/
        this_file_dir.parent.parent / ".env",  # Project root
    ]

    for path in possible_paths:
        if path.exists():
            return str(path)

    return ".env"  # Fallback


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=find_env_file(),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Server
    ENV: str = "development"
    DEBUG: bool = True
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    PUBLIC_BASE_URL: str = "http://localhost:8000"

    # Database (optional - without it accounts fall back to the sessions dir)
    DATABASE_URL: Optional[str] = None
    POSTGRES_USER: Optional[str] = None
    POSTGRES_PASSWORD: Optional[str] = None
    POSTGRES_HOST: Optional[str] = None
    POSTGRES_PORT: Optional[int] = None
    POSTGRES_DB: Optional[str] = None
    DB_AUTO_CREATE: bool = True

    @model_validator(mode="after")
    def assemble_db_connection(self) -> "Settings":
        if self.DATABASE_URL is None and all(
            [
                self.POSTGRES_USER,
                self.POSTGRES_PASSWORD,
                self.POSTGRES_HOST,
                self.POSTGRES_PORT,
                self.POSTGRES_DB,
            ]
        ):
            self.DATABASE_URL = f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        return self

    # Redis (optional realtime mirror)
    REDIS_URL: Optional[str] = None

    # Messaging provider (browser automation sidecar)
    PROVIDER_BASE_URL: str = "http://localhost:3001"
    PROVIDER_API_KEY: Optional[str] = None
    PROVIDER_TIMEOUT: float = 30.0
    PROVIDER_WEBHOOK_SECRET: Optional[str] = None

    @model_validator(mode="after")
    def clean_provider_url(self) -> "Settings":
        """Strip trailing slashes from base URLs"""
        self.PROVIDER_BASE_URL = self.PROVIDER_BASE_URL.rstrip("/")
        self.PUBLIC_BASE_URL = self.PUBLIC_BASE_URL.rstrip("/")
        return self

    # Storage
    SESSIONS_DIR: str = ".wwebjs_auth"
    UPLOAD_DIR: str = "uploads"
    MAX_UPLOAD_BYTES: int = 16 * 1024 * 1024  # 16 MB

    # Accounts
    DEFAULT_ACCOUNT_ID: str = "default"
    AUTO_START_DEFAULT_ACCOUNT: bool = False

    # Phone numbers
    DEFAULT_COUNTRY_CODE: Optional[str] = None
    NATIONAL_NUMBER_LENGTH: int = 10
    VERIFY_RECIPIENTS: bool = False

    @model_validator(mode="after")
    def clean_country_code(self) -> "Settings":
        """Accept '+91', '0091' or '91' for DEFAULT_COUNTRY_CODE"""
        if self.DEFAULT_COUNTRY_CODE:
            digits = re.sub(r"\D", "", self.DEFAULT_COUNTRY_CODE).lstrip("0")
            self.DEFAULT_COUNTRY_CODE = digits or None
        return self

    # Message log
    PERSIST_MESSAGES: bool = True

    # Reconnect after a provider disconnect
    RECONNECT_STRATEGY: Literal["none", "fixed", "exponential"] = "none"
    RECONNECT_DELAY_SECONDS: float = 5.0
    RECONNECT_MAX_DELAY_SECONDS: float = 300.0
    RECONNECT_MAX_ATTEMPTS: Optional[int] = 5

    # Server-Sent Events
    SSE_KEEPALIVE_SECONDS: float = 15.0
    SSE_MAX_PENDING: int = 100

    # Monitoring
    LOG_DIR: Optional[str] = None
    SENTRY_DSN: Optional[str] = None


# Singleton instance
settings = Settings()


# Debug helper - run this file directly to check config loading
if __name__ == "__main__":
    print("=" * 50)
    print("CONFIG DEBUG INFO")
    print("=" * 50)
    print(f"Working directory: {os.getcwd()}")
    print(f"Config file location: {Path(__file__).resolve()}")
    print(f"Resolved .env path: {find_env_file()}")
    print("-" * 50)
    print(f"ENV: {settings.ENV}")
    print(f"DATABASE_URL loaded: {settings.DATABASE_URL is not None}")
    print(f"REDIS_URL: {settings.REDIS_URL}")
    print(f"PROVIDER_BASE_URL: {settings.PROVIDER_BASE_URL}")
    print(f"SESSIONS_DIR: {settings.SESSIONS_DIR}")
    print(f"DEFAULT_COUNTRY_CODE: {settings.DEFAULT_COUNTRY_CODE}")
    print(f"RECONNECT_STRATEGY: {settings.RECONNECT_STRATEGY}")
    print("=" * 50)
