"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables or a local .env file.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Reunion50 Poll"
    APP_ENV: str = "development"
    DEBUG: bool = False
    API_PREFIX: str = "/api"

    # Local storage
    DATA_DIR: str = "data"
    DATABASE_URL: str | None = None  # Defaults to a SQLite file in DATA_DIR
    ALLOWLIST_PATH: str | None = None
    FIXED_OTP_PHONES_PATH: str | None = None
    SECRET_PATH: str | None = None

    # Session tokens
    SESSION_SECRET: str | None = None  # Overrides the persisted secret file
    SESSION_TOKEN_EXPIRE_DAYS: int = 30

    # Access control
    ALLOW_ALL_PHONES: bool = False  # Development only
    FIXED_OTP_MODE: str = "listed"  # off, listed, all
    FIXED_OTP_CODE: str = "550055"
    DEFAULT_COUNTRY_CODE: str = "91"

    # OTP ledger
    OTP_LENGTH: int = 6
    OTP_EXPIRY_MINUTES: int = 5
    OTP_MAX_ATTEMPTS: int = 5
    OTP_MAX_SENDS_PER_WINDOW: int = 3
    OTP_SEND_WINDOW_MINUTES: int = 60

    # Twilio (SMS delivery)
    TWILIO_ACCOUNT_SID: str | None = None
    TWILIO_AUTH_TOKEN: str | None = None
    TWILIO_PHONE_NUMBER: str | None = None
    TWILIO_MESSAGING_SERVICE_SID: str | None = None
    SMS_TIMEOUT_SECONDS: float = 10.0
    SMS_SENDER_NAME: str = "Reunion 50 '26"

    # CORS - stored as comma-separated string to avoid pydantic-settings JSON parsing issues
    CORS_ORIGINS: str = "http://localhost:5173"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool | None = None  # Defaults to JSON outside development

    @field_validator("FIXED_OTP_MODE")
    @classmethod
    def validate_fixed_otp_mode(cls, v: str) -> str:
        """Only the three documented bypass modes are accepted."""
        mode = v.strip().lower()
        if mode not in {"off", "listed", "all"}:
            raise ValueError("FIXED_OTP_MODE must be one of: off, listed, all")
        return mode

    @field_validator("FIXED_OTP_CODE")
    @classmethod
    def validate_fixed_otp_code(cls, v: str) -> str:
        if not (len(v) == 6 and v.isdigit()):
            raise ValueError("FIXED_OTP_CODE must be exactly 6 digits")
        return v

    @property
    def data_path(self) -> Path:
        return Path(self.DATA_DIR)

    @property
    def database_url(self) -> str:
        """SQLite database in DATA_DIR unless DATABASE_URL is set."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"sqlite+aiosqlite:///{self.data_path / 'reunion50.sqlite'}"

    @property
    def database_file(self) -> Path | None:
        """Filesystem path of the SQLite database, if the URL points at one."""
        url = self.database_url
        prefix = "sqlite+aiosqlite:///"
        if url.startswith(prefix) and ":memory:" not in url:
            return Path(url[len(prefix):])
        return None

    @property
    def allowlist_path(self) -> Path:
        return Path(self.ALLOWLIST_PATH) if self.ALLOWLIST_PATH else self.data_path / "allowed_phones.json"

    @property
    def fixed_otp_phones_path(self) -> Path:
        if self.FIXED_OTP_PHONES_PATH:
            return Path(self.FIXED_OTP_PHONES_PATH)
        return self.data_path / "fixed_otp_phones.txt"

    @property
    def secret_path(self) -> Path:
        return Path(self.SECRET_PATH) if self.SECRET_PATH else self.data_path / "secret.txt"

    @property
    def sms_configured(self) -> bool:
        """True when Twilio credentials and a sender are present."""
        return bool(
            self.TWILIO_ACCOUNT_SID
            and self.TWILIO_AUTH_TOKEN
            and (self.TWILIO_PHONE_NUMBER or self.TWILIO_MESSAGING_SERVICE_SID)
        )

    @property
    def log_as_json(self) -> bool:
        if self.LOG_JSON is not None:
            return self.LOG_JSON
        return self.APP_ENV not in {"development", "test"}

    @property
    def cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        import json

        try:
            return json.loads(self.CORS_ORIGINS)
        except json.JSONDecodeError:
            return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
