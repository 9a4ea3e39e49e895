# backend/po_workflow/core/settings.py
"""
Purchase Order Workflow - Configuration Management with pydantic-settings

- Loads from environment and root .env
- Validates and normalizes values
- Cached singleton via get_settings()
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# backend/po_workflow/core/settings.py -> <repo>/.env
_ENV_FILE = Path(__file__).resolve().parent.parent.parent.parent / ".env"


class Settings(BaseSettings):
    """
    Application settings with validation.

    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ===================
    # Application Settings
    # ===================
    PROJECT_NAME: str = "PO Workflow"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    DEBUG: bool = Field(default=False, description="Enable debug mode")
    ENVIRONMENT: str = Field(default="development", description="Deployment environment")

    # ===================
    # Logging
    # ===================
    LOG_LEVEL: str = Field(default="INFO", description="Root log level")
    LOG_FORMAT: str = Field(default="text", description="Log output format: text or json")

    @field_validator("LOG_FORMAT")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("text", "json"):
            raise ValueError("LOG_FORMAT must be 'text' or 'json'")
        return v

    # ===================
    # Database Settings
    # ===================
    DB_HOST: str = Field(default="localhost", description="PostgreSQL host")
    DB_PORT: int = Field(default=5432, description="PostgreSQL port")
    DB_NAME: str = Field(default="po_workflow", description="Database name")
    DB_USER: str = Field(default="postgres", description="Database user")
    DB_PASSWORD: str = Field(default="postgres", description="Database password")
    DATABASE_URL: Optional[str] = Field(
        default=None, description="Full database URL (overrides DB_* settings)"
    )
    DB_ECHO: bool = Field(default=False, description="Log every SQL statement")

    @property
    def database_url(self) -> str:
        """Build PostgreSQL database URL from components or use explicit URL."""
        if self.DATABASE_URL:
            url = self.DATABASE_URL.strip()
            if url.startswith("postgres://"):
                return "postgresql+psycopg://" + url[len("postgres://"):]
            if url.startswith("postgresql://"):
                return "postgresql+psycopg://" + url[len("postgresql://"):]
            return url
        return (
            f"postgresql+psycopg://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )

    # ===================
    # Order Numbering
    # ===================
    PO_NUMBER_TIMEZONE: str = Field(
        default="Asia/Damascus",
        description="Timezone used to derive the YY-MM part of purchase order numbers",
    )

    @field_validator("PO_NUMBER_TIMEZONE")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone '{v}'") from e
        return v

    # ===================
    # Collaborators
    # ===================
    USER_DIRECTORY_BACKEND: str = Field(
        default="database", description="User directory source: database or memory"
    )
    PUSH_GATEWAY: str = Field(
        default="log", description="Push gateway: log (development) or firebase"
    )
    FIREBASE_CREDENTIALS_FILE: Optional[str] = Field(
        default=None, description="Service account JSON for Firebase Cloud Messaging"
    )
    PUSH_BATCH_SIZE: int = Field(
        default=500, ge=1, le=500, description="Max tokens per multicast request"
    )

    @field_validator("USER_DIRECTORY_BACKEND", "PUSH_GATEWAY")
    @classmethod
    def normalize_backend(cls, v: str) -> str:
        return v.strip().lower()

    # ===================
    # Attachments
    # ===================
    UPLOAD_DIR: str = Field(default="uploads", description="Local attachment storage root")
    UPLOAD_BASE_URL: str = Field(
        default="/uploads", description="Public URL prefix for stored attachments"
    )
    ATTACHMENT_FOLDER: str = Field(
        default="purchase_orders", description="Top-level storage folder for PO attachments"
    )
    MAX_ATTACHMENT_BYTES: int = Field(
        default=10 * 1024 * 1024, description="Largest accepted attachment"
    )

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Singleton settings loader (cached)."""
    return Settings()
