"""
SiteLedger - Configuration Management with pydantic-settings

Provides validated, type-safe configuration from environment variables.
All settings can be overridden via environment variables or .env file.
"""
from functools import lru_cache
from typing import Optional, List
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings with validation.

    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra env vars
    )

    # ===================
    # Application Settings
    # ===================
    PROJECT_NAME: str = "SiteLedger"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    DEBUG: bool = Field(default=False, description="Enable debug mode")
    ENVIRONMENT: str = Field(default="development", description="deployment environment")

    # ===================
    # Database Settings
    # ===================
    DATABASE_URL: str = Field(
        default="sqlite:///./siteledger.db",
        description="SQLAlchemy database URL (use postgresql+psycopg2://... in production)"
    )
    DB_ECHO: bool = Field(default=False, description="Log every SQL statement")

    @property
    def database_url(self) -> str:
        return self.DATABASE_URL

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")

    # ===================
    # Security Settings
    # ===================
    SECRET_KEY: str = Field(
        default="change-this-to-a-random-secret-key-in-production",
        description="JWT signing key - MUST change in production"
    )
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=60 * 24, description="JWT token expiration in minutes")

    @field_validator("SECRET_KEY")
    @classmethod
    def warn_default_secret(cls, v: str) -> str:
        """Warn if using default secret key."""
        if "change-this" in v.lower():
            import warnings
            warnings.warn(
                "Using default SECRET_KEY - this is insecure for production!",
                UserWarning
            )
        return v

    # ===================
    # CORS Settings
    # ===================
    ALLOWED_ORIGINS: List[str] = Field(
        default=[
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
        description="Allowed CORS origins"
    )

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse comma-separated string to list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    # ===================
    # Notification Outbox
    # ===================
    NOTIFY_BATCH_SIZE: int = Field(default=100, ge=1, description="Outbox rows delivered per dispatch pass")
    NOTIFY_MAX_ATTEMPTS: int = Field(default=5, ge=1, description="Delivery attempts before a row is marked failed")
    NOTIFY_POLL_INTERVAL: int = Field(default=10, ge=1, description="Seconds between dispatcher passes")
    NOTIFY_AFTER_COMMIT: bool = Field(
        default=True,
        description="Dispatch the outbox right after each committed request"
    )
    LOW_STOCK_NOTIFY_ROLES: List[str] = Field(
        default=["director", "manager", "purchasing", "cost_control", "general_manager"],
        description="Roles that receive low-stock alerts"
    )

    @field_validator("LOW_STOCK_NOTIFY_ROLES", mode="before")
    @classmethod
    def parse_low_stock_roles(cls, v):
        """Parse comma-separated string to list."""
        if isinstance(v, str):
            return [role.strip() for role in v.split(",") if role.strip()]
        return v

    # ===================
    # Logging Settings
    # ===================
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: str = Field(default="json", description="Log format: json or text")
    LOG_FILE: Optional[str] = Field(default=None, description="Log file path (optional)")
    AUDIT_LOG_FILE: Optional[str] = Field(default="./logs/audit.log", description="Audit log file path")

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.ENVIRONMENT.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Settings are loaded once per process.
    """
    return Settings()


# Convenience alias for backward compatibility with existing code
settings = get_settings()
