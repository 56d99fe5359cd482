"""
Configuration management for HRFlow
"""
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from typing import Optional, List


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Required settings
    DATABASE_URL: str = Field(..., description="Relational store URL (PostgreSQL in production, SQLite locally)")
    JWT_SECRET_KEY: str = Field(..., description="JWT secret key for token signing")

    # Optional settings with defaults
    JWT_ALGORITHM: str = Field(default="HS256", description="JWT algorithm")
    JWT_EXPIRE_MINUTES: int = Field(default=120, description="JWT token expiration in minutes")

    APP_ENV: str = Field(default="local", description="Application environment: local, staging, prod")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level: DEBUG, INFO, WARNING, ERROR")

    # CORS settings
    ALLOWED_ORIGINS: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins. Use '*' for local only."
    )

    # Authority cache: results keyed by (user, location); never authoritative
    AUTHORITY_CACHE_BACKEND: str = Field(default="memory", description="Authority cache backend: memory or redis")
    AUTHORITY_CACHE_TTL_SECONDS: int = Field(default=300, description="Seconds an authority result may be served from cache")
    REDIS_URL: Optional[str] = Field(default=None, description="Redis URL for the redis cache backend")

    # Permission that bypasses every location and workflow check
    SYSTEM_ADMIN_PERMISSION: str = Field(default="system.admin", description="Name of the super-user permission")

    # Working calendar for leave day counts, timesheet expectations and accrual
    STANDARD_WORKDAY_HOURS: float = Field(default=8.5, description="Expected hours on a working day")
    DEFAULT_MONTHLY_ACCRUAL_DAYS: float = Field(
        default=1.75,
        description="Days credited per month to accruing leave types with no matching accrual config"
    )

    # Initial administrator, created on startup when no system administrator exists
    INITIAL_ADMIN_EMAIL: str = Field(
        default="admin@company.com",
        description="Email for initial admin user (used when no admin exists)"
    )
    INITIAL_ADMIN_PASSWORD: Optional[str] = Field(
        default=None,
        description="Password for initial admin user; bootstrap is skipped when unset"
    )

    # Version (can be git SHA or semver)
    VERSION: Optional[str] = Field(default=None, description="Application version (git SHA or semver)")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True

    @field_validator("APP_ENV")
    @classmethod
    def validate_app_env(cls, v: str) -> str:
        """Validate APP_ENV"""
        allowed = ["local", "staging", "prod"]
        if v not in allowed:
            raise ValueError(f"APP_ENV must be one of {allowed}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate LOG_LEVEL"""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {allowed}")
        return v.upper()

    @field_validator("AUTHORITY_CACHE_BACKEND")
    @classmethod
    def validate_cache_backend(cls, v: str) -> str:
        allowed = ["memory", "redis"]
        if v.lower() not in allowed:
            raise ValueError(f"AUTHORITY_CACHE_BACKEND must be one of {allowed}")
        return v.lower()

    def validate_production(self) -> None:
        """
        Validate settings for production environment

        Raises:
            ValueError: If production settings are invalid
        """
        if self.APP_ENV == "prod":
            if len(self.JWT_SECRET_KEY) < 32:
                raise ValueError(
                    "JWT_SECRET_KEY must be at least 32 characters in production environment"
                )
            if self.ALLOWED_ORIGINS == "*" or not self.ALLOWED_ORIGINS:
                raise ValueError(
                    "ALLOWED_ORIGINS must be explicitly set (not '*') in production environment"
                )
        if self.AUTHORITY_CACHE_BACKEND == "redis" and not self.REDIS_URL:
            raise ValueError("REDIS_URL is required when AUTHORITY_CACHE_BACKEND=redis")

    def get_allowed_origins_list(self) -> List[str]:
        """
        Get list of allowed CORS origins

        Returns:
            List of allowed origins (or ['*'] for local)
        """
        if self.ALLOWED_ORIGINS == "*":
            return ["*"]
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]


# Create settings instance
settings = Settings()

settings.validate_production()
