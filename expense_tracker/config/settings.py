"""
Configuration Management for Project Expense Tracker

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Nothing else in the package reads os.environ. Storage handles are built
from these settings once and then passed explicitly to every component.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Relational store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    url: str = Field(
        default="sqlite:///./expense_tracker.db",
        description="SQLAlchemy database URL"
    )
    echo: bool = Field(
        default=False,
        description="Log every SQL statement"
    )
    connect_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Connection attempts before giving up at startup"
    )

    @field_validator('url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Reject obviously malformed URLs early."""
        if "://" not in v:
            raise ValueError(f"Invalid database URL: {v!r}")
        return v


class AuthSettings(BaseSettings):
    """Account and seeding configuration."""

    model_config = SettingsConfigDict(
        env_prefix="AUTH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    default_admin_name: str = Field(
        default="Admin",
        description="Name of the seeded admin account"
    )
    default_admin_email: str = Field(
        default="admin@projecttracker.com",
        description="Email of the seeded admin account"
    )
    default_admin_password: str = Field(
        default="admin123",
        description="Initial password of the seeded admin account"
    )
    min_password_length: int = Field(
        default=6,
        ge=1,
        le=128,
        description="Minimum accepted password length"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )

    # Reporting
    annual_summary_years: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Years covered by the global annual summary"
    )

    # Validation thresholds
    future_expense_tolerance_days: int = Field(
        default=0,
        ge=0,
        description="How many days in the future an expense date can be"
    )
    max_expense_amount: float = Field(
        default=100000000.0,
        gt=0,
        description="Amount above which an expense is flagged (warning only)"
    )

    @property
    def is_production(self) -> bool:
        return self.app_environment.lower() == "production"


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def database(self) -> DatabaseSettings:
        return DatabaseSettings()

    @property
    def auth(self) -> AuthSettings:
        return AuthSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus
    "<name>_error" entries for the sections that failed.
    """
    results = {}
    settings = get_settings()

    for name in ("database", "auth", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except ValueError as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
