"""
Configuration Management for Wallet Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Retry limits, reserved category names and the storage backend are
read once and validated at startup.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerSettings(BaseSettings):
    """Ledger engine behaviour."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Optimistic concurrency
    max_conflict_retries: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Attempts for a balance write before a conflict is surfaced"
    )
    retry_wait_min_seconds: float = Field(
        default=0.0,
        ge=0.0,
        le=5.0,
        description="Minimum backoff between conflicting balance writes"
    )
    retry_wait_max_seconds: float = Field(
        default=0.2,
        ge=0.0,
        le=10.0,
        description="Maximum backoff between conflicting balance writes"
    )

    # Reserved categories
    transfer_category: str = Field(
        default="Transfer",
        min_length=1,
        description="Category given to both legs of a transfer"
    )
    opening_balance_category: str = Field(
        default="Opening Balance",
        min_length=1,
        description="Category of the income recorded for a new wallet's initial funds"
    )
    adjustment_category: str = Field(
        default="Adjustment",
        min_length=1,
        description="Category of transactions created by manual balance corrections"
    )

    @model_validator(mode='after')
    def validate_wait_range(self) -> 'LedgerSettings':
        if self.retry_wait_max_seconds < self.retry_wait_min_seconds:
            raise ValueError("retry_wait_max_seconds cannot be below retry_wait_min_seconds")
        return self


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # Sheet names within the spreadsheet
    wallets_sheet_name: str = Field(default="Wallets")
    transactions_sheet_name: str = Field(default="Transactions")
    budgets_sheet_name: str = Field(default="Budgets")
    debts_sheet_name: str = Field(default="Debts")
    goals_sheet_name: str = Field(default="SavingsGoals")
    categories_sheet_name: str = Field(default="CustomCategories")
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


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
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Minimum level for local structured logs"
    )

    # Storage
    storage_backend: str = Field(
        default="memory",
        pattern="^(memory|google_sheets)$",
        description="Where ledger records are persisted"
    )


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

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("ledger", "google_sheets", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
