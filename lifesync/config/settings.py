"""
Configuration Management for LifeSync

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Every external integration (Google Sheets, Gemini, Telegram) has its own
settings class so a missing key for one integration never prevents the
others, or the local-only core, from starting.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
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
    default_sheet_rows: int = Field(
        default=1000,
        ge=10,
        description="Row count for worksheets created on first use"
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


class GeminiSettings(BaseSettings):
    """Gemini configuration for the intent decoder."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-1.5-flash",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=1024,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )


class TelegramSettings(BaseSettings):
    """Telegram bot front-end configuration."""

    model_config = SettingsConfigDict(
        env_prefix="TELEGRAM_",
        extra="ignore"
    )

    bot_token: str = Field(
        ...,
        description="Bot API token issued by BotFather"
    )
    owner_id: Optional[int] = Field(
        default=None,
        description="Only this chat id may drive the bot (None = anyone)"
    )
    menu_timeout_seconds: int = Field(
        default=60,
        ge=5,
        description="Idle seconds before a menu message is deleted"
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
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Presentation
    currency_symbol: str = Field(
        default="₹",
        description="Currency symbol used in user-facing messages"
    )
    timezone: str = Field(
        default="Asia/Kolkata",
        description="IANA timezone for 'today' and reminder due dates"
    )

    # Command core behaviour
    recent_lookup_limit: int = Field(
        default=20,
        ge=1,
        le=500,
        description="How many recent records a delete-by-hint searches"
    )
    target_match_policy: Literal["first", "clarify"] = Field(
        default="first",
        description=(
            "What to do when a hint matches several records: "
            "'first' picks the first match, 'clarify' asks the user"
        )
    )
    daily_water_goal: int = Field(
        default=8,
        ge=1,
        description="Glasses of water per day shown in habit replies"
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

    # Note: These are loaded lazily to allow partial configuration

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def telegram(self) -> TelegramSettings:
        return TelegramSettings()

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

    for name in ("google_sheets", "gemini", "telegram", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
