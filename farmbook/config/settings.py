"""
Configuration Management for Farmbook

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Every external service (Sheets, Cloudinary, Gemini, Web Push, Open-Meteo)
gets its own settings class with its own env prefix, so a missing key for
one service never prevents the rest of the app from starting.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

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
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )
    sheet_rows: int = Field(
        default=2000,
        ge=100,
        description="Initial row count for newly created record sheets"
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


class CloudinarySettings(BaseSettings):
    """Cloudinary photo hosting configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CLOUDINARY_",
        extra="ignore"
    )

    cloud_name: str = Field(
        ...,
        description="Cloudinary cloud name"
    )
    api_key: str = Field(
        ...,
        description="Cloudinary API key"
    )
    api_secret: str = Field(
        ...,
        description="Cloudinary API secret"
    )
    root_folder: str = Field(
        default="farmbook",
        description="Folder all uploads are placed under"
    )


class GeminiSettings(BaseSettings):
    """Gemini receipt reader configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    receipt_models: str = Field(
        default="gemini-2.0-flash-exp,gemini-1.5-flash,gemini-pro",
        description="Comma-separated models to try in order for receipt OCR"
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

    @property
    def receipt_models_list(self) -> list[str]:
        """Get the model fallback chain as a list."""
        return [m.strip() for m in self.receipt_models.split(",") if m.strip()]


class WebPushSettings(BaseSettings):
    """Web Push (VAPID) and webhook configuration."""

    model_config = SettingsConfigDict(
        env_prefix="WEB_PUSH_",
        extra="ignore"
    )

    vapid_public_key: str = Field(
        ...,
        description="VAPID public key handed to browsers when subscribing"
    )
    vapid_private_key: str = Field(
        ...,
        description="VAPID private key used to sign push messages"
    )
    vapid_subject: str = Field(
        default="mailto:admin@example.com",
        description="Contact URI sent in the VAPID claims"
    )
    webhook_secret: Optional[str] = Field(
        default=None,
        description="Shared secret expected in the x-webhook-secret header"
    )
    ttl_seconds: int = Field(
        default=86400,
        ge=0,
        description="How long the push service keeps an undelivered message"
    )


class WeatherSettings(BaseSettings):
    """Open-Meteo forecast configuration. No API key is needed."""

    model_config = SettingsConfigDict(
        env_prefix="WEATHER_",
        extra="ignore"
    )

    endpoint: str = Field(
        default="https://api.open-meteo.com/v1/forecast",
        description="Forecast endpoint"
    )
    # Nishihara Village, Kumamoto
    latitude: float = Field(default=32.8447, ge=-90, le=90)
    longitude: float = Field(default=130.9147, ge=-180, le=180)
    timezone: str = Field(default="Asia/Tokyo")
    forecast_days: int = Field(default=7, ge=1, le=16)
    request_timeout_seconds: float = Field(default=10.0, gt=0)


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
    local_timezone: str = Field(
        default="Asia/Tokyo",
        description="Timezone used to decide 'today' and the current month"
    )

    # Offline queue
    offline_queue_path: str = Field(
        default="farmbook_offline.sqlite3",
        description="SQLite file holding work logs recorded while offline"
    )

    # File upload limits
    max_upload_size_mb: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum upload file size in MB"
    )
    supported_image_formats: str = Field(
        default="jpg,jpeg,png,webp,heic",
        description="Comma-separated list of supported image formats"
    )
    max_photo_edge_px: int = Field(
        default=2048,
        ge=256,
        description="Photos are downscaled so the longest edge fits this size"
    )

    # Validation thresholds
    max_receipt_amount: float = Field(
        default=5000000.0,
        description="Largest plausible receipt amount (for sanity checking)"
    )
    future_date_tolerance_days: int = Field(
        default=3,
        description="How many days in the future a receipt date can be"
    )

    # Reports
    heatmap_days: int = Field(
        default=120,
        ge=7,
        description="How many days back the work heatmap covers"
    )

    @property
    def supported_formats_list(self) -> list[str]:
        """Get supported formats as a list."""
        return [fmt.strip().lower() for fmt in self.supported_image_formats.split(",")]

    @property
    def max_upload_size_bytes(self) -> int:
        """Get max upload size in bytes."""
        return self.max_upload_size_mb * 1024 * 1024


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
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def cloudinary(self) -> CloudinarySettings:
        return CloudinarySettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def web_push(self) -> WebPushSettings:
        return WebPushSettings()

    @property
    def weather(self) -> WeatherSettings:
        return WeatherSettings()

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


SERVICE_NAMES = ("google_sheets", "cloudinary", "gemini", "web_push", "weather", "app")


def validate_all_settings() -> dict[str, object]:
    """
    Validate all settings are properly configured.

    Returns a dict of {service: is_valid} plus {service_error: message}
    for every service that failed to load. Used by the settings page.
    """
    results: dict[str, object] = {}
    settings = get_settings()

    for name in SERVICE_NAMES:
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
