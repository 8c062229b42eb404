"""Configuration package."""

from farmbook.config.settings import (
    AppSettings,
    CloudinarySettings,
    GeminiSettings,
    GoogleSheetsSettings,
    Settings,
    WeatherSettings,
    WebPushSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "CloudinarySettings",
    "GeminiSettings",
    "GoogleSheetsSettings",
    "Settings",
    "WeatherSettings",
    "WebPushSettings",
    "get_settings",
    "validate_all_settings",
]
