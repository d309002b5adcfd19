"""Configuration package."""

from wealth.config.settings import (
    AppSettings,
    ClerkSettings,
    DatabaseSettings,
    GeminiSettings,
    InngestSettings,
    NotificationSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "ClerkSettings",
    "DatabaseSettings",
    "GeminiSettings",
    "InngestSettings",
    "NotificationSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
