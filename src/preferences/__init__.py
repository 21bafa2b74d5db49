"""Display preferences package."""

from src.preferences.store import (
    CURRENCIES,
    CURRENCY_KEY,
    THEME_KEY,
    AppPreferences,
    Currency,
    InMemoryPreferenceStorage,
    JsonFilePreferenceStorage,
    PreferenceError,
    PreferenceStorage,
    PreferenceStorageError,
    Theme,
)

__all__ = [
    "CURRENCIES",
    "CURRENCY_KEY",
    "THEME_KEY",
    "AppPreferences",
    "Currency",
    "InMemoryPreferenceStorage",
    "JsonFilePreferenceStorage",
    "PreferenceError",
    "PreferenceStorage",
    "PreferenceStorageError",
    "Theme",
]
