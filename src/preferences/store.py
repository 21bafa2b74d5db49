"""
Display Preferences

Currency and theme are client-side display settings. They live in an
explicit AppPreferences context created once at startup and passed to
whatever needs it, and they are persisted through an injected
PreferenceStorage.

Each preference is saved under its own key. The JSON file backend keeps
both keys in one file, so an unreadable file resets both preferences to
their defaults, and the next change rewrites the file with only the key
being saved.
"""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Union

import structlog
from pydantic import BaseModel, ConfigDict


logger = structlog.get_logger(__name__)

CURRENCY_KEY = "currency-storage"
THEME_KEY = "theme-storage"


class Currency(BaseModel):
    """A display currency."""
    model_config = ConfigDict(frozen=True)

    code: str
    symbol: str
    name: str


CURRENCIES: dict[str, Currency] = {
    currency.code: currency
    for currency in (
        Currency(code="USD", symbol="$", name="US Dollar"),
        Currency(code="EUR", symbol="€", name="Euro"),
        Currency(code="GBP", symbol="£", name="British Pound"),
        Currency(code="JPY", symbol="¥", name="Japanese Yen"),
        Currency(code="CAD", symbol="C$", name="Canadian Dollar"),
        Currency(code="AUD", symbol="A$", name="Australian Dollar"),
        Currency(code="CHF", symbol="Fr", name="Swiss Franc"),
        Currency(code="CNY", symbol="¥", name="Chinese Yuan"),
    )
}

DEFAULT_CURRENCY_CODE = "USD"


class Theme(str, Enum):
    LIGHT = "light"
    DARK = "dark"
    SYSTEM = "system"


class PreferenceError(ValueError):
    """Unknown currency code or theme name."""
    pass


class PreferenceStorageError(Exception):
    """Persisted preferences could not be read or written."""
    pass


# =============================================================================
# STORAGE
# =============================================================================

class PreferenceStorage(ABC):
    """Key/value persistence for preference entries."""

    @abstractmethod
    def load(self, key: str) -> Optional[dict]:
        """
        Return the stored entry, or None if nothing was saved.

        Raises:
            PreferenceStorageError: If stored data is unreadable
        """
        pass

    @abstractmethod
    def save(self, key: str, value: dict) -> None:
        pass


class InMemoryPreferenceStorage(PreferenceStorage):
    """Preferences that last as long as the process."""

    def __init__(self, initial: Optional[dict[str, dict]] = None):
        self._entries: dict[str, dict] = dict(initial or {})

    def load(self, key: str) -> Optional[dict]:
        entry = self._entries.get(key)
        return dict(entry) if entry is not None else None

    def save(self, key: str, value: dict) -> None:
        self._entries[key] = dict(value)


class JsonFilePreferenceStorage(PreferenceStorage):
    """
    All entries in one JSON file.

    Writes go to a temporary file that replaces the original, so a
    crash mid-write never leaves a half-written file.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise PreferenceStorageError(f"Cannot read {self._path}: {e}") from e
        if not isinstance(data, dict):
            raise PreferenceStorageError(f"Unexpected content in {self._path}")
        return data

    def load(self, key: str) -> Optional[dict]:
        entry = self._read_all().get(key)
        if entry is None:
            return None
        if not isinstance(entry, dict):
            raise PreferenceStorageError(f"Entry {key!r} is not an object")
        return entry

    def save(self, key: str, value: dict) -> None:
        try:
            data = self._read_all()
        except PreferenceStorageError:
            logger.warning("preferences_file_reset", path=str(self._path))
            data = {}
        data[key] = value

        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self._path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self._path)
        except OSError as e:
            Path(tmp_path).unlink(missing_ok=True)
            raise PreferenceStorageError(f"Cannot write {self._path}: {e}") from e


# =============================================================================
# APPLICATION STATE
# =============================================================================

class AppPreferences:
    """
    Currency and theme for one client.

    Usage:
        prefs = AppPreferences.load(JsonFilePreferenceStorage(path))
        prefs.set_currency("EUR")
        prefs.format_amount(4.5)  # "€4.50"
    """

    def __init__(
        self,
        storage: PreferenceStorage,
        system_theme: Optional[Callable[[], Theme]] = None,
        currency_code: str = DEFAULT_CURRENCY_CODE,
        theme: Theme = Theme.SYSTEM,
    ):
        self._storage = storage
        self._system_theme = system_theme or (lambda: Theme.LIGHT)
        self._currency = CURRENCIES.get(currency_code, CURRENCIES[DEFAULT_CURRENCY_CODE])
        self._theme = theme

    @classmethod
    def load(
        cls,
        storage: PreferenceStorage,
        system_theme: Optional[Callable[[], Theme]] = None,
    ) -> "AppPreferences":
        """Build the context from persisted state, defaulting what is missing or corrupt."""
        currency_code = DEFAULT_CURRENCY_CODE
        theme = Theme.SYSTEM

        entry = cls._load_entry(storage, CURRENCY_KEY)
        if entry is not None:
            code = entry.get("currency")
            if isinstance(code, str) and code in CURRENCIES:
                currency_code = code
            else:
                logger.warning("preference_invalid", key=CURRENCY_KEY, value=code)

        entry = cls._load_entry(storage, THEME_KEY)
        if entry is not None:
            try:
                theme = Theme(entry.get("theme"))
            except ValueError:
                logger.warning("preference_invalid", key=THEME_KEY, value=entry.get("theme"))

        return cls(
            storage,
            system_theme=system_theme,
            currency_code=currency_code,
            theme=theme,
        )

    @staticmethod
    def _load_entry(storage: PreferenceStorage, key: str) -> Optional[dict]:
        try:
            return storage.load(key)
        except PreferenceStorageError as e:
            logger.warning("preference_unreadable", key=key, error=str(e))
            return None

    # -------------------------------------------------------------------------
    # Currency
    # -------------------------------------------------------------------------

    @property
    def currency(self) -> Currency:
        return self._currency

    @staticmethod
    def available_currencies() -> list[Currency]:
        return list(CURRENCIES.values())

    def set_currency(self, code: str) -> Currency:
        """
        Switch display currency and persist it.

        Raises:
            PreferenceError: If the code is not supported
        """
        currency = CURRENCIES.get(code.upper())
        if currency is None:
            raise PreferenceError(f"Unsupported currency: {code}")
        self._storage.save(CURRENCY_KEY, {"currency": currency.code})
        self._currency = currency
        logger.info("preference_changed", key=CURRENCY_KEY, value=currency.code)
        return currency

    def format_amount(self, amount: float) -> str:
        """Symbol followed by the amount with two decimals, e.g. "$4.50"."""
        return f"{self._currency.symbol}{amount:.2f}"

    # -------------------------------------------------------------------------
    # Theme
    # -------------------------------------------------------------------------

    @property
    def theme(self) -> Theme:
        return self._theme

    @property
    def resolved_theme(self) -> Theme:
        """LIGHT or DARK; SYSTEM is resolved through the system probe."""
        if self._theme != Theme.SYSTEM:
            return self._theme
        resolved = self._system_theme()
        return Theme.DARK if resolved == Theme.DARK else Theme.LIGHT

    def set_theme(self, theme: Union[Theme, str]) -> Theme:
        """
        Switch theme and persist it.

        Raises:
            PreferenceError: If the theme name is unknown
        """
        try:
            theme = Theme(theme)
        except ValueError:
            raise PreferenceError(f"Unsupported theme: {theme}")
        self._storage.save(THEME_KEY, {"theme": theme.value})
        self._theme = theme
        logger.info("preference_changed", key=THEME_KEY, value=theme.value)
        return theme
