"""Tests for currency and theme preferences."""

import json

import pytest

from src.preferences import (
    CURRENCY_KEY,
    THEME_KEY,
    AppPreferences,
    InMemoryPreferenceStorage,
    JsonFilePreferenceStorage,
    PreferenceError,
    PreferenceStorageError,
    Theme,
)


class TestCurrency:
    """Display currency selection."""

    def test_defaults(self):
        prefs = AppPreferences.load(InMemoryPreferenceStorage())
        assert prefs.currency.code == "USD"
        assert prefs.format_amount(4.5) == "$4.50"
        assert len(prefs.available_currencies()) == 8

    def test_set_currency_persists(self):
        storage = InMemoryPreferenceStorage()
        prefs = AppPreferences.load(storage)

        prefs.set_currency("eur")
        assert prefs.format_amount(1234.5) == "€1234.50"
        assert storage.load(CURRENCY_KEY) == {"currency": "EUR"}
        assert AppPreferences.load(storage).currency.code == "EUR"

    def test_unsupported_currency(self):
        prefs = AppPreferences.load(InMemoryPreferenceStorage())
        with pytest.raises(PreferenceError):
            prefs.set_currency("XYZ")
        assert prefs.currency.code == "USD"

    def test_invalid_stored_currency_falls_back(self):
        storage = InMemoryPreferenceStorage({CURRENCY_KEY: {"currency": "XYZ"}})
        assert AppPreferences.load(storage).currency.code == "USD"


class TestTheme:
    """Theme selection and system resolution."""

    def test_system_resolves_through_probe(self):
        prefs = AppPreferences.load(InMemoryPreferenceStorage(), system_theme=lambda: Theme.DARK)
        assert prefs.theme == Theme.SYSTEM
        assert prefs.resolved_theme == Theme.DARK

    def test_explicit_theme_ignores_probe(self):
        storage = InMemoryPreferenceStorage()
        prefs = AppPreferences.load(storage, system_theme=lambda: Theme.DARK)
        prefs.set_theme("light")
        assert prefs.resolved_theme == Theme.LIGHT
        assert storage.load(THEME_KEY) == {"theme": "light"}

    def test_unknown_theme(self):
        with pytest.raises(PreferenceError):
            AppPreferences.load(InMemoryPreferenceStorage()).set_theme("sepia")


class TestJsonFileStorage:
    """Preferences survive a restart through the JSON file."""

    def test_round_trip(self, tmp_path):
        path = tmp_path / "prefs.json"
        AppPreferences.load(JsonFilePreferenceStorage(path)).set_currency("GBP")
        AppPreferences.load(JsonFilePreferenceStorage(path)).set_theme(Theme.DARK)

        prefs = AppPreferences.load(JsonFilePreferenceStorage(path))
        assert prefs.currency.symbol == "£"
        assert prefs.theme == Theme.DARK
        assert json.loads(path.read_text()) == {
            CURRENCY_KEY: {"currency": "GBP"},
            THEME_KEY: {"theme": "dark"},
        }

    def test_missing_file_is_empty(self, tmp_path):
        assert JsonFilePreferenceStorage(tmp_path / "absent.json").load(CURRENCY_KEY) is None

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "prefs.json"
        path.write_text("{not json")

        with pytest.raises(PreferenceStorageError):
            JsonFilePreferenceStorage(path).load(CURRENCY_KEY)

        prefs = AppPreferences.load(JsonFilePreferenceStorage(path))
        assert prefs.currency.code == "USD"
        assert prefs.theme == Theme.SYSTEM

        prefs.set_currency("JPY")
        assert AppPreferences.load(JsonFilePreferenceStorage(path)).currency.code == "JPY"

    def test_corrupt_file_resets_both_and_keeps_only_saved_key(self, tmp_path):
        path = tmp_path / "prefs.json"
        path.write_text("{not json")

        prefs = AppPreferences.load(JsonFilePreferenceStorage(path))
        prefs.set_theme(Theme.DARK)

        assert json.loads(path.read_text()) == {THEME_KEY: {"theme": "dark"}}
        reloaded = AppPreferences.load(JsonFilePreferenceStorage(path))
        assert reloaded.currency.code == "USD"
        assert reloaded.theme == Theme.DARK
