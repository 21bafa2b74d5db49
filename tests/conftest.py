"""
Shared fixtures.

Every test gets its own SQLite file under tmp_path, so tests never
share rows. No test talks to Gemini: receipt tests inject a fake model.
"""

from datetime import date

import pytest

from src.audit import AuditLogger
from src.auth import CallerIdentity, StaticAuthProvider
from src.config import get_settings
from src.orchestrator import TransactionService
from src.services.storage import SqlTransactionStorage


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def alice() -> CallerIdentity:
    return CallerIdentity(user_id="user_alice", email="alice@example.com", name="Alice Doe")


@pytest.fixture
def bob() -> CallerIdentity:
    return CallerIdentity(user_id="user_bob", email="bob@example.com", name=None)


@pytest.fixture
def storage(tmp_path):
    store = SqlTransactionStorage(url=f"sqlite:///{tmp_path / 'expenses.db'}")
    store.initialize()
    yield store
    store.dispose()


@pytest.fixture
def auth(alice) -> StaticAuthProvider:
    return StaticAuthProvider(alice)


@pytest.fixture
def service(storage, auth) -> TransactionService:
    return TransactionService(
        storage=storage,
        auth=auth,
        audit_logger=AuditLogger(),
        default_currency="USD",
        today=lambda: date(2024, 11, 15),
    )

