"""
Tests for TransactionService

These run the full flow (auth, user sync, validation, storage, hooks)
against a temporary SQLite database.
"""

from datetime import date, datetime

import pytest

from src.models import ErrorKind
from src.orchestrator import NOT_FOUND_MESSAGE, RECORDS_VIEW, UNAUTHORIZED_MESSAGE
from src.services.storage import StorageError
from src.validation import INVALID_AMOUNT_MESSAGE


class TestCreate:
    """Creating transactions."""

    async def test_create_and_list(self, service):
        result = await service.create("Starbucks Coffee", "4.50", "Food", date(2024, 11, 3))
        assert result.success
        assert result.transaction.amount == 4.5
        assert result.transaction.name == "Starbucks Coffee"

        listed = await service.list_transactions()
        assert listed.success
        assert [t.name for t in listed.transactions] == ["Starbucks Coffee"]

    async def test_negative_amount_rejected_without_insert(self, service):
        await service.create("Starbucks Coffee", "4.50", "Food", date(2024, 11, 3))

        result = await service.create("Rent", "-100", "Other", date(2024, 11, 1))
        assert not result.success
        assert result.error == INVALID_AMOUNT_MESSAGE
        assert result.error_kind == ErrorKind.VALIDATION

        listed = await service.list_transactions()
        assert len(listed.transactions) == 1

    async def test_unknown_category_rejected(self, service):
        result = await service.create("Vet", "40", "Pets", date(2024, 11, 3))
        assert result.error == "Invalid category: Pets"
        assert result.error_kind == ErrorKind.VALIDATION

    async def test_name_is_trimmed(self, service):
        result = await service.create("  Bus ticket  ", "2.5", "Transportation", date(2024, 11, 3))
        assert result.transaction.name == "Bus ticket"

    async def test_overlong_name_is_validation_failure(self, service):
        result = await service.create("x" * 201, "1", "Other", date(2024, 11, 3))
        assert not result.success
        assert result.error_kind == ErrorKind.VALIDATION
        assert result.error.startswith("Invalid name")

    async def test_create_syncs_user(self, service, storage, alice):
        await service.create("Lunch", "12", "Food", date(2024, 11, 3))
        user = await storage.get_user(alice.user_id)
        assert user.email == alice.email
        assert user.currency == "USD"


class TestUnauthorized:
    """No caller means no side effects."""

    async def test_all_operations_fail(self, service, auth, storage, alice):
        auth.sign_out()

        results = [
            await service.create("Lunch", "12", "Food", date(2024, 11, 3)),
            await service.update("any", "Lunch", "12", "Food", date(2024, 11, 3)),
            await service.delete("any"),
            await service.list_transactions(),
            await service.monthly_total(),
            await service.list_by_date_range(date(2024, 11, 1), date(2024, 11, 30)),
        ]
        for result in results:
            assert not result.success
            assert result.error == UNAUTHORIZED_MESSAGE
            assert result.error_kind == ErrorKind.UNAUTHORIZED

        assert await storage.get_user(alice.user_id) is None


class TestOwnership:
    """Mutations only ever touch the caller's rows."""

    async def test_other_user_cannot_update_or_delete(self, service, auth, alice, bob):
        created = await service.create("Lunch", "12.00", "Food", date(2024, 11, 3))
        auth.sign_in(bob)
        update = await service.update(created.transaction.id, "Hijacked", "1", "Other", date(2024, 11, 3))
        assert update.error_kind == ErrorKind.NOT_FOUND
        assert update.error == NOT_FOUND_MESSAGE

        delete = await service.delete(created.transaction.id)
        assert delete.error_kind == ErrorKind.NOT_FOUND

        assert (await service.list_transactions()).transactions == []

        auth.sign_in(alice)
        listed = await service.list_transactions()
        assert [(t.name, t.amount) for t in listed.transactions] == [("Lunch", 12.0)]

    async def test_update_own_transaction(self, service):
        created = await service.create("Lunch", "12.00", "Food", date(2024, 11, 3))
        updated = await service.update(created.transaction.id, "Team lunch", "30", "Food", date(2024, 11, 4))
        assert updated.success
        assert updated.transaction.name == "Team lunch"
        assert updated.transaction.amount == 30.0
        assert updated.transaction.day == date(2024, 11, 4)

    async def test_update_validates_category(self, service):
        created = await service.create("Lunch", "12.00", "Food", date(2024, 11, 3))
        result = await service.update(created.transaction.id, "Lunch", "12", "Pets", date(2024, 11, 3))
        assert result.error_kind == ErrorKind.VALIDATION

    async def test_delete_own_transaction(self, service):
        created = await service.create("Lunch", "12.00", "Food", date(2024, 11, 3))
        assert (await service.delete(created.transaction.id)).success
        assert (await service.list_transactions()).transactions == []


class TestTotalsAndRanges:
    """Monthly total and date-range listing."""

    async def test_monthly_total(self, service):
        await service.create("Starbucks Coffee", "4.50", "Food", date(2024, 11, 3))
        await service.create("Late night", "10.25", "Food", datetime(2024, 11, 30, 23, 30))
        await service.create("December", "99", "Food", date(2024, 12, 1))

        result = await service.monthly_total(date(2024, 11, 1))
        assert result.success
        assert result.total == 14.75

    async def test_monthly_total_defaults_to_current_month(self, service):
        await service.create("Lunch", "8.00", "Food", date(2024, 11, 20))
        assert (await service.monthly_total()).total == 8.0

    async def test_monthly_total_empty_month(self, service):
        result = await service.monthly_total(date(2024, 2, 10))
        assert result.success
        assert result.total == 0.0

    async def test_single_day_range_covers_whole_day(self, service):
        await service.create("Before", "1", "Food", datetime(2024, 11, 2, 23, 59))
        await service.create("Midnight", "1", "Food", datetime(2024, 11, 3, 0, 0))
        await service.create("Late", "1", "Food", datetime(2024, 11, 3, 23, 59, 59))
        await service.create("Next", "1", "Food", datetime(2024, 11, 4, 0, 0))

        result = await service.list_by_date_range(date(2024, 11, 3), date(2024, 11, 3))
        assert [t.name for t in result.transactions] == ["Late", "Midnight"]

    async def test_inverted_range_is_empty(self, service):
        await service.create("Lunch", "1", "Food", date(2024, 11, 3))
        result = await service.list_by_date_range(date(2024, 11, 30), date(2024, 11, 1))
        assert result.success
        assert result.transactions == []


class TestInvalidation:
    """Hooks fire after successful mutations only."""

    async def test_hooks_fire_on_mutations(self, service):
        calls = []
        service.add_invalidation_hook(calls.append)

        created = await service.create("Lunch", "12", "Food", date(2024, 11, 3))
        await service.update(created.transaction.id, "Lunch", "13", "Food", date(2024, 11, 3))
        await service.delete(created.transaction.id)
        await service.list_transactions()

        assert calls == [RECORDS_VIEW, RECORDS_VIEW, RECORDS_VIEW]

    async def test_hooks_skip_failed_mutations(self, service):
        calls = []
        service.add_invalidation_hook(calls.append)

        await service.create("Rent", "-100", "Other", date(2024, 11, 1))
        await service.delete("missing")

        assert calls == []

    async def test_async_hook_is_awaited(self, service):
        calls = []

        async def hook(view):
            calls.append(view)

        service.add_invalidation_hook(hook)
        await service.create("Lunch", "12", "Food", date(2024, 11, 3))
        assert calls == [RECORDS_VIEW]

    async def test_failing_hook_does_not_fail_mutation(self, service):
        def broken(view):
            raise RuntimeError("cache down")

        service.add_invalidation_hook(broken)
        result = await service.create("Lunch", "12", "Food", date(2024, 11, 3))
        assert result.success


class TestInternalErrors:
    """Unexpected failures become INTERNAL results."""

    async def test_storage_failure(self, service, storage, monkeypatch):
        async def boom(**kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(storage, "create_transaction", boom)
        result = await service.create("Lunch", "12", "Food", date(2024, 11, 3))
        assert not result.success
        assert result.error_kind == ErrorKind.INTERNAL
        assert result.error == "Failed to create transaction: disk full"

    async def test_user_sync_failure(self, service, storage, monkeypatch):
        async def boom(**kwargs):
            raise StorageError("locked")

        monkeypatch.setattr(storage, "upsert_user", boom)
        result = await service.list_transactions()
        assert result.error_kind == ErrorKind.INTERNAL
        assert result.error == "Failed to fetch transactions: Failed to create user record"

    @pytest.mark.parametrize("operation", ["list_transactions", "monthly_total"])
    async def test_read_failures_never_raise(self, service, storage, monkeypatch, operation):
        async def boom(*args, **kwargs):
            raise RuntimeError("gone")

        monkeypatch.setattr(storage, "list_transactions", boom)
        monkeypatch.setattr(storage, "sum_amount", boom)
        result = await getattr(service, operation)()
        assert result.error_kind == ErrorKind.INTERNAL
