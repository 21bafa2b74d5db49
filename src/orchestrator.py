"""
Main Orchestrator for Expense Tracker

This module ties together all the components and defines the
end-to-end flows for:
1. Transactions (auth → sync user → validate → store → invalidate views)
2. Receipt scanning (choose → capturing → loading → confirm | error → save)

The orchestrator enforces the boundaries:
- No operation runs without an authenticated caller
- Every mutation is scoped to the caller's own rows
- Nothing a receipt scan proposes is saved without user confirmation
- No public operation raises: every outcome is a result model
"""

import inspect
from datetime import date, datetime, time
from typing import Any, Awaitable, Callable, Iterable, Optional, Type, TypeVar, Union
from uuid import UUID

import structlog
from pydantic import ValidationError

from src.audit import AuditLogger, create_correlation_id
from src.auth import AuthProvider, CallerIdentity, UnauthorizedError
from src.config import get_settings
from src.models.receipt import ImagePayload, ReceiptFields, ScanErrorKind, ScanResult, ScanStep
from src.models.transaction import (
    ActionResult,
    ErrorKind,
    TotalResult,
    TransactionForm,
    TransactionListResult,
    TransactionResult,
)
from src.reports import month_bounds
from src.services.receipt import GeminiReceiptService
from src.services.storage import (
    NotFoundError,
    SqlTransactionStorage,
    StorageError,
    TransactionStorageInterface,
)
from src.validation import TransactionValidationError, TransactionValidator


logger = structlog.get_logger(__name__)

UNAUTHORIZED_MESSAGE = "Unauthorized: Please sign in"
NOT_FOUND_MESSAGE = "Transaction not found"
RECORDS_VIEW = "records"

R = TypeVar("R", bound=ActionResult)
InvalidationHook = Callable[[str], Any]
DateLike = Union[date, datetime]


class UserSyncError(Exception):
    """The caller's user row could not be created or refreshed."""
    pass


def _as_date(value: DateLike) -> date:
    return value.date() if isinstance(value, datetime) else value


def _validation_message(error: ValidationError) -> str:
    first = error.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or "input"
    return f"Invalid {field}: {first.get('msg', 'invalid value')}"


class TransactionService:
    """
    All transaction operations for the signed-in caller.

    Flow for every operation:
    1. Resolve the caller (none → unauthorized failure, no side effect)
    2. Upsert the caller's user row (create, list, totals)
    3. Validate input
    4. Run the owner-scoped storage call
    5. Fire invalidation hooks after successful mutations

    Failures are converted to results at this boundary.
    """

    def __init__(
        self,
        storage: TransactionStorageInterface,
        auth: AuthProvider,
        validator: Optional[TransactionValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        invalidation_hooks: Optional[Iterable[InvalidationHook]] = None,
        default_currency: Optional[str] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self._storage = storage
        self._auth = auth
        self._validator = validator or TransactionValidator()
        self._audit_logger = audit_logger
        self._hooks: list[InvalidationHook] = list(invalidation_hooks or [])
        self._default_currency = default_currency or get_settings().app.default_currency
        self._today = today or date.today

    def add_invalidation_hook(self, hook: InvalidationHook) -> None:
        """Register a callable fired with the view name after each mutation."""
        self._hooks.append(hook)

    # -------------------------------------------------------------------------
    # Shared plumbing
    # -------------------------------------------------------------------------

    async def _require_identity(self) -> CallerIdentity:
        identity = await self._auth.current_identity()
        if identity is None:
            raise UnauthorizedError(UNAUTHORIZED_MESSAGE)
        return identity

    async def _ensure_user(self, identity: CallerIdentity) -> None:
        try:
            await self._storage.upsert_user(
                user_id=identity.user_id,
                email=identity.email,
                name=identity.name,
                default_currency=self._default_currency,
            )
        except StorageError as e:
            logger.error("user_sync_failed", user_id=identity.user_id, error=str(e))
            raise UserSyncError("Failed to create user record") from e

        if self._audit_logger:
            await self._audit_logger.log_user_synced(identity.user_id, identity.email)

    async def _invalidate(self) -> None:
        for hook in self._hooks:
            try:
                outcome = hook(RECORDS_VIEW)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                # The mutation already succeeded; a stale view is not a failure
                logger.warning("invalidation_hook_failed", hook=repr(hook), error=str(e))

    async def _run(
        self,
        operation: str,
        result_cls: Type[R],
        action: Callable[[CallerIdentity], Awaitable[R]],
        sync_user: bool = True,
    ) -> R:
        user_id = None
        try:
            identity = await self._require_identity()
            user_id = identity.user_id
            if sync_user:
                await self._ensure_user(identity)
            return await action(identity)
        except Exception as e:
            return await self._failure(operation, result_cls, e, user_id)

    async def _failure(
        self,
        operation: str,
        result_cls: Type[R],
        error: Exception,
        user_id: Optional[str],
    ) -> R:
        if isinstance(error, UnauthorizedError):
            if self._audit_logger:
                await self._audit_logger.log_unauthorized(operation)
            return result_cls.fail(ErrorKind.UNAUTHORIZED, str(error))

        if isinstance(error, (TransactionValidationError, ValidationError)):
            message = (
                _validation_message(error)
                if isinstance(error, ValidationError)
                else str(error)
            )
            if self._audit_logger and user_id:
                await self._audit_logger.log_validation_rejected(user_id, operation, message)
            return result_cls.fail(ErrorKind.VALIDATION, message)

        if isinstance(error, NotFoundError):
            return result_cls.fail(ErrorKind.NOT_FOUND, str(error))

        logger.error(
            "transaction_operation_failed",
            operation=operation,
            user_id=user_id,
            error=str(error),
            exc_info=True,
        )
        if self._audit_logger:
            await self._audit_logger.log_error(
                error_type=type(error).__name__,
                error_message=str(error),
                details={"operation": operation, "user_id": user_id},
            )
        return result_cls.fail(ErrorKind.INTERNAL, f"Failed to {operation}: {error}")

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def create(
        self,
        name: str,
        amount: Union[str, float],
        category: str,
        date: DateLike,
        correlation_id: Optional[UUID] = None,
    ) -> TransactionResult:
        """
        Create a transaction for the caller.

        Args:
            name: Description, trimmed before saving
            amount: Amount text, must parse to a finite number > 0
            category: One of the Category values
            date: Calendar date of the expense
        """
        async def action(identity: CallerIdentity) -> TransactionResult:
            form = TransactionForm(name=name, amount=amount, category=category, date=date)
            fields = self._validator.validate(form)
            record = await self._storage.create_transaction(
                user_id=identity.user_id,
                name=fields.name,
                amount=fields.amount,
                category=fields.category,
                date=fields.date,
            )
            if self._audit_logger:
                await self._audit_logger.log_transaction_created(
                    transaction_id=record.id,
                    user_id=identity.user_id,
                    category=record.category.value,
                    amount=str(fields.amount),
                    correlation_id=correlation_id,
                )
            await self._invalidate()
            return TransactionResult.ok(transaction=record)

        return await self._run("create transaction", TransactionResult, action)

    async def create_from_form(
        self,
        form: TransactionForm,
        correlation_id: Optional[UUID] = None,
    ) -> TransactionResult:
        return await self.create(
            name=form.name,
            amount=form.amount,
            category=form.category,
            date=form.date,
            correlation_id=correlation_id,
        )

    async def update(
        self,
        transaction_id: str,
        name: str,
        amount: Union[str, float],
        category: str,
        date: DateLike,
    ) -> TransactionResult:
        """
        Update one of the caller's transactions.

        A row that doesn't exist, or belongs to someone else, is a
        NOT_FOUND failure; nothing is changed.
        """
        async def action(identity: CallerIdentity) -> TransactionResult:
            form = TransactionForm(name=name, amount=amount, category=category, date=date)
            fields = self._validator.validate(form)
            record = await self._storage.update_transaction(
                transaction_id=transaction_id,
                user_id=identity.user_id,
                name=fields.name,
                amount=fields.amount,
                category=fields.category,
                date=fields.date,
            )
            if record is None:
                raise NotFoundError(NOT_FOUND_MESSAGE)
            if self._audit_logger:
                await self._audit_logger.log_transaction_updated(
                    transaction_id=record.id,
                    user_id=identity.user_id,
                    fields=["name", "amount", "category", "date"],
                )
            await self._invalidate()
            return TransactionResult.ok(transaction=record)

        return await self._run("update transaction", TransactionResult, action, sync_user=False)

    async def delete(self, transaction_id: str) -> ActionResult:
        """Delete one of the caller's transactions (NOT_FOUND if zero rows)."""
        async def action(identity: CallerIdentity) -> ActionResult:
            deleted = await self._storage.delete_transaction(transaction_id, identity.user_id)
            if not deleted:
                raise NotFoundError(NOT_FOUND_MESSAGE)
            if self._audit_logger:
                await self._audit_logger.log_transaction_deleted(transaction_id, identity.user_id)
            await self._invalidate()
            return ActionResult.ok()

        return await self._run("delete transaction", ActionResult, action, sync_user=False)

    async def list_transactions(self) -> TransactionListResult:
        """All of the caller's transactions, newest date first."""
        async def action(identity: CallerIdentity) -> TransactionListResult:
            records = await self._storage.list_transactions(identity.user_id)
            return TransactionListResult.ok(transactions=records)

        return await self._run("fetch transactions", TransactionListResult, action)

    async def monthly_total(self, reference: Optional[DateLike] = None) -> TotalResult:
        """
        Sum of the caller's amounts in the month containing `reference`
        (default today). 0 when the month is empty.
        """
        async def action(identity: CallerIdentity) -> TotalResult:
            first, last = month_bounds(_as_date(reference or self._today()))
            total = await self._storage.sum_amount(
                identity.user_id,
                datetime.combine(first, time.min),
                datetime.combine(last, time.max),
            )
            return TotalResult.ok(total=float(total))

        return await self._run("fetch monthly total", TotalResult, action)

    async def list_by_date_range(self, start: DateLike, end: DateLike) -> TransactionListResult:
        """
        Caller's transactions from the start of `start`'s day through the
        end of `end`'s day, newest date first.
        """
        async def action(identity: CallerIdentity) -> TransactionListResult:
            records = await self._storage.list_transactions(
                identity.user_id,
                date_from=datetime.combine(_as_date(start), time.min),
                date_to=datetime.combine(_as_date(end), time.max),
            )
            return TransactionListResult.ok(transactions=records)

        return await self._run("fetch transactions by date range", TransactionListResult, action)


class InvalidScanTransition(Exception):
    """A scan flow method was called in a state that doesn't allow it."""

    def __init__(self, current: ScanStep, target: ScanStep):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move receipt scan from {current.value} to {target.value}")


_SCAN_TRANSITIONS: dict[ScanStep, frozenset] = {
    ScanStep.CHOOSE: frozenset({ScanStep.CAPTURING, ScanStep.LOADING}),
    ScanStep.CAPTURING: frozenset({ScanStep.CHOOSE, ScanStep.LOADING}),
    ScanStep.LOADING: frozenset({ScanStep.CONFIRM, ScanStep.ERROR}),
    ScanStep.CONFIRM: frozenset(),
    ScanStep.ERROR: frozenset(),
}

# Failures that originate at the provider rather than in the input or reply
_PROVIDER_ERROR_KINDS = frozenset({
    ScanErrorKind.AUTHENTICATION,
    ScanErrorKind.QUOTA,
    ScanErrorKind.PERMISSION,
    ScanErrorKind.INVALID_ARGUMENT,
    ScanErrorKind.UNAVAILABLE,
    ScanErrorKind.UPSTREAM,
})


class ReceiptScanFlow:
    """
    Orchestrates one receipt scan attempt.

    Flow:
    1. choose    → user picks camera (capturing) or file upload (loading)
    2. capturing → photo taken (loading) or cancelled (choose)
    3. loading   → Gemini extraction; ends in confirm or error
    4. confirm   → user reviews/edits, then saves through TransactionService
    5. error     → user retries (back to choose)

    Human confirmation (step 4) is MANDATORY.
    The flow NEVER auto-saves.
    """

    def __init__(
        self,
        receipt_service: GeminiReceiptService,
        transaction_service: TransactionService,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._receipt_service = receipt_service
        self._transaction_service = transaction_service
        self._audit_logger = audit_logger
        self._reset_state()

    def _reset_state(self) -> None:
        self._step = ScanStep.CHOOSE
        self._fields: Optional[ReceiptFields] = None
        self._error: Optional[str] = None
        self._error_kind: Optional[ScanErrorKind] = None
        self._correlation_id = create_correlation_id()

    def _move(self, target: ScanStep) -> None:
        if target not in _SCAN_TRANSITIONS[self._step]:
            raise InvalidScanTransition(self._step, target)
        self._step = target

    @property
    def step(self) -> ScanStep:
        return self._step

    @property
    def fields(self) -> Optional[ReceiptFields]:
        return self._fields

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def error_kind(self) -> Optional[ScanErrorKind]:
        return self._error_kind

    @property
    def correlation_id(self) -> UUID:
        return self._correlation_id

    def begin_capture(self) -> None:
        self._move(ScanStep.CAPTURING)

    def cancel_capture(self) -> None:
        self._move(ScanStep.CHOOSE)

    def reset(self) -> None:
        """Back to choose from any state, discarding the previous attempt."""
        self._reset_state()

    async def submit(self, image: Union[ImagePayload, str]) -> ScanResult:
        """
        Run the extraction for a captured or uploaded image.

        Raises:
            InvalidScanTransition: If not in choose or capturing
        """
        self._move(ScanStep.LOADING)

        if self._audit_logger:
            if isinstance(image, ImagePayload):
                mime_type, size = image.mime_type, image.size_bytes
            else:
                mime_type, size = "data-url", len(image or "")
            await self._audit_logger.log_receipt_scan_started(
                mime_type=mime_type,
                size_bytes=size,
                correlation_id=self._correlation_id,
            )

        try:
            result = await self._receipt_service.scan(image)
        except Exception as e:
            logger.error("receipt_scan_crashed", error=str(e), exc_info=True)
            result = ScanResult.fail(ScanErrorKind.UPSTREAM, f"Scan failed: {e}")

        if result.success:
            self._fields = result.data
            self._move(ScanStep.CONFIRM)
            if self._audit_logger:
                await self._audit_logger.log_receipt_scan_completed(
                    category=result.data.category.value,
                    amount=result.data.amount,
                    correlation_id=self._correlation_id,
                )
        else:
            self._error = result.error
            self._error_kind = result.error_kind
            self._move(ScanStep.ERROR)
            if self._audit_logger:
                await self._audit_logger.log_receipt_scan_failed(
                    error_kind=result.error_kind.value if result.error_kind else "unknown",
                    error_message=result.error or "",
                    correlation_id=self._correlation_id,
                )
                if result.error_kind in _PROVIDER_ERROR_KINDS:
                    await self._audit_logger.log_external_service_error(
                        service="gemini",
                        error_message=result.error or "",
                        correlation_id=self._correlation_id,
                    )
        return result

    async def confirm_and_save(self, **overrides) -> TransactionResult:
        """
        Save the reviewed fields.

        CRITICAL: This is called ONLY after explicit user confirmation.

        Args:
            overrides: Fields the user edited (name, amount, category, date)

        Returns:
            The TransactionService result. On success the flow resets;
            on failure it stays in confirm so the user can fix the fields.

        Raises:
            InvalidScanTransition: If there is nothing to confirm
        """
        if self._step != ScanStep.CONFIRM or self._fields is None:
            raise InvalidScanTransition(self._step, ScanStep.CONFIRM)

        try:
            form = self._fields.to_form(**overrides)
        except ValidationError as e:
            return TransactionResult.fail(ErrorKind.VALIDATION, _validation_message(e))

        result = await self._transaction_service.create_from_form(
            form,
            correlation_id=self._correlation_id,
        )
        if result.success:
            self._reset_state()
        return result


def create_app_components(
    auth_provider: AuthProvider,
    database_url: Optional[str] = None,
    invalidation_hooks: Optional[Iterable[InvalidationHook]] = None,
    receipt_service: Optional[GeminiReceiptService] = None,
) -> tuple[TransactionService, Callable[[], ReceiptScanFlow], SqlTransactionStorage]:
    """
    Factory function to create all application components.

    Args:
        auth_provider: Resolves the caller for each operation
        database_url: Overrides DATABASE_URL
        invalidation_hooks: Fired after each successful mutation
        receipt_service: Overrides the settings-built Gemini service

    Returns:
        (transaction_service, new_scan_flow, storage). new_scan_flow
        builds a ReceiptScanFlow sharing the service's audit logger.
    """
    audit_logger = AuditLogger()

    storage = SqlTransactionStorage(url=database_url)
    storage.initialize()

    transaction_service = TransactionService(
        storage=storage,
        auth=auth_provider,
        audit_logger=audit_logger,
        invalidation_hooks=invalidation_hooks,
    )
    receipt_service = receipt_service or GeminiReceiptService()

    def new_scan_flow() -> ReceiptScanFlow:
        return ReceiptScanFlow(receipt_service, transaction_service, audit_logger=audit_logger)

    return transaction_service, new_scan_flow, storage
