"""
Audit Logger

Every significant action in the system is logged: each mutation, each
user sync, each receipt scan and every failure the service turns into
an error result.

The audit logger:
- Is async so it can sit inline in the async service flows
- Never raises: a logging failure must not fail the user's operation
- Supports correlation IDs to tie a receipt scan to the save that follows
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from src.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Events go to the structured log at the level matching their severity.
    """

    def __init__(self, logger_name: str = "expense_tracker.audit"):
        self._logger = structlog.get_logger(logger_name)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns True if the event was written.
        """
        log_dict = event.to_log_dict()
        try:
            if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
                self._logger.error("audit_event", **log_dict)
            elif event.severity == AuditSeverity.WARNING:
                self._logger.warning("audit_event", **log_dict)
            elif event.severity == AuditSeverity.DEBUG:
                self._logger.debug("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except Exception as e:
            # Logging must never break the caller
            self._logger.error(
                "audit_log_failed",
                error=str(e),
                event_id=str(event.event_id),
            )
            return False
        return True

    async def log_transaction_created(
        self,
        transaction_id: str,
        user_id: str,
        category: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log transaction creation."""
        await self.log(AuditEventBuilder.transaction_created(
            transaction_id=transaction_id,
            user_id=user_id,
            category=category,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_transaction_updated(
        self,
        transaction_id: str,
        user_id: str,
        fields: list[str],
    ) -> None:
        await self.log(AuditEventBuilder.transaction_updated(
            transaction_id=transaction_id,
            user_id=user_id,
            fields=fields,
        ))

    async def log_transaction_deleted(self, transaction_id: str, user_id: str) -> None:
        await self.log(AuditEventBuilder.transaction_deleted(
            transaction_id=transaction_id,
            user_id=user_id,
        ))

    async def log_validation_rejected(
        self,
        user_id: str,
        operation: str,
        message: str,
    ) -> None:
        """Log a form the validator refused."""
        await self.log(AuditEventBuilder.validation_rejected(
            user_id=user_id,
            operation=operation,
            message=message,
        ))

    async def log_user_synced(self, user_id: str, email: str) -> None:
        await self.log(AuditEventBuilder.user_synced(user_id=user_id, email=email))

    async def log_unauthorized(self, operation: str) -> None:
        await self.log(AuditEventBuilder.unauthorized_access(operation=operation))

    async def log_receipt_scan_started(
        self,
        mime_type: str,
        size_bytes: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.receipt_scan_started(
            mime_type=mime_type,
            size_bytes=size_bytes,
            correlation_id=correlation_id,
        ))

    async def log_receipt_scan_completed(
        self,
        category: str,
        amount: float,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.receipt_scan_completed(
            category=category,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_receipt_scan_failed(
        self,
        error_kind: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.receipt_scan_failed(
            error_kind=error_kind,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., a receipt scan).
    Pass it through all subsequent operations.
    """
    return uuid4()
