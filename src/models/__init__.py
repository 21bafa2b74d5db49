"""
Data Models Package

This package contains all Pydantic models used in the Expense Tracker.
All data flowing through the system must conform to these schemas.
"""

from src.models.transaction import (
    ActionFailed,
    ActionResult,
    Category,
    ErrorKind,
    TransactionForm,
    TransactionListResult,
    TransactionRecord,
    TransactionResult,
    TotalResult,
    UserRecord,
    utcnow,
)
from src.models.receipt import (
    ImagePayload,
    ParsedError,
    ParsedOk,
    ParsedReceipt,
    ReceiptFields,
    ScanErrorKind,
    ScanResult,
    ScanStep,
)
from src.models.report import (
    CategoryTotal,
    DailyGroup,
    ReportPeriod,
    SpendingReport,
    TrendGranularity,
    TrendPoint,
)
from src.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Transaction models
    "ActionFailed",
    "ActionResult",
    "Category",
    "ErrorKind",
    "TransactionForm",
    "TransactionListResult",
    "TransactionRecord",
    "TransactionResult",
    "TotalResult",
    "UserRecord",
    "utcnow",
    # Receipt models
    "ImagePayload",
    "ParsedError",
    "ParsedOk",
    "ParsedReceipt",
    "ReceiptFields",
    "ScanErrorKind",
    "ScanResult",
    "ScanStep",
    # Report models
    "CategoryTotal",
    "DailyGroup",
    "ReportPeriod",
    "SpendingReport",
    "TrendGranularity",
    "TrendPoint",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
