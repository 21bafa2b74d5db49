"""Services package."""

from src.services.receipt import (
    ErrorClassifier,
    ErrorRule,
    GeminiReceiptService,
    ReceiptScanError,
)
from src.services.storage import (
    ConnectionError,
    NotFoundError,
    SqlTransactionStorage,
    StorageError,
    TransactionStorageInterface,
)

__all__ = [
    # Receipt extraction
    "ErrorClassifier",
    "ErrorRule",
    "GeminiReceiptService",
    "ReceiptScanError",
    # Storage services
    "ConnectionError",
    "NotFoundError",
    "SqlTransactionStorage",
    "StorageError",
    "TransactionStorageInterface",
]
