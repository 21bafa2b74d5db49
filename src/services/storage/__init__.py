"""
Storage Services Package

Provides the abstract storage interface and the SQLAlchemy implementation.
"""

from src.services.storage.interface import (
    ConnectionError,
    NotFoundError,
    StorageError,
    TransactionStorageInterface,
)
from src.services.storage.sql_storage import (
    Base,
    SqlTransactionStorage,
    TransactionRow,
    UserRow,
)

__all__ = [
    # Interface
    "TransactionStorageInterface",
    # Exceptions
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    # SQLAlchemy implementation
    "Base",
    "SqlTransactionStorage",
    "TransactionRow",
    "UserRow",
]
