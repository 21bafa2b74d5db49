"""
Abstract Storage Interface

Business logic talks to storage only through this interface, so the
SQLAlchemy backend can be swapped (or replaced with an in-memory one
in tests) without touching the transaction service.

Every transaction operation is scoped by owner id. A caller can never
read or mutate another user's rows through this interface.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Optional

from src.models.transaction import Category, TransactionRecord, UserRecord


class TransactionStorageInterface(ABC):
    """
    Abstract interface for user and transaction storage.
    """

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    @abstractmethod
    async def upsert_user(
        self,
        user_id: str,
        email: str,
        name: Optional[str],
        default_currency: str = "USD",
    ) -> UserRecord:
        """
        Create the user, or refresh email/name if it already exists.

        The currency of an existing user is left untouched.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        pass

    @abstractmethod
    async def delete_user(self, user_id: str) -> bool:
        """
        Delete a user and, by cascade, all of their transactions.

        Returns:
            True if a user was deleted
        """
        pass

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @abstractmethod
    async def create_transaction(
        self,
        user_id: str,
        name: str,
        amount: Decimal,
        category: Category,
        date: datetime,
    ) -> TransactionRecord:
        """
        Insert a transaction owned by `user_id`.

        Raises:
            StorageError: If the insert fails
        """
        pass

    @abstractmethod
    async def update_transaction(
        self,
        transaction_id: str,
        user_id: str,
        name: str,
        amount: Decimal,
        category: Category,
        date: datetime,
    ) -> Optional[TransactionRecord]:
        """
        Update a transaction matching BOTH id and owner.

        Returns:
            The updated record, or None if no row matched
        """
        pass

    @abstractmethod
    async def delete_transaction(self, transaction_id: str, user_id: str) -> bool:
        """
        Delete a transaction matching BOTH id and owner.

        Returns:
            True if a row was deleted
        """
        pass

    @abstractmethod
    async def list_transactions(
        self,
        user_id: str,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> list[TransactionRecord]:
        """
        List the owner's transactions, newest date first.

        Args:
            user_id: Owner
            date_from: Inclusive lower bound on `date`
            date_to: Inclusive upper bound on `date`
        """
        pass

    @abstractmethod
    async def sum_amount(
        self,
        user_id: str,
        date_from: datetime,
        date_to: datetime,
    ) -> Decimal:
        """
        Sum the owner's amounts with `date` in [date_from, date_to].

        Returns:
            The sum, Decimal("0") when nothing matches
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
