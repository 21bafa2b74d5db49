"""Validation package."""

from src.validation.validator import (
    INVALID_AMOUNT_MESSAGE,
    TransactionValidationError,
    TransactionValidator,
    ValidatedTransaction,
)

__all__ = [
    "INVALID_AMOUNT_MESSAGE",
    "TransactionValidationError",
    "TransactionValidator",
    "ValidatedTransaction",
]
