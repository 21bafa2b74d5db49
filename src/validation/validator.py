"""
Transaction Field Validation

Turns a raw TransactionForm into values safe to persist:
- amount text -> Decimal, finite and strictly positive
- category text -> a member of the closed Category set
- name -> trimmed, non-empty

IMPORTANT: Validation NEVER silently fixes issues on the manual path.
An unknown category is rejected here; only the receipt path coerces
unknown categories to Other, and it does so before the form is built.
"""

from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from pydantic import BaseModel

from src.models.transaction import Category, TransactionForm


INVALID_AMOUNT_MESSAGE = "Invalid amount: Please enter a valid positive number"
EMPTY_NAME_MESSAGE = "Invalid name: Please enter a transaction name"
MAX_AMOUNT = Decimal("9999999999.99")


class ValidatedTransaction(BaseModel):
    """Normalized fields, ready for storage."""

    name: str
    amount: Decimal
    category: Category
    date: datetime


class TransactionValidationError(Exception):
    """A submitted field failed validation. The message is user-facing."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)


class TransactionValidator:
    """
    Validates transaction forms before they reach storage.

    Checks run in a fixed order (amount, category, name) and the first
    failure wins, so the user sees one message at a time.
    """

    def parse_amount(self, raw: str) -> Decimal:
        """
        Parse amount text.

        Raises:
            TransactionValidationError: Unless the text is a finite number > 0
        """
        try:
            amount = Decimal(str(raw).strip())
        except (InvalidOperation, ValueError):
            raise TransactionValidationError("amount", INVALID_AMOUNT_MESSAGE)

        if not amount.is_finite() or amount <= 0 or amount > MAX_AMOUNT:
            raise TransactionValidationError("amount", INVALID_AMOUNT_MESSAGE)

        quantized = amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        if quantized <= 0:
            # e.g. "0.001" rounds to zero cents
            raise TransactionValidationError("amount", INVALID_AMOUNT_MESSAGE)
        return quantized

    def parse_category(self, raw: str) -> Category:
        category = Category.lookup(raw)
        if category is None:
            raise TransactionValidationError("category", f"Invalid category: {raw}")
        return category

    def parse_name(self, raw: str) -> str:
        name = (raw or "").strip()
        if not name:
            raise TransactionValidationError("name", EMPTY_NAME_MESSAGE)
        return name

    def validate(self, form: TransactionForm) -> ValidatedTransaction:
        """
        Validate a whole form.

        Raises:
            TransactionValidationError: On the first invalid field
        """
        amount = self.parse_amount(form.amount)
        category = self.parse_category(form.category)
        name = self.parse_name(form.name)
        return ValidatedTransaction(
            name=name,
            amount=amount,
            category=category,
            date=form.date,
        )
