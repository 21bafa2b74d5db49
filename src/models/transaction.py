"""
Core Data Models for Expense Tracker

These models define the schemas for all data flowing through the system.
They are designed to:
1. Enforce type safety at runtime
2. Be serializable for the UI and for logging
3. Keep storage types (Decimal, ORM rows) away from the client

Operation results are models too: service operations never raise past
their boundary, they return one of the *Result models below.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class Category(str, Enum):
    """
    Closed set of expense categories.

    Manual entry rejects anything outside this set. The receipt path
    coerces unknown values to OTHER instead.
    """
    FOOD = "Food"
    GROCERIES = "Groceries"
    TRANSPORTATION = "Transportation"
    INTERNET = "Internet"
    HEALTH = "Health"
    SPORT = "Sport"
    SHOPPING = "Shopping"
    ENTERTAINMENT = "Entertainment"
    BAD_HABITS = "BadHabits"
    OTHER = "Other"

    @property
    def label(self) -> str:
        """Display label ("Bad Habits" rather than "BadHabits")."""
        if self is Category.BAD_HABITS:
            return "Bad Habits"
        return self.value

    @classmethod
    def values(cls) -> list[str]:
        return [c.value for c in cls]

    @classmethod
    def lookup(cls, value: object) -> Optional["Category"]:
        """Return the category whose value is exactly `value`, else None."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


class ErrorKind(str, Enum):
    """Why an operation failed. Lets callers branch without parsing messages."""
    UNAUTHORIZED = "unauthorized"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    UPSTREAM = "upstream"
    INTERNAL = "internal"


# =============================================================================
# INPUT
# =============================================================================

class TransactionForm(BaseModel):
    """
    Raw transaction fields as submitted by the user.

    Amount and category stay as text here. Parsing and whitelisting
    happen in TransactionValidator so the failure messages are uniform.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(
        ...,
        max_length=200,
        description="What the money was spent on"
    )
    amount: str = Field(
        ...,
        description="Amount as entered, e.g. '4.50'"
    )
    category: str = Field(
        ...,
        description="One of the Category values"
    )
    date: datetime = Field(
        ...,
        description="Calendar date of the expense"
    )

    @field_validator('amount', mode='before')
    @classmethod
    def amount_to_text(cls, v):
        """Numbers are accepted and kept in their textual form."""
        if isinstance(v, bool):
            return str(v)
        if isinstance(v, (int, float)):
            return repr(v) if isinstance(v, float) else str(v)
        return v

    @field_validator('category', mode='before')
    @classmethod
    def category_to_text(cls, v):
        if isinstance(v, Category):
            return v.value
        return v

    @field_validator('date', mode='before')
    @classmethod
    def date_to_datetime(cls, v):
        """A bare date becomes midnight of that day."""
        if isinstance(v, date) and not isinstance(v, datetime):
            return datetime(v.year, v.month, v.day)
        return v


# =============================================================================
# CLIENT-SAFE RECORDS
# =============================================================================

class TransactionRecord(BaseModel):
    """
    A stored transaction in client-safe form.

    Amount is a plain float and every timestamp is a datetime, so the
    record can go straight to the UI or to json.
    """

    id: str
    user_id: str
    name: str
    amount: float = Field(..., gt=0)
    category: Category
    date: datetime
    created_at: datetime
    updated_at: datetime

    @property
    def day(self) -> date:
        return self.date.date()


class UserRecord(BaseModel):
    """Application user, mirrored from the auth provider profile."""

    id: str
    email: str
    name: Optional[str] = None
    currency: str = "USD"
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


# =============================================================================
# OPERATION RESULTS
# =============================================================================

class ActionFailed(Exception):
    """A failed ActionResult raised as an exception."""

    def __init__(self, kind: Optional[ErrorKind], message: str):
        self.kind = kind
        self.message = message
        super().__init__(message)


class ActionResult(BaseModel):
    """
    Uniform result shape: success flag plus an error message on failure.
    """

    success: bool
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    @classmethod
    def ok(cls, **payload):
        return cls(success=True, **payload)

    @classmethod
    def fail(cls, kind: ErrorKind, message: str):
        return cls(success=False, error=message, error_kind=kind)

    def raise_for_error(self) -> None:
        """
        Raises:
            ActionFailed: If the operation did not succeed
        """
        if not self.success:
            raise ActionFailed(self.error_kind, self.error or "")


class TransactionResult(ActionResult):
    transaction: Optional[TransactionRecord] = None


class TransactionListResult(ActionResult):
    transactions: list[TransactionRecord] = Field(default_factory=list)


class TotalResult(ActionResult):
    total: float = 0.0


