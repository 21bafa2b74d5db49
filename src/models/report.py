"""
Reporting Models

Derived, never stored: every value here is recomputed from the
transaction list for the window being viewed.
"""

from datetime import date
from enum import Enum

from pydantic import BaseModel, Field

from src.models.transaction import Category, TransactionRecord


class ReportPeriod(str, Enum):
    """Preset report windows."""
    THIS_MONTH = "thisMonth"
    LAST_3_MONTHS = "last3Months"
    THIS_YEAR = "thisYear"
    CUSTOM = "custom"


class TrendGranularity(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class CategoryTotal(BaseModel):
    category: Category
    total: float

    @property
    def label(self) -> str:
        return self.category.label


class TrendPoint(BaseModel):
    """One bucket of the trend series: [start, next bucket start)."""

    label: str
    start: date
    total: float = 0.0


class DailyGroup(BaseModel):
    """Transactions of one calendar day, as shown in the records list."""

    day: date
    transactions: list[TransactionRecord] = Field(default_factory=list)
    total: float = 0.0


class SpendingReport(BaseModel):
    """Everything the reports page shows for one window."""

    start: date
    end: date
    total: float = 0.0
    transaction_count: int = 0
    granularity: TrendGranularity
    category_breakdown: list[CategoryTotal] = Field(default_factory=list)
    trend: list[TrendPoint] = Field(default_factory=list)
    top_expenses: list[TransactionRecord] = Field(default_factory=list)
