"""
Spending Aggregation

Pure functions over a list of TransactionRecord and a date window.
Nothing here touches storage or holds state between calls; the
reports and records pages recompute everything on every view.

This module handles:
1. Category breakdown (sum per category, largest first)
2. Trend series (day / week / month buckets chosen from the window)
3. Top expenses and totals
4. Records view grouping by day, with search
5. Report windows for the preset periods

Amounts are summed as Decimal so totals of two-decimal amounts stay
exact, then handed back as float.
"""

from bisect import bisect_right
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from dateutil.relativedelta import relativedelta

from src.models.report import (
    CategoryTotal,
    DailyGroup,
    ReportPeriod,
    SpendingReport,
    TrendGranularity,
    TrendPoint,
)
from src.models.transaction import Category, TransactionRecord


DEFAULT_TOP_EXPENSES = 10


def _sum_amounts(amounts: Iterable[float]) -> Decimal:
    return sum((Decimal(str(amount)) for amount in amounts), Decimal("0"))


def _in_window(txn: TransactionRecord, start: date, end: date) -> bool:
    return start <= txn.day <= end


def filter_by_window(
    transactions: Iterable[TransactionRecord],
    start: date,
    end: date,
) -> list[TransactionRecord]:
    """Keep transactions whose calendar day is within [start, end]."""
    return [txn for txn in transactions if _in_window(txn, start, end)]


# =============================================================================
# TOTALS
# =============================================================================

def total_spending(transactions: Iterable[TransactionRecord]) -> float:
    """Sum of all amounts; 0.0 for an empty list."""
    return float(_sum_amounts(txn.amount for txn in transactions))


def category_breakdown(transactions: Iterable[TransactionRecord]) -> list[CategoryTotal]:
    """
    Sum amounts per category, largest total first.

    Categories without transactions are absent, not reported as zero.
    """
    totals: dict[Category, Decimal] = {}
    for txn in transactions:
        totals[txn.category] = totals.get(txn.category, Decimal("0")) + Decimal(str(txn.amount))

    ordered = sorted(totals.items(), key=lambda item: item[1], reverse=True)
    return [CategoryTotal(category=category, total=float(total)) for category, total in ordered]


def top_expenses(
    transactions: Sequence[TransactionRecord],
    limit: int = DEFAULT_TOP_EXPENSES,
) -> list[TransactionRecord]:
    """Largest amounts first; equal amounts keep their input order."""
    return sorted(transactions, key=lambda txn: txn.amount, reverse=True)[:limit]


# =============================================================================
# TREND SERIES
# =============================================================================

def months_spanned(start: date, end: date) -> int:
    """Number of calendar months touched by [start, end]."""
    return (end.year - start.year) * 12 + end.month - start.month + 1


def choose_granularity(start: date, end: date) -> TrendGranularity:
    """
    Bucket size for a window: one month -> days, up to three -> weeks,
    anything longer -> months.
    """
    months = months_spanned(start, end)
    if months <= 1:
        return TrendGranularity.DAY
    if months <= 3:
        return TrendGranularity.WEEK
    return TrendGranularity.MONTH


def _week_start(day: date) -> date:
    # Weeks start on Sunday
    return day - timedelta(days=(day.weekday() + 1) % 7)


def _bucket_starts(start: date, end: date, granularity: TrendGranularity) -> list[date]:
    if granularity == TrendGranularity.DAY:
        step = relativedelta(days=1)
        current = start
    elif granularity == TrendGranularity.WEEK:
        step = relativedelta(weeks=1)
        current = _week_start(start)
    else:
        step = relativedelta(months=1)
        current = start.replace(day=1)

    starts = []
    while current <= end:
        starts.append(current)
        current = current + step
    return starts


def _bucket_label(bucket_start: date, granularity: TrendGranularity) -> str:
    if granularity == TrendGranularity.MONTH:
        return f"{bucket_start:%b %Y}"
    return f"{bucket_start:%b} {bucket_start.day}"


def trend_series(
    transactions: Iterable[TransactionRecord],
    start: date,
    end: date,
    granularity: Optional[TrendGranularity] = None,
) -> list[TrendPoint]:
    """
    Spending per bucket across [start, end].

    Each bucket covers [bucket_start, next_bucket_start). Every bucket
    is reported, empty ones as 0, so the axis has no gaps. Only
    transactions inside the window are counted, so the bucket totals
    add up to the window total.
    """
    if start > end:
        raise ValueError(f"Window start {start} is after end {end}")

    granularity = granularity or choose_granularity(start, end)
    starts = _bucket_starts(start, end, granularity)
    sums = [Decimal("0")] * len(starts)

    for txn in transactions:
        if not _in_window(txn, start, end):
            continue
        index = bisect_right(starts, txn.day) - 1
        if index >= 0:
            sums[index] += Decimal(str(txn.amount))

    return [
        TrendPoint(
            label=_bucket_label(bucket_start, granularity),
            start=bucket_start,
            total=float(bucket_sum),
        )
        for bucket_start, bucket_sum in zip(starts, sums)
    ]


# =============================================================================
# RECORDS VIEW
# =============================================================================

def matches_search(txn: TransactionRecord, search: str) -> bool:
    """Case-insensitive substring match on name or category."""
    needle = search.strip().lower()
    if not needle:
        return True
    haystacks = (txn.name, txn.category.value, txn.category.label)
    return any(needle in text.lower() for text in haystacks)


def group_by_day(
    transactions: Iterable[TransactionRecord],
    search: str = "",
) -> list[DailyGroup]:
    """
    Group transactions by calendar day, newest day first.

    Within a day the input order is kept. `search` filters before grouping.
    """
    groups: dict[date, list[TransactionRecord]] = {}
    for txn in transactions:
        if matches_search(txn, search):
            groups.setdefault(txn.day, []).append(txn)

    return [
        DailyGroup(
            day=day,
            transactions=groups[day],
            total=total_spending(groups[day]),
        )
        for day in sorted(groups, reverse=True)
    ]


# =============================================================================
# REPORT WINDOWS
# =============================================================================

def month_bounds(reference: date) -> tuple[date, date]:
    """First and last calendar day of the month containing `reference`."""
    first = reference.replace(day=1)
    last = first + relativedelta(months=1) - timedelta(days=1)
    return first, last


def report_window(
    period: ReportPeriod,
    today: Optional[date] = None,
    custom_start: Optional[date] = None,
    custom_end: Optional[date] = None,
) -> tuple[date, date]:
    """
    Inclusive (start, end) for a preset period.

    Raises:
        ValueError: If a custom range starts after it ends
    """
    today = today or date.today()
    period = ReportPeriod(period)

    if period == ReportPeriod.THIS_MONTH:
        return month_bounds(today)

    if period == ReportPeriod.LAST_3_MONTHS:
        first, _ = month_bounds(today - relativedelta(months=2))
        _, last = month_bounds(today)
        return first, last

    if period == ReportPeriod.THIS_YEAR:
        return date(today.year, 1, 1), date(today.year, 12, 31)

    start = custom_start or today
    end = custom_end or today
    if start > end:
        raise ValueError(f"Custom range start {start} is after end {end}")
    return start, end


def build_report(
    transactions: Iterable[TransactionRecord],
    start: date,
    end: date,
    top_limit: int = DEFAULT_TOP_EXPENSES,
) -> SpendingReport:
    """Everything the reports page needs for one window."""
    in_window = filter_by_window(transactions, start, end)
    granularity = choose_granularity(start, end)

    return SpendingReport(
        start=start,
        end=end,
        total=total_spending(in_window),
        transaction_count=len(in_window),
        granularity=granularity,
        category_breakdown=category_breakdown(in_window),
        trend=trend_series(in_window, start, end, granularity),
        top_expenses=top_expenses(in_window, top_limit),
    )
