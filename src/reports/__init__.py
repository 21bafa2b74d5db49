"""Spending reports package."""

from src.reports.aggregation import (
    build_report,
    category_breakdown,
    choose_granularity,
    filter_by_window,
    group_by_day,
    matches_search,
    month_bounds,
    months_spanned,
    report_window,
    top_expenses,
    total_spending,
    trend_series,
)

__all__ = [
    "build_report",
    "category_breakdown",
    "choose_granularity",
    "filter_by_window",
    "group_by_day",
    "matches_search",
    "month_bounds",
    "months_spanned",
    "report_window",
    "top_expenses",
    "total_spending",
    "trend_series",
]
