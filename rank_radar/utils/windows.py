from __future__ import annotations
"""
Centralized window logic for GSC rank syncing.
Keeps every sync window clear of days GSC has not finalized.
"""

import calendar
from datetime import date, timedelta
from typing import Tuple
from rank_radar.config.date_windows import (
    GSC_LAG_DAYS,
    INCREMENTAL_SAFETY_DAYS,
    DEFAULT_BACKFILL_MONTHS,
)


def subtract_months(day: date, months: int) -> date:
    """
    Move back a number of calendar months.
    The day of month is clamped, so May 31 minus 3 months is Feb 28 (or 29).
    """
    month_index = day.year * 12 + (day.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def backfill_window(today: date, months: int = DEFAULT_BACKFILL_MONTHS) -> Tuple[date, date]:
    """
    On-demand / first-run window.
    end = today - GSC_LAG_DAYS, start = end - months.
    """
    if isinstance(months, bool) or not isinstance(months, int) or months <= 0:
        raise ValueError(f"months must be a positive integer, got {months!r}")

    end_date = today - timedelta(days=GSC_LAG_DAYS)
    start_date = subtract_months(end_date, months)
    return start_date, end_date


def incremental_window(today: date) -> Tuple[date, date]:
    """Single most recently finalized day, with one day of extra margin."""
    target = today - timedelta(days=GSC_LAG_DAYS + INCREMENTAL_SAFETY_DAYS)
    return target, target
