"""
Calendar-month windows used by the settlement calculators.

A settlement month is keyed by its first day. Subscriptions are compared at
day precision, engagement events at instant precision against a half-open
UTC window.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import UTC, date, datetime, time
from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")


def round_money(value: Decimal) -> Decimal:
    """Round to two decimals, half up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class MonthWindow:
    """Inclusive day range and half-open instant range of one calendar month."""

    start: date
    end: date

    @property
    def days(self) -> int:
        return self.end.day

    @property
    def start_utc(self) -> datetime:
        return datetime.combine(self.start, time.min, tzinfo=UTC)

    @property
    def end_utc(self) -> datetime:
        """First instant of the following month (exclusive bound)."""
        return datetime.combine(next_month(self.start), time.min, tzinfo=UTC)

    @property
    def label(self) -> str:
        return self.start.strftime("%Y-%m")

    def contains(self, instant: datetime) -> bool:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=UTC)
        return self.start_utc <= instant < self.end_utc


def month_start(value: date | datetime) -> date:
    if isinstance(value, datetime):
        value = value.date()
    return value.replace(day=1)


def next_month(value: date) -> date:
    if value.month == 12:
        return date(value.year + 1, 1, 1)
    return date(value.year, value.month + 1, 1)


def month_window(value: date | datetime) -> MonthWindow:
    start = month_start(value)
    last_day = calendar.monthrange(start.year, start.month)[1]
    return MonthWindow(start=start, end=start.replace(day=last_day))


def parse_month(raw: str) -> date:
    """
    Parse a month parameter into its first day.

    Accepts "YYYY-MM", "YYYY-MM-DD" or a full ISO timestamp ("...T...").
    Raises ValueError for anything else.
    """
    raw = raw.strip()
    if not raw:
        raise ValueError("Month parameter is empty")

    if "T" in raw:
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        return month_start(datetime.fromisoformat(raw))

    parts = raw.split("-")
    if len(parts) == 2:
        year, month = int(parts[0]), int(parts[1])
        return date(year, month, 1)
    if len(parts) == 3:
        return month_start(date.fromisoformat(raw))

    raise ValueError(f"Invalid month format: {raw}")
