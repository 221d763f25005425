from datetime import UTC, date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from src.domain.months import month_start, month_window, next_month, parse_month, round_money


class TestRoundMoney:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("96.765", "96.77"),
            ("96.7649", "96.76"),
            ("0.005", "0.01"),
            ("1750", "1750.00"),
        ],
    )
    def test_half_up(self, value, expected):
        assert round_money(Decimal(value)) == Decimal(expected)
        assert str(round_money(Decimal(value))) == expected


class TestMonthWindow:
    def test_april(self):
        window = month_window(date(2026, 4, 17))
        assert window.start == date(2026, 4, 1)
        assert window.end == date(2026, 4, 30)
        assert window.days == 30
        assert window.label == "2026-04"

    def test_leap_february(self):
        assert month_window(date(2028, 2, 10)).days == 29
        assert month_window(date(2026, 2, 10)).days == 28

    def test_december_rolls_year(self):
        window = month_window(date(2026, 12, 5))
        assert window.end_utc == datetime(2027, 1, 1, tzinfo=UTC)
        assert next_month(date(2026, 12, 1)) == date(2027, 1, 1)

    def test_contains_is_half_open(self):
        window = month_window(date(2026, 4, 1))
        assert window.contains(datetime(2026, 4, 1, tzinfo=UTC))
        assert window.contains(datetime(2026, 4, 30, 23, 59, 59, tzinfo=UTC))
        assert not window.contains(datetime(2026, 5, 1, tzinfo=UTC))
        # Naive instants are read as UTC
        assert window.contains(datetime(2026, 4, 15))
        # 00:30 on May 1st at +01:00 is still April in UTC
        assert window.contains(datetime(2026, 5, 1, 0, 30, tzinfo=timezone(timedelta(hours=1))))

    def test_month_start_of_datetime(self):
        assert month_start(datetime(2026, 4, 30, 23, 0, tzinfo=UTC)) == date(2026, 4, 1)


class TestParseMonth:
    @pytest.mark.parametrize(
        "raw",
        ["2026-04", "2026-04-01", "2026-04-30", "2026-04-15T10:00:00", "2026-04-15T10:00:00Z", " 2026-04 "],
    )
    def test_accepted_forms(self, raw):
        assert parse_month(raw) == date(2026, 4, 1)

    @pytest.mark.parametrize("raw", ["", "2026", "2026-13", "April", "2026/04", "2026-04-31"])
    def test_rejected_forms(self, raw):
        with pytest.raises(ValueError):
            parse_month(raw)
