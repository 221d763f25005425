"""
Ledger and calculation invariants, checked end to end over SQLite.
"""

import sqlite3
from datetime import UTC, date, datetime
from decimal import Decimal

import pytest

from src.app_shell.context import SettlementContext
from src.domain.entities import (
    Download,
    EducatorEarning,
    LiveAttendance,
    MediaPlay,
    MonthlySettlement,
    Subscription,
)
from src.domain.errors import InsufficientBalanceError

APRIL = date(2026, 4, 1)
IN_APRIL = datetime(2026, 4, 12, 15, 0, tzinfo=UTC)


def snapshot(db_path: str) -> dict[str, list[tuple]]:
    """Full contents of the ledger tables, for before/after comparison."""
    conn = sqlite3.connect(db_path)
    try:
        return {
            table: conn.execute(f"SELECT * FROM {table} ORDER BY id").fetchall()
            for table in ("monthly_settlements", "educator_earnings", "withdrawals")
        }
    finally:
        conn.close()


def seed_finalized(ctx: SettlementContext, user_id: str, balances: dict[date, str]) -> None:
    for month, amount in balances.items():
        settlement = ctx.ledger.save_settlement(
            MonthlySettlement(month=month, status="finalized", point_value=Decimal("1"))
        )
        ctx.ledger.save_earning(
            EducatorEarning(
                user_id=user_id,
                settlement_id=settlement.id,
                points=Decimal(amount),
                earnings=Decimal(amount),
                available_balance=Decimal(amount),
            )
        )


# --- Revenue ---


def test_no_subscriptions_no_revenue(ctx: SettlementContext):
    revenue = ctx.engine.revenue.compute_monthly_revenue(APRIL)
    assert revenue.total_revenue == Decimal("0")
    assert revenue.subscriber_count == 0


def test_full_month_contributes_plan_price(ctx: SettlementContext):
    ctx.subscriptions.save(
        Subscription(user_id="u", start_date=date(2026, 3, 20), expiry_date=date(2026, 5, 20),
                     plan_price=Decimal("1500"))
    )
    assert ctx.engine.revenue.compute_monthly_revenue(APRIL).total_revenue == Decimal("1500.00")


@pytest.mark.parametrize("month", [date(2026, 2, 1), date(2026, 4, 1), date(2026, 7, 1)])
@pytest.mark.parametrize("day", [1, 2, 15, 28])
def test_start_day_proration(ctx: SettlementContext, month: date, day: int):
    window_days = {2: 28, 4: 30, 7: 31}[month.month]
    ctx.subscriptions.save(
        Subscription(user_id="u", start_date=month.replace(day=day),
                     expiry_date=date(2026, 12, 31), plan_price=Decimal("1000"))
    )

    total = ctx.engine.revenue.compute_monthly_revenue(month).total_revenue

    expected = Decimal("1000") * (window_days - day + 1) / window_days
    assert abs(total - expected) <= Decimal("0.01")


def test_distributable_share(ctx: SettlementContext):
    assert ctx.engine.revenue.compute_distributable_revenue(Decimal("1000.00")) == Decimal("700.00")


# --- Points ---


@pytest.mark.parametrize("ratio,points", [("0.2999", "0"), ("0.30", "0.20"), ("0.95", "0.20")])
def test_watch_ratio_threshold(ctx: SettlementContext, ratio: str, points: str):
    ctx.events.record(
        MediaPlay(actor_id="l", owner_id="e", timestamp=IN_APRIL, watch_ratio=Decimal(ratio))
    )
    assert ctx.engine.points.compute_total_points_for_month(APRIL).total_points == Decimal(points)


def test_self_activity_excluded_everywhere(ctx: SettlementContext):
    ctx.events.record(Download(actor_id="e", owner_id="e", timestamp=IN_APRIL))
    ctx.events.record(LiveAttendance(actor_id="e", owner_id="e", timestamp=IN_APRIL))
    ctx.events.record(Download(actor_id="l", owner_id="e", timestamp=IN_APRIL))

    points = ctx.engine.points
    assert points.compute_total_points_for_month(APRIL).total_points == Decimal("3.00")
    assert points.compute_educator_points_for_month("e", APRIL).total_points == Decimal("3.00")


def test_zero_points_zero_point_value(ctx: SettlementContext):
    ctx.subscriptions.save(
        Subscription(user_id="u", start_date=APRIL, expiry_date=date(2026, 5, 1),
                     plan_price=Decimal("1000"))
    )
    summary = ctx.engine.run_settlement(APRIL)
    assert summary.point_value == Decimal("0")
    assert summary.educator_count == 0


# --- Settlement ---


def test_second_run_identical_and_writes_nothing(april_data: SettlementContext, db_path: str):
    first = april_data.engine.run_settlement(APRIL)
    before = snapshot(db_path)

    second = april_data.engine.run_settlement(APRIL)

    assert second == first
    assert snapshot(db_path) == before


def test_earnings_never_exceed_distributable(ctx: SettlementContext):
    ctx.subscriptions.save(
        Subscription(user_id="u", start_date=APRIL, expiry_date=date(2026, 5, 1),
                     plan_price=Decimal("999.99"))
    )
    # Three educators with equal points: the share does not divide evenly
    for owner in ("a", "b", "c"):
        ctx.events.record(Download(actor_id="l", owner_id=owner, timestamp=IN_APRIL))

    summary = ctx.engine.run_settlement(APRIL)
    earnings = ctx.ledger.list_earnings_for_settlement(summary.id)

    total = sum(e.earnings for e in earnings)
    assert abs(total - summary.total_revenue) <= Decimal("0.005") * len(earnings)
    assert all(e.available_balance == e.earnings for e in earnings)


# --- Withdrawals ---


def test_fifo_withdrawal_example(ctx: SettlementContext):
    m1, m2 = date(2026, 1, 1), date(2026, 2, 1)
    seed_finalized(ctx, "edu", {m1: "300", m2: "500"})

    assert ctx.engine.process_withdrawal("edu", 600) is True

    rows = {line.settlement.month: line.earning for line in ctx.ledger.list_ledger_lines("edu")}
    assert rows[m1].available_balance == Decimal("0")
    assert rows[m2].available_balance == Decimal("200")
    assert rows[m1].withdrawn + rows[m2].withdrawn == Decimal("600")


def test_over_withdrawal_mutates_nothing(ctx: SettlementContext, db_path: str):
    seed_finalized(ctx, "edu", {date(2026, 1, 1): "300", date(2026, 2, 1): "500"})
    before = snapshot(db_path)

    with pytest.raises(InsufficientBalanceError):
        ctx.engine.process_withdrawal("edu", "800.01")

    assert snapshot(db_path) == before


def test_balances_stay_consistent_across_withdrawals(ctx: SettlementContext):
    seed_finalized(
        ctx, "edu", {date(2026, 1, 1): "10.10", date(2026, 2, 1): "20.20", date(2026, 3, 1): "30.30"}
    )

    for amount in ("5.05", "10.10", "0.01", "45.00"):
        ctx.engine.process_withdrawal("edu", amount)

    lines = ctx.ledger.list_ledger_lines("edu")
    for line in lines:
        row = line.earning
        assert row.available_balance >= 0
        assert row.earnings - row.withdrawn == row.available_balance
    assert sum(line.earning.withdrawn for line in lines) == Decimal("60.16")
    assert ctx.engine.get_educator_balance("edu").finalized_balance == Decimal("0.44")
