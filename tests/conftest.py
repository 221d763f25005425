from datetime import UTC, date, datetime
from decimal import Decimal
from pathlib import Path

import pytest

from src.adapters.clock import FixedClock
from src.adapters.sqlite.migrator import SQLiteMigrator
from src.app_shell.context import SettlementContext
from src.domain.entities import LiveAttendance, MediaPlay, Subscription
from src.rules.loader import load_rules

PROJECT_ROOT = Path(__file__).resolve().parents[1]

APRIL = date(2026, 4, 1)
NOW = datetime(2026, 6, 15, 9, 0, tzinfo=UTC)


@pytest.fixture
def rules():
    """Load REAL rules from project root."""
    return load_rules(PROJECT_ROOT / "rules.yaml")


@pytest.fixture
def db_path(tmp_path) -> str:
    """Temporary SQLite database with all migrations applied."""
    path = str(tmp_path / "settlement.db")
    SQLiteMigrator(path, str(PROJECT_ROOT / "migrations")).run_migrations()
    return path


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def ctx(db_path, rules, clock) -> SettlementContext:
    """
    Creates a full SettlementContext backed by a temporary SQLite DB.
    """
    return SettlementContext.create(db_path, rules, clock=clock)


@pytest.fixture
def april_data(ctx: SettlementContext) -> SettlementContext:
    """
    Two full-month subscriptions plus one covering 15 of April's 30 days,
    and 100 qualifying points: 40 for edu-a and 60 for edu-b.
    """
    subs = ctx.subscriptions
    subs.save(Subscription(user_id="s1", start_date=date(2026, 3, 10),
                           expiry_date=date(2026, 5, 10), plan_price=Decimal("1000")))
    subs.save(Subscription(user_id="s2", start_date=date(2026, 4, 1),
                           expiry_date=date(2026, 5, 1), plan_price=Decimal("1000")))
    subs.save(Subscription(user_id="s3", start_date=date(2026, 4, 16),
                           expiry_date=date(2026, 5, 16), plan_price=Decimal("1000")))

    at = datetime(2026, 4, 10, 18, 0, tzinfo=UTC)
    for i in range(8):
        ctx.events.record(LiveAttendance(actor_id=f"l{i}", owner_id="edu-a", timestamp=at))
    for i in range(12):
        ctx.events.record(LiveAttendance(actor_id=f"l{i}", owner_id="edu-b", timestamp=at))

    # Noise: self-activity and a play under the watch threshold
    ctx.events.record(LiveAttendance(actor_id="edu-a", owner_id="edu-a", timestamp=at))
    ctx.events.record(
        MediaPlay(actor_id="l1", owner_id="edu-c", timestamp=at, watch_ratio=Decimal("0.29"))
    )
    return ctx
