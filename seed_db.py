"""
Seed a demo database with one month of subscriptions and engagement.

    SETTLEMENT_DATA_DIR=./data python seed_db.py

Then settle it with ``python -m src.app_shell.cli settle --month 2026-04``.
"""

import logging
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from pathlib import Path

from src.adapters.sqlite.migrator import SQLiteMigrator
from src.app_shell.config import resolve_db_path
from src.app_shell.context import SettlementContext
from src.domain.entities import Download, LiveAttendance, MediaPlay, Subscription
from src.rules.loader import default_rules_path, load_rules

logger = logging.getLogger("seed")

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"
DEMO_MONTH = date(2026, 4, 1)


def seed(ctx: SettlementContext) -> None:
    """Write the demo month: 2,500.00 gross revenue and 100 points split 40/60."""
    subs = ctx.subscriptions
    subs.save(Subscription(user_id="learner-1", start_date=date(2026, 3, 10),
                           expiry_date=date(2026, 5, 10), plan_price=Decimal("1000")))
    subs.save(Subscription(user_id="learner-2", start_date=date(2026, 4, 1),
                           expiry_date=date(2026, 5, 1), plan_price=Decimal("1000")))
    # Joined mid-month: 15 of 30 days
    subs.save(Subscription(user_id="learner-3", start_date=date(2026, 4, 16),
                           expiry_date=date(2026, 5, 16), plan_price=Decimal("1000")))

    start = datetime(2026, 4, 2, 17, 0, tzinfo=UTC)
    for day in range(8):
        ctx.events.record(LiveAttendance(actor_id=f"learner-{day % 3 + 1}",
                                         owner_id="educator-a",
                                         timestamp=start + timedelta(days=day)))
    for day in range(10):
        ctx.events.record(LiveAttendance(actor_id=f"learner-{day % 3 + 1}",
                                         owner_id="educator-b",
                                         timestamp=start + timedelta(days=day, hours=2)))
    for i in range(5):
        ctx.events.record(MediaPlay(actor_id="learner-2", owner_id="educator-b",
                                    timestamp=start + timedelta(days=i, hours=4),
                                    watch_ratio=Decimal("0.8")))
    for i in range(3):
        ctx.events.record(Download(actor_id="learner-1", owner_id="educator-b",
                                   timestamp=start + timedelta(days=i, hours=6)))

    # Ignored: self-activity and a play under the watch threshold
    ctx.events.record(Download(actor_id="educator-a", owner_id="educator-a", timestamp=start))
    ctx.events.record(MediaPlay(actor_id="learner-3", owner_id="educator-a",
                                timestamp=start, watch_ratio=Decimal("0.1")))


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    rules = load_rules(default_rules_path())
    db_path = resolve_db_path(rules)
    SQLiteMigrator(str(db_path), str(MIGRATIONS_DIR)).run_migrations()

    ctx = SettlementContext.create(db_path, rules)
    if ctx.ledger.get_by_month(DEMO_MONTH) is not None:
        logger.info("Demo month %s already settled in %s, skipping.", f"{DEMO_MONTH:%Y-%m}", db_path)
        return

    seed(ctx)
    print(f"Seeded demo month {DEMO_MONTH:%Y-%m} into {db_path}")


if __name__ == "__main__":
    main()
