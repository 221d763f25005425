from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from src.adapters.clock import SystemClock
from src.adapters.sqlite_db import (
    SQLiteEngagementRepo,
    SQLiteSettlementLedger,
    SQLiteSubscriptionRepo,
)
from src.components.settlement import SettlementEngine, TimePort, create_settlement_engine
from src.rules.models import Rules


@dataclass
class SettlementContext:
    """Adapters and the settlement engine wired over one SQLite database."""

    engine: SettlementEngine
    subscriptions: SQLiteSubscriptionRepo
    events: SQLiteEngagementRepo
    ledger: SQLiteSettlementLedger
    rules: Rules

    @classmethod
    def create(
        cls,
        db_path: str | Path,
        rules: Rules,
        clock: TimePort | None = None,
    ) -> SettlementContext:
        db = str(db_path)
        timeout = rules.settlement.busy_timeout_seconds

        subscriptions = SQLiteSubscriptionRepo(db, busy_timeout=timeout)
        events = SQLiteEngagementRepo(db, busy_timeout=timeout)
        ledger = SQLiteSettlementLedger(db, busy_timeout=timeout)

        engine = create_settlement_engine(
            rules,
            subscriptions=subscriptions,
            events=events,
            ledger=ledger,
            clock=clock or SystemClock(),
        )
        return cls(
            engine=engine,
            subscriptions=subscriptions,
            events=events,
            ledger=ledger,
            rules=rules,
        )
