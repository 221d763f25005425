"""
SQLite adapters for the settlement core.

Implements the subscription and engagement read ports and the settlement
ledger port. Money and points are stored as TEXT so Decimal values round-trip
exactly. Ledger writes go through SQLiteLedgerUnitOfWork, which opens a
BEGIN IMMEDIATE transaction: writers serialize on the database lock and a
lock wait past busy_timeout surfaces as ConcurrencyConflictError.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from src.components.settlement.models import LedgerLine
from src.domain.entities import (
    Download,
    EducatorEarning,
    LiveAttendance,
    MediaPlay,
    MonthlySettlement,
    Subscription,
    WithdrawalAllocation,
    WithdrawalRecord,
)
from src.domain.errors import ConcurrencyConflictError, DataIntegrityError, TransientStoreError

logger = logging.getLogger(__name__)

DEFAULT_BUSY_TIMEOUT = 5.0

# -----------------------------------------------------------------------------
# Helper functions
# -----------------------------------------------------------------------------


def dict_factory(cursor: sqlite3.Cursor, row: tuple[Any, ...]) -> dict[str, Any]:
    """Convert SQLite row to dictionary."""
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


def parse_dt(s: str | None) -> datetime | None:
    """Parse ISO datetime string."""
    return datetime.fromisoformat(s) if s else None


def parse_uuid(s: str | None) -> UUID | None:
    """Parse UUID string."""
    return UUID(s) if s else None


def parse_decimal(s: str | None) -> Decimal | None:
    return Decimal(s) if s is not None else None


def to_utc_iso(dt: datetime) -> str:
    """Fixed-width UTC ISO string so stored instants compare as text."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat(timespec="microseconds")


def _is_busy(error: sqlite3.OperationalError) -> bool:
    message = str(error).lower()
    return "locked" in message or "busy" in message


@contextmanager
def store_errors(action: str) -> Iterator[None]:
    """Translate sqlite3 failures into settlement errors."""
    try:
        yield
    except sqlite3.OperationalError as e:
        if _is_busy(e):
            raise ConcurrencyConflictError(
                f"Ledger locked by another writer during {action}"
            ) from e
        raise TransientStoreError(f"Store failure during {action}: {e}") from e
    except sqlite3.IntegrityError as e:
        raise DataIntegrityError(f"Constraint violated during {action}: {e}") from e
    except sqlite3.DatabaseError as e:
        raise TransientStoreError(f"Store failure during {action}: {e}") from e


def connect(db_path: str, busy_timeout: float = DEFAULT_BUSY_TIMEOUT) -> sqlite3.Connection:
    conn = sqlite3.connect(db_path, timeout=busy_timeout)
    conn.row_factory = dict_factory
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


# -----------------------------------------------------------------------------
# Base SQLite Repository
# -----------------------------------------------------------------------------


class SQLiteRepoBase:
    """Base class for SQLite repositories."""

    def __init__(
        self,
        db_path: str,
        connection: sqlite3.Connection | None = None,
        busy_timeout: float = DEFAULT_BUSY_TIMEOUT,
    ):
        self.db_path = db_path
        self.busy_timeout = busy_timeout
        self._external_conn = connection

    def _get_conn(self) -> sqlite3.Connection:
        """Get database connection (uses external if provided)."""
        if self._external_conn is not None:
            return self._external_conn
        return connect(self.db_path, self.busy_timeout)

    def _should_close(self) -> bool:
        """Whether to close connection after use."""
        return self._external_conn is None

    def _fetchone(self, sql: str, params: Sequence[Any] = ()) -> dict[str, Any] | None:
        conn = self._get_conn()
        try:
            with store_errors("read"):
                row: dict[str, Any] | None = conn.execute(sql, params).fetchone()
            return row
        finally:
            if self._should_close():
                conn.close()

    def _fetchall(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        conn = self._get_conn()
        try:
            with store_errors("read"):
                rows: list[dict[str, Any]] = conn.execute(sql, params).fetchall()
            return rows
        finally:
            if self._should_close():
                conn.close()

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> None:
        conn = self._get_conn()
        try:
            with store_errors("write"):
                conn.execute(sql, params)
                if self._should_close():
                    conn.commit()
        finally:
            if self._should_close():
                conn.close()


# -----------------------------------------------------------------------------
# Subscriptions (billing read port)
# -----------------------------------------------------------------------------


class SQLiteSubscriptionRepo(SQLiteRepoBase):
    """SQLite implementation of SubscriptionReadPort."""

    def save(self, subscription: Subscription) -> Subscription:
        self._execute(
            """
            INSERT INTO subscriptions (
                id, user_id, start_date, expiry_date, plan_price, status, is_yearly
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                user_id=excluded.user_id,
                start_date=excluded.start_date,
                expiry_date=excluded.expiry_date,
                plan_price=excluded.plan_price,
                status=excluded.status,
                is_yearly=excluded.is_yearly
            """,
            (
                str(subscription.id),
                subscription.user_id,
                subscription.start_date.isoformat(),
                subscription.expiry_date.isoformat(),
                str(subscription.plan_price) if subscription.plan_price is not None else None,
                subscription.status,
                int(subscription.is_yearly),
            ),
        )
        return subscription

    def list_overlapping(
        self,
        window_start: date,
        window_end: date,
        statuses: Sequence[str],
    ) -> list[Subscription]:
        if not statuses:
            return []
        placeholders = ", ".join("?" for _ in statuses)
        rows = self._fetchall(
            f"""
            SELECT * FROM subscriptions
            WHERE start_date <= ? AND expiry_date >= ? AND status IN ({placeholders})
            ORDER BY start_date, id
            """,
            (window_end.isoformat(), window_start.isoformat(), *statuses),
        )
        return [self._map_row(r) for r in rows]

    def _map_row(self, row: dict[str, Any]) -> Subscription:
        return Subscription(
            id=UUID(row["id"]),
            user_id=row["user_id"],
            start_date=date.fromisoformat(row["start_date"]),
            expiry_date=date.fromisoformat(row["expiry_date"]),
            plan_price=parse_decimal(row["plan_price"]),
            status=row["status"],
            is_yearly=bool(row["is_yearly"]),
        )


# -----------------------------------------------------------------------------
# Engagement events (engagement read port)
# -----------------------------------------------------------------------------

Event = MediaPlay | Download | LiveAttendance


class SQLiteEngagementRepo(SQLiteRepoBase):
    """SQLite implementation of EngagementReadPort."""

    def record(self, event: Event) -> Event:
        watch_ratio = str(event.watch_ratio) if isinstance(event, MediaPlay) else None
        self._execute(
            """
            INSERT INTO engagement_events (
                id, kind, actor_id, owner_id, occurred_at, watch_ratio
            ) VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                str(event.id),
                event.kind,
                event.actor_id,
                event.owner_id,
                to_utc_iso(event.timestamp),
                watch_ratio,
            ),
        )
        return event

    def list_events(
        self,
        window_start: datetime,
        window_end: datetime,
        owner_id: str | None = None,
    ) -> list[Event]:
        sql = "SELECT * FROM engagement_events WHERE occurred_at >= ? AND occurred_at < ?"
        params: list[Any] = [to_utc_iso(window_start), to_utc_iso(window_end)]
        if owner_id is not None:
            sql += " AND owner_id = ?"
            params.append(owner_id)
        sql += " ORDER BY occurred_at, id"
        return [self._map_row(r) for r in self._fetchall(sql, params)]

    def _map_row(self, row: dict[str, Any]) -> Event:
        common = {
            "id": UUID(row["id"]),
            "actor_id": row["actor_id"],
            "owner_id": row["owner_id"],
            "timestamp": datetime.fromisoformat(row["occurred_at"]),
        }
        kind = row["kind"]
        if kind == "media_play":
            return MediaPlay(watch_ratio=Decimal(row["watch_ratio"]), **common)
        if kind == "download":
            return Download(**common)
        if kind == "live_attendance":
            return LiveAttendance(**common)
        raise DataIntegrityError(f"Unknown engagement event kind: {kind}")


# -----------------------------------------------------------------------------
# Settlement ledger
# -----------------------------------------------------------------------------

_SETTLEMENT_COLUMNS = (
    "id",
    "month",
    "total_subscribers",
    "gross_revenue",
    "total_revenue",
    "total_points",
    "point_value",
    "status",
    "run_id",
    "created_at",
    "finalized_at",
)

_LEDGER_LINE_SELECT = (
    "SELECT e.*, "
    + ", ".join(f"s.{c} AS s_{c}" for c in _SETTLEMENT_COLUMNS)
    + " FROM educator_earnings e JOIN monthly_settlements s ON s.id = e.settlement_id"
)


class SQLiteSettlementLedger(SQLiteRepoBase):
    """SQLite implementation of SettlementLedgerPort."""

    def unit_of_work(self) -> SQLiteLedgerUnitOfWork:
        return SQLiteLedgerUnitOfWork(self.db_path, self.busy_timeout)

    # --- Settlements ---

    def get_by_month(self, month: date) -> MonthlySettlement | None:
        row = self._fetchone(
            "SELECT * FROM monthly_settlements WHERE month = ?", (month.isoformat(),)
        )
        return self._map_settlement(row) if row else None

    def list_settlements(self) -> list[MonthlySettlement]:
        rows = self._fetchall("SELECT * FROM monthly_settlements ORDER BY month DESC")
        return [self._map_settlement(r) for r in rows]

    def save_settlement(self, settlement: MonthlySettlement) -> MonthlySettlement:
        self._execute(
            """
            INSERT INTO monthly_settlements (
                id, month, total_subscribers, gross_revenue, total_revenue,
                total_points, point_value, status, run_id, created_at, finalized_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(month) DO UPDATE SET
                total_subscribers=excluded.total_subscribers,
                gross_revenue=excluded.gross_revenue,
                total_revenue=excluded.total_revenue,
                total_points=excluded.total_points,
                point_value=excluded.point_value,
                status=excluded.status,
                run_id=excluded.run_id,
                finalized_at=excluded.finalized_at
            """,
            (
                str(settlement.id),
                settlement.month.isoformat(),
                settlement.total_subscribers,
                str(settlement.gross_revenue),
                str(settlement.total_revenue),
                str(settlement.total_points),
                str(settlement.point_value),
                settlement.status,
                str(settlement.run_id) if settlement.run_id else None,
                settlement.created_at.isoformat(),
                settlement.finalized_at.isoformat() if settlement.finalized_at else None,
            ),
        )
        return settlement

    # --- Earnings ---

    def get_earning(self, user_id: str, settlement_id: UUID) -> EducatorEarning | None:
        row = self._fetchone(
            "SELECT * FROM educator_earnings WHERE user_id = ? AND settlement_id = ?",
            (user_id, str(settlement_id)),
        )
        return self._map_earning(row) if row else None

    def save_earning(self, earning: EducatorEarning) -> EducatorEarning:
        self._execute(
            """
            INSERT INTO educator_earnings (
                id, user_id, settlement_id, points, earnings, withdrawn, available_balance
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(user_id, settlement_id) DO UPDATE SET
                points=excluded.points,
                earnings=excluded.earnings,
                withdrawn=excluded.withdrawn,
                available_balance=excluded.available_balance
            """,
            (
                str(earning.id),
                earning.user_id,
                str(earning.settlement_id),
                str(earning.points),
                str(earning.earnings),
                str(earning.withdrawn),
                str(earning.available_balance),
            ),
        )
        return earning

    def list_earnings_for_settlement(self, settlement_id: UUID) -> list[EducatorEarning]:
        rows = self._fetchall(
            "SELECT * FROM educator_earnings WHERE settlement_id = ? ORDER BY user_id",
            (str(settlement_id),),
        )
        return [self._map_earning(r) for r in rows]

    def count_earnings(self, settlement_id: UUID) -> int:
        row = self._fetchone(
            "SELECT COUNT(*) AS n FROM educator_earnings WHERE settlement_id = ?",
            (str(settlement_id),),
        )
        return int(row["n"]) if row else 0

    def list_ledger_lines(self, user_id: str) -> list[LedgerLine]:
        rows = self._fetchall(
            f"{_LEDGER_LINE_SELECT} WHERE e.user_id = ? ORDER BY s.month DESC",
            (user_id,),
        )
        return [self._map_line(r) for r in rows]

    def list_finalized_earnings(self, user_id: str) -> list[LedgerLine]:
        rows = self._fetchall(
            f"{_LEDGER_LINE_SELECT} WHERE e.user_id = ? AND s.status = 'finalized' "
            "ORDER BY s.month ASC",
            (user_id,),
        )
        return [self._map_line(r) for r in rows]

    # --- Withdrawals ---

    def record_withdrawal(self, record: WithdrawalRecord) -> WithdrawalRecord:
        self._execute(
            """
            INSERT INTO withdrawals (id, user_id, amount, allocations_json, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                str(record.id),
                record.user_id,
                str(record.amount),
                json.dumps([a.model_dump(mode="json") for a in record.allocations]),
                record.created_at.isoformat(),
            ),
        )
        return record

    def list_withdrawals(self, user_id: str) -> list[WithdrawalRecord]:
        rows = self._fetchall(
            "SELECT * FROM withdrawals WHERE user_id = ? ORDER BY created_at DESC, rowid DESC",
            (user_id,),
        )
        return [self._map_withdrawal(r) for r in rows]

    # --- Row mapping ---

    def _map_settlement(self, row: dict[str, Any]) -> MonthlySettlement:
        return MonthlySettlement(
            id=UUID(row["id"]),
            month=date.fromisoformat(row["month"]),
            total_subscribers=row["total_subscribers"],
            gross_revenue=Decimal(row["gross_revenue"]),
            total_revenue=Decimal(row["total_revenue"]),
            total_points=Decimal(row["total_points"]),
            point_value=Decimal(row["point_value"]),
            status=row["status"],
            run_id=parse_uuid(row["run_id"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            finalized_at=parse_dt(row["finalized_at"]),
        )

    def _map_earning(self, row: dict[str, Any]) -> EducatorEarning:
        return EducatorEarning(
            id=UUID(row["id"]),
            user_id=row["user_id"],
            settlement_id=UUID(row["settlement_id"]),
            points=Decimal(row["points"]),
            earnings=Decimal(row["earnings"]),
            withdrawn=Decimal(row["withdrawn"]),
            available_balance=Decimal(row["available_balance"]),
        )

    def _map_line(self, row: dict[str, Any]) -> LedgerLine:
        settlement_row = {c: row[f"s_{c}"] for c in _SETTLEMENT_COLUMNS}
        return LedgerLine(
            earning=self._map_earning(row),
            settlement=self._map_settlement(settlement_row),
        )

    def _map_withdrawal(self, row: dict[str, Any]) -> WithdrawalRecord:
        return WithdrawalRecord(
            id=UUID(row["id"]),
            user_id=row["user_id"],
            amount=Decimal(row["amount"]),
            allocations=[
                WithdrawalAllocation.model_validate(a)
                for a in json.loads(row["allocations_json"])
            ],
            created_at=datetime.fromisoformat(row["created_at"]),
        )


# -----------------------------------------------------------------------------
# Unit of Work
# -----------------------------------------------------------------------------


class SQLiteLedgerUnitOfWork:
    """
    One serialized write transaction over the settlement ledger.

    __enter__ takes the database write lock with BEGIN IMMEDIATE, so reads
    inside the block see a state no other writer can change before commit.
    Leaving the block without commit() rolls back.
    """

    def __init__(self, db_path: str, busy_timeout: float = DEFAULT_BUSY_TIMEOUT):
        self.db_path = db_path
        self.busy_timeout = busy_timeout
        self._conn: sqlite3.Connection | None = None
        self._ledger: SQLiteSettlementLedger | None = None

    def __enter__(self) -> SQLiteLedgerUnitOfWork:
        conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout, isolation_level=None)
        conn.row_factory = dict_factory
        try:
            with store_errors("begin"):
                conn.execute("PRAGMA foreign_keys = ON;")
                conn.execute("BEGIN IMMEDIATE")
        except Exception:
            conn.close()
            raise
        self._conn = conn
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        if self._conn is None:
            return
        try:
            if self._conn.in_transaction:
                if exc_type is None:
                    logger.debug("Unit of work closed without commit; rolling back")
                self.rollback()
        finally:
            self._conn.close()
            self._conn = None
            self._ledger = None

    def commit(self) -> None:
        if self._conn:
            with store_errors("commit"):
                self._conn.execute("COMMIT")

    def rollback(self) -> None:
        if self._conn and self._conn.in_transaction:
            self._conn.execute("ROLLBACK")

    @property
    def ledger(self) -> SQLiteSettlementLedger:
        if self._conn is None:
            raise RuntimeError("Unit of work is not active")
        if self._ledger is None:
            self._ledger = SQLiteSettlementLedger(self.db_path, self._conn, self.busy_timeout)
        return self._ledger

    def get_by_month(self, month: date) -> MonthlySettlement | None:
        return self.ledger.get_by_month(month)

    def save_settlement(self, settlement: MonthlySettlement) -> MonthlySettlement:
        return self.ledger.save_settlement(settlement)

    def get_earning(self, user_id: str, settlement_id: UUID) -> EducatorEarning | None:
        return self.ledger.get_earning(user_id, settlement_id)

    def save_earning(self, earning: EducatorEarning) -> EducatorEarning:
        return self.ledger.save_earning(earning)

    def list_finalized_earnings(self, user_id: str) -> list[LedgerLine]:
        return self.ledger.list_finalized_earnings(user_id)

    def record_withdrawal(self, record: WithdrawalRecord) -> WithdrawalRecord:
        return self.ledger.record_withdrawal(record)
