"""
Settlement component port definitions.
"""

from __future__ import annotations

from datetime import date, datetime
from types import TracebackType
from typing import Protocol
from uuid import UUID

from src.domain.entities import EducatorEarning, MonthlySettlement, WithdrawalRecord

from .models import LedgerLine


class LedgerUnitOfWork(Protocol):
    """
    One serialized write transaction over the settlement ledger.

    Nothing is persisted unless commit() is called; leaving the context
    without commit (or with an exception) rolls everything back.
    """

    def __enter__(self) -> LedgerUnitOfWork: ...

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None: ...

    def commit(self) -> None: ...

    def get_by_month(self, month: date) -> MonthlySettlement | None:
        """Read the settlement row inside the transaction."""
        ...

    def save_settlement(self, settlement: MonthlySettlement) -> MonthlySettlement:
        """Insert or update the settlement keyed by month."""
        ...

    def get_earning(self, user_id: str, settlement_id: UUID) -> EducatorEarning | None: ...

    def save_earning(self, earning: EducatorEarning) -> EducatorEarning:
        """Insert or update the earning keyed by (user_id, settlement_id)."""
        ...

    def list_finalized_earnings(self, user_id: str) -> list[LedgerLine]:
        """Finalized earning rows for the educator, oldest month first."""
        ...

    def record_withdrawal(self, record: WithdrawalRecord) -> WithdrawalRecord: ...


class SettlementLedgerPort(Protocol):
    """Persistence for settlements, educator earnings and withdrawals."""

    def unit_of_work(self) -> LedgerUnitOfWork:
        """Start a write transaction that serializes against other writers."""
        ...

    def get_by_month(self, month: date) -> MonthlySettlement | None: ...

    def list_settlements(self) -> list[MonthlySettlement]:
        """All settlements, newest month first."""
        ...

    def list_earnings_for_settlement(self, settlement_id: UUID) -> list[EducatorEarning]: ...

    def count_earnings(self, settlement_id: UUID) -> int: ...

    def list_ledger_lines(self, user_id: str) -> list[LedgerLine]:
        """Every earning row of the educator with its settlement, newest month first."""
        ...

    def list_withdrawals(self, user_id: str) -> list[WithdrawalRecord]:
        """Withdrawal history, newest first."""
        ...


class TimePort(Protocol):
    """Time provider interface."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        ...
