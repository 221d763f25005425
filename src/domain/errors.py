"""
Typed errors raised by the settlement core.

Every error may carry the settlement month and the phase it was raised in,
so callers (admin API, CLI, scheduler) can report where a run stopped.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal


class SettlementError(Exception):
    """Base class for settlement failures."""

    def __init__(
        self,
        message: str,
        *,
        month: date | None = None,
        phase: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.month = month
        self.phase = phase

    def __str__(self) -> str:
        context = []
        if self.month is not None:
            context.append(f"month={self.month.strftime('%Y-%m')}")
        if self.phase is not None:
            context.append(f"phase={self.phase}")
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"


class DataIntegrityError(SettlementError):
    """Required reference data is missing or the ledger would lose history."""


class InsufficientBalanceError(SettlementError):
    """Withdrawal exceeds the finalized balance."""

    def __init__(self, requested: Decimal, available: Decimal) -> None:
        super().__init__(
            f"Cannot withdraw {requested} from finalized balance of {available}",
            phase="withdrawal",
        )
        self.requested = requested
        self.available = available


class InvalidWithdrawalError(SettlementError, ValueError):
    """Withdrawal amount is not a positive amount of cents."""


class ConcurrencyConflictError(SettlementError):
    """Another run claimed or finalized the month, or the ledger lock timed out."""


class TransientStoreError(SettlementError):
    """Underlying store read/write failed; the operation is safe to retry."""
