"""
Settlement component models.

Inputs, outputs and intermediate results of the monthly settlement run,
balance queries and withdrawals.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID

from src.components.points.models import MonthlyPoints, PointsBreakdown
from src.components.revenue.models import MonthlyRevenue
from src.domain.entities import (
    EducatorEarning,
    MonthlySettlement,
    SettlementStatus,
    WithdrawalRecord,
)

# --- Configuration ---


@dataclass(frozen=True)
class SettlementConfig:
    """Settlement run configuration from rules."""

    max_parallel_reads: int = 2


# --- Computation ---


@dataclass(frozen=True)
class EarningAllocation:
    """One educator's share of a month's distributable revenue."""

    educator_id: str
    points: Decimal
    earnings: Decimal
    breakdown: PointsBreakdown = field(default_factory=PointsBreakdown)


@dataclass(frozen=True)
class SettlementComputation:
    """Everything a run derives from stored data, before any write."""

    month: date
    revenue: MonthlyRevenue
    points: MonthlyPoints
    distributable_revenue: Decimal
    point_value: Decimal
    allocations: tuple[EarningAllocation, ...] = ()


# --- Outputs ---


@dataclass(frozen=True)
class SettlementSummary:
    """Result of run_settlement; identical on repeat calls for a finalized month."""

    id: UUID
    month: date
    total_subscribers: int
    total_revenue: Decimal  # distributable share
    total_points: Decimal
    point_value: Decimal
    educator_count: int


@dataclass(frozen=True)
class SettlementDetails:
    settlement: MonthlySettlement
    earnings: tuple[EducatorEarning, ...] = ()


@dataclass(frozen=True)
class PreviewSummary:
    total_earnings_to_distribute: Decimal
    average_earnings: Decimal
    top_earner: EarningAllocation | None = None


@dataclass(frozen=True)
class SettlementPreview:
    """Dry run of a settlement; nothing is written."""

    month: date
    total_subscribers: int
    gross_revenue: Decimal
    distributable_revenue: Decimal
    total_points: Decimal
    point_value: Decimal
    points_breakdown: PointsBreakdown
    educators: tuple[EarningAllocation, ...]  # earnings descending
    summary: PreviewSummary
    existing_status: SettlementStatus | None = None


# --- Balances ---


@dataclass(frozen=True)
class LedgerLine:
    """An earning row joined with its settlement."""

    earning: EducatorEarning
    settlement: MonthlySettlement


@dataclass(frozen=True)
class BalanceLine:
    month: date
    points: Decimal
    earnings: Decimal
    withdrawn: Decimal
    available_balance: Decimal
    point_value: Decimal
    status: SettlementStatus


@dataclass(frozen=True)
class CurrentMonthEstimate:
    """Advisory, never payable until the month is finalized."""

    month: date
    points: Decimal
    earnings: Decimal
    point_value: Decimal
    total_points: Decimal
    total_subscribers: int
    note: str


@dataclass(frozen=True)
class EducatorBalance:
    educator_id: str
    finalized_balance: Decimal
    current_month_estimate: Decimal
    total_balance: Decimal
    monthly_breakdown: tuple[BalanceLine, ...]
    current_month: CurrentMonthEstimate


@dataclass(frozen=True)
class WithdrawalReceipt:
    """What a committed withdrawal did, built inside its own transaction."""

    record: WithdrawalRecord
    finalized_balance: Decimal  # remaining after this withdrawal
