"""
Settlement component.

Public API for monthly settlement runs, educator balances and withdrawals.
"""

from .component import (
    SettlementEngine,
    allocate_earnings,
    build_preview,
    compute_point_value,
    create_settlement_engine,
    load_config_from_rules,
    normalize_withdrawal_amount,
    plan_fifo_withdrawal,
    recalculated_earning,
    summary_from,
    unavailable_estimate,
)
from .models import (
    BalanceLine,
    CurrentMonthEstimate,
    EarningAllocation,
    EducatorBalance,
    LedgerLine,
    PreviewSummary,
    SettlementComputation,
    SettlementConfig,
    SettlementDetails,
    SettlementPreview,
    SettlementSummary,
    WithdrawalReceipt,
)
from .ports import LedgerUnitOfWork, SettlementLedgerPort, TimePort

__all__ = [
    # Service
    "SettlementEngine",
    "create_settlement_engine",
    # Functions
    "allocate_earnings",
    "build_preview",
    "compute_point_value",
    "load_config_from_rules",
    "normalize_withdrawal_amount",
    "plan_fifo_withdrawal",
    "recalculated_earning",
    "summary_from",
    "unavailable_estimate",
    # Models
    "BalanceLine",
    "CurrentMonthEstimate",
    "EarningAllocation",
    "EducatorBalance",
    "LedgerLine",
    "PreviewSummary",
    "SettlementComputation",
    "SettlementConfig",
    "SettlementDetails",
    "SettlementPreview",
    "SettlementSummary",
    "WithdrawalReceipt",
    # Ports
    "LedgerUnitOfWork",
    "SettlementLedgerPort",
    "TimePort",
]
