"""
Revenue component models.

Configuration and outputs for prorated monthly subscription revenue.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Literal

from src.domain.entities import SubscriptionStatus

PriceSource = Literal["plan", "catalogue"]


# --- Configuration ---


@dataclass(frozen=True)
class RevenueConfig:
    """Revenue configuration from rules."""

    subscription_price: Decimal = Decimal("1000")
    share_ratio: Decimal = Decimal("0.7")
    price_source: PriceSource = "plan"
    revenue_statuses: tuple[SubscriptionStatus, ...] = ("active",)


# --- Outputs ---


@dataclass(frozen=True)
class SubscriptionContribution:
    """One subscription's prorated share of the month (unrounded)."""

    user_id: str
    active_start: date
    active_end: date
    active_days: int
    contribution: Decimal


@dataclass(frozen=True)
class MonthlyRevenue:
    """Gross revenue for a month with its per-subscription breakdown."""

    month: date
    total_revenue: Decimal
    subscriber_count: int
    breakdown: tuple[SubscriptionContribution, ...] = field(default_factory=tuple)
