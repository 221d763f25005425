"""
Revenue component.

Public API for prorated monthly subscription revenue.
"""

from .component import (
    RevenueCalculator,
    active_days_in_month,
    distributable_revenue,
    load_config_from_rules,
    monthly_price,
    overlaps_month,
    prorate,
    summarize_revenue,
)
from .models import MonthlyRevenue, PriceSource, RevenueConfig, SubscriptionContribution
from .ports import SubscriptionReadPort

__all__ = [
    # Service
    "RevenueCalculator",
    # Functions
    "active_days_in_month",
    "distributable_revenue",
    "load_config_from_rules",
    "monthly_price",
    "overlaps_month",
    "prorate",
    "summarize_revenue",
    # Models
    "MonthlyRevenue",
    "PriceSource",
    "RevenueConfig",
    "SubscriptionContribution",
    # Ports
    "SubscriptionReadPort",
]
