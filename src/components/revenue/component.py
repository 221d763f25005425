"""
Revenue component - prorated monthly subscription revenue.

Each subscription contributes the fraction of its monthly price covered by the
days it was active in the month. Contributions are summed unrounded and the
total is rounded once, so per-row rounding never compounds.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from src.domain.entities import Subscription
from src.domain.errors import DataIntegrityError
from src.domain.months import MonthWindow, month_window, round_money
from src.rules.models import Rules

from .models import MonthlyRevenue, RevenueConfig, SubscriptionContribution
from .ports import SubscriptionReadPort

logger = logging.getLogger(__name__)

MONTHS_PER_YEAR = Decimal("12")


# --- Pure Functions ---


def overlaps_month(subscription: Subscription, window: MonthWindow) -> bool:
    return subscription.start_date <= window.end and subscription.expiry_date >= window.start


def active_days_in_month(subscription: Subscription, window: MonthWindow) -> int:
    """Days (inclusive) the subscription was active inside the window; 0 if none."""
    if not overlaps_month(subscription, window):
        return 0
    active_start = max(subscription.start_date, window.start)
    active_end = min(subscription.expiry_date, window.end)
    return (active_end - active_start).days + 1


def monthly_price(
    subscription: Subscription,
    config: RevenueConfig,
    window: MonthWindow | None = None,
) -> Decimal:
    """
    Price one fully-covered month of this subscription contributes.

    Raises DataIntegrityError when the plan price is required but missing.
    """
    if config.price_source == "catalogue":
        return config.subscription_price

    if subscription.plan_price is None:
        raise DataIntegrityError(
            f"Subscription {subscription.id} for user {subscription.user_id} has no plan price",
            month=window.start if window else None,
            phase="revenue",
        )

    if subscription.is_yearly:
        return subscription.plan_price / MONTHS_PER_YEAR
    return subscription.plan_price


def prorate(
    subscription: Subscription,
    window: MonthWindow,
    config: RevenueConfig,
) -> SubscriptionContribution | None:
    """Prorated contribution for one subscription, or None if it does not overlap."""
    days = active_days_in_month(subscription, window)
    if days <= 0:
        return None

    price = monthly_price(subscription, config, window)
    return SubscriptionContribution(
        user_id=subscription.user_id,
        active_start=max(subscription.start_date, window.start),
        active_end=min(subscription.expiry_date, window.end),
        active_days=days,
        contribution=Decimal(days) / Decimal(window.days) * price,
    )


def summarize_revenue(
    subscriptions: list[Subscription],
    window: MonthWindow,
    config: RevenueConfig,
) -> MonthlyRevenue:
    """Sum prorated contributions and count distinct subscribers."""
    breakdown: list[SubscriptionContribution] = []
    subscriber_ids: set[str] = set()
    total = Decimal("0")

    for subscription in subscriptions:
        if subscription.status not in config.revenue_statuses:
            continue
        row = prorate(subscription, window, config)
        if row is None:
            continue
        breakdown.append(row)
        subscriber_ids.add(subscription.user_id)
        total += row.contribution

    return MonthlyRevenue(
        month=window.start,
        total_revenue=round_money(total),
        subscriber_count=len(subscriber_ids),
        breakdown=tuple(breakdown),
    )


def distributable_revenue(total_revenue: Decimal, share_ratio: Decimal) -> Decimal:
    return round_money(total_revenue * share_ratio)


# --- Service ---


class RevenueCalculator:
    """Computes a month's prorated revenue from the billing read port."""

    def __init__(
        self,
        subscriptions: SubscriptionReadPort,
        config: RevenueConfig | None = None,
    ) -> None:
        self.subscriptions = subscriptions
        self.config = config or RevenueConfig()

    def compute_monthly_revenue(self, month: date) -> MonthlyRevenue:
        window = month_window(month)
        rows = self.subscriptions.list_overlapping(
            window.start, window.end, self.config.revenue_statuses
        )
        result = summarize_revenue(rows, window, self.config)

        for row in result.breakdown:
            logger.debug(
                "User %s: %d/%d days = %s",
                row.user_id,
                row.active_days,
                window.days,
                round_money(row.contribution),
            )
        logger.info(
            "Revenue for %s: %s from %d subscribers",
            window.label,
            result.total_revenue,
            result.subscriber_count,
        )
        return result

    def compute_distributable_revenue(self, total_revenue: Decimal) -> Decimal:
        return distributable_revenue(total_revenue, self.config.share_ratio)


# --- Configuration Loader ---


def load_config_from_rules(rules: Rules) -> RevenueConfig:
    """Build RevenueConfig from validated rules."""
    revenue = rules.revenue
    return RevenueConfig(
        subscription_price=revenue.subscription_price,
        share_ratio=revenue.share_ratio,
        price_source=revenue.price_source,
        revenue_statuses=tuple(revenue.revenue_statuses),
    )
