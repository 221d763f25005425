"""
Revenue component port definitions.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from typing import Protocol

from src.domain.entities import Subscription


class SubscriptionReadPort(Protocol):
    """Read-only access to billing records."""

    def list_overlapping(
        self,
        window_start: date,
        window_end: date,
        statuses: Sequence[str],
    ) -> list[Subscription]:
        """
        List subscriptions overlapping [window_start, window_end].

        A subscription overlaps when start_date <= window_end and
        expiry_date >= window_start, and its status is one of `statuses`.
        """
        ...
