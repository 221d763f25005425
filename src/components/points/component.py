"""
Points component - engagement points per calendar month.

Three event kinds earn fixed weights. Media plays qualify only at or above the
watch-ratio threshold (binary, not proportional). Events an educator generates
on their own content never count.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable
from datetime import date

from src.domain.entities import Download, LiveAttendance, MediaPlay
from src.domain.months import month_window, round_money
from src.rules.models import Rules

from .models import KindTally, MonthlyPoints, PointsBreakdown, PointsConfig, PointsSnapshot
from .ports import EngagementReadPort

logger = logging.getLogger(__name__)

Event = MediaPlay | Download | LiveAttendance


# --- Pure Functions ---


def qualifying_events(events: Iterable[Event], config: PointsConfig) -> list[Event]:
    """Drop self-activity and media plays under the watch-ratio threshold."""
    return [e for e in events if e.qualifies(config.min_watch_ratio)]


def tally_events(
    events: Iterable[Event],
    month: date,
    config: PointsConfig,
    educator_id: str | None = None,
) -> MonthlyPoints:
    """Count qualifying events per kind, weight them, and round the total once."""
    counts: dict[str, int] = {"media_play": 0, "download": 0, "live_attendance": 0}
    for event in qualifying_events(events, config):
        counts[event.kind] += 1

    def tally(kind: str) -> KindTally:
        return KindTally(count=counts[kind], points=counts[kind] * config.weight_for(kind))

    breakdown = PointsBreakdown(
        media_plays=tally("media_play"),
        downloads=tally("download"),
        live_attendance=tally("live_attendance"),
    )
    total = (
        breakdown.media_plays.points
        + breakdown.downloads.points
        + breakdown.live_attendance.points
    )
    return MonthlyPoints(
        month=month,
        total_points=round_money(total),
        breakdown=breakdown,
        educator_id=educator_id,
    )


def group_by_owner(events: Iterable[Event], config: PointsConfig) -> dict[str, list[Event]]:
    grouped: dict[str, list[Event]] = defaultdict(list)
    for event in qualifying_events(events, config):
        grouped[event.owner_id].append(event)
    return dict(grouped)


# --- Service ---


class PointsCalculator:
    """Computes platform-wide and per-educator points from the engagement read port."""

    def __init__(
        self,
        events: EngagementReadPort,
        config: PointsConfig | None = None,
    ) -> None:
        self.events = events
        self.config = config or PointsConfig()

    def _events_for(self, month: date, owner_id: str | None = None) -> list[Event]:
        window = month_window(month)
        return self.events.list_events(window.start_utc, window.end_utc, owner_id=owner_id)

    def compute_total_points_for_month(self, month: date) -> MonthlyPoints:
        window = month_window(month)
        result = tally_events(self._events_for(window.start), window.start, self.config)
        b = result.breakdown
        logger.info(
            "Points for %s: %s (plays=%d downloads=%d live=%d)",
            window.label,
            result.total_points,
            b.media_plays.count,
            b.downloads.count,
            b.live_attendance.count,
        )
        return result

    def compute_educator_points_for_month(self, educator_id: str, month: date) -> MonthlyPoints:
        window = month_window(month)
        events = [
            e for e in self._events_for(window.start, owner_id=educator_id)
            if e.owner_id == educator_id
        ]
        return tally_events(events, window.start, self.config, educator_id=educator_id)

    def list_active_educators_for_month(self, month: date) -> set[str]:
        return set(group_by_owner(self._events_for(month), self.config))

    def compute_month_snapshot(self, month: date) -> PointsSnapshot:
        """
        Platform total and every active educator's points from one read.

        The total is tallied from the same events as the per-educator rows,
        so educator points never sum past it.
        """
        window = month_window(month)
        events = qualifying_events(self._events_for(window.start), self.config)
        grouped = group_by_owner(events, self.config)
        return PointsSnapshot(
            total=tally_events(events, window.start, self.config),
            by_educator={
                educator_id: tally_events(
                    owned, window.start, self.config, educator_id=educator_id
                )
                for educator_id, owned in grouped.items()
            },
        )

    def compute_points_by_educator(self, month: date) -> dict[str, MonthlyPoints]:
        """Every active educator's points from a single read of the month's events."""
        return self.compute_month_snapshot(month).by_educator


# --- Configuration Loader ---


def load_config_from_rules(rules: Rules) -> PointsConfig:
    """Build PointsConfig from validated rules."""
    points = rules.points
    return PointsConfig(
        media_play_weight=points.weights.media_play,
        download_weight=points.weights.download,
        live_attendance_weight=points.weights.live_attendance,
        min_watch_ratio=points.min_watch_ratio,
    )
