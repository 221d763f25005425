"""
Points component models.

Weights, thresholds and per-kind tallies for engagement points.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from src.domain.entities import EventKind

# --- Configuration ---


@dataclass(frozen=True)
class PointsConfig:
    """Point weights per event kind and the media-play qualification threshold."""

    media_play_weight: Decimal = Decimal("0.2")
    download_weight: Decimal = Decimal("3")
    live_attendance_weight: Decimal = Decimal("5")
    min_watch_ratio: Decimal = Decimal("0.30")

    def weight_for(self, kind: EventKind) -> Decimal:
        if kind == "media_play":
            return self.media_play_weight
        if kind == "download":
            return self.download_weight
        if kind == "live_attendance":
            return self.live_attendance_weight
        raise ValueError(f"Unknown event kind: {kind}")


# --- Tallies ---


@dataclass(frozen=True)
class KindTally:
    """Qualifying event count and the points it earns."""

    count: int = 0
    points: Decimal = Decimal("0")


@dataclass(frozen=True)
class PointsBreakdown:
    media_plays: KindTally = field(default_factory=KindTally)
    downloads: KindTally = field(default_factory=KindTally)
    live_attendance: KindTally = field(default_factory=KindTally)

    @property
    def event_count(self) -> int:
        return self.media_plays.count + self.downloads.count + self.live_attendance.count


@dataclass(frozen=True)
class MonthlyPoints:
    """Points for a month, platform-wide or scoped to one educator."""

    month: date
    total_points: Decimal
    breakdown: PointsBreakdown = field(default_factory=PointsBreakdown)
    educator_id: str | None = None  # None for platform-wide totals


@dataclass(frozen=True)
class PointsSnapshot:
    """Platform total and per-educator tallies taken from one read of the month's events."""

    total: MonthlyPoints
    by_educator: dict[str, MonthlyPoints] = field(default_factory=dict)

    def for_educator(self, educator_id: str) -> MonthlyPoints:
        return self.by_educator.get(educator_id) or MonthlyPoints(
            month=self.total.month, total_points=Decimal("0"), educator_id=educator_id
        )
