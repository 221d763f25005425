"""
Points component.

Public API for monthly engagement points.
"""

from .component import (
    PointsCalculator,
    group_by_owner,
    load_config_from_rules,
    qualifying_events,
    tally_events,
)
from .models import KindTally, MonthlyPoints, PointsBreakdown, PointsConfig, PointsSnapshot
from .ports import EngagementReadPort

__all__ = [
    # Service
    "PointsCalculator",
    # Functions
    "group_by_owner",
    "load_config_from_rules",
    "qualifying_events",
    "tally_events",
    # Models
    "KindTally",
    "MonthlyPoints",
    "PointsBreakdown",
    "PointsConfig",
    "PointsSnapshot",
    # Ports
    "EngagementReadPort",
]
