"""
Points component port definitions.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from src.domain.entities import Download, LiveAttendance, MediaPlay


class EngagementReadPort(Protocol):
    """Read-only access to the three engagement event stores."""

    def list_events(
        self,
        window_start: datetime,
        window_end: datetime,
        owner_id: str | None = None,
    ) -> list[MediaPlay | Download | LiveAttendance]:
        """
        List events with window_start <= timestamp < window_end.

        When owner_id is given, only events on that educator's content or
        live classes are returned. Self-activity is NOT filtered here; the
        calculator applies the shared is_self_activity predicate.
        """
        ...
