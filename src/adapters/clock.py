from datetime import UTC, datetime


class SystemClock:
    def now_utc(self) -> datetime:
        return datetime.now(UTC)


class FixedClock:
    """Clock pinned to one instant, for replaying a past month's estimate."""

    def __init__(self, instant: datetime):
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=UTC)
        self.instant = instant.astimezone(UTC)

    def now_utc(self) -> datetime:
        return self.instant
