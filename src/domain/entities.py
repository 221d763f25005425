from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Annotated, Literal
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, model_validator

# --- Enums / Literals ---
SubscriptionStatus = Literal["active", "grace", "expired", "cancelled"]
SettlementStatus = Literal["calculating", "finalized"]
EventKind = Literal["media_play", "download", "live_attendance"]


def utcnow() -> datetime:
    return datetime.now(UTC)


# --- Billing (read-only to the settlement core) ---

class Subscription(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    user_id: str
    start_date: date
    expiry_date: date
    plan_price: Decimal | None = None  # None means the billing record lost its price
    status: SubscriptionStatus = "active"
    is_yearly: bool = False

    @model_validator(mode="after")
    def _expiry_after_start(self) -> "Subscription":
        if self.expiry_date <= self.start_date:
            raise ValueError("expiry_date must be after start_date")
        return self


# --- Engagement events (tagged union) ---

class EngagementEventBase(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    actor_id: str  # learner who generated the event
    owner_id: str  # educator who owns the media / live class
    timestamp: datetime

    @property
    def is_self_activity(self) -> bool:
        return self.actor_id == self.owner_id

    def qualifies(self, min_watch_ratio: Decimal) -> bool:
        """Whether the event earns points at all (self-activity never does)."""
        return not self.is_self_activity


class MediaPlay(EngagementEventBase):
    kind: Literal["media_play"] = "media_play"
    watch_ratio: Decimal = Field(ge=0, le=1)

    def qualifies(self, min_watch_ratio: Decimal) -> bool:
        return super().qualifies(min_watch_ratio) and self.watch_ratio >= min_watch_ratio


class Download(EngagementEventBase):
    kind: Literal["download"] = "download"


class LiveAttendance(EngagementEventBase):
    kind: Literal["live_attendance"] = "live_attendance"


EngagementEvent = Annotated[
    MediaPlay | Download | LiveAttendance,
    Field(discriminator="kind"),
]


# --- Settlement ledger ---

class MonthlySettlement(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    month: date  # first day of the month, unique
    total_subscribers: int = 0
    gross_revenue: Decimal = Decimal("0")
    total_revenue: Decimal = Decimal("0")  # distributable share
    total_points: Decimal = Decimal("0")
    point_value: Decimal = Decimal("0")
    status: SettlementStatus = "calculating"
    run_id: UUID | None = None
    created_at: datetime = Field(default_factory=utcnow)
    finalized_at: datetime | None = None

    @property
    def is_finalized(self) -> bool:
        return self.status == "finalized"


class EducatorEarning(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    user_id: str
    settlement_id: UUID
    points: Decimal
    earnings: Decimal
    withdrawn: Decimal = Decimal("0")
    available_balance: Decimal

    @model_validator(mode="after")
    def _balance_consistent(self) -> "EducatorEarning":
        if self.available_balance < 0:
            raise ValueError("available_balance cannot be negative")
        if self.earnings - self.withdrawn != self.available_balance:
            raise ValueError("available_balance must equal earnings - withdrawn")
        return self


class WithdrawalAllocation(BaseModel):
    settlement_month: date
    amount: Decimal


class WithdrawalRecord(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    user_id: str
    amount: Decimal
    allocations: list[WithdrawalAllocation] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
