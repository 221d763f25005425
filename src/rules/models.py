from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

from src.domain.entities import SubscriptionStatus


class ProjectRules(BaseModel):
    slug: str
    rules_version: str
    currency: str = "NGN"

class RevenueRules(BaseModel):
    subscription_price: Decimal = Field(default=Decimal("1000"), gt=0)
    share_ratio: Decimal = Field(default=Decimal("0.7"), ge=0, le=1)
    price_source: Literal["plan", "catalogue"] = "plan"
    revenue_statuses: list[SubscriptionStatus] = Field(default_factory=lambda: ["active"], min_length=1)

class PointWeights(BaseModel):
    media_play: Decimal = Field(default=Decimal("0.2"), ge=0)
    download: Decimal = Field(default=Decimal("3"), ge=0)
    live_attendance: Decimal = Field(default=Decimal("5"), ge=0)

class PointsRules(BaseModel):
    weights: PointWeights = Field(default_factory=PointWeights)
    min_watch_ratio: Decimal = Field(default=Decimal("0.30"), ge=0, le=1)

class SettlementRules(BaseModel):
    max_parallel_reads: int = Field(default=2, ge=1)
    busy_timeout_seconds: float = Field(default=5.0, gt=0)

class OpsRules(BaseModel):
    required_env: list[str] = Field(default_factory=list)
    data_dir_env: str = "SETTLEMENT_DATA_DIR"

class Rules(BaseModel):
    project: ProjectRules
    revenue: RevenueRules = Field(default_factory=RevenueRules)
    points: PointsRules = Field(default_factory=PointsRules)
    settlement: SettlementRules = Field(default_factory=SettlementRules)
    ops: OpsRules = Field(default_factory=OpsRules)
