"""
Admin Settlements API.

Run, preview and inspect monthly settlements. A month path parameter accepts
YYYY-MM, YYYY-MM-DD or an ISO timestamp and is normalized to the first day.
"""

from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from src.api.deps import get_settlement_engine
from src.api.errors import month_param, to_http_exception
from src.components.points import KindTally, PointsBreakdown
from src.components.settlement import (
    EarningAllocation,
    SettlementEngine,
    SettlementPreview,
    SettlementSummary,
)
from src.domain.entities import EducatorEarning, MonthlySettlement
from src.domain.errors import SettlementError

router = APIRouter()


# --- Response Models ---


class SettlementSummaryResponse(BaseModel):
    """Result of a settlement run."""

    id: str
    month: str
    total_subscribers: int
    total_revenue: Decimal
    total_points: Decimal
    point_value: Decimal
    educator_count: int


class SettlementResponse(BaseModel):
    id: str
    month: str
    status: str
    total_subscribers: int
    gross_revenue: Decimal
    total_revenue: Decimal
    total_points: Decimal
    point_value: Decimal
    created_at: str
    finalized_at: str | None


class EarningResponse(BaseModel):
    educator_id: str
    points: Decimal
    earnings: Decimal
    withdrawn: Decimal
    available_balance: Decimal


class SettlementDetailResponse(BaseModel):
    settlement: SettlementResponse
    earnings: list[EarningResponse]


class SettlementListResponse(BaseModel):
    items: list[SettlementResponse]
    total: int


class KindTallyResponse(BaseModel):
    count: int
    points: Decimal


class PointsBreakdownResponse(BaseModel):
    media_plays: KindTallyResponse
    downloads: KindTallyResponse
    live_attendance: KindTallyResponse


class EducatorPreviewResponse(BaseModel):
    educator_id: str
    points: Decimal
    earnings: Decimal
    breakdown: PointsBreakdownResponse


class PreviewSummaryResponse(BaseModel):
    total_earnings_to_distribute: Decimal
    average_earnings: Decimal
    top_earner: EducatorPreviewResponse | None


class SettlementPreviewResponse(BaseModel):
    """Dry-run settlement; nothing is stored."""

    month: str
    existing_status: str | None
    total_subscribers: int
    gross_revenue: Decimal
    distributable_revenue: Decimal
    total_points: Decimal
    point_value: Decimal
    points_breakdown: PointsBreakdownResponse
    educators: list[EducatorPreviewResponse]
    summary: PreviewSummaryResponse


# --- Helper Functions ---


def summary_to_response(summary: SettlementSummary) -> SettlementSummaryResponse:
    return SettlementSummaryResponse(
        id=str(summary.id),
        month=summary.month.strftime("%Y-%m"),
        total_subscribers=summary.total_subscribers,
        total_revenue=summary.total_revenue,
        total_points=summary.total_points,
        point_value=summary.point_value,
        educator_count=summary.educator_count,
    )


def settlement_to_response(settlement: MonthlySettlement) -> SettlementResponse:
    return SettlementResponse(
        id=str(settlement.id),
        month=settlement.month.strftime("%Y-%m"),
        status=settlement.status,
        total_subscribers=settlement.total_subscribers,
        gross_revenue=settlement.gross_revenue,
        total_revenue=settlement.total_revenue,
        total_points=settlement.total_points,
        point_value=settlement.point_value,
        created_at=settlement.created_at.isoformat(),
        finalized_at=settlement.finalized_at.isoformat() if settlement.finalized_at else None,
    )


def earning_to_response(earning: EducatorEarning) -> EarningResponse:
    return EarningResponse(
        educator_id=earning.user_id,
        points=earning.points,
        earnings=earning.earnings,
        withdrawn=earning.withdrawn,
        available_balance=earning.available_balance,
    )


def breakdown_to_response(breakdown: PointsBreakdown) -> PointsBreakdownResponse:
    def tally(t: KindTally) -> KindTallyResponse:
        return KindTallyResponse(count=t.count, points=t.points)

    return PointsBreakdownResponse(
        media_plays=tally(breakdown.media_plays),
        downloads=tally(breakdown.downloads),
        live_attendance=tally(breakdown.live_attendance),
    )


def allocation_to_response(allocation: EarningAllocation) -> EducatorPreviewResponse:
    return EducatorPreviewResponse(
        educator_id=allocation.educator_id,
        points=allocation.points,
        earnings=allocation.earnings,
        breakdown=breakdown_to_response(allocation.breakdown),
    )


def preview_to_response(preview: SettlementPreview) -> SettlementPreviewResponse:
    top = preview.summary.top_earner
    return SettlementPreviewResponse(
        month=preview.month.strftime("%Y-%m"),
        existing_status=preview.existing_status,
        total_subscribers=preview.total_subscribers,
        gross_revenue=preview.gross_revenue,
        distributable_revenue=preview.distributable_revenue,
        total_points=preview.total_points,
        point_value=preview.point_value,
        points_breakdown=breakdown_to_response(preview.points_breakdown),
        educators=[allocation_to_response(a) for a in preview.educators],
        summary=PreviewSummaryResponse(
            total_earnings_to_distribute=preview.summary.total_earnings_to_distribute,
            average_earnings=preview.summary.average_earnings,
            top_earner=allocation_to_response(top) if top else None,
        ),
    )


# --- Routes ---


@router.get("", response_model=SettlementListResponse)
def list_settlements(
    engine: SettlementEngine = Depends(get_settlement_engine),
) -> SettlementListResponse:
    """All settlements, newest month first."""
    try:
        settlements = engine.list_settlements()
    except SettlementError as e:
        raise to_http_exception(e) from e
    return SettlementListResponse(
        items=[settlement_to_response(s) for s in settlements],
        total=len(settlements),
    )


@router.post("/{month}/run", response_model=SettlementSummaryResponse)
def run_settlement(
    month: str,
    engine: SettlementEngine = Depends(get_settlement_engine),
) -> SettlementSummaryResponse:
    """
    Compute and finalize a month.

    Idempotent: a finalized month returns its stored summary unchanged.
    """
    key = month_param(month)
    try:
        summary = engine.run_settlement(key)
    except SettlementError as e:
        raise to_http_exception(e) from e
    return summary_to_response(summary)


@router.get("/{month}/preview", response_model=SettlementPreviewResponse)
def preview_settlement(
    month: str,
    engine: SettlementEngine = Depends(get_settlement_engine),
) -> SettlementPreviewResponse:
    key = month_param(month)
    try:
        preview = engine.preview_settlement(key)
    except SettlementError as e:
        raise to_http_exception(e) from e
    return preview_to_response(preview)


@router.get("/{month}", response_model=SettlementDetailResponse)
def get_settlement(
    month: str,
    engine: SettlementEngine = Depends(get_settlement_engine),
) -> SettlementDetailResponse:
    key = month_param(month)
    try:
        details = engine.get_settlement(key)
    except SettlementError as e:
        raise to_http_exception(e) from e

    if details is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No settlement for {key:%Y-%m}",
        )
    return SettlementDetailResponse(
        settlement=settlement_to_response(details.settlement),
        earnings=[earning_to_response(e) for e in details.earnings],
    )
