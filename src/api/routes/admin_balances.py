"""
Admin Educator Balances API.

Finalized balances with the current-month estimate, FIFO withdrawals and
withdrawal history for one educator.
"""

from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from src.api.deps import get_settlement_engine
from src.api.errors import to_http_exception
from src.components.settlement import EducatorBalance, SettlementEngine
from src.domain.entities import WithdrawalRecord
from src.domain.errors import SettlementError

router = APIRouter()


# --- Request/Response Models ---


class BalanceLineResponse(BaseModel):
    month: str
    status: str
    points: Decimal
    earnings: Decimal
    withdrawn: Decimal
    available_balance: Decimal
    point_value: Decimal


class CurrentMonthResponse(BaseModel):
    """Advisory estimate; not withdrawable until the month is finalized."""

    month: str
    points: Decimal
    earnings: Decimal
    point_value: Decimal
    total_points: Decimal
    total_subscribers: int
    note: str


class BalanceResponse(BaseModel):
    educator_id: str
    finalized_balance: Decimal
    current_month_estimate: Decimal
    total_balance: Decimal
    current_month: CurrentMonthResponse
    monthly_breakdown: list[BalanceLineResponse]


class WithdrawalRequest(BaseModel):
    amount: Decimal


class WithdrawalAllocationResponse(BaseModel):
    month: str
    amount: Decimal


class WithdrawalResponse(BaseModel):
    id: str
    amount: Decimal
    created_at: str
    allocations: list[WithdrawalAllocationResponse]


class WithdrawalResultResponse(BaseModel):
    success: bool
    educator_id: str
    amount: Decimal
    finalized_balance: Decimal
    withdrawal: WithdrawalResponse


class WithdrawalListResponse(BaseModel):
    items: list[WithdrawalResponse]
    total: int


# --- Helper Functions ---


def balance_to_response(balance: EducatorBalance) -> BalanceResponse:
    estimate = balance.current_month
    return BalanceResponse(
        educator_id=balance.educator_id,
        finalized_balance=balance.finalized_balance,
        current_month_estimate=balance.current_month_estimate,
        total_balance=balance.total_balance,
        current_month=CurrentMonthResponse(
            month=estimate.month.strftime("%Y-%m"),
            points=estimate.points,
            earnings=estimate.earnings,
            point_value=estimate.point_value,
            total_points=estimate.total_points,
            total_subscribers=estimate.total_subscribers,
            note=estimate.note,
        ),
        monthly_breakdown=[
            BalanceLineResponse(
                month=line.month.strftime("%Y-%m"),
                status=line.status,
                points=line.points,
                earnings=line.earnings,
                withdrawn=line.withdrawn,
                available_balance=line.available_balance,
                point_value=line.point_value,
            )
            for line in balance.monthly_breakdown
        ],
    )


def withdrawal_to_response(record: WithdrawalRecord) -> WithdrawalResponse:
    return WithdrawalResponse(
        id=str(record.id),
        amount=record.amount,
        created_at=record.created_at.isoformat(),
        allocations=[
            WithdrawalAllocationResponse(
                month=a.settlement_month.strftime("%Y-%m"),
                amount=a.amount,
            )
            for a in record.allocations
        ],
    )


# --- Routes ---


@router.get("/{educator_id}/balance", response_model=BalanceResponse)
def get_educator_balance(
    educator_id: str,
    engine: SettlementEngine = Depends(get_settlement_engine),
) -> BalanceResponse:
    """Finalized balance plus the live estimate for the current month."""
    try:
        balance = engine.get_educator_balance(educator_id)
    except SettlementError as e:
        raise to_http_exception(e) from e
    return balance_to_response(balance)


@router.post("/{educator_id}/withdrawals", response_model=WithdrawalResultResponse)
def process_withdrawal(
    educator_id: str,
    body: WithdrawalRequest,
    engine: SettlementEngine = Depends(get_settlement_engine),
) -> WithdrawalResultResponse:
    """
    Withdraw from finalized balances, oldest month first.

    All-or-nothing: 422 with requested/available when the balance is short.
    The response is built from the withdrawal's own receipt, so a committed
    withdrawal always answers 200.
    """
    try:
        receipt = engine.withdraw(educator_id, body.amount)
    except SettlementError as e:
        raise to_http_exception(e) from e
    return WithdrawalResultResponse(
        success=True,
        educator_id=educator_id,
        amount=receipt.record.amount,
        finalized_balance=receipt.finalized_balance,
        withdrawal=withdrawal_to_response(receipt.record),
    )


@router.get("/{educator_id}/withdrawals", response_model=WithdrawalListResponse)
def list_withdrawals(
    educator_id: str,
    engine: SettlementEngine = Depends(get_settlement_engine),
) -> WithdrawalListResponse:
    try:
        records = engine.list_withdrawals(educator_id)
    except SettlementError as e:
        raise to_http_exception(e) from e
    return WithdrawalListResponse(
        items=[withdrawal_to_response(r) for r in records],
        total=len(records),
    )
