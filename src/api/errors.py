"""
Translation of settlement errors into HTTP responses.

InsufficientBalanceError / InvalidWithdrawalError -> 422
ConcurrencyConflictError -> 409
DataIntegrityError -> 500
TransientStoreError -> 503
"""

import logging
from datetime import date

from fastapi import HTTPException, status

from src.domain.errors import (
    ConcurrencyConflictError,
    DataIntegrityError,
    InsufficientBalanceError,
    InvalidWithdrawalError,
    SettlementError,
    TransientStoreError,
)
from src.domain.months import parse_month

logger = logging.getLogger(__name__)


def error_detail(error: SettlementError) -> dict[str, str | None]:
    return {
        "error": type(error).__name__,
        "message": error.message,
        "month": error.month.strftime("%Y-%m") if error.month else None,
        "phase": error.phase,
    }


def to_http_exception(error: SettlementError) -> HTTPException:
    """Map a settlement error to the HTTP status callers can act on."""
    detail = error_detail(error)

    if isinstance(error, InsufficientBalanceError):
        detail["requested"] = str(error.requested)
        detail["available"] = str(error.available)
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)
    if isinstance(error, InvalidWithdrawalError):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)
    if isinstance(error, ConcurrencyConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)
    if isinstance(error, TransientStoreError):
        logger.warning("Store unavailable: %s", error)
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)
    if isinstance(error, DataIntegrityError):
        logger.error("Data integrity failure: %s", error)
    else:
        logger.exception("Unhandled settlement error: %s", error)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


def month_param(month: str) -> date:
    """Parse a month path parameter to its first day."""
    try:
        return parse_month(month)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid month: {month}. Use YYYY-MM",
        ) from e
