"""Translate engine errors into HTTP responses."""
from __future__ import annotations

from fastapi import HTTPException, status
from sqlalchemy.orm.exc import StaleDataError

from daychain.services.errors import (
    BlockNotFoundError,
    ChainEditConflictError,
    ChainStructureError,
    DayChainError,
    NotAChainStepError,
    PlanInputError,
    PlanNotFoundError,
    PlanOwnershipError,
    PlanVersionConflictError,
    StaleBlockReferenceError,
    StepValidationError,
)

_STATUS_BY_ERROR = (
    ((PlanNotFoundError, BlockNotFoundError, StaleBlockReferenceError), status.HTTP_404_NOT_FOUND),
    ((PlanOwnershipError,), status.HTTP_403_FORBIDDEN),
    ((PlanVersionConflictError, ChainEditConflictError), status.HTTP_409_CONFLICT),
    ((ChainStructureError, NotAChainStepError), status.HTTP_400_BAD_REQUEST),
    ((StepValidationError, PlanInputError), status.HTTP_422_UNPROCESSABLE_ENTITY),
)


def to_http_exception(exc: DayChainError) -> HTTPException:
    for error_types, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_types):
            return HTTPException(status_code=status_code, detail=exc.to_detail())
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.to_detail())


def stale_write_exception() -> HTTPException:
    """A concurrent request flushed a newer plan version first."""
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={
            "error": "Plan was modified by another request; reload and retry",
            "error_code": PlanVersionConflictError.error_code,
        },
    )
