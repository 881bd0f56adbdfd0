"""Errors raised by the scheduling engine.

Unschedulable items are never errors (they are skipped with a reason); these
exceptions cover invalid input, stale references and structural violations.
"""
from __future__ import annotations

from typing import Any


class DayChainError(Exception):
    error_code = "DAYCHAIN_ERROR"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_detail(self) -> dict[str, Any]:
        detail: dict[str, Any] = {"error": self.message, "error_code": self.error_code}
        if self.context:
            detail["context"] = {key: str(value) for key, value in self.context.items()}
        return detail


class PlanNotFoundError(DayChainError):
    error_code = "PLAN_NOT_FOUND"


class BlockNotFoundError(DayChainError):
    error_code = "TIME_BLOCK_NOT_FOUND"


class StaleBlockReferenceError(DayChainError):
    """The client holds a block id that a regeneration invalidated."""

    error_code = "STALE_TIME_BLOCK_REFERENCE"


class NotAChainStepError(DayChainError):
    error_code = "NOT_A_CHAIN_STEP"


class ChainStructureError(DayChainError):
    error_code = "CHAIN_WOULD_BE_EMPTY"


class StepValidationError(DayChainError):
    error_code = "INVALID_STEP_INPUT"


class PlanInputError(DayChainError):
    error_code = "INVALID_PLAN_INPUT"


class PlanVersionConflictError(DayChainError):
    error_code = "PLAN_VERSION_CONFLICT"


class PlanOwnershipError(DayChainError):
    error_code = "FORBIDDEN"


class ChainEditConflictError(DayChainError):
    """A reflowed chain would collide with a fixed block outside the chain."""

    error_code = "CHAIN_EDIT_CONFLICT"
