"""Time block API routes: status changes and chain step edits."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from daychain.api.deps import get_now
from daychain.api.errors import stale_write_exception, to_http_exception
from daychain.api.routes.daily_plan import serialize_block
from daychain.api.schemas.time_block import (
    AddStepRequest,
    BlockSkipRequest,
    BlockStatusRequest,
    BlockStatusResponse,
    ChainEditResponse,
    DeleteStepRequest,
    EditStepRequest,
)
from daychain.db.deps import get_db
from daychain.observability.metrics import log_metric, timed
from daychain.observability.tracing import trace
from daychain.services.daily_plan.editing import (
    ChainEditResult,
    add_chain_step,
    delete_chain_step,
    edit_chain_step,
)
from daychain.services.daily_plan.sequencer import get_current_block, mark_block_complete, mark_block_skipped
from daychain.services.daily_plan.store import load_plan_blocks
from daychain.services.errors import DayChainError

router = APIRouter()


def _status_response(db: Session, block, request_id) -> BlockStatusResponse:
    current = get_current_block(load_plan_blocks(db, block.plan_id))
    return BlockStatusResponse(
        block=serialize_block(block),
        current=serialize_block(current) if current else None,
        request_id=request_id or "",
    )


def _edit_response(result: ChainEditResult, request_id) -> ChainEditResponse:
    return ChainEditResponse(
        plan_id=result.plan.id,
        plan_version=result.plan.version,
        chain_id=result.chain_id,
        block_id=result.block_id,
        displaced=result.displaced,
        saved_template=result.saved_template,
        steps=[serialize_block(block) for block in result.chain_blocks],
        request_id=request_id or "",
    )


@router.post("/time-blocks/{block_id}/complete", response_model=BlockStatusResponse, tags=["time-blocks"])
def complete_block(
    block_id: UUID,
    payload: BlockStatusRequest,
    http_request: Request,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> BlockStatusResponse:
    """Mark a block completed; the plan advances to the next pending block."""
    request_id = getattr(http_request.state, "request_id", None)
    metadata: Dict[str, Any] = {
        "route": f"/time-blocks/{block_id}/complete",
        "block_id": str(block_id),
        "user_id": str(payload.user_id),
        "request_id": request_id,
    }
    try:
        with trace("time_block.complete", metadata=metadata, user_id=str(payload.user_id), request_id=request_id):
            block = mark_block_complete(db, block_id, user_id=payload.user_id, now=now, request_id=request_id)
            db.commit()
            db.refresh(block)
    except DayChainError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except StaleDataError as exc:
        db.rollback()
        raise stale_write_exception() from exc
    except Exception:
        db.rollback()
        raise

    log_metric("time_block.complete.success", 1, metadata={"user_id": str(payload.user_id)})
    return _status_response(db, block, request_id)


@router.post("/time-blocks/{block_id}/skip", response_model=BlockStatusResponse, tags=["time-blocks"])
def skip_block(
    block_id: UUID,
    payload: BlockSkipRequest,
    http_request: Request,
    db: Session = Depends(get_db),
) -> BlockStatusResponse:
    """Mark a block skipped with an optional reason."""
    request_id = getattr(http_request.state, "request_id", None)
    metadata: Dict[str, Any] = {
        "route": f"/time-blocks/{block_id}/skip",
        "block_id": str(block_id),
        "user_id": str(payload.user_id),
        "request_id": request_id,
    }
    try:
        with trace("time_block.skip", metadata=metadata, user_id=str(payload.user_id), request_id=request_id):
            block = mark_block_skipped(
                db,
                block_id,
                user_id=payload.user_id,
                reason=payload.reason,
                request_id=request_id,
            )
            db.commit()
            db.refresh(block)
    except DayChainError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except StaleDataError as exc:
        db.rollback()
        raise stale_write_exception() from exc
    except Exception:
        db.rollback()
        raise

    log_metric("time_block.skip.success", 1, metadata={"user_id": str(payload.user_id)})
    return _status_response(db, block, request_id)


@router.post("/time-blocks/{block_id}/edit-step", response_model=ChainEditResponse, tags=["time-blocks"])
def edit_step(
    block_id: UUID,
    payload: EditStepRequest,
    http_request: Request,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> ChainEditResponse:
    """Rename or re-time a chain step and reflow the chain backward from its deadline."""
    request_id = getattr(http_request.state, "request_id", None)
    try:
        with timed("chain_step.edit", metadata={"user_id": str(payload.user_id)}):
            result = edit_chain_step(
                db,
                block_id,
                user_id=payload.user_id,
                now=now,
                name=payload.name,
                duration_minutes=payload.duration_minutes,
                save_as_template=payload.save_as_template,
                plan_id=payload.plan_id,
                step_id=payload.step_id,
                today=payload.today,
                expected_version=payload.expected_version,
                request_id=request_id,
            )
    except DayChainError as exc:
        raise to_http_exception(exc) from exc
    except StaleDataError as exc:
        raise stale_write_exception() from exc

    return _edit_response(result, request_id)


@router.post("/time-blocks/{block_id}/add-step", response_model=ChainEditResponse, tags=["time-blocks"])
def add_step(
    block_id: UUID,
    payload: AddStepRequest,
    http_request: Request,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> ChainEditResponse:
    """Insert a custom step after the given chain block."""
    request_id = getattr(http_request.state, "request_id", None)
    try:
        with timed("chain_step.add", metadata={"user_id": str(payload.user_id)}):
            result = add_chain_step(
                db,
                block_id,
                user_id=payload.user_id,
                now=now,
                name=payload.name,
                duration_minutes=payload.duration_minutes,
                is_required=payload.is_required,
                save_as_template=payload.save_as_template,
                plan_id=payload.plan_id,
                step_id=payload.step_id,
                today=payload.today,
                expected_version=payload.expected_version,
                request_id=request_id,
            )
    except DayChainError as exc:
        raise to_http_exception(exc) from exc
    except StaleDataError as exc:
        raise stale_write_exception() from exc

    return _edit_response(result, request_id)


@router.delete("/time-blocks/{block_id}/step", response_model=ChainEditResponse, tags=["time-blocks"])
def delete_step(
    block_id: UUID,
    payload: DeleteStepRequest,
    http_request: Request,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> ChainEditResponse:
    """Remove a chain step; a chain always keeps at least one step."""
    request_id = getattr(http_request.state, "request_id", None)
    try:
        with timed("chain_step.delete", metadata={"user_id": str(payload.user_id)}):
            result = delete_chain_step(
                db,
                block_id,
                user_id=payload.user_id,
                now=now,
                save_as_template=payload.save_as_template,
                plan_id=payload.plan_id,
                step_id=payload.step_id,
                today=payload.today,
                expected_version=payload.expected_version,
                request_id=request_id,
            )
    except DayChainError as exc:
        raise to_http_exception(exc) from exc
    except StaleDataError as exc:
        raise stale_write_exception() from exc

    return _edit_response(result, request_id)
