"""Daily plan API routes."""
from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from daychain.api.deps import get_input_cache, get_now
from daychain.api.errors import stale_write_exception, to_http_exception
from daychain.api.schemas.daily_plan import (
    ChainStatusResponse,
    DailyPlanResponse,
    DegradeResponse,
    PlanGenerateRequest,
    PlanGenerateResponse,
    PlanVersionRequest,
    SequenceResponse,
    TimeBlockPayload,
)
from daychain.core.config import settings
from daychain.core.context import bind_plan_id
from daychain.db.deps import get_db
from daychain.db.models.daily_plan import DailyPlan, TimeBlock
from daychain.db.models.user import User
from daychain.observability.metrics import log_metric, timed
from daychain.observability.tracing import trace
from daychain.services.chains.generator import DailyContext
from daychain.services.daily_plan.builder import PlanRequest
from daychain.services.daily_plan.cache import PlanInputCache
from daychain.services.daily_plan.chain_progress import chain_reports
from daychain.services.daily_plan.degrade import degrade_plan
from daychain.services.daily_plan.sequencer import get_current_block, get_next_blocks
from daychain.services.daily_plan.store import (
    generate_daily_plan,
    get_owned_plan,
    get_plan_for_day,
    load_plan_blocks,
)
from daychain.services.daily_plan.types import EnergyLevel
from daychain.services.errors import DayChainError, PlanInputError, PlanNotFoundError
from daychain.services.timeutil import at_local, local_date, resolve_zone

router = APIRouter()


def serialize_block(block: TimeBlock) -> TimeBlockPayload:
    return TimeBlockPayload(
        id=block.id,
        start_time=block.start_time,
        end_time=block.end_time,
        activity_type=block.activity_type,
        activity_name=block.activity_name,
        activity_id=block.activity_id,
        is_fixed=block.is_fixed,
        sequence_order=block.sequence_order,
        status=block.status,
        skip_reason=block.skip_reason,
        metadata=dict(block.metadata_json or {}),
    )


def plan_payload(plan: DailyPlan, blocks: List[TimeBlock], request_id: Optional[str]) -> Dict[str, Any]:
    return {
        "id": plan.id,
        "user_id": plan.user_id,
        "plan_date": plan.plan_date,
        "wake_time": plan.wake_time,
        "sleep_time": plan.sleep_time,
        "plan_start": plan.plan_start,
        "energy_state": plan.energy_state,
        "status": plan.status,
        "generated_after_now": plan.generated_after_now,
        "version": plan.version,
        "wake_ramp": plan.wake_ramp,
        "chains": list(plan.chains or []),
        "home_intervals": list(plan.home_intervals or []),
        "location_periods": list(plan.location_periods or []),
        "blocks": [serialize_block(block) for block in blocks],
        "request_id": request_id or "",
    }


def user_zone(db: Session, user_id: UUID, requested: Optional[str]):
    """Requested zone, else the user's stored zone, else the configured default."""
    stored = None
    if requested is None:
        user = db.get(User, user_id)
        stored = user.timezone if user else None
    try:
        return resolve_zone(requested or stored, settings.default_timezone)
    except ValueError as exc:
        raise PlanInputError(str(exc), timezone=requested or stored) from exc


def build_plan_request(payload: PlanGenerateRequest, zone) -> PlanRequest:
    wake = at_local(payload.plan_date, payload.wake_time, zone)
    sleep = at_local(payload.plan_date, payload.sleep_time, zone)
    if sleep <= wake:
        sleep = at_local(payload.plan_date + timedelta(days=1), payload.sleep_time, zone)
    if sleep <= wake:
        raise PlanInputError("sleep_time must be after wake_time")

    context = None
    if payload.daily_context is not None:
        context = DailyContext(
            meds_taken=payload.daily_context.meds_taken,
            shower_done=payload.daily_context.shower_done,
        )
    return PlanRequest(
        user_id=payload.user_id,
        plan_date=payload.plan_date,
        wake_time=wake,
        sleep_time=sleep,
        energy=EnergyLevel(payload.energy_state),
        zone=zone,
        current_location=payload.current_location,
        daily_context=context,
    )


@router.post(
    "/daily-plan/generate",
    response_model=PlanGenerateResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["daily-plan"],
)
def generate_plan(
    payload: PlanGenerateRequest,
    http_request: Request,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    cache: PlanInputCache = Depends(get_input_cache),
) -> PlanGenerateResponse:
    """Build today's plan for a user, replacing any plan already stored for that date."""
    request_id = getattr(http_request.state, "request_id", None)
    metadata: Dict[str, Any] = {
        "route": "/daily-plan/generate",
        "user_id": str(payload.user_id),
        "plan_date": payload.plan_date.isoformat(),
        "energy_state": payload.energy_state,
        "request_id": request_id,
    }

    try:
        with timed("daily_plan.generate", metadata={"user_id": str(payload.user_id)}) as extra:
            zone = user_zone(db, payload.user_id, payload.timezone)
            plan_request = build_plan_request(payload, zone)
            if payload.refresh_inputs:
                cache.invalidate(payload.user_id, payload.plan_date)
            result = generate_daily_plan(
                db,
                plan_request,
                now=now,
                cache=cache,
                request_id=request_id,
                task_fetch_limit=settings.task_fetch_limit,
                buffer_minutes=settings.chain_completion_buffer_minutes,
                default_travel_minutes=settings.default_travel_minutes,
            )
            extra["blocks"] = len(result.blocks)
            extra["replaced_existing"] = result.replaced_existing
    except DayChainError as exc:
        metadata["error_code"] = exc.error_code
        log_metric("daily_plan.generate.failure", 1, metadata=metadata)
        raise to_http_exception(exc) from exc

    draft = result.draft
    return PlanGenerateResponse(
        **plan_payload(result.plan, result.blocks, request_id),
        replaced_existing=result.replaced_existing,
        reused_existing=result.reused_existing,
        tail_plan=bool(draft and draft.tail_plan_used),
        skipped_items=list(draft.skipped_items) if draft else [],
    )


@router.get("/daily-plan/today", response_model=DailyPlanResponse, tags=["daily-plan"])
def get_today_plan(
    http_request: Request,
    user_id: UUID = Query(..., description="User ID owning the plan"),
    plan_date: Optional[date] = Query(default=None, alias="date"),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> DailyPlanResponse:
    """Return the stored plan for a day (defaults to today in the user's zone)."""
    request_id = getattr(http_request.state, "request_id", None)
    try:
        with trace(
            "daily_plan.today",
            metadata={"route": "/daily-plan/today", "user_id": str(user_id), "request_id": request_id},
            user_id=str(user_id),
            request_id=request_id,
        ):
            day = plan_date or local_date(now, user_zone(db, user_id, None))
            plan = get_plan_for_day(db, user_id, day)
            if plan is None:
                raise PlanNotFoundError("No plan generated for this date", plan_date=day)
            blocks = load_plan_blocks(db, plan.id)
    except DayChainError as exc:
        raise to_http_exception(exc) from exc

    log_metric("daily_plan.today.success", 1, metadata={"user_id": str(user_id)})
    return DailyPlanResponse(**plan_payload(plan, blocks, request_id))


@router.get("/daily-plan/{plan_id}/sequence", response_model=SequenceResponse, tags=["daily-plan"])
def get_plan_sequence(
    plan_id: UUID,
    http_request: Request,
    user_id: UUID = Query(..., description="User ID owning the plan"),
    n: int = Query(3, ge=0, le=20, description="How many upcoming blocks to return"),
    db: Session = Depends(get_db),
) -> SequenceResponse:
    """Current block and the next `n` pending blocks."""
    request_id = getattr(http_request.state, "request_id", None)
    try:
        with bind_plan_id(plan_id), trace(
            "daily_plan.sequence",
            metadata={"route": f"/daily-plan/{plan_id}/sequence", "n": n},
            user_id=str(user_id),
            request_id=request_id,
        ):
            plan = get_owned_plan(db, plan_id, user_id)
            blocks = load_plan_blocks(db, plan.id)
            current = get_current_block(blocks)
            upcoming = get_next_blocks(blocks, n)
    except DayChainError as exc:
        raise to_http_exception(exc) from exc

    return SequenceResponse(
        plan_id=plan.id,
        current=serialize_block(current) if current else None,
        next=[serialize_block(block) for block in upcoming],
        request_id=request_id or "",
    )


@router.post("/daily-plan/{plan_id}/degrade", response_model=DegradeResponse, tags=["daily-plan"])
def degrade_daily_plan(
    plan_id: UUID,
    payload: PlanVersionRequest,
    http_request: Request,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> DegradeResponse:
    """Drop non-essential pending work and rebuild transitions."""
    request_id = getattr(http_request.state, "request_id", None)
    try:
        with timed("daily_plan.degrade", metadata={"plan_id": str(plan_id)}) as extra:
            result = degrade_plan(
                db,
                plan_id,
                user_id=payload.user_id,
                now=now,
                expected_version=payload.expected_version,
                request_id=request_id,
            )
            extra["dropped"] = result.dropped
    except DayChainError as exc:
        raise to_http_exception(exc) from exc
    except StaleDataError as exc:
        db.rollback()
        raise stale_write_exception() from exc

    return DegradeResponse(
        **plan_payload(result.plan, result.blocks, request_id),
        dropped=result.dropped,
        buffers_removed=result.buffers_removed,
        buffers_added=result.buffers_added,
    )


@router.get("/daily-plan/{plan_id}/chains/status", response_model=ChainStatusResponse, tags=["daily-plan"])
def get_chain_status(
    plan_id: UUID,
    http_request: Request,
    user_id: UUID = Query(..., description="User ID owning the plan"),
    db: Session = Depends(get_db),
) -> ChainStatusResponse:
    """Progress and integrity of every chain in the plan."""
    request_id = getattr(http_request.state, "request_id", None)
    try:
        with bind_plan_id(plan_id), trace(
            "daily_plan.chain_status",
            metadata={"route": f"/daily-plan/{plan_id}/chains/status"},
            user_id=str(user_id),
            request_id=request_id,
        ):
            plan = get_owned_plan(db, plan_id, user_id)
            reports = chain_reports(db, plan)
    except DayChainError as exc:
        raise to_http_exception(exc) from exc

    broken = sum(1 for report in reports if report.integrity == "broken")
    if broken:
        log_metric("chain.broken", broken, metadata={"plan_id": str(plan_id)})
    return ChainStatusResponse(
        plan_id=plan.id,
        chains=[vars(report) for report in reports],
        request_id=request_id or "",
    )
