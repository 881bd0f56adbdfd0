"""Execution chain preview route."""
from __future__ import annotations

from datetime import date, datetime, time
from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from daychain.api.deps import get_input_cache, get_now
from daychain.api.errors import to_http_exception
from daychain.api.routes.daily_plan import build_plan_request, user_zone
from daychain.api.schemas.daily_plan import ChainPreviewResponse, DailyContextPayload, PlanGenerateRequest
from daychain.core.config import settings
from daychain.db.deps import get_db
from daychain.observability.metrics import log_metric
from daychain.observability.tracing import trace
from daychain.services.daily_plan.builder import build_plan_draft, gather_plan_inputs
from daychain.services.daily_plan.cache import PlanInputCache
from daychain.services.errors import DayChainError
from daychain.services.sources import PlanSources
from daychain.services.timeutil import local_date

router = APIRouter()


@router.get("/chains/today", response_model=ChainPreviewResponse, tags=["chains"])
def preview_chains(
    http_request: Request,
    user_id: UUID = Query(..., description="User ID owning the commitments"),
    plan_date: Optional[date] = Query(default=None, alias="date"),
    wake_time: time = Query(time(7, 0)),
    sleep_time: time = Query(time(23, 0)),
    energy_state: Literal["low", "medium", "high"] = Query("medium"),
    timezone: Optional[str] = Query(default=None),
    meds_taken: Optional[bool] = Query(default=None),
    shower_done: Optional[bool] = Query(default=None),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    cache: PlanInputCache = Depends(get_input_cache),
) -> ChainPreviewResponse:
    """Chains, wake ramp and home intervals for a day without storing a plan."""
    request_id = getattr(http_request.state, "request_id", None)
    try:
        with trace(
            "chains.preview",
            metadata={"route": "/chains/today", "user_id": str(user_id), "request_id": request_id},
            user_id=str(user_id),
            request_id=request_id,
        ):
            zone = user_zone(db, user_id, timezone)
            payload = PlanGenerateRequest(
                user_id=user_id,
                plan_date=plan_date or local_date(now, zone),
                wake_time=wake_time,
                sleep_time=sleep_time,
                energy_state=energy_state,
                daily_context=DailyContextPayload(meds_taken=meds_taken, shower_done=shower_done),
            )
            plan_request = build_plan_request(payload, zone)
            inputs = gather_plan_inputs(
                plan_request,
                PlanSources.from_session(db, travel_minutes=settings.default_travel_minutes),
                cache,
                task_fetch_limit=settings.task_fetch_limit,
            )
            draft = build_plan_draft(
                plan_request,
                inputs,
                now,
                buffer_minutes=settings.chain_completion_buffer_minutes,
                default_travel_minutes=settings.default_travel_minutes,
            )
    except DayChainError as exc:
        raise to_http_exception(exc) from exc

    log_metric("chains.preview.count", len(draft.chains), metadata={"user_id": str(user_id)})
    return ChainPreviewResponse(
        plan_date=plan_request.plan_date,
        anchors=[anchor.to_dict() for anchor in inputs.anchors],
        chains=[chain.to_dict() for chain in draft.chains],
        wake_ramp=draft.wake_ramp.to_dict(),
        home_intervals=[interval.to_dict() for interval in draft.home_intervals],
        request_id=request_id or "",
    )
