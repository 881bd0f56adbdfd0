"""Persistence of generated plans and shared helpers for plan mutations."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import asc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from daychain.core.context import bind_plan_id
from daychain.db.models.agent_action_log import AgentActionLog
from daychain.db.models.daily_plan import DailyPlan, ExitTime, TimeBlock
from daychain.observability.tracing import trace
from daychain.services.daily_plan.block_metadata import TravelMeta, dump_block_metadata, parse_block_metadata
from daychain.services.daily_plan.builder import (
    PlanDraft,
    PlanRequest,
    build_plan_draft,
    gather_plan_inputs,
)
from daychain.services.daily_plan.cache import PlanInputCache
from daychain.services.daily_plan.types import PlanStatus
from daychain.services.errors import PlanNotFoundError, PlanOwnershipError, PlanVersionConflictError
from daychain.services.sources import PlanSources
from daychain.services.user_service import get_or_create_user

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    plan: DailyPlan
    blocks: List[TimeBlock]
    draft: Optional[PlanDraft]
    replaced_existing: bool = False
    reused_existing: bool = False


def load_plan_blocks(db: Session, plan_id: UUID) -> List[TimeBlock]:
    return (
        db.query(TimeBlock)
        .filter(TimeBlock.plan_id == plan_id)
        .order_by(asc(TimeBlock.sequence_order))
        .all()
    )


def get_plan_for_day(db: Session, user_id: UUID, plan_date: date) -> Optional[DailyPlan]:
    return (
        db.query(DailyPlan)
        .filter(DailyPlan.user_id == user_id, DailyPlan.plan_date == plan_date)
        .one_or_none()
    )


def get_owned_plan(db: Session, plan_id: UUID, user_id: UUID) -> DailyPlan:
    plan = db.get(DailyPlan, plan_id)
    if plan is None:
        raise PlanNotFoundError("Daily plan not found", plan_id=plan_id)
    if plan.user_id != user_id:
        raise PlanOwnershipError("Daily plan does not belong to user", plan_id=plan_id)
    return plan


def check_expected_version(plan: DailyPlan, expected_version: Optional[int]) -> None:
    if expected_version is not None and plan.version != expected_version:
        raise PlanVersionConflictError(
            "Plan was modified by another request; reload and retry",
            plan_id=plan.id,
            expected=expected_version,
            actual=plan.version,
        )


def touch_plan(plan: DailyPlan, now: datetime) -> None:
    """Mark a structural edit so the row's version counter advances on flush."""
    plan.last_modified_at = now


def resequence(blocks: Iterable[TimeBlock]) -> List[TimeBlock]:
    """Dense 1-based sequence numbers in start-time order."""
    ordered = sorted(
        blocks,
        key=lambda block: (block.start_time, block.end_time, block.sequence_order or 0),
    )
    for index, block in enumerate(ordered, start=1):
        if block.sequence_order != index:
            block.sequence_order = index
    return ordered


def record_action(
    db: Session,
    *,
    user_id: UUID,
    plan_id: Optional[UUID],
    action_type: str,
    payload: Dict[str, Any],
    reason: str,
    request_id: Optional[str] = None,
) -> AgentActionLog:
    entry = AgentActionLog(
        user_id=user_id,
        plan_id=plan_id,
        action_type=action_type,
        action_payload={**payload, "request_id": request_id},
        reason=reason,
    )
    db.add(entry)
    return entry


def _delete_plan(db: Session, plan: DailyPlan) -> None:
    db.query(ExitTime).filter(ExitTime.plan_id == plan.id).delete(synchronize_session=False)
    db.query(TimeBlock).filter(TimeBlock.plan_id == plan.id).delete(synchronize_session=False)
    db.delete(plan)
    db.flush()


def _persist_draft(db: Session, request: PlanRequest, draft: PlanDraft) -> tuple[DailyPlan, List[TimeBlock]]:
    plan = DailyPlan(
        user_id=request.user_id,
        plan_date=request.plan_date,
        wake_time=request.wake_time,
        sleep_time=request.sleep_time,
        plan_start=draft.plan_start,
        energy_state=request.energy.value,
        status=PlanStatus.ACTIVE.value,
        generated_after_now=draft.generated_after_now,
        wake_ramp=draft.wake_ramp.to_dict(),
        chains=[chain.to_dict() for chain in draft.chains],
        location_periods=[period.to_dict() for period in draft.location_periods],
        home_intervals=[interval.to_dict() for interval in draft.home_intervals],
    )
    db.add(plan)
    db.flush()

    rows: List[TimeBlock] = []
    for index, block in enumerate(draft.blocks, start=1):
        row = TimeBlock(
            plan_id=plan.id,
            start_time=block.start,
            end_time=block.end,
            activity_type=block.activity_type.value,
            activity_name=block.name,
            activity_id=block.activity_id,
            is_fixed=block.is_fixed,
            sequence_order=index,
            status=block.status.value,
            skip_reason=block.skip_reason,
            metadata_json=dump_block_metadata(block.metadata),
        )
        db.add(row)
        rows.append(row)
    db.flush()

    travel_rows = {}
    for row in rows:
        meta = parse_block_metadata(row.metadata_json)
        if isinstance(meta, TravelMeta) and meta.direction == "there":
            travel_rows[meta.chain_id] = row
    for exit_time in draft.exit_times:
        travel_row = travel_rows.get(exit_time.chain_id)
        db.add(
            ExitTime(
                plan_id=plan.id,
                time_block_id=travel_row.id if travel_row else None,
                commitment_id=exit_time.commitment_id,
                exit_time=exit_time.exit_time,
                travel_duration=exit_time.travel_duration,
                preparation_time=exit_time.preparation_time,
                travel_method=exit_time.travel_method,
            )
        )
    return plan, rows


def generate_daily_plan(
    db: Session,
    request: PlanRequest,
    *,
    now: datetime,
    sources: Optional[PlanSources] = None,
    cache: Optional[PlanInputCache] = None,
    request_id: Optional[str] = None,
    task_fetch_limit: int = 10,
    buffer_minutes: int = 45,
    default_travel_minutes: int = 30,
) -> GenerationResult:
    """Build and store the plan for `(user, date)`, replacing any existing one.

    Everything is written in one transaction. If a concurrent request wins the
    insert race, its plan is returned instead.
    """
    sources = sources or PlanSources.from_session(db, travel_minutes=default_travel_minutes)
    with trace(
        "daily_plan.generate",
        metadata={"plan_date": request.plan_date.isoformat(), "energy": request.energy.value},
        user_id=str(request.user_id),
        request_id=request_id,
    ):
        inputs = gather_plan_inputs(request, sources, cache, task_fetch_limit=task_fetch_limit)
        draft = build_plan_draft(
            request,
            inputs,
            now,
            buffer_minutes=buffer_minutes,
            default_travel_minutes=default_travel_minutes,
        )

        try:
            get_or_create_user(db, request.user_id, timezone=getattr(request.zone, "key", None))
            existing = get_plan_for_day(db, request.user_id, request.plan_date)
            replaced = existing is not None
            if existing is not None:
                logger.info("Replacing existing plan %s for %s", existing.id, request.plan_date)
                _delete_plan(db, existing)

            plan, rows = _persist_draft(db, request, draft)
            with bind_plan_id(plan.id):
                record_action(
                    db,
                    user_id=request.user_id,
                    plan_id=plan.id,
                    action_type="plan_generated",
                    payload={
                        "plan_date": request.plan_date.isoformat(),
                        "blocks": len(rows),
                        "chains": len(draft.chains),
                        "skipped_items": len(draft.skipped_items),
                        "tail_plan": draft.tail_plan_used,
                        "replaced_existing": replaced,
                    },
                    reason="Daily plan generated",
                    request_id=request_id,
                )
                db.commit()
                logger.info("Generated plan with %d blocks (%d chains)", len(rows), len(draft.chains))
        except IntegrityError:
            db.rollback()
            winner = get_plan_for_day(db, request.user_id, request.plan_date)
            if winner is None:
                raise
            logger.warning("Concurrent generation for %s won the race; returning its plan", request.plan_date)
            return GenerationResult(
                plan=winner,
                blocks=load_plan_blocks(db, winner.id),
                draft=None,
                reused_existing=True,
            )
        except Exception:
            db.rollback()
            raise

    return GenerationResult(plan=plan, blocks=load_plan_blocks(db, plan.id), draft=draft, replaced_existing=replaced)
