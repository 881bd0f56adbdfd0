"""Structural edits to a chain inside a stored plan: rename, re-time, add, delete.

Every edit recomputes the whole chain with a backward reflow from the chain's
current deadline (the latest end among its steps), so the departure time and
the anchor never move. Each call is a single transaction.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple, Union
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from daychain.core.config import settings
from daychain.core.context import bind_plan_id
from daychain.db.models.daily_plan import DailyPlan, TimeBlock
from daychain.observability.tracing import trace
from daychain.services.chains.customization import CUSTOM_STEPS_KEY, OVERRIDES_KEY, ReflowItem, reflow_steps_backward
from daychain.services.daily_plan.block_metadata import (
    ChainStepMeta,
    ExitGateMeta,
    dump_block_metadata,
    is_chain_step,
    parse_block_metadata,
)
from daychain.services.daily_plan.store import (
    check_expected_version,
    get_plan_for_day,
    load_plan_blocks,
    record_action,
    resequence,
    touch_plan,
)
from daychain.services.daily_plan.types import ActivityType, BlockStatus
from daychain.services.errors import (
    ChainEditConflictError,
    ChainStructureError,
    NotAChainStepError,
    PlanOwnershipError,
    StaleBlockReferenceError,
    StepValidationError,
)
from daychain.services.timeutil import duration_minutes, overlaps
from daychain.services.user_service import load_preferences_for_update, update_preferences

logger = logging.getLogger(__name__)

MAX_STEP_MINUTES = settings.max_step_duration_minutes
MAX_STEP_NAME = 120
DEFAULT_NEW_STEP_MINUTES = 5
SKIP_DISPLACED = "Displaced by chain edit"

StepMeta = Union[ChainStepMeta, ExitGateMeta]


@dataclass
class ChainEditResult:
    plan: DailyPlan
    chain_id: str
    chain_blocks: List[TimeBlock]
    block_id: Optional[UUID]
    displaced: int = 0
    saved_template: bool = False


def validate_step_name(name: Optional[str], *, required: bool) -> Optional[str]:
    if name is None:
        if required:
            raise StepValidationError("Step name is required")
        return None
    cleaned = name.strip()
    if not cleaned:
        raise StepValidationError("Step name must not be blank")
    if len(cleaned) > MAX_STEP_NAME:
        raise StepValidationError(f"Step name must be {MAX_STEP_NAME} characters or less")
    return cleaned


def validate_step_duration(value: Optional[int], *, max_minutes: int = MAX_STEP_MINUTES) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= max_minutes:
        raise StepValidationError(f"Duration must be a whole number between 0 and {max_minutes} minutes")
    return value


def _step_meta(block: TimeBlock) -> Optional[StepMeta]:
    meta = parse_block_metadata(block.metadata_json) if block.metadata_json else None
    return meta if meta is not None and is_chain_step(meta) else None


def _find_by_step_id(db: Session, plan_id: UUID, step_id: str) -> Optional[TimeBlock]:
    for block in load_plan_blocks(db, plan_id):
        if (block.metadata_json or {}).get("step_id") == step_id:
            return block
    return None


def resolve_step_block(
    db: Session,
    block_id: UUID,
    *,
    user_id: UUID,
    plan_id: Optional[UUID] = None,
    step_id: Optional[str] = None,
    today: Optional[date] = None,
) -> Tuple[TimeBlock, DailyPlan]:
    """Find the block a client means, surviving regenerations that changed block ids.

    Falls back to `(plan_id, step_id)`, then to today's plan by `step_id`.
    """
    block = db.get(TimeBlock, block_id)
    if block is None and step_id:
        if plan_id is not None:
            candidate_plan = db.get(DailyPlan, plan_id)
            if candidate_plan is not None and candidate_plan.user_id == user_id:
                block = _find_by_step_id(db, plan_id, step_id)
        if block is None and today is not None:
            todays = get_plan_for_day(db, user_id, today)
            if todays is not None:
                block = _find_by_step_id(db, todays.id, step_id)
        if block is not None:
            logger.info("Recovered stale block reference %s via step %s", block_id, step_id)
    if block is None:
        raise StaleBlockReferenceError(
            "Time block no longer exists; re-resolve it by plan and step id",
            block_id=block_id,
        )
    plan = db.get(DailyPlan, block.plan_id)
    if plan is None or plan.user_id != user_id:
        raise PlanOwnershipError("Time block does not belong to user", block_id=block.id)
    return block, plan


def _chain_steps(blocks: List[TimeBlock], chain_id: str) -> List[TimeBlock]:
    steps = [
        block
        for block in blocks
        if _step_meta(block) is not None and (block.metadata_json or {}).get("chain_id") == chain_id
    ]
    return sorted(steps, key=lambda block: (block.start_time, block.sequence_order))


def _block_minutes(block: TimeBlock) -> int:
    return duration_minutes(block.start_time, block.end_time)


def _chain_instance_json(block: TimeBlock) -> Dict[str, Any]:
    meta = _step_meta(block)
    return {
        "step_id": meta.step_id,
        "template_step_id": meta.template_step_id,
        "chain_id": meta.chain_id,
        "name": block.activity_name,
        "start_time": block.start_time.isoformat(),
        "end_time": block.end_time.isoformat(),
        "duration": _block_minutes(block),
        "role": meta.role,
        "status": block.status,
        "is_required": meta.is_required,
        "can_skip_when_late": meta.can_skip_when_late,
        "gate_tags": list(getattr(meta, "gate_tags", [])),
    }


def _sync_chain_snapshot(plan: DailyPlan, chain_id: str, chain_blocks: List[TimeBlock]) -> None:
    chains = [dict(chain) for chain in (plan.chains or [])]
    for chain in chains:
        if chain.get("chain_id") != chain_id:
            continue
        chain["steps"] = [_chain_instance_json(block) for block in chain_blocks]
        if chain_blocks:
            envelope = dict(chain.get("envelope") or {})
            prep = dict(envelope.get("prep") or {})
            prep["start_time"] = chain_blocks[0].start_time.isoformat()
            envelope["prep"] = prep
            chain["envelope"] = envelope
    plan.chains = chains


def _reflow(
    db: Session,
    all_blocks: List[TimeBlock],
    chain_blocks: List[TimeBlock],
    durations: Dict[UUID, int],
    deadline: datetime,
) -> int:
    """Re-time `chain_blocks` backward from `deadline`; returns how many blocks were displaced."""
    timed = reflow_steps_backward(
        [ReflowItem(str(block.id), durations.get(block.id, _block_minutes(block))) for block in chain_blocks],
        deadline,
    )
    chain_ids = {block.id for block in chain_blocks}
    others = [block for block in all_blocks if block.id not in chain_ids]
    for slot in timed:
        for other in others:
            if other.is_fixed and other.status != BlockStatus.SKIPPED.value and overlaps(
                slot.start, slot.end, other.start_time, other.end_time
            ):
                raise ChainEditConflictError(
                    f"Edited chain would overlap '{other.activity_name}'",
                    block_id=other.id,
                )

    for block, slot in zip(chain_blocks, timed):
        block.start_time = slot.start
        block.end_time = slot.end

    displaced = 0
    for other in others:
        if other.is_fixed or other.status != BlockStatus.PENDING.value:
            continue
        if not any(overlaps(b.start_time, b.end_time, other.start_time, other.end_time) for b in chain_blocks):
            continue
        if other.activity_type == ActivityType.BUFFER.value:
            db.delete(other)
            all_blocks.remove(other)
            continue
        other.status = BlockStatus.SKIPPED.value
        other.skip_reason = SKIP_DISPLACED
        displaced += 1
    return displaced


def _begin(
    db: Session,
    block_id: UUID,
    *,
    user_id: UUID,
    plan_id: Optional[UUID],
    step_id: Optional[str],
    today: Optional[date],
    expected_version: Optional[int],
) -> Tuple[TimeBlock, DailyPlan, StepMeta, List[TimeBlock], List[TimeBlock]]:
    block, plan = resolve_step_block(
        db, block_id, user_id=user_id, plan_id=plan_id, step_id=step_id, today=today
    )
    check_expected_version(plan, expected_version)
    meta = _step_meta(block)
    if meta is None:
        raise NotAChainStepError("Only chain steps and exit gates can be edited", block_id=block.id)
    all_blocks = load_plan_blocks(db, plan.id)
    return block, plan, meta, all_blocks, _chain_steps(all_blocks, meta.chain_id)


def _finish(
    plan: DailyPlan,
    chain_id: str,
    all_blocks: List[TimeBlock],
    chain_blocks: List[TimeBlock],
    now: datetime,
) -> None:
    resequence(all_blocks)
    _sync_chain_snapshot(plan, chain_id, chain_blocks)
    touch_plan(plan, now)


def edit_chain_step(
    db: Session,
    block_id: UUID,
    *,
    user_id: UUID,
    now: datetime,
    name: Optional[str] = None,
    duration_minutes: Optional[int] = None,
    save_as_template: bool = True,
    plan_id: Optional[UUID] = None,
    step_id: Optional[str] = None,
    today: Optional[date] = None,
    expected_version: Optional[int] = None,
    request_id: Optional[str] = None,
) -> ChainEditResult:
    """Rename and/or re-time one chain step, then reflow its chain."""
    name = validate_step_name(name, required=False)
    duration_minutes = validate_step_duration(duration_minutes)
    if name is None and duration_minutes is None:
        raise StepValidationError("Provide a new name or duration")

    with trace("chain_step.edit", user_id=str(user_id), request_id=request_id):
        try:
            block, plan, meta, all_blocks, chain_blocks = _begin(
                db,
                block_id,
                user_id=user_id,
                plan_id=plan_id,
                step_id=step_id,
                today=today,
                expected_version=expected_version,
            )
            with bind_plan_id(plan.id):
                deadline = max(b.end_time for b in chain_blocks)
                durations = {}
                if duration_minutes is not None:
                    durations[block.id] = duration_minutes
                displaced = _reflow(db, all_blocks, chain_blocks, durations, deadline)

                if name is not None:
                    block.activity_name = name
                updated = meta.model_copy(
                    update={
                        "custom_step_name": name or meta.custom_step_name,
                        "custom_duration_minutes": (
                            duration_minutes if duration_minutes is not None else meta.custom_duration_minutes
                        ),
                        "custom_updated_at": now,
                    }
                )
                block.metadata_json = {**(block.metadata_json or {}), **dump_block_metadata(updated)}

                if save_as_template:
                    _save_override(
                        db,
                        user_id,
                        meta.template_step_id,
                        {
                            "name": block.activity_name,
                            "duration_estimate": _block_minutes(block),
                            "updated_at": now.isoformat(),
                        },
                    )

                _finish(plan, meta.chain_id, all_blocks, chain_blocks, now)
                record_action(
                    db,
                    user_id=user_id,
                    plan_id=plan.id,
                    action_type="chain_step_edited",
                    payload={
                        "block_id": str(block.id),
                        "chain_id": meta.chain_id,
                        "name": name,
                        "duration_minutes": duration_minutes,
                        "saved_template": save_as_template,
                        "displaced": displaced,
                    },
                    reason="Chain step edited",
                    request_id=request_id,
                )
                db.commit()
        except Exception:
            db.rollback()
            raise

    return ChainEditResult(
        plan=plan,
        chain_id=meta.chain_id,
        chain_blocks=chain_blocks,
        block_id=block.id,
        displaced=displaced,
        saved_template=save_as_template,
    )


def add_chain_step(
    db: Session,
    after_block_id: UUID,
    *,
    user_id: UUID,
    now: datetime,
    name: str,
    duration_minutes: Optional[int] = None,
    is_required: bool = False,
    save_as_template: bool = False,
    plan_id: Optional[UUID] = None,
    step_id: Optional[str] = None,
    today: Optional[date] = None,
    expected_version: Optional[int] = None,
    request_id: Optional[str] = None,
) -> ChainEditResult:
    """Insert a custom step right after `after_block_id` and reflow the chain."""
    name = validate_step_name(name, required=True)
    duration = validate_step_duration(
        DEFAULT_NEW_STEP_MINUTES if duration_minutes is None else duration_minutes
    )

    with trace("chain_step.add", user_id=str(user_id), request_id=request_id):
        try:
            after, plan, meta, all_blocks, chain_blocks = _begin(
                db,
                after_block_id,
                user_id=user_id,
                plan_id=plan_id,
                step_id=step_id,
                today=today,
                expected_version=expected_version,
            )
            with bind_plan_id(plan.id):
                deadline = max(b.end_time for b in chain_blocks)
                template_step_id = f"custom:{uuid4()}"
                new_meta = ChainStepMeta(
                    chain_id=meta.chain_id,
                    anchor_id=meta.anchor_id,
                    anchor_type=meta.anchor_type,
                    anchor_title=meta.anchor_title,
                    step_id=f"{meta.chain_id}:{template_step_id}",
                    template_step_id=template_step_id,
                    is_required=is_required,
                    can_skip_when_late=not is_required,
                    is_custom=True,
                    custom_step_name=name,
                    custom_duration_minutes=duration,
                    custom_updated_at=now,
                )
                new_block = TimeBlock(
                    plan_id=plan.id,
                    start_time=after.end_time,
                    end_time=after.end_time + timedelta(minutes=duration),
                    activity_type=ActivityType.CHAIN.value,
                    activity_name=name,
                    is_fixed=True,
                    sequence_order=after.sequence_order,
                    status=BlockStatus.PENDING.value,
                    metadata_json=dump_block_metadata(new_meta),
                )
                new_block.id = uuid4()
                db.add(new_block)
                chain_blocks.insert(chain_blocks.index(after) + 1, new_block)
                all_blocks.append(new_block)

                displaced = _reflow(db, all_blocks, chain_blocks, {new_block.id: duration}, deadline)

                if save_as_template:
                    prefs = load_preferences_for_update(db, user_id)
                    custom_steps = list((prefs.preferences or {}).get(CUSTOM_STEPS_KEY) or [])
                    custom_steps.append(
                        {
                            "id": template_step_id,
                            "name": name,
                            "duration_estimate": duration,
                            "is_required": is_required,
                            "can_skip_when_late": not is_required,
                            "insert_after_id": meta.template_step_id,
                            "anchor_type": meta.anchor_type,
                            "updated_at": now.isoformat(),
                        }
                    )
                    update_preferences(prefs, CUSTOM_STEPS_KEY, custom_steps)

                _finish(plan, meta.chain_id, all_blocks, chain_blocks, now)
                record_action(
                    db,
                    user_id=user_id,
                    plan_id=plan.id,
                    action_type="chain_step_added",
                    payload={
                        "block_id": str(new_block.id),
                        "after_block_id": str(after.id),
                        "chain_id": meta.chain_id,
                        "name": name,
                        "duration_minutes": duration,
                        "saved_template": save_as_template,
                        "displaced": displaced,
                    },
                    reason="Chain step added",
                    request_id=request_id,
                )
                db.commit()
        except Exception:
            db.rollback()
            raise

    return ChainEditResult(
        plan=plan,
        chain_id=meta.chain_id,
        chain_blocks=chain_blocks,
        block_id=new_block.id,
        displaced=displaced,
        saved_template=save_as_template,
    )


def delete_chain_step(
    db: Session,
    block_id: UUID,
    *,
    user_id: UUID,
    now: datetime,
    save_as_template: bool = False,
    plan_id: Optional[UUID] = None,
    step_id: Optional[str] = None,
    today: Optional[date] = None,
    expected_version: Optional[int] = None,
    request_id: Optional[str] = None,
) -> ChainEditResult:
    """Remove a chain step and reflow the rest; the last remaining step cannot be deleted."""
    with trace("chain_step.delete", user_id=str(user_id), request_id=request_id):
        try:
            block, plan, meta, all_blocks, chain_blocks = _begin(
                db,
                block_id,
                user_id=user_id,
                plan_id=plan_id,
                step_id=step_id,
                today=today,
                expected_version=expected_version,
            )
            if len(chain_blocks) <= 1:
                raise ChainStructureError(
                    "Cannot delete the only remaining step in a chain",
                    chain_id=meta.chain_id,
                )
            with bind_plan_id(plan.id):
                deadline = max(b.end_time for b in chain_blocks)
                chain_blocks.remove(block)
                all_blocks.remove(block)
                db.delete(block)
                displaced = _reflow(db, all_blocks, chain_blocks, {}, deadline)

                if save_as_template:
                    if meta.is_custom:
                        prefs = load_preferences_for_update(db, user_id)
                        remaining = [
                            entry
                            for entry in (prefs.preferences or {}).get(CUSTOM_STEPS_KEY) or []
                            if entry.get("id") != meta.template_step_id
                        ]
                        update_preferences(prefs, CUSTOM_STEPS_KEY, remaining)
                    else:
                        _save_override(
                            db,
                            user_id,
                            meta.template_step_id,
                            {"disabled": True, "updated_at": now.isoformat()},
                        )

                _finish(plan, meta.chain_id, all_blocks, chain_blocks, now)
                record_action(
                    db,
                    user_id=user_id,
                    plan_id=plan.id,
                    action_type="chain_step_deleted",
                    payload={
                        "block_id": str(block_id),
                        "chain_id": meta.chain_id,
                        "step_id": meta.step_id,
                        "saved_template": save_as_template,
                        "displaced": displaced,
                    },
                    reason="Chain step deleted",
                    request_id=request_id,
                )
                db.commit()
        except Exception:
            db.rollback()
            raise

    return ChainEditResult(
        plan=plan,
        chain_id=meta.chain_id,
        chain_blocks=chain_blocks,
        block_id=None,
        displaced=displaced,
        saved_template=save_as_template,
    )


def _save_override(db: Session, user_id: UUID, template_step_id: str, values: Dict[str, Any]) -> None:
    prefs = load_preferences_for_update(db, user_id)
    document = prefs.preferences or {}
    if template_step_id.startswith("custom:"):
        custom_steps = [dict(entry) for entry in document.get(CUSTOM_STEPS_KEY) or []]
        for entry in custom_steps:
            if entry.get("id") == template_step_id:
                if "name" in values:
                    entry["name"] = values["name"]
                if "duration_estimate" in values:
                    entry["duration_estimate"] = values["duration_estimate"]
                entry["updated_at"] = values.get("updated_at")
                update_preferences(prefs, CUSTOM_STEPS_KEY, custom_steps)
                return
    overrides = dict(document.get(OVERRIDES_KEY) or {})
    overrides[template_step_id] = {**(overrides.get(template_step_id) or {}), **values}
    update_preferences(prefs, OVERRIDES_KEY, overrides)
