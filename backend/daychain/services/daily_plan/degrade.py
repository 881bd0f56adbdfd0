"""Degrade an overloaded plan down to its essential blocks."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from daychain.core.context import bind_plan_id
from daychain.db.models.daily_plan import DailyPlan, TimeBlock
from daychain.observability.tracing import trace
from daychain.services.daily_plan.block_metadata import BufferMeta, dump_block_metadata
from daychain.services.daily_plan.store import (
    check_expected_version,
    get_owned_plan,
    load_plan_blocks,
    record_action,
    resequence,
    touch_plan,
)
from daychain.services.daily_plan.types import BUFFER_MINUTES, BUFFER_NAME, ActivityType, BlockStatus, PlanStatus
from daychain.services.timeutil import overlaps

logger = logging.getLogger(__name__)

SKIP_DEGRADED = "Dropped during degradation"
SKIP_NO_ROOM = "No room before next commitment"
ESSENTIAL_TYPES = {ActivityType.ROUTINE.value, ActivityType.MEAL.value, ActivityType.TRAVEL.value}


@dataclass
class DegradeResult:
    plan: DailyPlan
    blocks: List[TimeBlock]
    dropped: int
    buffers_removed: int
    buffers_added: int


def is_essential(block: TimeBlock) -> bool:
    return bool(block.is_fixed) or block.activity_type in ESSENTIAL_TYPES


def degrade_plan(
    db: Session,
    plan_id: UUID,
    *,
    user_id: UUID,
    now: datetime,
    expected_version: Optional[int] = None,
    request_id: Optional[str] = None,
) -> DegradeResult:
    """Keep essentials, drop other pending work, and rebuild buffers.

    Fixed blocks never move. A flexible essential that overlaps the block
    before it is pushed to start where that block ends, or skipped when that
    would run into a fixed block. Blocks that already elapsed, finished or were
    skipped are left alone, and no buffer starts before `max(plan_start, now)`.
    Running this on an already degraded plan produces the same layout.
    """
    with bind_plan_id(plan_id), trace("daily_plan.degrade", user_id=str(user_id), request_id=request_id):
        try:
            plan = get_owned_plan(db, plan_id, user_id)
            check_expected_version(plan, expected_version)
            blocks = load_plan_blocks(db, plan.id)

            dropped = 0
            buffers_removed = 0
            kept: List[TimeBlock] = []
            for block in blocks:
                if block.activity_type == ActivityType.BUFFER.value:
                    db.delete(block)
                    buffers_removed += 1
                    continue
                if not is_essential(block) and block.status == BlockStatus.PENDING.value:
                    block.status = BlockStatus.SKIPPED.value
                    block.skip_reason = SKIP_DEGRADED
                    dropped += 1
                kept.append(block)

            floor = max(plan.plan_start, now)
            fixed = [
                block for block in kept if block.is_fixed and block.status != BlockStatus.SKIPPED.value
            ]
            # Only pending essentials still ahead of the plan start take part in the walk.
            live = sorted(
                (
                    block
                    for block in kept
                    if is_essential(block)
                    and block.status == BlockStatus.PENDING.value
                    and block.end_time > plan.plan_start
                ),
                key=lambda block: (block.start_time, block.end_time, block.sequence_order),
            )

            placed: List[TimeBlock] = []
            cursor: Optional[datetime] = None
            for block in live:
                if cursor is not None and not block.is_fixed and block.start_time < cursor:
                    start, end = cursor, cursor + (block.end_time - block.start_time)
                    if any(
                        other is not block and overlaps(start, end, other.start_time, other.end_time)
                        for other in fixed
                    ):
                        logger.info("Degrade: no room for %s after %s", block.activity_name, cursor)
                        block.status = BlockStatus.SKIPPED.value
                        block.skip_reason = SKIP_NO_ROOM
                        dropped += 1
                        continue
                    block.start_time, block.end_time = start, end
                cursor = block.end_time if cursor is None else max(cursor, block.end_time)
                placed.append(block)

            occupied = [
                block for block in kept if is_essential(block) and block.status != BlockStatus.SKIPPED.value
            ]
            buffer_length = timedelta(minutes=BUFFER_MINUTES)
            new_buffers: List[TimeBlock] = []
            cursor = None
            for block in placed:
                cursor = block.end_time if cursor is None else max(cursor, block.end_time)
                if cursor < floor:
                    continue
                buffer_end = cursor + buffer_length
                if buffer_end > plan.sleep_time or any(
                    overlaps(cursor, buffer_end, other.start_time, other.end_time) for other in occupied
                ):
                    continue
                buffer = TimeBlock(
                    plan_id=plan.id,
                    start_time=cursor,
                    end_time=buffer_end,
                    activity_type=ActivityType.BUFFER.value,
                    activity_name=BUFFER_NAME,
                    is_fixed=False,
                    sequence_order=0,
                    status=BlockStatus.PENDING.value,
                    metadata_json=dump_block_metadata(BufferMeta()),
                )
                db.add(buffer)
                new_buffers.append(buffer)

            ordered = resequence(kept + new_buffers)
            plan.status = PlanStatus.DEGRADED.value
            touch_plan(plan, now)
            record_action(
                db,
                user_id=user_id,
                plan_id=plan.id,
                action_type="plan_degraded",
                payload={
                    "dropped": dropped,
                    "buffers_removed": buffers_removed,
                    "buffers_added": len(new_buffers),
                },
                reason="Plan degraded to essentials",
                request_id=request_id,
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

    logger.info("Degraded plan %s: dropped %d blocks, %d buffers rebuilt", plan_id, dropped, len(new_buffers))
    return DegradeResult(
        plan=plan,
        blocks=ordered,
        dropped=dropped,
        buffers_removed=buffers_removed,
        buffers_added=len(new_buffers),
    )
