"""Current/next block derivation and block status transitions.

There is no cursor: the current block is always the first pending block in
sequence order, so completing or skipping a block advances the plan on the
next read.
"""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol, Sequence, Tuple, TypeVar

from sqlalchemy.orm import Session

from daychain.db.models.daily_plan import DailyPlan, TimeBlock
from daychain.services.daily_plan.store import record_action
from daychain.services.daily_plan.types import BlockStatus
from daychain.services.errors import BlockNotFoundError, PlanOwnershipError


class Sequenced(Protocol):
    sequence_order: int
    status: str


S = TypeVar("S", bound=Sequenced)


def snapshot(blocks: Sequence[S]) -> Tuple[S, ...]:
    return tuple(sorted(blocks, key=lambda block: block.sequence_order))


def get_current_block(blocks: Sequence[S]) -> Optional[S]:
    return next((block for block in snapshot(blocks) if block.status == BlockStatus.PENDING.value), None)


def get_next_blocks(blocks: Sequence[S], n: int) -> List[S]:
    """The `n` pending blocks after the current one."""
    if n <= 0:
        return []
    pending = [block for block in snapshot(blocks) if block.status == BlockStatus.PENDING.value]
    return pending[1 : n + 1]


def _owned_block(db: Session, block_id, user_id) -> Tuple[TimeBlock, DailyPlan]:
    block = db.get(TimeBlock, block_id)
    if block is None:
        raise BlockNotFoundError("Time block not found", block_id=block_id)
    plan = db.get(DailyPlan, block.plan_id)
    if plan is None or plan.user_id != user_id:
        raise PlanOwnershipError("Time block does not belong to user", block_id=block_id)
    return block, plan


def mark_block_complete(
    db: Session,
    block_id,
    *,
    user_id,
    now: datetime,
    request_id: Optional[str] = None,
) -> TimeBlock:
    block, plan = _owned_block(db, block_id, user_id)
    if block.status != BlockStatus.COMPLETED.value:
        metadata = dict(block.metadata_json or {})
        metadata["completed_at"] = now.isoformat()
        block.metadata_json = metadata
        block.status = BlockStatus.COMPLETED.value
        block.skip_reason = None
        record_action(
            db,
            user_id=user_id,
            plan_id=plan.id,
            action_type="time_block_completed",
            payload={"block_id": str(block.id), "name": block.activity_name},
            reason="Block marked complete",
            request_id=request_id,
        )
    return block


def mark_block_skipped(
    db: Session,
    block_id,
    *,
    user_id,
    reason: Optional[str] = None,
    request_id: Optional[str] = None,
) -> TimeBlock:
    block, plan = _owned_block(db, block_id, user_id)
    if block.status != BlockStatus.SKIPPED.value or (reason and block.skip_reason != reason):
        block.status = BlockStatus.SKIPPED.value
        block.skip_reason = reason or "Skipped by user"
        record_action(
            db,
            user_id=user_id,
            plan_id=plan.id,
            action_type="time_block_skipped",
            payload={"block_id": str(block.id), "name": block.activity_name, "skip_reason": block.skip_reason},
            reason="Block skipped",
            request_id=request_id,
        )
    return block
