"""Chain status evaluation.

A chain is judged only on what the user has ticked off. Nothing here
triggers a replan; a broken chain is reported, not repaired.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence

from daychain.services.chains.types import StepRole, StepStatus


@dataclass(frozen=True)
class ChainBlockView:
    name: str
    role: StepRole
    status: StepStatus
    is_required: bool
    end_time: datetime
    completed_at: Optional[datetime] = None


@dataclass
class ChainStatusReport:
    chain_id: str
    status: str
    integrity: str
    message: str
    completed_steps: int
    total_steps: int
    broken_at: Optional[str] = None
    late: bool = False
    missing_required: List[str] = field(default_factory=list)


def _is_step(block: ChainBlockView) -> bool:
    return block.role in (StepRole.CHAIN_STEP, StepRole.EXIT_GATE)


def evaluate_chain_status(chain_id: str, blocks: Sequence[ChainBlockView]) -> ChainStatusReport:
    steps = [block for block in blocks if _is_step(block)]
    anchor = next((block for block in blocks if block.role == StepRole.ANCHOR), None)
    completed = [block for block in steps if block.status == StepStatus.COMPLETED]
    missing = [block.name for block in steps if block.is_required and block.status != StepStatus.COMPLETED]

    anchor_done = anchor is not None and anchor.status == StepStatus.COMPLETED
    started = bool(completed) or anchor_done or any(
        block.status in (StepStatus.IN_PROGRESS, StepStatus.COMPLETED) for block in blocks
    )

    if not started:
        return ChainStatusReport(
            chain_id=chain_id,
            status="pending",
            integrity="intact",
            message="Chain not started",
            completed_steps=0,
            total_steps=len(steps),
            missing_required=missing,
        )

    if anchor_done and not missing:
        exit_step = next((block for block in steps if block.role == StepRole.EXIT_GATE), None)
        late = bool(
            exit_step and exit_step.completed_at and exit_step.completed_at > exit_step.end_time
        )
        return ChainStatusReport(
            chain_id=chain_id,
            status="completed",
            integrity="intact",
            message="You made it! (late, but you made it)" if late else "You made it!",
            completed_steps=len(completed),
            total_steps=len(steps),
            late=late,
        )

    if anchor_done:
        return ChainStatusReport(
            chain_id=chain_id,
            status="failed",
            integrity="broken",
            message=f"Chain broke at {missing[0]}; the anchor still happened",
            completed_steps=len(completed),
            total_steps=len(steps),
            broken_at=missing[0],
            missing_required=missing,
        )

    return ChainStatusReport(
        chain_id=chain_id,
        status="in-progress",
        integrity="intact",
        message=f"{len(completed)} of {len(steps)} steps done",
        completed_steps=len(completed),
        total_steps=len(steps),
        missing_required=missing,
    )
