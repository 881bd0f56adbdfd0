"""Timeline value types and the immutable builder used to assemble a day."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Tuple

from daychain.services.daily_plan.block_metadata import BlockMetadata, BufferMeta
from daychain.services.timeutil import FIVE_MINUTES, duration_minutes

BUFFER_MINUTES = 5
BUFFER_NAME = "Transition"


class EnergyLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ActivityType(str, Enum):
    ROUTINE = "routine"
    TASK = "task"
    COMMITMENT = "commitment"
    CHAIN = "chain"
    MEAL = "meal"
    TRAVEL = "travel"
    BUFFER = "buffer"


class BlockStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    SKIPPED = "skipped"


class PlanStatus(str, Enum):
    ACTIVE = "active"
    DEGRADED = "degraded"


@dataclass(frozen=True)
class PlannedBlock:
    start: datetime
    end: datetime
    activity_type: ActivityType
    name: str
    metadata: BlockMetadata
    is_fixed: bool = False
    activity_id: Optional[str] = None
    status: BlockStatus = BlockStatus.PENDING
    skip_reason: Optional[str] = None

    @property
    def duration(self) -> int:
        return duration_minutes(self.start, self.end)

    @property
    def is_buffer(self) -> bool:
        return self.activity_type == ActivityType.BUFFER

    def skipped(self, reason: str) -> "PlannedBlock":
        return replace(self, status=BlockStatus.SKIPPED, skip_reason=reason)


def buffer_block(start: datetime) -> PlannedBlock:
    return PlannedBlock(
        start=start,
        end=start + FIVE_MINUTES,
        activity_type=ActivityType.BUFFER,
        name=BUFFER_NAME,
        metadata=BufferMeta(),
    )


@dataclass(frozen=True)
class FlexibleActivity:
    name: str
    duration: int
    activity_type: ActivityType
    metadata: BlockMetadata
    activity_id: Optional[str] = None

    def at(self, start: datetime) -> PlannedBlock:
        return PlannedBlock(
            start=start,
            end=start + timedelta(minutes=self.duration),
            activity_type=self.activity_type,
            name=self.name,
            metadata=self.metadata,
            activity_id=self.activity_id,
        )


@dataclass(frozen=True)
class Timeline:
    """Finalized blocks plus an explicit cursor; every operation returns a new value."""

    cursor: datetime
    blocks: Tuple[PlannedBlock, ...] = field(default_factory=tuple)

    def place(self, block: PlannedBlock) -> "Timeline":
        return Timeline(cursor=max(self.cursor, block.end), blocks=self.blocks + (block,))

    def advance_to(self, moment: datetime) -> "Timeline":
        return replace(self, cursor=max(self.cursor, moment))

    def with_buffer(self, limit: datetime) -> "Timeline":
        """Append a transition buffer at the cursor if it ends by `limit`."""
        if self.cursor + FIVE_MINUTES > limit:
            return self
        return self.place(buffer_block(self.cursor))

    def pending_work(self) -> Tuple[PlannedBlock, ...]:
        return tuple(b for b in self.blocks if b.status == BlockStatus.PENDING and not b.is_buffer)

    def ordered(self) -> Tuple[PlannedBlock, ...]:
        indexed = sorted(enumerate(self.blocks), key=lambda pair: (pair[1].start, pair[1].end, pair[0]))
        return tuple(block for _, block in indexed)
