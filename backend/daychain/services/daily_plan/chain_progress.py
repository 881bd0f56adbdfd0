"""Chain status for a stored plan."""
from __future__ import annotations

from collections import OrderedDict
from typing import Dict, List

from sqlalchemy.orm import Session

from daychain.db.models.daily_plan import DailyPlan
from daychain.services.chains.status import ChainBlockView, ChainStatusReport, evaluate_chain_status
from daychain.services.chains.types import StepRole, StepStatus
from daychain.services.daily_plan.block_metadata import chain_id_of, parse_block_metadata
from daychain.services.daily_plan.store import load_plan_blocks
from daychain.services.timeutil import parse_iso


def chain_reports(db: Session, plan: DailyPlan) -> List[ChainStatusReport]:
    grouped: Dict[str, List[ChainBlockView]] = OrderedDict()
    for chain in plan.chains or []:
        grouped.setdefault(chain["chain_id"], [])

    for block in load_plan_blocks(db, plan.id):
        raw = block.metadata_json or {}
        meta = parse_block_metadata(raw)
        chain_id = chain_id_of(meta)
        if chain_id is None:
            continue
        grouped.setdefault(chain_id, []).append(
            ChainBlockView(
                name=block.activity_name,
                role=StepRole(meta.role),
                status=StepStatus(block.status),
                is_required=getattr(meta, "is_required", meta.role == StepRole.ANCHOR.value),
                end_time=block.end_time,
                completed_at=parse_iso(raw.get("completed_at")),
            )
        )
    return [evaluate_chain_status(chain_id, views) for chain_id, views in grouped.items()]
