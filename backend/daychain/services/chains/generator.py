"""Build execution chains (prep -> travel -> anchor -> travel -> recovery) per anchor."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from daychain.services.chains.customization import ReflowItem, reflow_steps_backward, resolve_template
from daychain.services.chains.templates import get_chain_template
from daychain.services.chains.types import (
    Anchor,
    AnchorType,
    ChainStep,
    ChainStepInstance,
    ChainTemplate,
    CommitmentEnvelope,
    ExecutionChain,
    StepRole,
    EXIT_GATE_STEP_ID,
)

logger = logging.getLogger(__name__)

CHAIN_COMPLETION_BUFFER_MINUTES = 45
DEFAULT_TRAVEL_MINUTES = 30
LONG_ANCHOR_MINUTES = 120

MEDS_STEP = ChainStep("take-meds", "Take medication", 3, is_required=True, can_skip_when_late=False)
SHOWER_STEP_ID = "shower"


@dataclass(frozen=True)
class DailyContext:
    """What the user already reported about today; None means unknown."""

    meds_taken: Optional[bool] = None
    shower_done: Optional[bool] = None


def prep_minutes_for(anchor_type: AnchorType) -> int:
    return 25 if anchor_type in (AnchorType.SEMINAR, AnchorType.WORKSHOP) else 15


def recovery_minutes_for(anchor: Anchor) -> int:
    return 20 if anchor.duration_minutes >= LONG_ANCHOR_MINUTES else 10


def inject_context(
    template: ChainTemplate,
    context: Optional[DailyContext],
    *,
    first_chain: bool,
) -> Tuple[ChainTemplate, List[str]]:
    """Adjust a resolved template for today's context; returns injected step ids."""
    if context is None:
        return template, []
    steps = list(template.steps)
    injected: List[str] = []
    if context.shower_done:
        steps = [step for step in steps if step.id != SHOWER_STEP_ID]
    if first_chain and context.meds_taken is False and all(step.id != MEDS_STEP.id for step in steps):
        ids = [step.id for step in steps]
        position = ids.index(EXIT_GATE_STEP_ID) if EXIT_GATE_STEP_ID in ids else len(steps)
        steps.insert(position, MEDS_STEP)
        injected.append(MEDS_STEP.id)
    return template.with_steps(steps), injected


def _instance(
    chain_id: str,
    step_key: str,
    name: str,
    start,
    end,
    role: StepRole,
    *,
    is_required: bool = True,
    can_skip_when_late: bool = False,
    gate_tags: Sequence[str] = (),
) -> ChainStepInstance:
    return ChainStepInstance(
        step_id=f"{chain_id}:{step_key}",
        template_step_id=step_key,
        chain_id=chain_id,
        name=name,
        start_time=start,
        end_time=end,
        role=role,
        is_required=is_required,
        can_skip_when_late=can_skip_when_late,
        gate_tags=tuple(gate_tags),
    )


def build_execution_chain(
    anchor: Anchor,
    template: ChainTemplate,
    *,
    travel_minutes: int = DEFAULT_TRAVEL_MINUTES,
    buffer_minutes: int = CHAIN_COMPLETION_BUFFER_MINUTES,
    injected_step_ids: Sequence[str] = (),
) -> ExecutionChain:
    """Bind a template to absolute times for one anchor.

    The chain must be finished (the `leave` step ends) `travel_minutes +
    buffer_minutes` before the anchor starts; steps are reflowed backward from
    that deadline so the last step always ends exactly on it.
    """
    chain_id = f"chain-{anchor.id}"
    travel = timedelta(minutes=travel_minutes)
    deadline = anchor.start - travel - timedelta(minutes=buffer_minutes)

    timed = reflow_steps_backward(
        [ReflowItem(step.id, step.duration_estimate) for step in template.steps],
        deadline,
    )
    steps: List[ChainStepInstance] = []
    for step, slot in zip(template.steps, timed):
        role = StepRole.EXIT_GATE if step.id == EXIT_GATE_STEP_ID else StepRole.CHAIN_STEP
        steps.append(
            _instance(
                chain_id,
                step.id,
                step.name,
                slot.start,
                slot.end,
                role,
                is_required=step.is_required,
                can_skip_when_late=step.can_skip_when_late,
                gate_tags=step.gate_tags,
            )
        )

    prep_start = steps[0].start_time if steps else deadline
    recovery = timedelta(minutes=recovery_minutes_for(anchor))
    envelope = CommitmentEnvelope(
        prep=_instance(chain_id, "prep", f"Prepare for {anchor.title}", prep_start, deadline, StepRole.CHAIN_STEP),
        travel_there=_instance(
            chain_id, "travel-there", f"Travel to {anchor.title}", deadline, deadline + travel, StepRole.TRAVEL
        ),
        anchor=_instance(chain_id, "anchor", anchor.title, anchor.start, anchor.end, StepRole.ANCHOR),
        travel_back=_instance(
            chain_id, "travel-back", f"Travel from {anchor.title}", anchor.end, anchor.end + travel, StepRole.TRAVEL
        ),
        recovery=_instance(
            chain_id,
            "recovery",
            "Recovery",
            anchor.end + travel,
            anchor.end + travel + recovery,
            StepRole.RECOVERY,
            is_required=False,
            can_skip_when_late=True,
        ),
    )
    return ExecutionChain(
        chain_id=chain_id,
        anchor=anchor,
        chain_completion_deadline=deadline,
        steps=steps,
        envelope=envelope,
        travel_minutes=travel_minutes,
        prep_minutes=prep_minutes_for(anchor.anchor_type),
        injected_step_ids=list(injected_step_ids),
    )


def generate_execution_chains(
    anchors: Sequence[Anchor],
    *,
    preferences: Optional[Mapping[str, Any]] = None,
    travel_minutes: Optional[Mapping[str, int]] = None,
    daily_context: Optional[DailyContext] = None,
    default_travel_minutes: int = DEFAULT_TRAVEL_MINUTES,
    buffer_minutes: int = CHAIN_COMPLETION_BUFFER_MINUTES,
) -> List[ExecutionChain]:
    """One chain per anchor, in anchor start order.

    `travel_minutes` is keyed by calendar event id. A failure on one anchor is
    logged and the remaining anchors still get chains.
    """
    travel_minutes = travel_minutes or {}
    chains: List[ExecutionChain] = []
    for anchor in sorted(anchors, key=lambda item: (item.start, item.id)):
        try:
            template = resolve_template(anchor.anchor_type, get_chain_template(anchor.anchor_type), preferences)
            template, injected = inject_context(template, daily_context, first_chain=not chains)
            travel = travel_minutes.get(anchor.calendar_event_id or anchor.id) or default_travel_minutes
            if travel <= 0:
                travel = default_travel_minutes
            chains.append(
                build_execution_chain(
                    anchor,
                    template,
                    travel_minutes=travel,
                    buffer_minutes=buffer_minutes,
                    injected_step_ids=injected,
                )
            )
        except Exception:
            logger.exception("Chain generation failed for anchor %s; continuing", anchor.id)
    return chains
