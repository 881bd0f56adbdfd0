"""Assemble a day's timeline from chains, meals, routines and tasks.

`gather_plan_inputs` talks to the (unreliable) upstream sources and always
returns usable inputs; `build_plan_draft` is a pure function of those inputs
and the current time, so every scheduling rule can be tested without a
database.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar
from uuid import UUID

from daychain.services.chains.anchors import build_anchors
from daychain.services.chains.generator import (
    CHAIN_COMPLETION_BUFFER_MINUTES,
    DEFAULT_TRAVEL_MINUTES,
    DailyContext,
    generate_execution_chains,
)
from daychain.services.chains.types import Anchor, ChainStepInstance, ExecutionChain, StepRole, StepStatus
from daychain.services.daily_plan.block_metadata import (
    AnchorMeta,
    ChainStepMeta,
    ExitGateMeta,
    MealMeta,
    RecoveryMeta,
    RoutineMeta,
    TaskMeta,
    TravelMeta,
    is_chain_step,
)
from daychain.services.daily_plan.cache import CacheKey, PlanInputCache
from daychain.services.daily_plan.location import (
    HomeInterval,
    LocationPeriod,
    calculate_home_intervals,
    calculate_location_periods,
)
from daychain.services.daily_plan.meals import MEAL_NAMES, MealPlacement, MealType, place_meals
from daychain.services.daily_plan.types import (
    ActivityType,
    BlockStatus,
    EnergyLevel,
    FlexibleActivity,
    PlannedBlock,
    Timeline,
)
from daychain.services.daily_plan.wake_ramp import WakeRamp, generate_wake_ramp
from daychain.services.sources import CommitmentRecord, ExitTimeEstimate, PlanSources, RoutineRecord, TaskRecord
from daychain.services.timeutil import FIVE_MINUTES, at_local, isoformat, local_date, overlaps_any, parse_iso, round_up_to_five

logger = logging.getLogger(__name__)

T = TypeVar("T")

TASK_LIMITS = {EnergyLevel.LOW: 1, EnergyLevel.MEDIUM: 2, EnergyLevel.HIGH: 3}
DEFAULT_TASK_MINUTES = 60
PRIMARY_FOCUS_NAME = "Primary Focus Block"
PRIMARY_FOCUS_MINUTES = 60
DEFAULT_ROUTINES = {"morning": ("Morning Routine", 30), "evening": ("Evening Routine", 20)}
EVENING_FLOOR = time(18, 0)

SKIP_BEFORE_START = "Occurred before plan start"
SKIP_OVERLAP = "Overlaps another commitment"
SKIP_NO_GAP = "No free slot"
SKIP_SLEEP = "Would exceed sleep time"

# Role priority when chain blocks compete for the same time.
_CHAIN_PRIORITY = {StepRole.ANCHOR: 0, StepRole.TRAVEL: 1, StepRole.CHAIN_STEP: 2, StepRole.EXIT_GATE: 2, StepRole.RECOVERY: 3}


@dataclass(frozen=True)
class PlanRequest:
    user_id: UUID
    plan_date: date
    wake_time: datetime
    sleep_time: datetime
    energy: EnergyLevel
    zone: tzinfo
    current_location: Optional[str] = None
    daily_context: Optional[DailyContext] = None


@dataclass
class PlanInputs:
    anchors: List[Anchor]
    tasks: List[TaskRecord]
    morning_routine: FlexibleActivity
    evening_routine: FlexibleActivity
    exit_estimates: Dict[str, ExitTimeEstimate] = field(default_factory=dict)
    preferences: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ExitTimeDraft:
    commitment_id: str
    chain_id: str
    exit_time: datetime
    travel_duration: int
    preparation_time: int
    travel_method: str


@dataclass
class PlanDraft:
    plan_start: datetime
    generated_after_now: bool
    wake_ramp: WakeRamp
    chains: List[ExecutionChain]
    location_periods: List[LocationPeriod]
    home_intervals: List[HomeInterval]
    meals: List[MealPlacement]
    blocks: Tuple[PlannedBlock, ...]
    exit_times: List[ExitTimeDraft]
    skipped_items: List[Dict[str, Any]]
    tail_plan_used: bool = False


def compute_plan_start(wake_time: datetime, now: datetime) -> datetime:
    return max(wake_time, round_up_to_five(now))


def task_limit(energy: EnergyLevel) -> int:
    return TASK_LIMITS[EnergyLevel(energy)]


def routine_activity(record: Optional[RoutineRecord], routine_type: str) -> FlexibleActivity:
    if record is None:
        name, duration = DEFAULT_ROUTINES[routine_type]
        return FlexibleActivity(
            name=name,
            duration=duration,
            activity_type=ActivityType.ROUTINE,
            metadata=RoutineMeta(routine_type=routine_type, is_default=True),
        )
    return FlexibleActivity(
        name=record.name,
        duration=record.estimated_duration if record.estimated_duration > 0 else DEFAULT_ROUTINES[routine_type][1],
        activity_type=ActivityType.ROUTINE,
        metadata=RoutineMeta(routine_type=routine_type, routine_id=record.id),
        activity_id=record.id,
    )


def _with_fallback(label: str, loader: Callable[[], T], fallback: T) -> T:
    try:
        return loader()
    except Exception:
        logger.warning("%s source unavailable; using defaults", label, exc_info=True)
        return fallback


def _encode_commitments(records: List[CommitmentRecord]) -> List[Dict[str, Any]]:
    return [
        {
            "id": r.id,
            "title": r.title,
            "start": isoformat(r.start),
            "end": isoformat(r.end),
            "location": r.location,
            "description": r.description,
            "event_type": r.event_type,
        }
        for r in records
    ]


def _decode_commitments(raw: List[Dict[str, Any]]) -> List[CommitmentRecord]:
    return [
        CommitmentRecord(
            id=item["id"],
            title=item["title"],
            start=parse_iso(item["start"]),
            end=parse_iso(item["end"]),
            location=item.get("location"),
            description=item.get("description"),
            event_type=item.get("event_type", "event"),
        )
        for item in raw
    ]


def gather_plan_inputs(
    request: PlanRequest,
    sources: PlanSources,
    cache: Optional[PlanInputCache] = None,
    *,
    task_fetch_limit: int = 10,
) -> PlanInputs:
    """Fetch everything the builder needs; no upstream failure escapes."""
    cache = cache or PlanInputCache(None, 0)
    day_start = at_local(request.plan_date, time(0, 0), request.zone)
    next_day = at_local(request.plan_date + timedelta(days=1), time(0, 0), request.zone)
    window_end = max(next_day, request.sleep_time)

    def key(query: str) -> CacheKey:
        return CacheKey(request.user_id, request.plan_date, query)

    commitments = _with_fallback(
        "Commitment",
        lambda: cache.get_or_load(
            key("commitments"),
            lambda: sources.commitments.list_commitments(request.user_id, day_start, window_end),
            encode=_encode_commitments,
            decode=_decode_commitments,
        ),
        [],
    )
    tasks = _with_fallback(
        "Task",
        lambda: cache.get_or_load(
            key("tasks"),
            lambda: sources.tasks.list_pending_tasks(request.user_id, task_fetch_limit),
            encode=lambda records: [vars(r) for r in records],
            decode=lambda raw: [TaskRecord(**item) for item in raw],
        ),
        [],
    )
    routines = _with_fallback(
        "Routine",
        lambda: cache.get_or_load(
            key("routines"),
            lambda: sources.routines.list_active_routines(request.user_id),
            encode=lambda records: [vars(r) for r in records],
            decode=lambda raw: [RoutineRecord(**item) for item in raw],
        ),
        [],
    )
    preferences = _with_fallback("Preference", lambda: sources.preferences.get_preferences(request.user_id), {})

    anchors = build_anchors(commitments)
    anchor_ids = {anchor.calendar_event_id for anchor in anchors}
    estimates = _with_fallback(
        "Exit time",
        lambda: sources.exit_times.calculate(
            [c for c in commitments if c.id in anchor_ids],
            request.current_location,
        ),
        [],
    )

    by_type: Dict[str, RoutineRecord] = {}
    for routine in routines:
        by_type.setdefault(routine.routine_type, routine)

    return PlanInputs(
        anchors=anchors,
        tasks=list(tasks),
        morning_routine=routine_activity(by_type.get("morning"), "morning"),
        evening_routine=routine_activity(by_type.get("evening"), "evening"),
        exit_estimates={estimate.commitment_id: estimate for estimate in estimates},
        preferences=dict(preferences or {}),
    )


def _chain_meta_kwargs(chain: ExecutionChain) -> Dict[str, Any]:
    return {
        "chain_id": chain.chain_id,
        "anchor_id": chain.anchor.id,
        "anchor_type": chain.anchor.anchor_type.value,
        "anchor_title": chain.anchor.title,
    }


def _step_block(chain: ExecutionChain, step: ChainStepInstance) -> PlannedBlock:
    common = dict(
        _chain_meta_kwargs(chain),
        step_id=step.step_id,
        template_step_id=step.template_step_id,
        is_required=step.is_required,
        can_skip_when_late=step.can_skip_when_late,
        is_custom=step.template_step_id.startswith("custom:"),
    )
    if step.role == StepRole.EXIT_GATE:
        meta = ExitGateMeta(gate_tags=list(step.gate_tags), **common)
    else:
        meta = ChainStepMeta(**common)
    return PlannedBlock(
        start=step.start_time,
        end=step.end_time,
        activity_type=ActivityType.CHAIN,
        name=step.name,
        metadata=meta,
        is_fixed=True,
    )


def chain_block_candidates(chain: ExecutionChain) -> List[Tuple[StepRole, ChainStepInstance, PlannedBlock]]:
    kwargs = _chain_meta_kwargs(chain)
    envelope = chain.envelope
    candidates = [(step.role, step, _step_block(chain, step)) for step in chain.steps]
    candidates.append(
        (
            StepRole.TRAVEL,
            envelope.travel_there,
            PlannedBlock(
                envelope.travel_there.start_time,
                envelope.travel_there.end_time,
                ActivityType.TRAVEL,
                envelope.travel_there.name,
                TravelMeta(direction="there", **kwargs),
                is_fixed=True,
            ),
        )
    )
    candidates.append(
        (
            StepRole.ANCHOR,
            envelope.anchor,
            PlannedBlock(
                envelope.anchor.start_time,
                envelope.anchor.end_time,
                ActivityType.COMMITMENT,
                chain.anchor.title,
                AnchorMeta(location=chain.anchor.location, must_attend=chain.anchor.must_attend, **kwargs),
                is_fixed=True,
                activity_id=chain.anchor.calendar_event_id,
            ),
        )
    )
    candidates.append(
        (
            StepRole.TRAVEL,
            envelope.travel_back,
            PlannedBlock(
                envelope.travel_back.start_time,
                envelope.travel_back.end_time,
                ActivityType.TRAVEL,
                envelope.travel_back.name,
                TravelMeta(direction="back", **kwargs),
                is_fixed=True,
            ),
        )
    )
    candidates.append(
        (
            StepRole.RECOVERY,
            envelope.recovery,
            PlannedBlock(
                envelope.recovery.start_time,
                envelope.recovery.end_time,
                ActivityType.CHAIN,
                envelope.recovery.name,
                RecoveryMeta(**kwargs),
                is_fixed=True,
            ),
        )
    )
    return candidates


def materialize_chains(chains: Sequence[ExecutionChain]) -> Tuple[List[PlannedBlock], List[Dict[str, Any]]]:
    """Fixed blocks for every chain, dropping any that collide with a higher-priority block.

    Anchors win over travel, travel over prep steps, prep steps over recovery;
    within a priority, earlier chains win. Dropped step instances are marked
    skipped on the chain itself.
    """
    ranked = []
    for chain_index, chain in enumerate(chains):
        for index, (role, instance, block) in enumerate(chain_block_candidates(chain)):
            ranked.append(((_CHAIN_PRIORITY[role], chain_index, index), instance, block))
    ranked.sort(key=lambda item: item[0])

    accepted: List[PlannedBlock] = []
    dropped: List[Dict[str, Any]] = []
    for _, instance, block in ranked:
        if overlaps_any(block.start, block.end, ((b.start, b.end) for b in accepted)):
            instance.status = StepStatus.SKIPPED
            dropped.append({"name": block.name, "activity_type": block.activity_type.value, "reason": SKIP_OVERLAP})
            logger.info("Dropping chain block %s: overlaps an accepted block", block.name)
            continue
        accepted.append(block)
    accepted.sort(key=lambda b: (b.start, b.end))
    return accepted, dropped


def meal_block(placement: MealPlacement) -> PlannedBlock:
    return PlannedBlock(
        start=placement.time,
        end=placement.end,
        activity_type=ActivityType.MEAL,
        name=MEAL_NAMES[placement.meal_type],
        metadata=MealMeta(
            meal_type=placement.meal_type.value,
            target_time=placement.target_time,
            placement_reason=placement.placement_reason,
        ),
    )


def flexible_activities(inputs: PlanInputs, energy: EnergyLevel) -> List[FlexibleActivity]:
    """Gap-fill candidates in priority order: morning routine, then tasks."""
    activities = [inputs.morning_routine]
    tasks = inputs.tasks[: task_limit(energy)]
    if not tasks:
        activities.append(
            FlexibleActivity(
                name=PRIMARY_FOCUS_NAME,
                duration=PRIMARY_FOCUS_MINUTES,
                activity_type=ActivityType.TASK,
                metadata=TaskMeta(placeholder=True),
            )
        )
    for task in tasks:
        duration = task.estimated_duration if task.estimated_duration and task.estimated_duration > 0 else DEFAULT_TASK_MINUTES
        activities.append(
            FlexibleActivity(
                name=task.title,
                duration=duration,
                activity_type=ActivityType.TASK,
                metadata=TaskMeta(task_id=task.id),
                activity_id=task.id,
            )
        )
    return activities


def fill_gap(
    timeline: Timeline,
    remaining: Tuple[FlexibleActivity, ...],
    gap_end: datetime,
) -> Tuple[Timeline, Tuple[FlexibleActivity, ...]]:
    """Place the highest-priority activities that still fit (with their buffer) before `gap_end`."""
    while True:
        fitting = next(
            (a for a in remaining if timeline.cursor + timedelta(minutes=a.duration) + FIVE_MINUTES <= gap_end),
            None,
        )
        if fitting is None:
            return timeline, remaining
        timeline = timeline.place(fitting.at(timeline.cursor)).with_buffer(gap_end)
        remaining = tuple(a for a in remaining if a is not fitting)


def layout_day(
    *,
    fill_start: datetime,
    plan_start: datetime,
    sleep_time: datetime,
    scheduled: Sequence[PlannedBlock],
    activities: Sequence[FlexibleActivity],
    evening: FlexibleActivity,
    evening_floor: Optional[datetime],
) -> Tuple[Timeline, List[Dict[str, Any]]]:
    """Interleave fixed/scheduled blocks with flexible work, ending on the evening routine."""
    timeline = Timeline(cursor=fill_start)
    remaining = tuple(activities)
    ordered = sorted(scheduled, key=lambda b: (b.start, b.end))

    for index, block in enumerate(ordered):
        timeline, remaining = fill_gap(timeline, remaining, block.start)
        before = timeline.cursor
        timeline = timeline.place(block)
        next_start = ordered[index + 1].start if index + 1 < len(ordered) else sleep_time
        if block.end > before:
            timeline = timeline.with_buffer(min(next_start, sleep_time))

    timeline, remaining = fill_gap(timeline, remaining, sleep_time - timedelta(minutes=evening.duration))

    skipped = [{"name": a.name, "activity_type": a.activity_type.value, "reason": SKIP_NO_GAP} for a in remaining]
    for activity in remaining:
        logger.info("No gap left for %s (%d min)", activity.name, activity.duration)

    evening_start = max(timeline.cursor, plan_start)
    if evening_floor is not None:
        evening_start = max(evening_start, evening_floor)
    if evening_start + timedelta(minutes=evening.duration) <= sleep_time:
        timeline = timeline.place(evening.at(evening_start))
    else:
        logger.info("Dropping evening routine: would end after sleep time")
        skipped.append({"name": evening.name, "activity_type": evening.activity_type.value, "reason": SKIP_SLEEP})
    return timeline, skipped


def skip_elapsed(timeline: Timeline, plan_start: datetime) -> Timeline:
    return replace(
        timeline,
        blocks=tuple(
            block.skipped(SKIP_BEFORE_START)
            if block.status == BlockStatus.PENDING and block.end <= plan_start
            else block
            for block in timeline.blocks
        ),
    )


def tail_plan(
    timeline: Timeline,
    *,
    plan_start: datetime,
    sleep_time: datetime,
    energy: EnergyLevel,
) -> Timeline:
    """Minimal fixed schedule for a late generation that left nothing actionable."""
    kept = tuple(b for b in timeline.blocks if not (b.is_buffer and b.status == BlockStatus.PENDING))
    tail = Timeline(cursor=plan_start, blocks=kept)
    items: List[Tuple[str, int, ActivityType, Any]] = [
        ("Reset/Admin", 10, ActivityType.TASK, TaskMeta(placeholder=True, tail_plan=True)),
    ]
    if energy != EnergyLevel.LOW:
        items.append((PRIMARY_FOCUS_NAME, 60, ActivityType.TASK, TaskMeta(placeholder=True, tail_plan=True)))
    items.append(("Dinner", 45, ActivityType.MEAL, MealMeta(meal_type=MealType.DINNER.value, placement_reason="tail-plan")))
    items.append(
        ("Evening Routine", 20, ActivityType.ROUTINE, RoutineMeta(routine_type="evening", is_default=True, tail_plan=True))
    )
    for name, duration, activity_type, meta in items:
        end = tail.cursor + timedelta(minutes=duration)
        if end > sleep_time:
            logger.info("Tail plan: %s does not fit before sleep", name)
            continue
        tail = tail.place(PlannedBlock(tail.cursor, end, activity_type, name, meta, is_fixed=True))
        tail = tail.with_buffer(sleep_time)
    return tail


def _sync_chain_statuses(chains: Sequence[ExecutionChain], blocks: Sequence[PlannedBlock]) -> None:
    skipped = {
        block.metadata.step_id
        for block in blocks
        if is_chain_step(block.metadata) and block.status == BlockStatus.SKIPPED
    }
    for chain in chains:
        for step in chain.steps:
            if step.step_id in skipped:
                step.status = StepStatus.SKIPPED


def build_plan_draft(
    request: PlanRequest,
    inputs: PlanInputs,
    now: datetime,
    *,
    buffer_minutes: int = CHAIN_COMPLETION_BUFFER_MINUTES,
    default_travel_minutes: int = DEFAULT_TRAVEL_MINUTES,
) -> PlanDraft:
    wake, sleep = request.wake_time, request.sleep_time
    plan_start = compute_plan_start(wake, now)
    ramp = generate_wake_ramp(plan_start, wake, request.energy)

    chains = generate_execution_chains(
        inputs.anchors,
        preferences=inputs.preferences,
        travel_minutes={cid: est.travel_duration for cid, est in inputs.exit_estimates.items()},
        daily_context=request.daily_context,
        default_travel_minutes=default_travel_minutes,
        buffer_minutes=buffer_minutes,
    )
    periods = calculate_location_periods(chains, plan_start, sleep)
    home_intervals = calculate_home_intervals(periods)
    fixed, skipped_items = materialize_chains(chains)

    meals = place_meals(
        wake_time=wake,
        sleep_time=sleep,
        now=plan_start,
        anchors=[(anchor.start, anchor.end) for anchor in inputs.anchors],
        conflicts=[(block.start, block.end) for block in fixed],
        home_intervals=home_intervals,
        zone=request.zone,
    )
    for meal in meals:
        if meal.skipped:
            skipped_items.append({"name": MEAL_NAMES[meal.meal_type], "activity_type": "meal", "reason": meal.skip_reason})

    floor = at_local(local_date(wake, request.zone), EVENING_FLOOR, request.zone)
    timeline, unplaced = layout_day(
        fill_start=ramp.end if not ramp.skipped else plan_start,
        plan_start=plan_start,
        sleep_time=sleep,
        scheduled=fixed + [meal_block(meal) for meal in meals if not meal.skipped],
        activities=flexible_activities(inputs, request.energy),
        evening=inputs.evening_routine,
        evening_floor=floor if sleep >= floor else None,
    )
    skipped_items.extend(unplaced)

    timeline = skip_elapsed(timeline, plan_start)
    tail_used = False
    if not timeline.pending_work():
        logger.info("Nothing actionable left after %s; synthesizing tail plan", plan_start.isoformat())
        timeline = tail_plan(timeline, plan_start=plan_start, sleep_time=sleep, energy=request.energy)
        tail_used = True

    blocks = timeline.ordered()
    _sync_chain_statuses(chains, blocks)

    placed_chain_ids = {
        block.metadata.chain_id
        for block in blocks
        if isinstance(block.metadata, TravelMeta) and block.metadata.direction == "there"
    }
    exit_times = []
    for chain in chains:
        if chain.chain_id not in placed_chain_ids:
            continue
        estimate = inputs.exit_estimates.get(chain.anchor.calendar_event_id or "")
        exit_times.append(
            ExitTimeDraft(
                commitment_id=chain.anchor.calendar_event_id or chain.anchor.id,
                chain_id=chain.chain_id,
                exit_time=chain.chain_completion_deadline,
                travel_duration=chain.travel_minutes,
                preparation_time=chain.prep_minutes,
                travel_method=estimate.travel_method if estimate else "unknown",
            )
        )

    return PlanDraft(
        plan_start=plan_start,
        generated_after_now=plan_start > wake,
        wake_ramp=ramp,
        chains=chains,
        location_periods=periods,
        home_intervals=home_intervals,
        meals=meals,
        blocks=blocks,
        exit_times=exit_times,
        skipped_items=skipped_items,
        tail_plan_used=tail_used,
    )
