"""Tests for anchor classification and execution chain generation."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

from daychain.services.chains.anchors import build_anchors, classify_anchor_type
from daychain.services.chains.generator import (
    DailyContext,
    generate_execution_chains,
    prep_minutes_for,
)
from daychain.services.chains.types import AnchorType, StepRole, EXIT_GATE_STEP_ID
from daychain.services.sources import CommitmentRecord

DAY = datetime(2025, 3, 3, tzinfo=timezone.utc)


def _at(hour: int, minute: int = 0) -> datetime:
    return DAY + timedelta(hours=hour, minutes=minute)


def _commitment(cid: str, title: str, start: datetime, end: datetime, **kwargs) -> CommitmentRecord:
    return CommitmentRecord(id=cid, title=title, start=start, end=end, **kwargs)


def test_classification_order_and_keywords() -> None:
    assert classify_anchor_type("Chemistry lab") == AnchorType.WORKSHOP
    assert classify_anchor_type("Algebra lecture") == AnchorType.CLASS
    assert classify_anchor_type("Reading group", "weekly discussion") == AnchorType.SEMINAR
    assert classify_anchor_type("Dentist") == AnchorType.APPOINTMENT
    assert classify_anchor_type("Lab class") == AnchorType.WORKSHOP
    assert classify_anchor_type("Birthday party") == AnchorType.OTHER
    assert classify_anchor_type("Classical music") == AnchorType.OTHER


def test_build_anchors_sorts_and_skips_tasks() -> None:
    anchors = build_anchors(
        [
            _commitment("b", "Seminar", _at(14), _at(15), location="Room 2"),
            _commitment("a", "Lecture", _at(10), _at(11)),
            _commitment("t", "Write essay", _at(12), _at(13), event_type="task"),
        ]
    )

    assert [anchor.id for anchor in anchors] == ["anchor-a", "anchor-b"]
    assert anchors[0].must_attend is False
    assert anchors[1].must_attend is True


def test_class_chain_ends_at_deadline_with_margin() -> None:
    anchors = build_anchors([_commitment("c1", "Maths class", _at(10), _at(11))])
    [chain] = generate_execution_chains(anchors)

    assert chain.chain_id == "chain-anchor-c1"
    assert chain.chain_completion_deadline == _at(8, 45)
    assert chain.steps[-1].template_step_id == "leave"
    assert chain.steps[-1].end_time == _at(8, 45)
    assert chain.exit_gate.start_time == _at(8, 43)
    assert chain.exit_gate.role == StepRole.EXIT_GATE
    assert chain.steps[0].start_time == _at(7, 48)
    for earlier, later in zip(chain.steps, chain.steps[1:]):
        assert earlier.end_time == later.start_time

    envelope = chain.envelope
    assert envelope.travel_there.start_time == _at(8, 45)
    assert envelope.travel_there.end_time == _at(9, 15)
    assert envelope.travel_back.start_time == _at(11)
    assert envelope.recovery.start_time == _at(11, 30)
    assert envelope.recovery.end_time == _at(11, 40)
    assert chain.prep_minutes == 15


def test_long_anchor_gets_longer_recovery_and_seminar_longer_prep() -> None:
    anchors = build_anchors([_commitment("s1", "Seminar", _at(13), _at(15))])
    [chain] = generate_execution_chains(anchors, travel_minutes={"s1": 20})

    assert chain.travel_minutes == 20
    assert chain.envelope.recovery.duration == 20
    assert chain.prep_minutes == prep_minutes_for(AnchorType.SEMINAR) == 25


def test_non_positive_travel_falls_back_to_default() -> None:
    anchors = build_anchors([_commitment("c1", "Class", _at(10), _at(11))])
    [chain] = generate_execution_chains(anchors, travel_minutes={"c1": 0})

    assert chain.travel_minutes == 30


def test_context_injects_meds_into_first_chain_and_drops_shower() -> None:
    anchors = build_anchors(
        [
            _commitment("c1", "Class", _at(10), _at(11)),
            _commitment("c2", "Class", _at(15), _at(16)),
        ]
    )
    first, second = generate_execution_chains(
        anchors,
        daily_context=DailyContext(meds_taken=False, shower_done=True),
    )

    first_ids = [step.template_step_id for step in first.steps]
    second_ids = [step.template_step_id for step in second.steps]
    assert "take-meds" in first_ids
    assert first_ids.index("take-meds") == first_ids.index(EXIT_GATE_STEP_ID) - 1
    assert first.injected_step_ids == ["take-meds"]
    assert "take-meds" not in second_ids
    assert "shower" not in first_ids and "shower" not in second_ids


def test_preferences_customize_generated_chain() -> None:
    anchors = build_anchors([_commitment("c1", "Class", _at(10), _at(11))])
    [chain] = generate_execution_chains(
        anchors,
        preferences={"chain_step_overrides": {"dress": {"name": "Uniform", "duration_estimate": 15}}},
    )

    dress = next(step for step in chain.steps if step.template_step_id == "dress")
    assert dress.name == "Uniform"
    assert dress.duration == 15
    assert chain.steps[-1].end_time == chain.chain_completion_deadline
