"""Tests for chain progress and integrity evaluation."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

from daychain.services.chains.status import ChainBlockView, evaluate_chain_status
from daychain.services.chains.types import StepRole, StepStatus

DAY = datetime(2025, 3, 3, tzinfo=timezone.utc)


def _at(hour: int, minute: int = 0) -> datetime:
    return DAY + timedelta(hours=hour, minutes=minute)


def _chain(dress=StepStatus.PENDING, gate=StepStatus.PENDING, anchor=StepStatus.PENDING, gate_done_at=None):
    return [
        ChainBlockView("Get dressed", StepRole.CHAIN_STEP, dress, True, _at(8, 33)),
        ChainBlockView("Shower", StepRole.CHAIN_STEP, StepStatus.PENDING, False, _at(8, 23)),
        ChainBlockView("Exit Readiness Check", StepRole.EXIT_GATE, gate, True, _at(8, 45), gate_done_at),
        ChainBlockView("Class", StepRole.ANCHOR, anchor, True, _at(11)),
    ]


def test_untouched_chain_is_pending() -> None:
    report = evaluate_chain_status("chain-a", _chain())

    assert report.status == "pending"
    assert report.integrity == "intact"
    assert report.total_steps == 3
    assert report.missing_required == ["Get dressed", "Exit Readiness Check"]


def test_partially_done_chain_is_in_progress() -> None:
    report = evaluate_chain_status("chain-a", _chain(dress=StepStatus.COMPLETED))

    assert report.status == "in-progress"
    assert report.completed_steps == 1
    assert report.message == "1 of 3 steps done"


def test_completed_chain_on_time() -> None:
    report = evaluate_chain_status(
        "chain-a",
        _chain(StepStatus.COMPLETED, StepStatus.COMPLETED, StepStatus.COMPLETED, gate_done_at=_at(8, 44)),
    )

    assert report.status == "completed"
    assert report.message == "You made it!"
    assert report.late is False


def test_completed_chain_late_exit() -> None:
    report = evaluate_chain_status(
        "chain-a",
        _chain(StepStatus.COMPLETED, StepStatus.COMPLETED, StepStatus.COMPLETED, gate_done_at=_at(8, 55)),
    )

    assert report.status == "completed"
    assert report.late is True


def test_anchor_done_with_missing_required_step_is_broken() -> None:
    report = evaluate_chain_status("chain-a", _chain(dress=StepStatus.SKIPPED, anchor=StepStatus.COMPLETED))

    assert report.status == "failed"
    assert report.integrity == "broken"
    assert report.broken_at == "Get dressed"
    assert report.message.startswith("Chain broke at Get dressed")
