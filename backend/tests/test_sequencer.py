"""Tests for current/next block derivation."""
from __future__ import annotations

from dataclasses import dataclass

from daychain.services.daily_plan.sequencer import get_current_block, get_next_blocks, snapshot


@dataclass
class _Block:
    name: str
    sequence_order: int
    status: str = "pending"


def _plan():
    return [
        _Block("c", 3),
        _Block("a", 1, "completed"),
        _Block("b", 2),
        _Block("d", 4, "skipped"),
        _Block("e", 5),
        _Block("f", 6),
    ]


def test_snapshot_orders_by_sequence() -> None:
    assert [block.name for block in snapshot(_plan())] == ["a", "b", "c", "d", "e", "f"]


def test_current_is_first_pending() -> None:
    assert get_current_block(_plan()).name == "b"


def test_next_blocks_skip_current_and_non_pending() -> None:
    assert [block.name for block in get_next_blocks(_plan(), 2)] == ["c", "e"]
    assert [block.name for block in get_next_blocks(_plan(), 10)] == ["c", "e", "f"]
    assert get_next_blocks(_plan(), 0) == []


def test_empty_or_finished_plan_has_no_current() -> None:
    assert get_current_block([]) is None
    assert get_current_block([_Block("a", 1, "completed")]) is None
