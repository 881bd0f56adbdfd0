"""Tests for degrading a stored plan to its essentials."""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from daychain.db.models.agent_action_log import AgentActionLog
from daychain.db.models.daily_plan import DailyPlan, TimeBlock
from daychain.db.models.user import User
from daychain.services.daily_plan.degrade import SKIP_DEGRADED, SKIP_NO_ROOM, degrade_plan
from daychain.services.daily_plan.sequencer import get_current_block
from daychain.services.daily_plan.store import load_plan_blocks

DAY = datetime(2025, 3, 3, tzinfo=timezone.utc)


def _at(hour: int, minute: int = 0) -> datetime:
    return DAY + timedelta(hours=hour, minutes=minute)


@pytest.fixture()
def session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):  # pragma: no cover - sqlite setup
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    for model in (User, DailyPlan, TimeBlock, AgentActionLog):
        model.__table__.create(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


def _plan(db, *, plan_start: datetime, sleep_time: datetime, blocks):
    user_id = uuid4()
    db.add(User(id=user_id, timezone="UTC"))
    db.flush()
    plan = DailyPlan(
        user_id=user_id,
        plan_date=date(2025, 3, 3),
        wake_time=_at(7),
        sleep_time=sleep_time,
        plan_start=plan_start,
        energy_state="medium",
        status="active",
        generated_after_now=plan_start > _at(7),
    )
    db.add(plan)
    db.flush()
    for order, (name, activity_type, start, end, is_fixed, status) in enumerate(blocks, start=1):
        db.add(
            TimeBlock(
                plan_id=plan.id,
                start_time=start,
                end_time=end,
                activity_type=activity_type,
                activity_name=name,
                is_fixed=is_fixed,
                sequence_order=order,
                status=status,
                skip_reason="Occurred before plan start" if status == "skipped" else None,
            )
        )
    db.commit()
    return plan


def _buffers(blocks):
    return [(b.start_time, b.end_time, b.status) for b in blocks if b.activity_type == "buffer"]


def test_late_plan_keeps_current_block_and_adds_nothing_before_start(session) -> None:
    plan = _plan(
        session,
        plan_start=_at(14),
        sleep_time=_at(23),
        blocks=[
            ("Breakfast", "meal", _at(7, 30), _at(7, 45), False, "skipped"),
            ("Travel to Biology lecture", "travel", _at(8, 45), _at(9, 15), True, "skipped"),
            ("Biology lecture", "commitment", _at(10), _at(11), True, "skipped"),
            ("Recovery", "chain", _at(11, 30), _at(11, 40), True, "skipped"),
            ("Lunch", "meal", _at(14), _at(14, 30), False, "pending"),
            ("Primary Focus Block", "task", _at(14, 35), _at(15, 35), False, "pending"),
            ("Dinner", "meal", _at(19), _at(19, 45), False, "pending"),
        ],
    )
    before = get_current_block(load_plan_blocks(session, plan.id))
    assert before.activity_name == "Lunch"

    result = degrade_plan(session, plan.id, user_id=plan.user_id, now=_at(14))

    after = get_current_block(result.blocks)
    assert after.id == before.id
    assert not [
        b.activity_name for b in result.blocks if b.status == "pending" and b.end_time <= plan.plan_start
    ]
    assert _buffers(result.blocks) == [
        (_at(14, 30), _at(14, 35), "pending"),
        (_at(19, 45), _at(19, 50), "pending"),
    ]
    focus = next(b for b in result.blocks if b.activity_name == "Primary Focus Block")
    assert focus.skip_reason == SKIP_DEGRADED


def test_no_buffer_starts_before_now(session) -> None:
    plan = _plan(
        session,
        plan_start=_at(9),
        sleep_time=_at(23),
        blocks=[
            ("Morning Routine", "routine", _at(9), _at(9, 30), False, "pending"),
            ("Lunch", "meal", _at(12), _at(12, 30), False, "pending"),
        ],
    )

    result = degrade_plan(session, plan.id, user_id=plan.user_id, now=_at(10))

    assert _buffers(result.blocks) == [(_at(12, 30), _at(12, 35), "pending")]


def test_buffer_never_runs_past_sleep(session) -> None:
    plan = _plan(
        session,
        plan_start=_at(7),
        sleep_time=_at(22),
        blocks=[
            ("Dinner", "meal", _at(19), _at(19, 45), False, "pending"),
            ("Evening Routine", "routine", _at(21, 30), _at(21, 57), False, "pending"),
        ],
    )

    result = degrade_plan(session, plan.id, user_id=plan.user_id, now=_at(7))

    buffers = _buffers(result.blocks)
    assert buffers == [(_at(19, 45), _at(19, 50), "pending")]
    assert all(end <= plan.sleep_time for _, end, _ in buffers)
    assert result.blocks[-1].activity_name == "Evening Routine"


def test_pushed_essential_that_would_hit_a_commitment_is_skipped(session) -> None:
    plan = _plan(
        session,
        plan_start=_at(7),
        sleep_time=_at(23),
        blocks=[
            ("Breakfast", "meal", _at(8, 30), _at(9, 15), False, "pending"),
            ("Morning Routine", "routine", _at(9), _at(10), False, "pending"),
            ("Biology lecture", "commitment", _at(10), _at(11), True, "pending"),
        ],
    )

    result = degrade_plan(session, plan.id, user_id=plan.user_id, now=_at(7))

    routine = next(b for b in result.blocks if b.activity_name == "Morning Routine")
    assert routine.status == "skipped"
    assert routine.skip_reason == SKIP_NO_ROOM
    assert (routine.start_time, routine.end_time) == (_at(9), _at(10))
    assert result.dropped == 1
    lecture = next(b for b in result.blocks if b.activity_name == "Biology lecture")
    assert (lecture.start_time, lecture.end_time) == (_at(10), _at(11))


def test_pushed_essential_moves_when_it_fits(session) -> None:
    plan = _plan(
        session,
        plan_start=_at(7),
        sleep_time=_at(23),
        blocks=[
            ("Breakfast", "meal", _at(8, 30), _at(9, 15), False, "pending"),
            ("Morning Routine", "routine", _at(9), _at(9, 30), False, "pending"),
            ("Biology lecture", "commitment", _at(10), _at(11), True, "pending"),
        ],
    )

    result = degrade_plan(session, plan.id, user_id=plan.user_id, now=_at(7))

    routine = next(b for b in result.blocks if b.activity_name == "Morning Routine")
    assert (routine.start_time, routine.end_time, routine.status) == (_at(9, 15), _at(9, 45), "pending")
    assert [b.activity_name for b in result.blocks] == [
        "Breakfast",
        "Morning Routine",
        "Transition",
        "Biology lecture",
        "Transition",
    ]
