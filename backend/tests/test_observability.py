"""Tests ensuring observability wiring is safe by default and names DayChain's spans."""
from __future__ import annotations

import importlib
from datetime import datetime, timezone
from typing import Any, Dict
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from daychain.api.deps import get_input_cache, get_now
from daychain.db import (
    AgentActionLog,
    CalendarEvent,
    DailyPlan,
    ExitTime,
    Routine,
    Task,
    TimeBlock,
    User,
    UserPreferences,
)
from daychain.db.deps import get_db
from daychain.observability import tracing
from daychain.services.daily_plan.cache import PlanInputCache


class _RecordedTrace:
    def __init__(self, name: str, metadata: Dict[str, Any]):
        self.name = name
        self.metadata = metadata
        self.errors: list[Dict[str, Any]] = []

    def update(self, error_info=None, **kwargs) -> None:
        if error_info:
            self.errors.append(error_info)

    def end(self) -> None:
        pass


class _RecordingClient:
    def __init__(self):
        self.traces: list[_RecordedTrace] = []

    def trace(self, name: str, metadata: Dict[str, Any] | None = None):
        recorded = _RecordedTrace(name, dict(metadata or {}))
        self.traces.append(recorded)
        return recorded

    def named(self, name: str) -> list[_RecordedTrace]:
        return [recorded for recorded in self.traces if recorded.name == name]


@pytest.fixture()
def traced_client(monkeypatch):
    from daychain.main import app

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    @event.listens_for(engine, "connect")
    def set_fk(conn, record):  # pragma: no cover - sqlite setup
        cursor = conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    for model in (User, UserPreferences, CalendarEvent, Task, Routine, DailyPlan, TimeBlock, ExitTime, AgentActionLog):
        model.__table__.create(bind=engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    recorder = _RecordingClient()
    monkeypatch.setattr(tracing, "get_opik_client", lambda: recorder)
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_input_cache] = lambda: PlanInputCache(None, 0)
    app.dependency_overrides[get_now] = lambda: datetime(2025, 3, 3, 6, 0, tzinfo=timezone.utc)
    with TestClient(app) as test_client:
        yield test_client, recorder, TestingSessionLocal
    app.dependency_overrides.clear()


def test_app_import_succeeds_when_opik_is_disabled(monkeypatch) -> None:
    monkeypatch.setenv("OPIK_ENABLED", "false")
    monkeypatch.delenv("OPIK_API_KEY", raising=False)

    import daychain.core.config as core_config
    import daychain.observability.client as client_module
    import daychain.main as main_module

    importlib.reload(core_config)
    importlib.reload(client_module)
    reloaded_app = importlib.reload(main_module)

    assert reloaded_app.app.title == "DayChain Backend"


def test_plan_generation_records_spans_and_metrics(traced_client) -> None:
    test_client, recorder, _ = traced_client
    user_id = str(uuid4())

    resp = test_client.post(
        "/daily-plan/generate",
        json={
            "user_id": user_id,
            "date": "2025-03-03",
            "wake_time": "07:00",
            "sleep_time": "23:00",
            "energy_state": "high",
            "timezone": "UTC",
        },
        headers={"X-Request-Id": "req-plan-1"},
    )
    assert resp.status_code == 201

    [span] = recorder.named("daily_plan.generate")
    assert span.metadata["energy"] == "high"
    assert span.metadata["user_id"] == user_id
    assert span.metadata["request_id"] == "req-plan-1"

    [success] = recorder.named("metric:daily_plan.generate.success")
    assert success.metadata["value"] == 1
    assert success.metadata["blocks"] == len(resp.json()["blocks"])
    assert success.metadata["replaced_existing"] is False
    assert recorder.named("metric:daily_plan.generate.latency_ms")


def test_failed_generation_records_failure_metric(traced_client) -> None:
    test_client, recorder, SessionLocal = traced_client
    user_id = uuid4()
    session = SessionLocal()
    session.add(User(id=user_id, timezone="Mars/Olympus_Mons"))
    session.commit()
    session.close()

    resp = test_client.post(
        "/daily-plan/generate",
        json={
            "user_id": str(user_id),
            "date": "2025-03-03",
            "wake_time": "07:00",
            "sleep_time": "23:00",
            "energy_state": "medium",
        },
    )
    assert resp.status_code == 422
    assert resp.json()["detail"]["error_code"] == "INVALID_PLAN_INPUT"

    [failure] = recorder.named("metric:daily_plan.generate.failure")
    assert failure.metadata["error_code"] == "INVALID_PLAN_INPUT"
    assert not recorder.named("metric:daily_plan.generate.success")
