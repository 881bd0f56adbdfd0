"""Tests for metrics helpers."""
from __future__ import annotations

from typing import Any, Dict

from daychain.observability import metrics
from daychain.observability import tracing


class _DummyTrace:
    def __init__(self, metadata: Dict[str, Any]):
        self.metadata = metadata
        self.ended = False

    def end(self) -> None:
        self.ended = True


class _DummyClient:
    def __init__(self):
        self.traces: list[_DummyTrace] = []

    def trace(self, name: str, metadata: Dict[str, Any] | None = None):
        trace = _DummyTrace(metadata or {})
        self.traces.append(trace)
        return trace


def test_log_metric_closes_trace(monkeypatch) -> None:
    dummy_client = _DummyClient()
    monkeypatch.setattr(tracing, "get_opik_client", lambda: dummy_client)

    metrics.log_metric("demo_metric", 42, metadata={"foo": "bar"})

    assert dummy_client.traces, "Metric call should record a trace"
    assert dummy_client.traces[0].metadata["value"] == 42
    assert dummy_client.traces[0].metadata["foo"] == "bar"
    assert dummy_client.traces[0].ended is True


def test_timed_records_success_and_latency(monkeypatch) -> None:
    dummy_client = _DummyClient()
    monkeypatch.setattr(tracing, "get_opik_client", lambda: dummy_client)

    with metrics.timed("daily_plan.generate", metadata={"user_id": "u1"}) as extra:
        extra["blocks"] = 12

    assert len(dummy_client.traces) == 2
    success, latency = (trace.metadata for trace in dummy_client.traces)
    assert success["value"] == 1
    assert success["blocks"] == 12
    assert latency["value"] >= 0
    assert latency["user_id"] == "u1"


def test_timed_skips_metrics_when_block_raises(monkeypatch) -> None:
    dummy_client = _DummyClient()
    monkeypatch.setattr(tracing, "get_opik_client", lambda: dummy_client)

    try:
        with metrics.timed("daily_plan.generate"):
            raise RuntimeError("boom")
    except RuntimeError:
        pass

    assert dummy_client.traces == []
