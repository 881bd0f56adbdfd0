from typing import Any, Dict

from fastapi.testclient import TestClient

from daychain.observability import tracing


def _get_client() -> TestClient:
    from daychain.main import app

    return TestClient(app)


class _HealthTrace:
    def __init__(self, name: str, metadata: Dict[str, Any]):
        self.name = name
        self.metadata = metadata

    def end(self) -> None:
        pass


def test_health_endpoint_returns_ok() -> None:
    client = _get_client()
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_request_id_generated_and_echoed() -> None:
    client = _get_client()

    generated = client.get("/health").headers.get("X-Request-Id")
    echoed = client.get("/health", headers={"X-Request-Id": "plan-req-42"}).headers.get("X-Request-Id")

    assert generated
    assert echoed == "plan-req-42"


def test_health_check_is_traced_with_request_id(monkeypatch) -> None:
    traces: list[_HealthTrace] = []

    class _Client:
        def trace(self, name: str, metadata: Dict[str, Any] | None = None):
            traces.append(_HealthTrace(name, dict(metadata or {})))
            return traces[-1]

    monkeypatch.setattr(tracing, "get_opik_client", lambda: _Client())
    client = _get_client()
    client.get("/health", headers={"X-Request-Id": "health-req-7"})

    [health] = [recorded for recorded in traces if recorded.name == "http.health_check"]
    assert health.metadata == {"route": "/health", "request_id": "health-req-7"}
