"""Lightweight metrics helpers."""
from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from daychain.observability import tracing


def log_metric(name: str, value: float | int, metadata: Optional[Dict[str, Any]] = None) -> None:
    """Record a metric as a short-lived Opik trace (no-op when Opik is off)."""
    payload: Dict[str, Any] = {"value": value}
    if metadata:
        payload.update(metadata)
    with tracing.trace(f"metric:{name}", metadata=payload):
        pass


@contextmanager
def timed(name: str, metadata: Optional[Dict[str, Any]] = None) -> Iterator[Dict[str, Any]]:
    """Emit `<name>.success` and `<name>.latency_ms` when the block completes without raising.

    The yielded dict can be filled with extra metadata inside the block.
    """
    extra: Dict[str, Any] = dict(metadata or {})
    started = time.perf_counter()
    yield extra
    latency_ms = (time.perf_counter() - started) * 1000
    log_metric(f"{name}.success", 1, metadata=extra)
    log_metric(f"{name}.latency_ms", latency_ms, metadata=extra)
