"""Custom FastAPI middleware."""
from __future__ import annotations

from typing import Callable
from uuid import uuid4

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from daychain.core.context import plan_id_ctx_var, request_id_ctx_var


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Bind a request id for logs and traces, echoing it back on the response."""

    async def dispatch(self, request: Request, call_next: Callable[[Request], Response]) -> Response:  # type: ignore[override]
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        token = request_id_ctx_var.set(request_id)
        plan_token = plan_id_ctx_var.set(None)

        try:
            response = await call_next(request)
        finally:
            plan_id_ctx_var.reset(plan_token)
            request_id_ctx_var.reset(token)

        response.headers["X-Request-Id"] = request_id
        return response
