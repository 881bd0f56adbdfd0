"""Main FastAPI application for the DayChain backend."""
from fastapi import FastAPI, Request

from daychain.api.routes.chains import router as chains_router
from daychain.api.routes.daily_plan import router as daily_plan_router
from daychain.api.routes.time_blocks import router as time_blocks_router
from daychain.core.config import settings
from daychain.core.logging import configure_logging
from daychain.core.middleware import RequestIDMiddleware
from daychain.observability.client import init_opik
from daychain.observability.tracing import trace

configure_logging(log_level=settings.log_level)

app = FastAPI(title=settings.app_name, version="0.1.0")
app.add_middleware(RequestIDMiddleware)
app.include_router(daily_plan_router)
app.include_router(time_blocks_router)
app.include_router(chains_router)


@app.on_event("startup")
async def startup_observability() -> None:
    """Initialize observability backends after the event loop starts."""
    init_opik()


@app.get("/health", tags=["health"], summary="Readiness probe")
async def health_check(request: Request) -> dict[str, str]:
    """Return a simple status payload so automation can probe the API."""
    with trace("http.health_check", metadata={"route": "/health"}, request_id=request.state.request_id):
        return {"status": "ok"}
