"""Regression tests for application route registration."""
from fastapi.routing import APIRoute

from daychain.main import app


def test_generate_route_registered_once() -> None:
    """Ensure the plan generation endpoint is not mounted multiple times."""
    generate_routes = [
        route
        for route in app.routes
        if isinstance(route, APIRoute) and route.path == "/daily-plan/generate" and "POST" in route.methods
    ]
    assert len(generate_routes) == 1


def test_step_routes_registered() -> None:
    paths = {(route.path, method) for route in app.routes if isinstance(route, APIRoute) for method in route.methods}

    assert ("/time-blocks/{block_id}/edit-step", "POST") in paths
    assert ("/time-blocks/{block_id}/add-step", "POST") in paths
    assert ("/time-blocks/{block_id}/step", "DELETE") in paths
    assert ("/chains/today", "GET") in paths
