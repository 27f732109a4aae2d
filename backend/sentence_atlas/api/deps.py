"""Request-scoped dependencies shared by the route modules."""

from __future__ import annotations

from fastapi.requests import HTTPConnection

from sentence_atlas.services.runs import RunService


def get_run_service(connection: HTTPConnection) -> RunService:
    service = getattr(connection.app.state, "run_service", None)
    if service is None:
        service = RunService()
        connection.app.state.run_service = service
    return service
