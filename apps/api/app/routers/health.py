import socket
from collections.abc import Callable
from typing import Literal
from urllib.parse import urlparse

from fastapi import APIRouter, Response, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.db.session import SessionLocal
from app.observability import log_event
from app.schemas.health import HealthResponse, ReadinessDependency, ReadinessResponse

ReadinessStatus = Literal["ok", "error"]

router = APIRouter(tags=["health"])


@router.get("/health", summary="Liveness check", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(status="ok")


@router.get(
    "/ready",
    summary="Readiness check",
    response_model=ReadinessResponse,
    responses={status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ReadinessResponse}},
)
def readiness(response: Response) -> ReadinessResponse:
    dependencies = [
        ReadinessDependency(
            name="database",
            status=_safe_dependency_status(
                "database", lambda: _database_dependency_status(SessionLocal)
            ),
        )
    ]

    # The webhook quota only depends on Redis when it is the configured backend
    if settings.rate_limit_backend == "redis":
        dependencies.append(
            ReadinessDependency(
                name="redis",
                status=_safe_dependency_status(
                    "redis", lambda: _redis_dependency_status(settings.redis_url)
                ),
            )
        )

    readiness_status = "ok" if all(dep.status == "ok" for dep in dependencies) else "degraded"
    if readiness_status != "ok":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return ReadinessResponse(status=readiness_status, dependencies=dependencies)


def _safe_dependency_status(
    dependency_name: str,
    checker: Callable[[], ReadinessStatus],
) -> ReadinessStatus:
    try:
        return checker()
    except Exception as exc:  # readiness fails closed to degraded
        log_event(
            "readiness_dependency_check_failed",
            detail=f"{dependency_name}:{type(exc).__name__}",
        )
        return "error"


def _database_dependency_status(session_factory: Callable[[], Session]) -> ReadinessStatus:
    try:
        with session_factory() as db:
            db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        return "error"
    return "ok"


def _redis_dependency_status(redis_url: str) -> ReadinessStatus:
    parsed = urlparse(redis_url)
    if parsed.scheme != "redis" or not parsed.hostname:
        return "error"

    try:
        with socket.create_connection((parsed.hostname, parsed.port or 6379), timeout=1.0) as conn:
            conn.sendall(b"*1\r\n$4\r\nPING\r\n")
            payload = conn.recv(16)
    except OSError:
        return "error"

    return "ok" if payload.startswith(b"+PONG") else "error"
