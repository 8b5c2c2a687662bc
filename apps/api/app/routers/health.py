from collections.abc import Callable
from typing import Literal

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.db.session import SessionLocal
from app.dependencies import get_order_store
from app.observability import log_event, metrics_store
from app.schemas.health import HealthResponse, ReadinessDependency, ReadinessResponse
from app.services.errors import LifecycleError
from app.services.order_store import OrderStore

ReadinessStatus = Literal["ok", "error"]

router = APIRouter(tags=["health"])


@router.get("/health", summary="Health check", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(status="ok")


@router.get(
    "/ready",
    summary="Readiness check",
    response_model=ReadinessResponse,
    responses={status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ReadinessResponse}},
)
def readiness(
    response: Response,
    order_store: OrderStore = Depends(get_order_store),
) -> ReadinessResponse:
    dependencies: list[ReadinessDependency] = []

    if settings.order_store_backend == "db":
        database_status = _safe_dependency_status(
            "database", lambda: database_dependency_status(SessionLocal)
        )
        dependencies.append(ReadinessDependency(name="database", status=database_status))

    store_status = _safe_dependency_status(
        "order_store", lambda: order_store_dependency_status(order_store)
    )
    dependencies.append(ReadinessDependency(name="order_store", status=store_status))

    readiness_status = "ok" if all(dep.status == "ok" for dep in dependencies) else "degraded"
    if readiness_status != "ok":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return ReadinessResponse(status=readiness_status, dependencies=dependencies)


def _safe_dependency_status(
    dependency_name: str,
    checker: Callable[[], ReadinessStatus],
) -> ReadinessStatus:
    metrics_store.increment("readiness_dependency_checked_total")
    try:
        result = checker()
    except Exception as exc:  # readiness must fail closed to degraded
        log_event(
            "readiness_dependency_check_failed",
            order_id=f"{dependency_name}:{type(exc).__name__}",
        )
        result = "error"
    if result != "ok":
        metrics_store.increment("readiness_dependency_error_total")
    return result


def database_dependency_status(
    session_factory: Callable[[], Session],
) -> ReadinessStatus:
    try:
        with session_factory() as db:
            db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        return "error"
    return "ok"


def order_store_dependency_status(order_store: OrderStore) -> ReadinessStatus:
    try:
        order_store.find_active("__readiness_check__")
    except LifecycleError:
        return "error"
    return "ok"
