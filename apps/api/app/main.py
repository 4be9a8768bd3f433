import time
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session

from app.config import (
    allowed_origins,
    ensure_secure_runtime_settings,
    is_production_mode,
    settings,
)
from app.db.migration_check import assert_db_is_up_to_date, maybe_create_schema
from app.db.session import engine
from app.errors import DomainError, RateLimitedError
from app.observability import configure_logging, log_event, metrics_store, set_request_id
from app.routers.catalog import router as catalog_router
from app.routers.health import router as health_router
from app.routers.metrics import router as metrics_router
from app.routers.orders import router as orders_router
from app.routers.payments import router as payments_router
from app.routers.staff import router as staff_router
from app.services.seed import seed_demo_catalog


@asynccontextmanager
async def lifespan(_app: FastAPI):
    import app.models  # noqa: F401 (register all SQLAlchemy models)

    if not settings.testing:
        configure_logging()
    ensure_secure_runtime_settings()
    if settings.require_migrations or is_production_mode():
        assert_db_is_up_to_date(engine)
    maybe_create_schema(engine)
    if settings.app_mode == "demo":
        with Session(engine) as db:
            seed_demo_catalog(db)
    yield


app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description="Click & collect ordering, payment reconciliation and pickup verification",
    lifespan=lifespan,
)


def custom_openapi():
    """Advertise bearer JWT auth so Swagger UI offers an 'Authorize' button."""
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )
    components = openapi_schema.setdefault("components", {})
    components.setdefault("securitySchemes", {})["BearerAuth"] = {
        "type": "http",
        "scheme": "bearer",
        "bearerFormat": "JWT",
    }
    openapi_schema["security"] = [{"BearerAuth": []}]

    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DomainError)
async def domain_error_handler(_request: Request, exc: DomainError) -> JSONResponse:
    headers = None
    if isinstance(exc, RateLimitedError):
        headers = {"Retry-After": str(exc.retry_after_s)}
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": {"code": exc.code, "message": exc.message}},
        headers=headers,
    )


@app.middleware("http")
async def request_context_middleware(request: Request, call_next) -> Response:
    request_id = request.headers.get("X-Request-ID") or str(uuid4())
    set_request_id(request_id)

    start = time.perf_counter()
    response = await call_next(request)
    elapsed = time.perf_counter() - start

    response.headers["X-Request-ID"] = request_id
    metrics_store.increment("http_requests_total")
    metrics_store.observe("http_request_duration_seconds", elapsed)
    log_event(
        "http_request",
        order_id=request.path_params.get("order_id"),
        detail=f"{request.method} {request.url.path} {response.status_code}",
    )
    return response


app.include_router(health_router)
app.include_router(catalog_router)
app.include_router(orders_router)
app.include_router(payments_router)
app.include_router(staff_router)
app.include_router(metrics_router)
