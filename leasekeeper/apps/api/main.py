from __future__ import annotations

import logging
import time
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from leasekeeper.apps.api.errors import (
    http_exception_handler,
    lease_keeper_exception_handler,
    starlette_http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from leasekeeper.apps.api.response import API_VERSION
from leasekeeper.apps.api.routes.health import router as health_router
from leasekeeper.apps.api.routes.leases import router as leases_router
from leasekeeper.core.config import get_settings
from leasekeeper.core.errors import LeaseKeeperError
from leasekeeper.core.logging import configure_logging
from leasekeeper.services.authz.strategies import build_default_registry
from leasekeeper.services.leases.orchestrator import LeaseUpdateOrchestrator


logger = logging.getLogger(__name__)


def build_default_orchestrator() -> LeaseUpdateOrchestrator:
    # Imported here so building an app with injected collaborators never opens a database engine.
    from leasekeeper.persistence.db import SessionLocal
    from leasekeeper.persistence.repos.leases import SqlLeaseRepository
    from leasekeeper.persistence.repos.profiles import SqlProfileLookup
    from leasekeeper.services.audit import AuditEventSink
    from leasekeeper.services.cache import build_lease_cache

    return LeaseUpdateOrchestrator(
        repository=SqlLeaseRepository(SessionLocal),
        registry=build_default_registry(),
        cache=build_lease_cache(),
        events=AuditEventSink(SessionLocal),
        profiles=SqlProfileLookup(SessionLocal),
        pending_changes_policy=get_settings().lease_pending_changes_policy,
    )


def create_app(orchestrator: LeaseUpdateOrchestrator | None = None) -> FastAPI:
    configure_logging()
    settings = get_settings()
    app = FastAPI(title="LeaseKeeper API")
    app.state.orchestrator = orchestrator or build_default_orchestrator()

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Preserve incoming request IDs or assign a new one for traceability.
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        start = time.monotonic()
        response = await call_next(request)
        latency_ms = (time.monotonic() - start) * 1000.0
        logger.info(
            "request_completed method=%s path=%s status=%s latency_ms=%.1f request_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            latency_ms,
            request_id,
        )
        response.headers.setdefault("X-Request-Id", request_id)
        return response

    @app.exception_handler(LeaseKeeperError)
    async def _lease_keeper_exception_handler(request: Request, exc: LeaseKeeperError):
        return await lease_keeper_exception_handler(request, exc)

    @app.exception_handler(StarletteHTTPException)
    async def _starlette_http_exception_handler(request: Request, exc: StarletteHTTPException):
        return await starlette_http_exception_handler(request, exc)

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        return await unhandled_exception_handler(request, exc)

    @app.exception_handler(RequestValidationError)
    async def _validation_exception_handler(request: Request, exc: RequestValidationError):
        return await validation_exception_handler(request, exc)

    @app.exception_handler(HTTPException)
    async def _http_exception_handler(request: Request, exc: HTTPException):
        return await http_exception_handler(request, exc)

    app.include_router(health_router, prefix=f"/{API_VERSION}")
    app.include_router(leases_router, prefix=f"/{API_VERSION}")
    logger.info("app_created name=%s pending_changes_policy=%s", settings.app_name, settings.lease_pending_changes_policy)
    return app
