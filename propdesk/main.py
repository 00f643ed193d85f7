# propdesk/main.py
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .db import init_db
from .errors import StoreError
from .logging_config import configure_logging
from .middleware.request_id import RequestIdMiddleware
from .middleware.structured_logging import StructuredLoggingMiddleware

from .routers.audit import router as audit_router
from .routers.auth import router as auth_router
from .routers.financial import router as financial_router
from .routers.notifications import router as notifications_router
from .routers.partners import router as partners_router
from .routers.properties import router as properties_router
from .routers.publicity import router as publicity_router
from .routers.tasks import router as tasks_router
from .routers.tenants import router as tenants_router

API_PREFIX = "/api"

log = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    val = getattr(settings, "cors_allow_origins", ["*"])
    if isinstance(val, str):
        v = val.strip()
        return ["*"] if v == "*" else [x.strip() for x in v.split(",") if x.strip()]
    if isinstance(val, list) and val:
        return val
    return ["*"]


async def _store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    level = logging.WARNING if exc.http_status >= 500 else logging.INFO
    log.log(
        level,
        "store_error: %s",
        exc.message,
        extra={"entity": exc.entity, "entity_id": exc.entity_id, "status": exc.code},
    )
    body = exc.as_dict()
    body["detail"] = exc.message
    return JSONResponse(status_code=exc.http_status, content=body)


def create_app() -> FastAPI:
    configure_logging()
    init_db()

    app = FastAPI(title="PropDesk", version="0.1.0")

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(StructuredLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StoreError, _store_error_handler)

    @app.get(f"{API_PREFIX}/health", tags=["meta"])
    def health():
        return {"ok": True, "env": settings.app_env}

    app.include_router(auth_router, prefix=API_PREFIX)
    app.include_router(properties_router, prefix=API_PREFIX)
    app.include_router(partners_router, prefix=API_PREFIX)
    app.include_router(tenants_router, prefix=API_PREFIX)
    app.include_router(tasks_router, prefix=API_PREFIX)
    app.include_router(financial_router, prefix=API_PREFIX)
    app.include_router(notifications_router, prefix=API_PREFIX)
    app.include_router(publicity_router, prefix=API_PREFIX)
    app.include_router(audit_router, prefix=API_PREFIX)

    return app


app = create_app()
