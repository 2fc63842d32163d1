"""FastAPI application factory for the Herdbook service.

Wires logging, problem+json exception handlers, request-id and CORS
middleware, optional startup migrations and the API routers. No app is
instantiated at import time.
"""

from __future__ import annotations

import logging
from typing import Callable

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from sqlalchemy import text as sql_text
from sqlalchemy.exc import SQLAlchemyError

from herdbook.config import load_config
from herdbook.db.base import get_engine
from herdbook.db.migrations_runner import apply_migrations
from herdbook.http.problem import (
    handle_domain_error,
    handle_http_exception,
    handle_request_validation_error,
    handle_unexpected_error,
)
from herdbook.http.request_id import RequestIdMiddleware
from herdbook.logging_setup import configure_logging
from herdbook.logic.errors import HerdbookError
from herdbook.logic.tag_catalog import verify_tag_catalog
from herdbook.middleware.cors import apply_cors
from herdbook.routes import api_router

logger = logging.getLogger(__name__)


def _health_check() -> Callable[[], dict]:
    def check() -> dict:
        try:
            with get_engine().connect() as conn:
                conn.execute(sql_text("SELECT 1"))
            return {"status": "ok", "db": True}
        except SQLAlchemyError as e:
            logger.error("Health DB check failed", exc_info=True)
            return {"status": "degraded", "db": False, "reason": str(e)}

    return check


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="Herdbook")

    app.add_exception_handler(HerdbookError, handle_domain_error)
    app.add_exception_handler(HTTPException, handle_http_exception)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

    apply_cors(app)
    app.add_middleware(RequestIdMiddleware)

    @app.on_event("startup")
    def _startup() -> None:
        cfg = load_config().database
        if cfg.auto_apply_migrations:
            applied = apply_migrations(get_engine(), cfg.migrations_dir)
            logger.info("startup_migrations applied=%s", len(applied))
        else:
            logger.info("AUTO_APPLY_MIGRATIONS disabled; skipping migrations at startup")
        try:
            verify_tag_catalog()
        except SQLAlchemyError:
            logger.warning("tag_catalog_check_skipped; catalog tables unavailable", exc_info=True)

    app.include_router(api_router, prefix="/api/v1")

    health_check = _health_check()

    @app.get("/health")
    def health():  # pragma: no cover - trivial
        return health_check()

    return app


__all__ = ["create_app"]
