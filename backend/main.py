from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import psycopg2
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse

from sqlalchemy import text
from sqlalchemy.exc import OperationalError as SAOperationalError

from api.router import api_router
from core.bootstrap import bootstrap_schema
from core.config import settings
from core.database import DatabaseUnavailableError, ENGINE, is_transient_db_connectivity_error
from core.errors import AllocationError
from core.logging import setup_logging


logger = logging.getLogger(__name__)


def _db_error_response(exc: Exception) -> JSONResponse:
    if is_transient_db_connectivity_error(exc):
        logger.warning("Database transient connectivity error (503)", exc_info=exc)
        return JSONResponse(
            status_code=503,
            content={
                "code": "DATABASE_UNAVAILABLE",
                "message": "Database temporarily unavailable. Please retry.",
            },
        )
    logger.error("Database operation failed", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={
            "code": "DATABASE_ERROR",
            "message": "Database operation failed.",
        },
    )


@asynccontextmanager
async def _lifespan(_app: FastAPI):
    # Best-effort: the API still starts (and /health reports) if the DB is down.
    try:
        bootstrap_schema()
    except Exception:
        logger.exception("Schema bootstrap failed; continuing without it")
    yield


def create_app() -> FastAPI:
    setup_logging(environment=settings.environment, seating_level=settings.seating_log_level)
    is_production = settings.environment.lower() == "production"
    app = FastAPI(
        title="Exam Seat Allocation API",
        version="0.1.0",
        docs_url=None if is_production else "/docs",
        redoc_url=None if is_production else "/redoc",
        openapi_url=None if is_production else "/openapi.json",
        lifespan=_lifespan,
    )

    @app.exception_handler(AllocationError)
    def _allocation_error(_request, exc: AllocationError):
        if exc.status_code >= 500:
            logger.error("%s: %s", exc.code, exc.message)
        else:
            logger.info("%s (%s): %s", exc.code, exc.status_code, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(DatabaseUnavailableError)
    def _db_unavailable(_request, _exc: DatabaseUnavailableError):
        logger.warning("Database unavailable (503)", exc_info=_exc)
        return JSONResponse(
            status_code=503,
            content={
                "code": "DATABASE_UNAVAILABLE",
                "message": "Database temporarily unavailable. Please retry.",
            },
        )

    @app.exception_handler(SAOperationalError)
    def _sqlalchemy_operational_error(_request, exc: SAOperationalError):
        return _db_error_response(exc)

    @app.exception_handler(psycopg2.OperationalError)
    def _psycopg2_operational_error(_request, exc: psycopg2.OperationalError):
        return _db_error_response(exc)

    allow_origins = [settings.frontend_origin]
    allow_origin_regex = None
    if not is_production:
        # Dev-friendly: allow the configured origin and any localhost port.
        allow_origins.extend(["http://localhost:5173", "http://127.0.0.1:5173"])
        allow_origin_regex = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_origin_regex=allow_origin_regex,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health() -> dict:
        # Always respond; reflect DB availability without crashing.
        db_status = "ok"
        try:
            with ENGINE.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception:
            db_status = "down"

        return {"app": "ok", "database": db_status}

    app.include_router(api_router, prefix="/api")
    return app


app = create_app()
