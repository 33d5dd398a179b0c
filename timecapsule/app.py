"""
FastAPI application entry point for the time capsule backend.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from timecapsule.config import get_settings
from timecapsule.dependencies import build_scheduler
from timecapsule.routes import router
from timecapsule.schemas import HealthResponse, ServiceInfoResponse

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


def _format_validation_error(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid value")
    return f"{location}: {message}" if location else message


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": _format_validation_error(exc)},
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "An unexpected error occurred. Please try again later.",
        },
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    scheduler = None
    if settings.run_scheduler_in_app:
        scheduler = build_scheduler()
        scheduler.start()
    app.state.scheduler = scheduler
    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.stop(timeout=settings.delivery_call_timeout_seconds)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Time Capsule API", version=API_VERSION, lifespan=lifespan)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
    app.include_router(router, prefix=settings.api_prefix)

    @app.get("/", response_model=ServiceInfoResponse)
    def service_info():
        return ServiceInfoResponse(
            message="Welcome to TimeCapsule API",
            version=API_VERSION,
            status="operational",
        )

    @app.get("/health", response_model=HealthResponse)
    def health_check():
        return HealthResponse(status="ok")

    return app


app = create_app()
