"""
Shared API Middleware
======================

Correlation ids, request logging and exception-to-status mapping.
"""

import time
import uuid
from datetime import datetime, timezone
from typing import Callable

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from src.core import (
    ApplicationException,
    RepositoryException,
    ResourceNotFoundException,
    ValidationException,
)
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Reuses the caller's X-Correlation-ID or mints one, and echoes it back."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs one line per request start and one per completion."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = getattr(request.state, "correlation_id", "unknown")
        start_time = time.perf_counter()

        logger.info(
            "Request started",
            extra={
                "correlation_id": correlation_id,
                "method": request.method,
                "path": request.url.path,
            }
        )

        response = await call_next(request)

        logger.info(
            "Request completed",
            extra={
                "correlation_id": correlation_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "response_time_ms": int((time.perf_counter() - start_time) * 1000)
            }
        )
        return response


def _error_body(request: Request, exc: ApplicationException) -> dict:
    return {
        "detail": exc.message,
        "error_type": type(exc).__name__,
        "details": exc.details,
        "correlation_id": getattr(request.state, "correlation_id", "unknown"),
    }


async def application_exception_handler(request: Request, exc: ApplicationException) -> JSONResponse:
    """Map the core exception hierarchy to HTTP status codes."""
    if isinstance(exc, ValidationException):
        status_code = 422
    elif isinstance(exc, ResourceNotFoundException):
        status_code = 404
    elif isinstance(exc, RepositoryException):
        status_code = 503
    else:
        status_code = 400

    logger.warning(
        "Request rejected",
        extra={
            "correlation_id": getattr(request.state, "correlation_id", "unknown"),
            "path": request.url.path,
            "error_type": type(exc).__name__,
            "error_message": exc.message,
            "status_code": status_code,
        }
    )
    return JSONResponse(status_code=status_code, content=_error_body(request, exc))


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected errors; internals are hidden outside development."""
    correlation_id = getattr(request.state, "correlation_id", "unknown")

    logger.exception(
        "Unhandled exception",
        extra={
            "correlation_id": correlation_id,
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__,
        }
    )

    container = getattr(request.app.state, "container", None)
    is_dev = container is not None and container.settings.environment == "development"

    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "correlation_id": correlation_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "debug_info": str(exc) if is_dev else None
        }
    )


def install_middleware(app: FastAPI) -> None:
    """Register middleware and exception handlers on the app."""
    app.add_middleware(LoggingMiddleware)
    # Added last so it runs first and LoggingMiddleware sees the id.
    app.add_middleware(CorrelationIDMiddleware)
    app.add_exception_handler(ApplicationException, application_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
