"""
Shared API Middleware
=====================

Correlation IDs, request logging and exception-to-response mapping for
the FastAPI application.
"""

import time
import uuid
from datetime import datetime, timezone
from typing import Callable

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from resolvehub.core import (
    ApplicationException, ConcurrentWriteConflict, DomainException,
    PersistenceUnavailableException, ResourceConflictException, ResourceNotFoundException,
    ValidationException
)
from resolvehub.shared.infrastructure.logging import get_context_logger, get_logger

logger = get_logger(__name__)


def _correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", "unknown")


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Propagates or creates an X-Correlation-ID for every request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get("X-Correlation-ID", str(uuid.uuid4()))
        request.state.correlation_id = correlation_id

        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request with its status and response time."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_logger = get_context_logger(__name__, _correlation_id(request))
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            request_logger.error(
                "Request failed",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "error": str(e),
                    "response_time_ms": int((time.perf_counter() - start_time) * 1000)
                }
            )
            raise

        response_time = time.perf_counter() - start_time
        response.headers["X-Response-Time"] = f"{response_time:.3f}s"
        request_logger.info(
            "Request completed",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "response_time_ms": int(response_time * 1000)
            }
        )
        return response


def _error_body(request: Request, exc: ApplicationException) -> dict:
    return {
        "detail": exc.message,
        "error_type": type(exc).__name__,
        "details": exc.details,
        "correlation_id": _correlation_id(request),
    }


async def application_exception_handler(request: Request, exc: ApplicationException) -> JSONResponse:
    """
    Map application exceptions to HTTP responses.

    Not found -> 404, validation -> 422, domain rule violations, write
    conflicts and duplicate records -> 409, persistence outage -> 503,
    anything else -> 500.
    """
    if isinstance(exc, ResourceNotFoundException):
        status_code = 404
    elif isinstance(exc, ValidationException):
        status_code = 422
    elif isinstance(exc, PersistenceUnavailableException):
        status_code = 503
    elif isinstance(exc, (DomainException, ConcurrentWriteConflict, ResourceConflictException)):
        status_code = 409
    else:
        status_code = 500

    logger.warning(
        "Request rejected",
        extra={
            "correlation_id": _correlation_id(request),
            "path": request.url.path,
            "status_code": status_code,
            "error_type": type(exc).__name__,
            "error_message": exc.message
        }
    )
    return JSONResponse(status_code=status_code, content=_error_body(request, exc))


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Consistent 500 body for unhandled exceptions."""
    correlation_id = _correlation_id(request)

    logger.error(
        "Unhandled exception",
        extra={
            "correlation_id": correlation_id,
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__,
            "error_message": str(exc)
        }
    )

    is_dev = getattr(getattr(request.app.state, "settings", None), "environment", None) == "development"

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
    """Register the shared middleware and exception handlers on an app."""
    # Starlette runs the last-added middleware first
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(CorrelationIDMiddleware)
    app.add_exception_handler(ApplicationException, application_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
