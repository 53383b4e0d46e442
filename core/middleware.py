"""
Application Middleware for the Feed Gateway.

This module defines the FastAPI middleware that handles cross-cutting concerns
for every gateway request.

Key Middleware Components:
- `CorrelationMiddleware`: Assigns a correlation ID to every incoming request
  (or reuses the caller's `X-Correlation-ID`). The ID is placed in the logging
  context, echoed in the response headers and forwarded to the backend by
  `ApiClient`.
- `ErrorHandlingMiddleware`: A centralized error handler that turns
  `FeedClientError` subclasses into JSON error responses with the matching
  status code, and anything unexpected into a generic 500.
- `PerformanceMiddleware`: Logs the start and end of each request, adds an
  `X-Process-Time` header and flags slow requests.

Architectural Design:
- Layered Processing Pipeline: `CorrelationMiddleware` is added last so that it
  runs first, making the correlation ID available to the other middleware and
  to the services.
- Starlette's `BaseHTTPMiddleware`: All three are built on it.
"""

import time
import uuid
from typing import Callable

from fastapi import HTTPException, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from .exceptions import FeedClientError, to_http_exception
from .logging_config import get_logger, set_correlation_id

logger = get_logger("core.middleware")

SLOW_REQUEST_SECONDS = 1.0


def create_error_response(
    request: Request, status_code: int, error_type: str, code: str, message, details=None
) -> JSONResponse:
    error = {
        "type": error_type,
        "code": code,
        "message": message,
        "correlation_id": getattr(request.state, "correlation_id", None),
    }
    if details:
        error["details"] = details
    return JSONResponse(status_code=status_code, content={"error": error})


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Middleware to add correlation IDs to requests"""

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = (
            request.headers.get("X-Correlation-ID")
            or request.headers.get("X-Request-ID")
            or str(uuid.uuid4())
        )

        set_correlation_id(correlation_id)
        request.state.correlation_id = correlation_id

        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id
        return response


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Middleware for centralized error handling"""

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)

        except FeedClientError as e:
            log = logger.warning if e.status_code < 500 else logger.error
            log(
                f"Feed client error: {e.message}",
                extra={
                    "error_type": type(e).__name__,
                    "error_code": e.error_code,
                    "path": request.url.path,
                    "method": request.method,
                },
            )
            http_exc = to_http_exception(e)
            return create_error_response(
                request,
                http_exc.status_code,
                type(e).__name__,
                e.error_code,
                e.message,
                e.details,
            )

        except HTTPException as e:
            logger.warning(
                f"HTTP exception: {e.status_code} - {e.detail}",
                extra={
                    "status_code": e.status_code,
                    "path": request.url.path,
                    "method": request.method,
                },
            )
            return create_error_response(
                request, e.status_code, "HTTPException", f"HTTP_{e.status_code}", e.detail
            )

        except Exception as e:
            logger.error(
                f"Unexpected error: {str(e)}",
                extra={
                    "error_type": type(e).__name__,
                    "path": request.url.path,
                    "method": request.method,
                },
                exc_info=True,
            )
            return create_error_response(
                request,
                500,
                "InternalServerError",
                "INTERNAL_ERROR",
                "An unexpected error occurred",
            )


class PerformanceMiddleware(BaseHTTPMiddleware):
    """Middleware for request timing and logging"""

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()

        logger.info(
            f"Request started: {request.method} {request.url.path}",
            extra={
                "method": request.method,
                "path": request.url.path,
                "query_params": dict(request.query_params),
                "client_ip": request.client.host if request.client else None,
            },
        )

        response = await call_next(request)

        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(round(process_time * 1000, 2))

        logger.info(
            f"Request completed: {request.method} {request.url.path} - {response.status_code}",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "process_time_ms": round(process_time * 1000, 2),
            },
        )

        if process_time > SLOW_REQUEST_SECONDS:
            logger.warning(
                f"Slow request detected: {request.method} {request.url.path}",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "process_time_ms": round(process_time * 1000, 2),
                },
            )

        return response
