# shared/middleware.py
"""
Centralized middleware for the recipe-ai services.
Provides consistent request validation, error rendering, and security headers.

Every error leaves a service as `{"error": <message>, "details": <optional>}`.
"""

import logging
import time
from typing import Any, Callable, Optional

from fastapi import Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from shared.exceptions import AppError, map_unexpected_error

logger = logging.getLogger(__name__)


def error_response(status_code: int, message: str, details: Any = None) -> JSONResponse:
    content: dict[str, Any] = {"error": message}
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def app_error_response(exc: AppError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


class RequestValidationMiddleware(BaseHTTPMiddleware):
    """
    Request size and content-type checks, request logging, and a last-resort
    mapping of unexpected exceptions onto the error taxonomy.
    """

    def __init__(
        self,
        app: ASGIApp,
        max_request_size: int = 1024 * 1024,
        allowed_content_types: Optional[list] = None,
        log_requests: bool = True,
    ):
        super().__init__(app)
        self.max_request_size = max_request_size
        self.allowed_content_types = allowed_content_types or ["application/json"]
        self.log_requests = log_requests

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()

        if self._should_skip_validation(request.url.path):
            return await call_next(request)

        content_length = request.headers.get("content-length")
        if content_length:
            try:
                received_size = int(content_length)
            except ValueError:
                return error_response(400, "Invalid Content-Length")
            if received_size > self.max_request_size:
                return error_response(
                    413,
                    f"Request too large. Maximum size: {self.max_request_size} bytes",
                    {"max_size": self.max_request_size, "received_size": received_size},
                )

        if request.method in ["POST", "PUT", "PATCH"]:
            content_type = request.headers.get("content-type", "").split(";")[0]
            if content_type and content_type not in self.allowed_content_types:
                return error_response(
                    415,
                    f"Unsupported content type: {content_type}",
                    {"allowed_types": self.allowed_content_types},
                )

        if self.log_requests:
            client = request.client.host if request.client else "unknown"
            logger.info(f"{request.method} {request.url.path} - Client: {client}")

        try:
            response = await call_next(request)
        except Exception as e:
            mapped = map_unexpected_error(e)
            logger.error(
                f"Unhandled {type(e).__name__} on {request.method} {request.url.path}: {e}",
                exc_info=True,
            )
            return app_error_response(mapped)

        if self.log_requests:
            process_time = time.time() - start_time
            logger.info(
                f"{request.method} {request.url.path} - {response.status_code} - {process_time:.3f}s"
            )

        return response

    def _should_skip_validation(self, path: str) -> bool:
        skip_paths = ["/health", "/docs", "/redoc", "/openapi.json", "/favicon.ico"]
        return any(path.startswith(skip_path) for skip_path in skip_paths)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses"""

    def __init__(self, app: ASGIApp, service_name: str = "recipe-ai"):
        super().__init__(app)
        self.service_name = service_name

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["X-Service-Name"] = self.service_name

        if "json" in response.headers.get("content-type", ""):
            response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"

        return response


def _format_validation_errors(errors: list[dict]) -> list[dict[str, str]]:
    """Flatten pydantic errors to {field, message}; the raw ctx is not JSON-safe"""
    formatted = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        formatted.append({"field": ".".join(loc), "message": error.get("msg", "Invalid value")})
    return formatted


def create_standard_error_handler():
    """Create standardized error handlers for FastAPI apps"""

    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error(f"❌ {request.method} {request.url.path}: {exc.message}")
        return app_error_response(exc)

    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return error_response(400, "Validation failed", _format_validation_errors(exc.errors()))

    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return error_response(exc.status_code, str(exc.detail))

    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return app_error_response(map_unexpected_error(exc))

    return {
        "app_error_handler": app_error_handler,
        "validation_exception_handler": validation_exception_handler,
        "http_exception_handler": http_exception_handler,
        "general_exception_handler": general_exception_handler,
    }


def add_middleware_to_app(
    app,
    service_name: str,
    max_request_size: int = 1024 * 1024,
    log_requests: bool = True,
):
    """
    Add all standard middleware and error handlers to a FastAPI app

    Args:
        app: FastAPI application instance
        service_name: Name of the service (for headers and logging)
        max_request_size: Maximum request size in bytes
        log_requests: Whether to log requests
    """
    # Last added is executed first
    app.add_middleware(SecurityHeadersMiddleware, service_name=service_name)
    app.add_middleware(
        RequestValidationMiddleware, max_request_size=max_request_size, log_requests=log_requests
    )

    handlers = create_standard_error_handler()
    app.add_exception_handler(AppError, handlers["app_error_handler"])
    app.add_exception_handler(RequestValidationError, handlers["validation_exception_handler"])
    app.add_exception_handler(StarletteHTTPException, handlers["http_exception_handler"])
    app.add_exception_handler(Exception, handlers["general_exception_handler"])
