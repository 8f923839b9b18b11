# shared/exceptions.py
"""
Error taxonomy for the recipe-ai services.

Every error a handler can raise on purpose is an `AppError` subclass carrying
its HTTP status. The error handlers in `shared.middleware` render them as
`{"error": ..., "details": ...}`.
"""

from typing import Any, Optional


class AppError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Any = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class Unauthorized(AppError):
    status_code = 401
    default_message = "Unauthorized"


class ValidationFailed(AppError):
    status_code = 400
    default_message = "Validation failed"


class Forbidden(AppError):
    status_code = 403
    default_message = "Forbidden"


class NotFound(AppError):
    status_code = 404
    default_message = "Not found"


class RateLimitExceeded(AppError):
    status_code = 429
    default_message = "Rate limit exceeded: too many generations in the last hour"


class GenerationFailed(AppError):
    status_code = 500
    default_message = "Recipe generation failed"


class InternalError(AppError):
    status_code = 500
    default_message = "Internal server error"


def map_unexpected_error(exc: Exception) -> AppError:
    """
    Map an error that escaped the service layer to the nearest taxonomy entry.

    Matching is done on the message text: token problems surface as "JWT"
    errors and row-level-security denials mention "permission" or "RLS".
    """
    if isinstance(exc, AppError):
        return exc

    message = str(exc)
    if "JWT" in message:
        return Unauthorized(details=message)
    if "permission" in message.lower() or "RLS" in message:
        return Forbidden(details=message)
    return InternalError()
