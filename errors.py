"""
Application errors.

Services raise these; the handlers registered in ``main.create_app`` turn
them into the JSON error envelope. Anything that is not an ``AppError``
becomes a 500.
"""

from typing import Any, Optional


class AppError(Exception):
    status_code = 500
    kind = "Server error"

    def __init__(self, message: str, status_code: Optional[int] = None, details: Any = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details


class ValidationFailed(AppError):
    status_code = 400
    kind = "Validation failed"


class Conflict(AppError):
    status_code = 400
    kind = "Conflict"


class AuthenticationFailed(AppError):
    status_code = 401
    kind = "Access denied"


class Forbidden(AppError):
    status_code = 403
    kind = "Access forbidden"


class NotFound(AppError):
    status_code = 404
    kind = "Not found"


class RateLimited(AppError):
    status_code = 429
    kind = "Too many requests"
