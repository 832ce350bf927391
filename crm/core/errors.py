"""Domain errors mapped onto HTTP status codes by the app's exception handlers."""

from typing import Any


class AppError(Exception):
    """Base for errors whose message is safe to show to the client."""

    status_code = 500
    default_message = "Server error"

    def __init__(self, message: str | None = None, errors: list[Any] | None = None) -> None:
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


class InvalidRequest(AppError):
    status_code = 400
    default_message = "Invalid request"


class Unauthorized(AppError):
    status_code = 401
    default_message = "Not authorized"


class AccessDenied(AppError):
    status_code = 403
    default_message = "Access denied"


class NotFound(AppError):
    status_code = 404
    default_message = "Not found"


class Conflict(AppError):
    status_code = 409
    default_message = "Conflict"


class ServerError(AppError):
    status_code = 500
