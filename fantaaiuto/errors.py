"""
Error taxonomy. Every failure surfaced to clients is an AppError subclass,
rendered by the API as {"error": message, "code": code} with status_code.
"""
from __future__ import annotations


class AppError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, code: str | None = None) -> None:
        self.message = message or self.default_message
        if code is not None:
            self.code = code
        super().__init__(self.message)

    def to_dict(self) -> dict[str, str]:
        return {"error": self.message, "code": self.code}


# ---------- Authentication ----------


class MissingToken(AppError):
    """No bearer token: the client never logged in."""
    status_code = 401
    code = "TOKEN_MISSING"
    default_message = "Access token required"


class InvalidToken(AppError):
    """Bad signature, malformed or expired token: the session expired."""
    status_code = 403
    code = "TOKEN_INVALID"
    default_message = "Invalid or expired token"


class InactiveUser(AppError):
    status_code = 403
    code = "USER_INACTIVE"
    default_message = "User not found or inactive"


class InvalidCredentials(AppError):
    status_code = 401
    code = "INVALID_CREDENTIALS"
    default_message = "Invalid credentials"


# ---------- Authorization ----------


class Forbidden(AppError):
    """Caller is not a member of the requested league."""
    status_code = 403
    code = "NOT_LEAGUE_MEMBER"
    default_message = "Access denied. You are not a member of this league."


class InsufficientPermissions(AppError):
    """Caller is a member but the action needs the league master."""
    status_code = 403
    code = "INSUFFICIENT_PERMISSIONS"
    default_message = "Only the league master can perform this action"


# ---------- Resources ----------


class NotFound(AppError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Resource not found"


class AlreadyMember(AppError):
    status_code = 409
    code = "ALREADY_MEMBER"
    default_message = "Already a member of this league"


class LeagueFull(AppError):
    status_code = 409
    code = "LEAGUE_FULL"
    default_message = "League is full"


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Validation failed"


class DuplicateResource(AppError):
    status_code = 409
    code = "DUPLICATE_RESOURCE"
    default_message = "Resource already exists"


class InternalError(AppError):
    pass


class RateLimited(AppError):
    status_code = 429
    code = "RATE_LIMITED"
    default_message = "Too many requests, please try again later"


class ServiceUnavailable(AppError):
    """Every pooled database connection stayed busy past the wait timeout."""
    status_code = 503
    code = "SERVICE_UNAVAILABLE"
    default_message = "Service temporarily unavailable, please retry"
