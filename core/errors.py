"""Application error taxonomy and its HTTP rendering."""

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse


class AppError(Exception):
    """Business-rule failure with an HTTP status and structured extras."""

    status_code: int = 400

    def __init__(self, message: str, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, **self.extra}


class ValidationError(AppError):
    status_code = 400


class NotFoundError(AppError):
    status_code = 404


class AuthorizationError(AppError):
    """Relationship forbids the action (blocked pair)."""

    status_code = 400


class AuthenticationError(AppError):
    status_code = 401


class ForbiddenError(AppError):
    status_code = 403


class ConflictError(AppError):
    status_code = 400


class QuotaExceededError(AppError):
    status_code = 429

    def __init__(self, message: str, *, kind: str, limit: int, reset_in_hours: int) -> None:
        super().__init__(message, kind=kind, limit=limit, reset_in_hours=reset_in_hours)
        self.kind = kind
        self.limit = limit


class RateLimitedError(AppError):
    status_code = 429

    def __init__(self, message: str, *, retry_after_seconds: int) -> None:
        super().__init__(message, retry_after_seconds=retry_after_seconds)
        self.retry_after_seconds = retry_after_seconds


class CooldownActiveError(AppError):
    status_code = 400

    def __init__(self, message: str = "This user is currently in cooldown") -> None:
        super().__init__(message, can_bookmark=True)


class InsufficientCreditsError(AppError):
    status_code = 402

    def __init__(self, required: int, balance: int | None = None) -> None:
        extra: dict[str, Any] = {"required": required}
        if balance is not None:
            extra["credit_balance"] = balance
        super().__init__("Insufficient credits", **extra)
        self.required = required
        self.balance = balance


class ServiceUnavailableError(AppError):
    status_code = 503


class EnrichmentUnavailable(Exception):
    """Raised by persona enrichment when the provider is absent or failed.

    Never surfaced to API callers.
    """


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    headers = None
    if isinstance(exc, RateLimitedError):
        headers = {"Retry-After": str(exc.retry_after_seconds)}
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)
