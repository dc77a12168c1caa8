"""Error taxonomy and the JSON error envelope shared by every route."""

from typing import Any

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse


class AppError(Exception):
    """Base application error. Subclasses set code, status_code and the default message."""

    code = "ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Application error"

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)


class UnauthorizedError(AppError):
    code = "UNAUTHORIZED"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"


class ForbiddenError(AppError):
    code = "FORBIDDEN"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Forbidden"


class NotFoundError(AppError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class BadRequestError(AppError):
    code = "BAD_REQUEST"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Bad request"


class CredentialsError(AppError):
    """Gateway misconfigured or credentials rejected."""
    code = "CREDENTIALS_ERROR"
    default_message = "Payments not configured"


class GatewayError(AppError):
    """Upstream HTTP/network failure; provider_error holds the raw provider text."""
    code = "GATEWAY_ERROR"
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Payment provider error"

    def __init__(
        self,
        message: str | None = None,
        provider_error: str | None = None,
        upstream_status: int | None = None,
    ):
        self.provider_error = provider_error
        self.upstream_status = upstream_status
        super().__init__(message, details={"upstream_status": upstream_status} if upstream_status else None)


class VerificationError(AppError):
    """Callback identifiers disagree with what the gateway reports."""
    code = "VERIFICATION_FAILED"
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Payment verification failed"


class InsufficientCreditsError(AppError):
    code = "INSUFFICIENT_CREDITS"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Insufficient boost credits"

    def __init__(self, message: str | None = None):
        super().__init__(message, details={"upgrade_url": "/pricing"})


class AlreadyBoostedError(AppError):
    code = "ALREADY_BOOSTED"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "This post is already boosted"


def _envelope(request: Request, status_code: int, message: str, code: str, details: dict[str, Any]) -> ORJSONResponse:
    body: dict[str, Any] = {"error": {"message": message, "code": code, "details": details}}
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        body["request_id"] = request_id
    return ORJSONResponse(status_code=status_code, content=body)


def error_response(request: Request, exc: AppError) -> ORJSONResponse:
    return _envelope(request, exc.status_code, exc.message, exc.code, exc.details)


async def app_exception_handler(request: Request, exc: AppError) -> ORJSONResponse:
    if isinstance(exc, GatewayError):
        from nguvuhire.core.logging import get_logger
        get_logger(__name__).warning(
            "gateway_error",
            message=exc.message,
            upstream_status=exc.upstream_status,
            provider_error=exc.provider_error,
        )
    return error_response(request, exc)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> ORJSONResponse:
    return _envelope(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Validation error",
        "VALIDATION_ERROR",
        {"errors": exc.errors()},
    )


async def generic_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    from nguvuhire.core.logging import get_logger
    get_logger(__name__).exception("unhandled_exception", exc_info=exc)
    return _envelope(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", "INTERNAL_ERROR", {})
