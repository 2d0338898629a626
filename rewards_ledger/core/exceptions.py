from typing import Any

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse


class AppError(Exception):
    """Base application error with consistent schema."""

    def __init__(
        self,
        message: str,
        code: str = "ERROR",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class UnauthorizedError(AppError):
    def __init__(self, message: str = "Unauthenticated"):
        super().__init__(message, code="UNAUTHENTICATED", status_code=status.HTTP_401_UNAUTHORIZED)


class ForbiddenError(AppError):
    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, code="FORBIDDEN", status_code=status.HTTP_403_FORBIDDEN)


class NotFoundError(AppError):
    def __init__(self, message: str = "Not found"):
        super().__init__(message, code="NOT_FOUND", status_code=status.HTTP_404_NOT_FOUND)


class AlreadyDoneError(AppError):
    def __init__(self, message: str = "Already done", details: dict[str, Any] | None = None):
        super().__init__(message, code="ALREADY_DONE", status_code=status.HTTP_409_CONFLICT, details=details)


class BadRequestError(AppError):
    def __init__(self, message: str = "Bad request", details: dict[str, Any] | None = None):
        super().__init__(message, code="BAD_REQUEST", status_code=status.HTTP_400_BAD_REQUEST, details=details)


# Partner postback taxonomy. Messages are what the partner sees.


class MissingParameterError(AppError):
    def __init__(self, message: str = "Missing parameters"):
        super().__init__(message, code="MISSING_PARAMETER", status_code=status.HTTP_400_BAD_REQUEST)


class InvalidAmountError(AppError):
    def __init__(self, message: str = "Invalid payout"):
        super().__init__(message, code="INVALID_AMOUNT", status_code=status.HTTP_400_BAD_REQUEST)


class InvalidAuthError(AppError):
    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, code="INVALID_AUTH", status_code=status.HTTP_403_FORBIDDEN)


class UserNotFoundError(AppError):
    def __init__(self, message: str = "User not found"):
        super().__init__(message, code="USER_NOT_FOUND", status_code=status.HTTP_404_NOT_FOUND)


class MethodNotAllowedError(AppError):
    def __init__(self, message: str = "Method not allowed"):
        super().__init__(message, code="METHOD_NOT_ALLOWED", status_code=status.HTTP_405_METHOD_NOT_ALLOWED)


class TransientError(AppError):
    """Storage contention or unavailability; the caller may retry."""

    def __init__(self, message: str = "Temporary failure"):
        super().__init__(message, code="TRANSIENT", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


class StatusIgnored(AppError):
    """Partner status that is acknowledged without touching the ledger (pending, hold...)."""

    def __init__(self, message: str = "OK (ignored status)"):
        super().__init__(message, code="STATUS_IGNORED", status_code=status.HTTP_200_OK)


def error_response(request: Request, exc: AppError) -> ORJSONResponse:
    body = {
        "error": {
            "message": exc.message,
            "code": exc.code,
            "details": exc.details,
        }
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return ORJSONResponse(status_code=exc.status_code, content=body)


async def app_exception_handler(request: Request, exc: AppError) -> ORJSONResponse:
    return error_response(request, exc)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> ORJSONResponse:
    body = {
        "error": {
            "message": "Validation error",
            "code": "VALIDATION_ERROR",
            "details": {"errors": exc.errors()},
        }
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return ORJSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=body,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    from rewards_ledger.core.logging import get_logger
    get_logger(__name__).exception("unhandled_exception", exc_info=exc)
    body = {
        "error": {
            "message": "Internal server error",
            "code": "INTERNAL_ERROR",
            "details": {},
        }
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return ORJSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=body,
    )
