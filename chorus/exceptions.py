"""
Custom exceptions and error handlers
"""

from typing import Any

from fastapi import HTTPException, status
from fastapi.responses import JSONResponse
from loguru import logger

from chorus.services.errors import ServiceError


class ValidationError(HTTPException):
    """Validation error exception"""

    def __init__(self, detail: str = "Validation error"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class NotFoundError(HTTPException):
    """Not found error exception"""

    def __init__(self, detail: str = "Resource not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class ConflictError(HTTPException):
    """Conflict error exception"""

    def __init__(self, detail: str = "Resource conflict"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class UnauthorizedError(HTTPException):
    """Unauthorized error exception"""

    def __init__(self, detail: str = "Unauthorized"):
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


_HTTP_ERROR_CODES = {
    status.HTTP_400_BAD_REQUEST: "VALIDATION_ERROR",
    status.HTTP_401_UNAUTHORIZED: "AUTH_ERROR",
    status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    status.HTTP_409_CONFLICT: "CONFLICT",
    status.HTTP_429_TOO_MANY_REQUESTS: "RATE_LIMITED",
    status.HTTP_503_SERVICE_UNAVAILABLE: "SERVICE_UNAVAILABLE",
}


def error_response(
    error: str,
    status_code: int = 500,
    code: str | None = None,
    details: Any = None,
) -> JSONResponse:
    """Create a standardized error response."""
    body: dict[str, Any] = {"error": error}
    if code:
        body["code"] = code
    if details is not None:
        body["details"] = details
    return JSONResponse(body, status_code=status_code)


def success_response(data: Any, status_code: int = 200) -> JSONResponse:
    """Create a standardized success response."""
    return JSONResponse({"success": True, "data": data}, status_code=status_code)


def handle_api_error(error: BaseException) -> JSONResponse:
    """Translate an exception raised below the route layer into an HTTP response."""
    if isinstance(error, HTTPException):
        return error_response(
            str(error.detail),
            error.status_code,
            _HTTP_ERROR_CODES.get(error.status_code, "HTTP_ERROR"),
        )

    logger.error(f"API error: {type(error).__name__}: {error}")

    if isinstance(error, ServiceError) and error.status_code:
        code = _HTTP_ERROR_CODES.get(error.status_code, "SERVICE_ERROR")
        return error_response(str(error), error.status_code, code)

    if isinstance(error, Exception):
        message = str(error)
        lowered = message.lower()
        if "auth" in lowered:
            return error_response(message, 401, "AUTH_ERROR")
        if "not found" in lowered:
            return error_response(message, 404, "NOT_FOUND")
        if "validation" in lowered or "invalid" in lowered:
            return error_response(message, 400, "VALIDATION_ERROR")
        return error_response(message, 500, "INTERNAL_ERROR")

    return error_response(
        "An unexpected error occurred", 500, "UNKNOWN_ERROR", repr(error)
    )
