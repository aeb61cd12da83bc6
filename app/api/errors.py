"""
API error envelope.

Every error response has the shape {"error": {"message": str, "code": str}}.
Routes raise ApiError; the handlers registered in app.main render it.
"""

import logging
from typing import Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.scheduling.reservations import ReservationError, ReservationResult

logger = logging.getLogger(__name__)

# Default HTTP status per reservation outcome
RESERVATION_STATUS_CODES: dict[ReservationError, int] = {
    ReservationError.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ReservationError.PAST_APPOINTMENT: status.HTTP_400_BAD_REQUEST,
    ReservationError.SLOT_CONFLICT: status.HTTP_409_CONFLICT,
    ReservationError.NOT_CANCELLABLE: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ReservationError.NOT_RESCHEDULABLE: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ReservationError.INVALID_TRANSITION: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


class ApiError(Exception):
    """An expected error with a stable code."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        headers: Optional[dict[str, str]] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.headers = headers

    @classmethod
    def not_found(cls, message: str) -> "ApiError":
        return cls(status.HTTP_404_NOT_FOUND, "NOT_FOUND", message)

    @classmethod
    def invalid_request(cls, message: str) -> "ApiError":
        return cls(status.HTTP_400_BAD_REQUEST, "INVALID_REQUEST", message)

    @classmethod
    def from_reservation(
        cls,
        result: ReservationResult,
        overrides: Optional[dict[ReservationError, int]] = None,
    ) -> "ApiError":
        """Translate a failed ReservationResult."""
        code = result.error_code or ReservationError.NOT_FOUND
        status_codes = {**RESERVATION_STATUS_CODES, **(overrides or {})}
        return cls(status_codes[code], code.value, result.message or code.value)


def error_body(code: str, message: str) -> dict:
    return {"error": {"message": message, "code": code}}


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    """Render ApiError."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.code, exc.message),
        headers=exc.headers,
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Render request validation errors as INVALID_REQUEST."""
    issues = [
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg', '')}"
        for error in exc.errors()
    ]
    logger.warning(f"Validation error on {request.url.path}: {len(issues)} issue(s)")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("INVALID_REQUEST", ", ".join(issues)),
    )
