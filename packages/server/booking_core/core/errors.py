"""
Booking error hierarchy and the JSON error envelope.

Every business error is an ``HTTPException`` so it propagates unchanged from
the services through FastAPI; the handler renders the same
``{"error": {...}}`` envelope the CSRF middleware uses.
"""

from __future__ import annotations

from typing import Any, Optional

import structlog
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

log = structlog.get_logger()


class BookingError(HTTPException):
    status_code: int = 400
    code: str = "BOOKING_ERROR"
    default_message: str = "The request could not be completed."

    def __init__(self, message: Optional[str] = None, **details: Any):
        self.message = message or self.default_message
        self.details = details or None
        super().__init__(status_code=self.status_code, detail=self.message)

    def to_dict(self) -> dict:
        body: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "status": self.status_code,
        }
        if self.details:
            body["details"] = self.details
        return {"error": body}


class NotFound(BookingError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Not found."


class Forbidden(BookingError):
    status_code = 403
    code = "FORBIDDEN"
    default_message = "You do not have permission to perform this action."


class InvalidRequest(BookingError):
    status_code = 422
    code = "INVALID_REQUEST"
    default_message = "Invalid request."


class CapacityExceeded(BookingError):
    status_code = 409
    code = "CAPACITY_EXCEEDED"
    default_message = "Not enough capacity for this time period."


class IdempotencyConflict(BookingError):
    status_code = 422
    code = "IDEMPOTENCY_CONFLICT"
    default_message = "Idempotency key was already used with a different request payload."


class AlreadyInProgress(BookingError):
    status_code = 409
    code = "REQUEST_IN_PROGRESS"
    default_message = "A request with this idempotency key is already in progress."


class StoreUnavailable(BookingError):
    status_code = 503
    code = "STORE_UNAVAILABLE"
    default_message = "The booking store is temporarily unavailable. Please retry."


async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    log.info(
        "request.rejected",
        code=exc.code,
        status=exc.status_code,
        path=request.url.path,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
