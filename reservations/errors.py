"""Domain error taxonomy for the reservation engine and its HTTP rendering."""
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse


class ReservationError(Exception):
    """Base class for every error the reservation engine reports to callers."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(message)

    def to_payload(self) -> Dict[str, Any]:
        return {"detail": self.message, "code": self.code, "details": self.details}


class ValidationError(ReservationError):
    """Malformed or rule-breaking input, rejected before anything is written."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(ReservationError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(ReservationError):
    """The requested interval overlaps at least one active booking."""

    status_code = status.HTTP_409_CONFLICT


class AlreadyCancelledError(ReservationError):
    status_code = status.HTTP_409_CONFLICT


class InvalidTransitionError(ReservationError):
    status_code = status.HTTP_409_CONFLICT


class ConcurrencyError(ReservationError):
    """The critical section could not be completed; the whole operation may be retried."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    retry_after_seconds = 1


def reservation_error_handler(_: Request, exc: ReservationError) -> JSONResponse:
    headers = None
    if isinstance(exc, ConcurrencyError):
        headers = {"Retry-After": str(exc.retry_after_seconds)}
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload(), headers=headers)


def add_error_handlers(app: FastAPI) -> None:
    """Render domain errors as JSON responses carrying their status code."""

    app.add_exception_handler(ReservationError, reservation_error_handler)
