"""
Domain exceptions raised by the booking engine.

Callers (API layer, tasks) distinguish them by class or by ``code`` and can
turn them into HTTP errors with ``to_http_exception``.
"""
from typing import Any

from fastapi import HTTPException, status


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=self.to_dict())


class NotFoundError(DomainException):
    """Referenced trainer, college or booking does not exist."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(DomainException):
    """Availability or state rule violated.

    ``conflicts`` holds the overlapping bookings, when there are any.
    """

    status_code = status.HTTP_409_CONFLICT

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        conflicts: list[Any] | None = None,
    ) -> None:
        self.conflicts = list(conflicts or [])
        details = dict(details or {})
        if self.conflicts:
            details["conflicts"] = [_describe_conflict(c) for c in self.conflicts]
        super().__init__(message, code=code, details=details)


class InvalidInputError(DomainException):
    """Malformed input such as an empty or past time window."""

    status_code = status.HTTP_400_BAD_REQUEST


def _describe_conflict(booking: Any) -> dict[str, Any]:
    if isinstance(booking, dict):
        return booking
    return {
        "id": str(booking.id),
        "title": booking.title,
        "start_time": booking.start_time.isoformat(),
        "end_time": booking.end_time.isoformat(),
    }
