"""Typed, user-presentable failures raised by the ledgers.

Every kind maps to one HTTP status and one stable ``code``. Messages are safe
to show to end users; they never carry stack traces or internal identifiers.
"""
from typing import Optional

from fastapi import status


class DomainError(Exception):
    """Base class for expected, recoverable failures."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "error"
    default_message: str = "The request could not be completed."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


class Unauthorized(DomainError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthorized"
    default_message = "You are not authorized to perform this action."


class Forbidden(Unauthorized):
    """Authenticated actor without the required role or ownership."""

    status_code = status.HTTP_403_FORBIDDEN


class NotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    default_message = "The requested item was not found."


class InvalidState(DomainError):
    status_code = status.HTTP_409_CONFLICT
    code = "invalid_state"
    default_message = "This action is not allowed in the current state."


class ValidationError(DomainError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "validation_error"
    default_message = "Some required information is missing or invalid."


class EventFull(DomainError):
    status_code = status.HTTP_409_CONFLICT
    code = "event_full"
    default_message = "Event is full."


class WindowClosed(DomainError):
    status_code = status.HTTP_409_CONFLICT
    code = "window_closed"

    TOO_EARLY = "too_early"
    ENDED = "ended"

    def __init__(self, reason: str, message: Optional[str] = None):
        self.reason = reason
        super().__init__(message)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["reason"] = self.reason
        return data


class DuplicateRequest(DomainError):
    status_code = status.HTTP_409_CONFLICT
    code = "duplicate_request"
    default_message = "You have already requested this event."
