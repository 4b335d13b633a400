"""Failures raised by the meeting services and translated to HTTP responses."""

from __future__ import annotations


class MeetingError(Exception):
    """Base class for meeting command failures."""

    status_code = 400

    def __init__(self, detail: str, *, status_code: int | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        if status_code is not None:
            self.status_code = status_code


class ValidationError(MeetingError):
    """Malformed or missing input; the caller can correct it and retry."""

    status_code = 400


class AuthorizationError(MeetingError):
    """The caller lacks the club role the command needs."""

    status_code = 403


class NotFoundError(MeetingError):
    status_code = 404


class InvalidStateError(MeetingError):
    """The command is not legal for the meeting's current status."""

    status_code = 409


class CapacityError(MeetingError):
    """The meeting already holds its maximum number of participants."""

    status_code = 409
