"""Service layer: meeting lifecycle, transcript and their shared locking."""

from .errors import (  # noqa: F401
    AuthorizationError,
    CapacityError,
    InvalidStateError,
    MeetingError,
    NotFoundError,
    ValidationError,
)
from .meeting_chat import MessagingChannel  # noqa: F401
from .meeting_lifecycle import MeetingLifecycleController  # noqa: F401
from .meeting_locks import MeetingLockRegistry, meeting_locks  # noqa: F401

__all__ = [
    "AuthorizationError",
    "CapacityError",
    "InvalidStateError",
    "MeetingError",
    "NotFoundError",
    "ValidationError",
    "MessagingChannel",
    "MeetingLifecycleController",
    "MeetingLockRegistry",
    "meeting_locks",
]
