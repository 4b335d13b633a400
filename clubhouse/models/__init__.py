# Import models to make them accessible via clubhouse.models
# and ensure they are registered with SQLAlchemy's Base metadata
from .user import User
from .club import Club, ClubMembership, ClubRole
from .meeting import (
    Meeting,
    MeetingMessage,
    MeetingParticipant,
    MeetingStatus,
    MessageType,
)

__all__ = [
    "User",
    "Club",
    "ClubMembership",
    "ClubRole",
    "Meeting",
    "MeetingMessage",
    "MeetingParticipant",
    "MeetingStatus",
    "MessageType",
]
