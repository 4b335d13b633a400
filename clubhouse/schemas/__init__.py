from .club import ClubCreate, ClubJoinRequest, ClubResponse
from .meeting import (
    MeetingCreate,
    MeetingResponse,
    MessageCreate,
    MessageResponse,
    meeting_payload,
    message_payload,
)
from .user import LoginRequest, LoginResponse, User, UserCreate, UserSummary

__all__ = [
    "ClubCreate",
    "ClubJoinRequest",
    "ClubResponse",
    "MeetingCreate",
    "MeetingResponse",
    "MessageCreate",
    "MessageResponse",
    "meeting_payload",
    "message_payload",
    "LoginRequest",
    "LoginResponse",
    "User",
    "UserCreate",
    "UserSummary",
]
