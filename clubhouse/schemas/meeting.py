from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from ..models.meeting import MeetingStatus, MessageType
from .base import CamelModel
from .user import UserSummary


class MeetingCreate(CamelModel):
    """
    Body of a create-meeting request.

    Title and participant bounds are checked by the lifecycle controller so a
    bad value is reported as a 400 with a readable message rather than a
    schema dump.
    """

    title: Optional[str] = None
    description: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    max_participants: Optional[int] = None
    is_voice_only: bool = False
    club_id: Optional[str] = None


class MessageCreate(CamelModel):
    content: Optional[str] = None


class MeetingResponse(CamelModel):
    id: str
    club_id: str
    creator_id: str
    creator: Optional[UserSummary] = None
    title: str
    description: Optional[str] = None
    status: MeetingStatus
    scheduled_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    participants: List[str] = Field(default_factory=list)
    max_participants: Optional[int] = None
    is_voice_only: bool = False
    join_code: str

    @classmethod
    def from_meeting(cls, meeting) -> "MeetingResponse":
        return cls(
            id=meeting.meeting_id,
            club_id=meeting.club_id,
            creator_id=meeting.creator_id,
            creator=UserSummary.from_user(meeting.creator),
            title=meeting.title,
            description=meeting.description,
            status=MeetingStatus(meeting.status),
            scheduled_at=meeting.scheduled_at,
            started_at=meeting.started_at,
            ended_at=meeting.ended_at,
            created_at=meeting.created_at,
            participants=list(meeting.participant_ids),
            max_participants=meeting.max_participants,
            is_voice_only=bool(meeting.is_voice_only),
            join_code=meeting.join_code,
        )


class MessageResponse(CamelModel):
    id: str
    meeting_id: str
    sender_id: Optional[str] = None
    sender: Optional[UserSummary] = None
    content: str
    message_type: MessageType
    sequence: int
    created_at: datetime

    @classmethod
    def from_message(cls, message) -> "MessageResponse":
        return cls(
            id=message.message_id,
            meeting_id=message.meeting_id,
            sender_id=message.sender_id,
            sender=UserSummary.from_user(message.sender),
            content=message.content,
            message_type=MessageType(message.message_type),
            sequence=message.sequence,
            created_at=message.created_at,
        )


def meeting_payload(meeting) -> Dict[str, Any]:
    """JSON-ready camelCase snapshot of a meeting, as returned by GET /meetings/{id}."""
    return MeetingResponse.from_meeting(meeting).model_dump(mode="json", by_alias=True)


def message_payload(message) -> Dict[str, Any]:
    return MessageResponse.from_message(message).model_dump(mode="json", by_alias=True)
