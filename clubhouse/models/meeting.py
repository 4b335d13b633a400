from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from clubhouse.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MeetingStatus(str, Enum):
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    ENDED = "ended"
    CANCELLED = "cancelled"


class MessageType(str, Enum):
    TEXT = "text"
    SYSTEM = "system"


class Meeting(Base):
    __tablename__ = "meetings"

    meeting_id = Column(String(20), primary_key=True, index=True)
    club_id = Column(
        String(20), ForeignKey("clubs.club_id"), nullable=False, index=True
    )
    creator_id = Column(String(20), ForeignKey("users.user_id"), nullable=False)
    title = Column(String(200), nullable=False, index=True)
    description = Column(String, nullable=True)
    status = Column(String(16), default=MeetingStatus.SCHEDULED.value, nullable=False)
    scheduled_at = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    ended_at = Column(DateTime(timezone=True), nullable=True)
    max_participants = Column(Integer, nullable=True)
    is_voice_only = Column(Boolean, default=False, nullable=False)
    join_code = Column(String(16), unique=True, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    club = relationship("Club", back_populates="meetings")
    creator = relationship("User", foreign_keys=[creator_id])

    participant_links = relationship(
        "MeetingParticipant",
        back_populates="meeting",
        cascade="all, delete-orphan",
        order_by="MeetingParticipant.seat",
    )
    messages = relationship(
        "MeetingMessage",
        back_populates="meeting",
        cascade="all, delete-orphan",
        order_by="MeetingMessage.sequence",
        passive_deletes=True,
    )

    @property
    def participant_ids(self):
        return [link.user_id for link in (self.participant_links or [])]

    @property
    def is_full(self) -> bool:
        if self.max_participants is None:
            return False
        return len(self.participant_links or []) >= self.max_participants

    def __repr__(self) -> str:
        return (
            f"Meeting(meeting_id={self.meeting_id!r}, status={self.status!r}, "
            f"participants={len(self.participant_links or [])})"
        )


class MeetingParticipant(Base):
    __tablename__ = "meeting_participants"

    meeting_id = Column(
        String(20),
        ForeignKey("meetings.meeting_id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id = Column(
        String(20),
        ForeignKey("users.user_id", ondelete="CASCADE"),
        primary_key=True,
    )
    seat = Column(Integer, nullable=False)
    joined_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    meeting = relationship("Meeting", back_populates="participant_links")
    user = relationship("User")


class MeetingMessage(Base):
    __tablename__ = "meeting_messages"
    __table_args__ = (
        UniqueConstraint("meeting_id", "sequence", name="uq_meeting_message_sequence"),
    )

    message_id = Column(String(40), primary_key=True, index=True)
    meeting_id = Column(
        String(20),
        ForeignKey("meetings.meeting_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Sender of a system message is the member whose action produced it.
    sender_id = Column(String(20), ForeignKey("users.user_id"), nullable=True)
    content = Column(Text, nullable=False)
    message_type = Column(String(16), default=MessageType.TEXT.value, nullable=False)
    sequence = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    meeting = relationship("Meeting", back_populates="messages")
    sender = relationship("User")

    def __repr__(self) -> str:
        return (
            f"MeetingMessage(message_id={self.message_id!r}, "
            f"type={self.message_type!r}, sequence={self.sequence})"
        )
