from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from ..config.loader import get_meeting_limits
from ..data.club_manager import ClubManager
from ..data.meeting_manager import MeetingManager
from ..models.meeting import Meeting, MeetingMessage, MeetingStatus, MessageType
from ..models.user import User
from ..utils.identifiers import generate_message_id
from ..utils.websocket_manager import WebSocketManager, websocket_manager
from .errors import AuthorizationError, InvalidStateError, NotFoundError, ValidationError
from .meeting_events import message_events
from .meeting_locks import MeetingLockRegistry, meeting_locks

logger = logging.getLogger(__name__)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class MessagingChannel:
    """
    Per-meeting ordered transcript.

    Entries get a sequence number one past the previous entry and a
    timestamp no earlier than the previous entry's, both assigned while the
    meeting lock is held, so sequence order and creation order agree.
    """

    def __init__(
        self,
        db: Session,
        *,
        notifier: Optional[WebSocketManager] = None,
        locks: Optional[MeetingLockRegistry] = None,
    ):
        self.db = db
        self.notifier = notifier if notifier is not None else websocket_manager
        self.locks = locks if locks is not None else meeting_locks
        self.meetings = MeetingManager(db)
        self.clubs = ClubManager(db)

    def _require_member(self, meeting: Meeting, user: User) -> None:
        if not self.clubs.is_member(meeting.club_id, user.user_id):
            raise AuthorizationError("You must be a club member to use this meeting's chat")

    def append_system(
        self, meeting: Meeting, content: str, *, sender_id: Optional[str] = None
    ) -> MeetingMessage:
        """
        Stage a system entry in the current transaction.

        The caller holds the meeting lock and owns the commit.
        """
        return self._append(meeting, content, MessageType.SYSTEM, sender_id)

    def _append(
        self,
        meeting: Meeting,
        content: str,
        message_type: MessageType,
        sender_id: Optional[str],
    ) -> MeetingMessage:
        last = self.meetings.last_message(meeting.meeting_id)
        sequence = (last.sequence + 1) if last else 1
        created_at = datetime.now(timezone.utc)
        if last is not None:
            previous = _aware(last.created_at)
            if previous is not None and previous > created_at:
                created_at = previous
        message = MeetingMessage(
            message_id=generate_message_id(meeting.meeting_id, sequence),
            meeting_id=meeting.meeting_id,
            sender_id=sender_id,
            content=content,
            message_type=message_type.value,
            sequence=sequence,
            created_at=created_at,
        )
        self.db.add(message)
        self.db.flush()
        return message

    async def send(self, meeting_id: str, sender: User, content: Optional[str]) -> MeetingMessage:
        """Append a member's text message to an active meeting's transcript."""
        with self.locks.hold(meeting_id):
            try:
                meeting = self.meetings.get_meeting_for_update(meeting_id)
                if meeting is None:
                    raise NotFoundError("Meeting not found")
                self._require_member(meeting, sender)
                if content is not None and not isinstance(content, str):
                    raise ValidationError("Message content must be text")
                text = (content or "").strip()
                if not text:
                    raise ValidationError("Message content cannot be empty")
                limit = get_meeting_limits()["message_max_length"]
                if len(text) > limit:
                    raise ValidationError(
                        f"Message content cannot exceed {limit} characters"
                    )
                if meeting.status != MeetingStatus.ACTIVE.value:
                    raise InvalidStateError("Messages can only be sent to an active meeting")
                message = self._append(meeting, text, MessageType.TEXT, sender.user_id)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
            self.db.refresh(message)
            events = message_events(meeting, message)

        logger.debug(
            "Message %s appended to meeting %s by %s",
            message.message_id,
            meeting_id,
            sender.user_id,
        )
        for room_id, event in events:
            await self.notifier.publish(room_id, event)
        return message

    def list_since(
        self, meeting_id: str, reader: User, after: Optional[int] = None
    ) -> List[MeetingMessage]:
        """Transcript entries past the `after` sequence (all when None); read only."""
        meeting = self.meetings.get_meeting(meeting_id)
        if meeting is None:
            raise NotFoundError("Meeting not found")
        self._require_member(meeting, reader)
        if after is not None and after < 0:
            raise ValidationError("Cursor must be a non-negative sequence number")
        return self.meetings.list_messages(meeting_id, after=after)
