from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..config.loader import MIN_PARTICIPANTS, get_meeting_limits
from ..data.club_manager import ClubManager
from ..data.meeting_manager import MeetingManager
from ..models.meeting import Meeting, MeetingParticipant, MeetingStatus
from ..models.user import User
from ..utils.identifiers import generate_join_code, generate_meeting_id
from ..utils.websocket_manager import WebSocketManager, websocket_manager
from .errors import (
    AuthorizationError,
    CapacityError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from .meeting_chat import MessagingChannel
from .meeting_events import (
    JOIN_MEETING,
    LEAVE_MEETING,
    RoomEvent,
    meeting_update_events,
    message_events,
    participant_events,
)
from .meeting_locks import MeetingLockRegistry, meeting_locks

logger = logging.getLogger(__name__)

# Meeting ids are allocated per day from a shared counter.
_CREATE_LOCK_KEY = "__meeting_create__"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class MeetingLifecycleController:
    """
    Sole writer of meeting status, timestamps and participants.

    Each command loads the meeting under its per-meeting lock, checks
    existence, then the caller's club role, then the meeting's state, and
    commits before the lock is released. A rejected command rolls back and
    leaves the meeting untouched. Room events are published after the lock
    is released.
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
        self.chat = MessagingChannel(db, notifier=self.notifier, locks=self.locks)

    async def _publish(self, events: List[RoomEvent]) -> None:
        for room_id, event in events:
            await self.notifier.publish(room_id, event)

    def _load(self, meeting_id: str) -> Meeting:
        meeting = self.meetings.get_meeting_for_update(meeting_id)
        if meeting is None:
            raise NotFoundError("Meeting not found")
        return meeting

    def _require_admin(self, meeting: Meeting, user: User, action: str) -> None:
        if not self.clubs.is_admin(meeting.club_id, user.user_id):
            logger.info(
                "Rejected %s of meeting %s by non-admin %s",
                action,
                meeting.meeting_id,
                user.user_id,
            )
            raise AuthorizationError(f"Only club admins can {action} meetings")

    def _require_member(self, meeting: Meeting, user: User) -> None:
        if not self.clubs.is_member(meeting.club_id, user.user_id):
            raise AuthorizationError("You must be a club member to take part in this meeting")

    def _validate_create(
        self, title: Optional[str], max_participants: Optional[int]
    ) -> str:
        limits = get_meeting_limits()
        clean_title = (title or "").strip()
        if not clean_title:
            raise ValidationError("Meeting title is required")
        if len(clean_title) > limits["title_max_length"]:
            raise ValidationError(
                f"Meeting title cannot exceed {limits['title_max_length']} characters"
            )
        if max_participants is not None:
            upper = limits["max_participants_limit"]
            if max_participants < MIN_PARTICIPANTS or max_participants > upper:
                raise ValidationError(
                    f"Max participants must be between {MIN_PARTICIPANTS} and {upper}"
                )
        return clean_title

    async def create(
        self,
        club_id: str,
        creator: User,
        title: Optional[str],
        description: Optional[str] = None,
        scheduled_at: Optional[datetime] = None,
        max_participants: Optional[int] = None,
        is_voice_only: bool = False,
    ) -> Meeting:
        """Create a scheduled meeting in a club the creator administers."""
        club = self.clubs.get_club(club_id)
        if club is None:
            raise NotFoundError("Club not found")
        if not self.clubs.is_admin(club_id, creator.user_id):
            raise AuthorizationError("Only club admins can create meetings")
        clean_title = self._validate_create(title, max_participants)
        if scheduled_at is not None and scheduled_at.tzinfo is None:
            scheduled_at = scheduled_at.replace(tzinfo=timezone.utc)

        with self.locks.hold(_CREATE_LOCK_KEY):
            try:
                created_at = _now()
                meeting = Meeting(
                    meeting_id=generate_meeting_id(self.db, created_at),
                    club_id=club_id,
                    creator_id=creator.user_id,
                    title=clean_title,
                    description=(description or "").strip() or None,
                    status=MeetingStatus.SCHEDULED.value,
                    scheduled_at=scheduled_at,
                    max_participants=max_participants,
                    is_voice_only=bool(is_voice_only),
                    join_code=generate_join_code(self.meetings.code_taken),
                    created_at=created_at,
                )
                self.db.add(meeting)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
            self.db.refresh(meeting)
            events = meeting_update_events(meeting, "created")

        logger.info(
            "Meeting %s created in club %s by %s", meeting.meeting_id, club_id, creator.user_id
        )
        await self._publish(events)
        return meeting

    async def start(self, meeting_id: str, requester: User) -> Meeting:
        """scheduled -> active; stamps started_at."""
        with self.locks.hold(meeting_id):
            try:
                meeting = self._load(meeting_id)
                self._require_admin(meeting, requester, "start")
                if meeting.status != MeetingStatus.SCHEDULED.value:
                    raise InvalidStateError(
                        f"Meeting cannot be started while {meeting.status}"
                    )
                meeting.status = MeetingStatus.ACTIVE.value
                meeting.started_at = _now()
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
            self.db.refresh(meeting)
            events = meeting_update_events(meeting, "started")

        logger.info("Meeting %s started by %s", meeting_id, requester.user_id)
        await self._publish(events)
        return meeting

    async def end(self, meeting_id: str, requester: User) -> Meeting:
        """active -> ended; stamps ended_at and empties the room."""
        with self.locks.hold(meeting_id):
            try:
                meeting = self._load(meeting_id)
                self._require_admin(meeting, requester, "end")
                if meeting.status != MeetingStatus.ACTIVE.value:
                    raise InvalidStateError(f"Meeting cannot be ended while {meeting.status}")
                meeting.status = MeetingStatus.ENDED.value
                meeting.ended_at = _now()
                meeting.participant_links.clear()
                notice = self.chat.append_system(
                    meeting,
                    f"Meeting ended by {requester.display_name}",
                    sender_id=requester.user_id,
                )
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
            self.db.refresh(meeting)
            events = meeting_update_events(meeting, "ended") + message_events(meeting, notice)
        self.locks.discard(meeting_id)

        logger.info("Meeting %s ended by %s", meeting_id, requester.user_id)
        await self._publish(events)
        return meeting

    async def cancel(self, meeting_id: str, requester: User) -> Meeting:
        """scheduled or active -> cancelled; ended_at stays unset."""
        with self.locks.hold(meeting_id):
            try:
                meeting = self._load(meeting_id)
                self._require_admin(meeting, requester, "cancel")
                was_active = meeting.status == MeetingStatus.ACTIVE.value
                if meeting.status != MeetingStatus.SCHEDULED.value and not was_active:
                    raise InvalidStateError(
                        f"Meeting cannot be cancelled while {meeting.status}"
                    )
                meeting.status = MeetingStatus.CANCELLED.value
                meeting.participant_links.clear()
                notice = None
                if was_active:
                    notice = self.chat.append_system(
                        meeting,
                        f"Meeting cancelled by {requester.display_name}",
                        sender_id=requester.user_id,
                    )
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
            self.db.refresh(meeting)
            events = meeting_update_events(meeting, "cancelled") + message_events(
                meeting, notice
            )
        self.locks.discard(meeting_id)

        logger.info("Meeting %s cancelled by %s", meeting_id, requester.user_id)
        await self._publish(events)
        return meeting

    async def join(self, meeting_id: str, user: User) -> Meeting:
        """
        Add `user` to an active meeting's participants.

        Joining twice is a no-op. The capacity check and the insert happen
        under the meeting lock, so the bound holds for concurrent joins.
        """
        with self.locks.hold(meeting_id):
            try:
                meeting = self._load(meeting_id)
                self._require_member(meeting, user)
                if meeting.status != MeetingStatus.ACTIVE.value:
                    raise InvalidStateError("Only active meetings can be joined")
                if user.user_id in meeting.participant_ids:
                    self.db.rollback()
                    return self.meetings.get_meeting(meeting_id)
                if meeting.is_full:
                    logger.info(
                        "Meeting %s is full; rejected join by %s", meeting_id, user.user_id
                    )
                    raise CapacityError("Meeting is full")
                last_seat = (
                    self.db.query(func.max(MeetingParticipant.seat))
                    .filter(MeetingParticipant.meeting_id == meeting_id)
                    .scalar()
                )
                meeting.participant_links.append(
                    MeetingParticipant(user_id=user.user_id, seat=(last_seat or 0) + 1)
                )
                notice = self.chat.append_system(
                    meeting, f"{user.display_name} joined the meeting", sender_id=user.user_id
                )
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
            self.db.refresh(meeting)
            events = participant_events(JOIN_MEETING, meeting, user.user_id) + message_events(
                meeting, notice
            )

        logger.info("User %s joined meeting %s", user.user_id, meeting_id)
        await self._publish(events)
        return meeting

    async def leave(self, meeting_id: str, user: User) -> Meeting:
        """Remove `user` from the participants; a no-op when they are not in it."""
        with self.locks.hold(meeting_id):
            try:
                meeting = self._load(meeting_id)
                self._require_member(meeting, user)
                link = next(
                    (
                        entry
                        for entry in meeting.participant_links
                        if entry.user_id == user.user_id
                    ),
                    None,
                )
                if link is None:
                    self.db.rollback()
                    return self.meetings.get_meeting(meeting_id)
                meeting.participant_links.remove(link)
                notice = self.chat.append_system(
                    meeting, f"{user.display_name} left the meeting", sender_id=user.user_id
                )
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
            self.db.refresh(meeting)
            events = participant_events(LEAVE_MEETING, meeting, user.user_id) + message_events(
                meeting, notice
            )

        logger.info("User %s left meeting %s", user.user_id, meeting_id)
        await self._publish(events)
        return meeting
