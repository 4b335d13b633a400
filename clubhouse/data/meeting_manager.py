from typing import List, Optional

from sqlalchemy.orm import Session, selectinload

from ..models.meeting import Meeting, MeetingMessage
from ..utils.identifiers import normalise_join_code


class MeetingManager:
    """Read-side access to meetings and their transcripts."""

    def __init__(self, db: Session):
        self.db = db

    def _query(self):
        return self.db.query(Meeting).options(
            selectinload(Meeting.participant_links),
            selectinload(Meeting.creator),
        )

    def get_meeting(self, meeting_id: str) -> Optional[Meeting]:
        if not meeting_id:
            return None
        return self._query().filter(Meeting.meeting_id == meeting_id).first()

    def get_meeting_for_update(self, meeting_id: str) -> Optional[Meeting]:
        """
        Load a meeting for a state change, taking a row lock where the
        backend supports one. Callers must already hold the meeting's
        in-process lock.
        """
        if not meeting_id:
            return None
        # Drop any cached copy so the mutation sees the latest committed row.
        self.db.expire_all()
        return (
            self.db.query(Meeting)
            .filter(Meeting.meeting_id == meeting_id)
            .with_for_update()
            .first()
        )

    def get_by_code(self, code: str) -> Optional[Meeting]:
        clean = normalise_join_code(code)
        if not clean:
            return None
        return self._query().filter(Meeting.join_code == clean).first()

    def list_club_meetings(self, club_id: str) -> List[Meeting]:
        return (
            self._query()
            .filter(Meeting.club_id == club_id)
            .order_by(Meeting.created_at.desc(), Meeting.meeting_id.desc())
            .all()
        )

    def code_taken(self, code: str) -> bool:
        return (
            self.db.query(Meeting.meeting_id).filter(Meeting.join_code == code).first()
            is not None
        )

    def list_messages(
        self, meeting_id: str, after: Optional[int] = None
    ) -> List[MeetingMessage]:
        """Transcript in sequence order, optionally only entries past `after`."""
        query = (
            self.db.query(MeetingMessage)
            .options(selectinload(MeetingMessage.sender))
            .filter(MeetingMessage.meeting_id == meeting_id)
        )
        if after is not None:
            query = query.filter(MeetingMessage.sequence > after)
        return query.order_by(MeetingMessage.sequence).all()

    def last_message(self, meeting_id: str) -> Optional[MeetingMessage]:
        return (
            self.db.query(MeetingMessage)
            .filter(MeetingMessage.meeting_id == meeting_id)
            .order_by(MeetingMessage.sequence.desc())
            .first()
        )
