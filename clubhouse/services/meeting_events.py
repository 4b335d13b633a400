"""Event envelopes fanned out to meeting and club rooms."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from ..schemas.meeting import meeting_payload, message_payload

MEETING_UPDATE = "meeting_update"
JOIN_MEETING = "join_meeting"
LEAVE_MEETING = "leave_meeting"
RECEIVE_MESSAGE = "receive_message"

RoomEvent = Tuple[str, Dict[str, Any]]


def meeting_room(meeting_id: str) -> str:
    return f"meeting:{meeting_id}"


def club_room(club_id: str) -> str:
    return f"club:{club_id}"


def _envelope(
    event_type: str,
    meeting,
    payload: Dict[str, Any],
    **extra: Any,
) -> Dict[str, Any]:
    event = {
        "type": event_type,
        "meetingId": meeting.meeting_id,
        "clubId": meeting.club_id,
        "payload": payload,
    }
    event.update(extra)
    return event


def meeting_update_events(meeting, action: str) -> List[RoomEvent]:
    """A status change is announced to the meeting room and the club room."""
    event = _envelope(MEETING_UPDATE, meeting, meeting_payload(meeting), action=action)
    return [
        (meeting_room(meeting.meeting_id), event),
        (club_room(meeting.club_id), event),
    ]


def participant_events(event_type: str, meeting, user_id: str) -> List[RoomEvent]:
    event = _envelope(event_type, meeting, meeting_payload(meeting), userId=user_id)
    return [(meeting_room(meeting.meeting_id), event)]


def message_events(meeting, message: Optional[Any]) -> List[RoomEvent]:
    if message is None:
        return []
    event = _envelope(RECEIVE_MESSAGE, meeting, message_payload(message))
    return [(meeting_room(meeting.meeting_id), event)]
