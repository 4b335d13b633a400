import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

from ..auth.auth import authenticate_websocket
from ..data.club_manager import ClubManager
from ..data.meeting_manager import MeetingManager
from ..database import get_db
from ..models.user import User
from ..schemas.meeting import meeting_payload
from ..services.errors import MeetingError
from ..services.meeting_chat import MessagingChannel
from ..services.meeting_events import club_room, meeting_room
from ..utils.websocket_manager import ConnectionInfo, websocket_manager

router = APIRouter(tags=["realtime"])

logger = logging.getLogger(__name__)


def _error(message: str, status_code: int = 400) -> Dict[str, Any]:
    return {"type": "error", "payload": {"message": message, "statusCode": status_code}}


async def _handle_frame(
    db: Session,
    connection: ConnectionInfo,
    user: User,
    message_type: str,
    payload: Dict[str, Any],
) -> None:
    if message_type == "ping":
        await websocket_manager.send_personal_message(
            connection,
            {"type": "pong", "payload": {"timestamp": datetime.now(timezone.utc).isoformat()}},
        )
        return

    clubs = ClubManager(db)

    if message_type in ("join_meeting", "leave_meeting", "send_message"):
        meeting_id = payload.get("meetingId")
        if not meeting_id or not isinstance(meeting_id, str):
            await websocket_manager.send_personal_message(
                connection, _error("meetingId is required")
            )
            return
        room_id = meeting_room(meeting_id)

        if message_type == "leave_meeting":
            websocket_manager.unsubscribe(room_id, connection.id)
            await websocket_manager.send_personal_message(
                connection,
                {"type": "unsubscribed", "payload": {"room": room_id, "meetingId": meeting_id}},
            )
            return

        if message_type == "send_message":
            # The channel publishes receive_message to the meeting room.
            await MessagingChannel(db).send(meeting_id, user, payload.get("content"))
            return

        meeting = MeetingManager(db).get_meeting(meeting_id)
        if meeting is None:
            await websocket_manager.send_personal_message(
                connection, _error("Meeting not found", 404)
            )
            return
        if not clubs.is_member(meeting.club_id, user.user_id):
            await websocket_manager.send_personal_message(
                connection, _error("You are not a member of this club", 403)
            )
            return
        websocket_manager.subscribe(room_id, connection)
        await websocket_manager.send_personal_message(
            connection,
            {
                "type": "subscribed",
                "payload": {
                    "room": room_id,
                    "meetingId": meeting_id,
                    "meeting": meeting_payload(meeting),
                },
            },
        )
        return

    if message_type in ("join_club", "leave_club"):
        club_id = payload.get("clubId")
        if not club_id or not isinstance(club_id, str):
            await websocket_manager.send_personal_message(
                connection, _error("clubId is required")
            )
            return
        room_id = club_room(club_id)
        if message_type == "leave_club":
            websocket_manager.unsubscribe(room_id, connection.id)
            await websocket_manager.send_personal_message(
                connection,
                {"type": "unsubscribed", "payload": {"room": room_id, "clubId": club_id}},
            )
            return
        if not clubs.is_member(club_id, user.user_id):
            await websocket_manager.send_personal_message(
                connection, _error("You are not a member of this club", 403)
            )
            return
        websocket_manager.subscribe(room_id, connection)
        await websocket_manager.send_personal_message(
            connection,
            {"type": "subscribed", "payload": {"room": room_id, "clubId": club_id}},
        )
        return

    await websocket_manager.send_personal_message(
        connection, _error(f"Unknown message type '{message_type}'")
    )


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket, db: Session = Depends(get_db)) -> None:
    """
    Authenticated event channel. A connection subscribes to meeting and club
    rooms and receives every event published to them until it leaves the
    room or disconnects.
    """
    user = authenticate_websocket(websocket, db)
    if user is None:
        logger.info("Rejected unauthenticated WebSocket connection")
        await websocket.close(code=1008, reason="Not authenticated")
        return

    connection = await websocket_manager.connect(websocket, user_id=user.user_id)
    await websocket_manager.send_personal_message(
        connection,
        {
            "type": "connection_ack",
            "payload": {"connectionId": connection.id, "userId": user.user_id},
        },
    )

    try:
        while True:
            try:
                message = await websocket.receive_json()
            except ValueError:
                await websocket_manager.send_personal_message(
                    connection, _error("Frames must be JSON objects")
                )
                continue
            if not isinstance(message, dict):
                await websocket_manager.send_personal_message(
                    connection, _error("Frames must be JSON objects")
                )
                continue
            payload = message.get("payload") or {}
            if not isinstance(payload, dict):
                payload = {}
            try:
                await _handle_frame(db, connection, user, message.get("type"), payload)
            except MeetingError as exc:
                await websocket_manager.send_personal_message(
                    connection, _error(exc.detail, exc.status_code)
                )
            finally:
                # Release the read snapshot between frames.
                db.rollback()
    except WebSocketDisconnect:
        logger.debug(
            "WebSocketDisconnect: connection_id=%s user_id=%s", connection.id, user.user_id
        )
    finally:
        websocket_manager.unsubscribe_all(connection.id)
