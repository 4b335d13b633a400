import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..auth.auth import get_current_active_user
from ..data.club_manager import ClubManager
from ..data.meeting_manager import MeetingManager
from ..database import get_db
from ..models.meeting import Meeting
from ..models.user import User
from ..schemas.meeting import (
    MeetingCreate,
    MeetingResponse,
    MessageCreate,
    MessageResponse,
)
from ..services.errors import AuthorizationError, NotFoundError, ValidationError
from ..services.meeting_chat import MessagingChannel
from ..services.meeting_lifecycle import MeetingLifecycleController

router = APIRouter(prefix="/api/meetings", tags=["meetings"])

logger = logging.getLogger(__name__)


def get_lifecycle_controller(db: Session = Depends(get_db)) -> MeetingLifecycleController:
    return MeetingLifecycleController(db)


def get_messaging_channel(db: Session = Depends(get_db)) -> MessagingChannel:
    return MessagingChannel(db)


def _visible_meeting(db: Session, meeting_id: str, user: User) -> Meeting:
    meeting = MeetingManager(db).get_meeting(meeting_id)
    if meeting is None:
        raise NotFoundError("Meeting not found")
    if not ClubManager(db).is_member(meeting.club_id, user.user_id):
        raise AuthorizationError("You must be a club member to view this meeting")
    return meeting


async def create_club_meeting(
    club_id: Optional[str],
    payload: MeetingCreate,
    user: User,
    controller: MeetingLifecycleController,
) -> MeetingResponse:
    """Shared by POST /api/meetings and POST /api/clubs/{club_id}/meetings."""
    if not club_id:
        raise ValidationError("clubId is required")
    meeting = await controller.create(
        club_id,
        user,
        payload.title,
        description=payload.description,
        scheduled_at=payload.scheduled_at,
        max_participants=payload.max_participants,
        is_voice_only=payload.is_voice_only,
    )
    return MeetingResponse.from_meeting(meeting)


@router.post("", response_model=MeetingResponse, status_code=status.HTTP_201_CREATED)
async def create_meeting(
    payload: MeetingCreate,
    current_user: User = Depends(get_current_active_user),
    controller: MeetingLifecycleController = Depends(get_lifecycle_controller),
) -> MeetingResponse:
    return await create_club_meeting(payload.club_id, payload, current_user, controller)


@router.get("/code/{code}", response_model=MeetingResponse)
async def get_meeting_by_code(
    code: str,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> MeetingResponse:
    meeting = MeetingManager(db).get_by_code(code)
    if meeting is None:
        raise NotFoundError("No meeting matches that code")
    return MeetingResponse.from_meeting(meeting)


@router.get("/{meeting_id}", response_model=MeetingResponse)
async def get_meeting(
    meeting_id: str,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> MeetingResponse:
    return MeetingResponse.from_meeting(_visible_meeting(db, meeting_id, current_user))


@router.post("/{meeting_id}/start", response_model=MeetingResponse)
async def start_meeting(
    meeting_id: str,
    current_user: User = Depends(get_current_active_user),
    controller: MeetingLifecycleController = Depends(get_lifecycle_controller),
) -> MeetingResponse:
    return MeetingResponse.from_meeting(await controller.start(meeting_id, current_user))


@router.post("/{meeting_id}/end", response_model=MeetingResponse)
async def end_meeting(
    meeting_id: str,
    current_user: User = Depends(get_current_active_user),
    controller: MeetingLifecycleController = Depends(get_lifecycle_controller),
) -> MeetingResponse:
    return MeetingResponse.from_meeting(await controller.end(meeting_id, current_user))


@router.post("/{meeting_id}/cancel", response_model=MeetingResponse)
async def cancel_meeting(
    meeting_id: str,
    current_user: User = Depends(get_current_active_user),
    controller: MeetingLifecycleController = Depends(get_lifecycle_controller),
) -> MeetingResponse:
    return MeetingResponse.from_meeting(await controller.cancel(meeting_id, current_user))


@router.post("/{meeting_id}/join", response_model=MeetingResponse)
async def join_meeting(
    meeting_id: str,
    current_user: User = Depends(get_current_active_user),
    controller: MeetingLifecycleController = Depends(get_lifecycle_controller),
) -> MeetingResponse:
    return MeetingResponse.from_meeting(await controller.join(meeting_id, current_user))


@router.post("/{meeting_id}/leave", response_model=MeetingResponse)
async def leave_meeting(
    meeting_id: str,
    current_user: User = Depends(get_current_active_user),
    controller: MeetingLifecycleController = Depends(get_lifecycle_controller),
) -> MeetingResponse:
    return MeetingResponse.from_meeting(await controller.leave(meeting_id, current_user))


@router.get("/{meeting_id}/messages", response_model=List[MessageResponse])
async def list_messages(
    meeting_id: str,
    after: Optional[int] = Query(None, ge=0),
    current_user: User = Depends(get_current_active_user),
    channel: MessagingChannel = Depends(get_messaging_channel),
) -> List[MessageResponse]:
    messages = channel.list_since(meeting_id, current_user, after=after)
    return [MessageResponse.from_message(message) for message in messages]


@router.post(
    "/{meeting_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    meeting_id: str,
    payload: MessageCreate,
    current_user: User = Depends(get_current_active_user),
    channel: MessagingChannel = Depends(get_messaging_channel),
) -> MessageResponse:
    message = await channel.send(meeting_id, current_user, payload.content)
    return MessageResponse.from_message(message)
