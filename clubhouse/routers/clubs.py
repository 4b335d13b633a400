from typing import List

from fastapi import APIRouter, Depends, status

from ..auth.auth import get_current_active_user
from ..data.club_manager import ClubManager, get_club_manager
from ..data.meeting_manager import MeetingManager
from ..models.user import User
from ..schemas.club import ClubCreate, ClubJoinRequest, ClubResponse
from ..schemas.meeting import MeetingCreate, MeetingResponse
from ..services.errors import AuthorizationError, NotFoundError
from ..services.meeting_lifecycle import MeetingLifecycleController
from .meetings import create_club_meeting, get_lifecycle_controller

router = APIRouter(prefix="/api/clubs", tags=["clubs"])


def _member_club(clubs: ClubManager, club_id: str, user: User):
    club = clubs.get_club(club_id)
    if club is None:
        raise NotFoundError("Club not found")
    membership = clubs.get_membership(club_id, user.user_id)
    if membership is None:
        raise AuthorizationError("You are not a member of this club")
    return club, membership


@router.post("", response_model=ClubResponse, status_code=status.HTTP_201_CREATED)
async def create_club(
    payload: ClubCreate,
    current_user: User = Depends(get_current_active_user),
    clubs: ClubManager = Depends(get_club_manager),
) -> ClubResponse:
    club = clubs.create_club(current_user, payload.name, payload.description)
    return ClubResponse.from_club(club, role="admin")


@router.get("", response_model=List[ClubResponse])
async def list_my_clubs(
    current_user: User = Depends(get_current_active_user),
    clubs: ClubManager = Depends(get_club_manager),
) -> List[ClubResponse]:
    return [
        ClubResponse.from_club(membership.club, role=membership.role)
        for membership in clubs.list_user_clubs(current_user.user_id)
    ]


@router.post("/join", response_model=ClubResponse)
async def join_club(
    payload: ClubJoinRequest,
    current_user: User = Depends(get_current_active_user),
    clubs: ClubManager = Depends(get_club_manager),
) -> ClubResponse:
    club = clubs.join_by_code(current_user, payload.code)
    if club is None:
        raise NotFoundError("No club matches that join code")
    membership = clubs.get_membership(club.club_id, current_user.user_id)
    return ClubResponse.from_club(club, role=membership.role)


@router.get("/{club_id}", response_model=ClubResponse)
async def get_club(
    club_id: str,
    current_user: User = Depends(get_current_active_user),
    clubs: ClubManager = Depends(get_club_manager),
) -> ClubResponse:
    club, membership = _member_club(clubs, club_id, current_user)
    return ClubResponse.from_club(club, role=membership.role)


@router.get("/{club_id}/meetings", response_model=List[MeetingResponse])
async def list_club_meetings(
    club_id: str,
    current_user: User = Depends(get_current_active_user),
    clubs: ClubManager = Depends(get_club_manager),
) -> List[MeetingResponse]:
    _member_club(clubs, club_id, current_user)
    meetings = MeetingManager(clubs.db).list_club_meetings(club_id)
    return [MeetingResponse.from_meeting(meeting) for meeting in meetings]


@router.post(
    "/{club_id}/meetings",
    response_model=MeetingResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_meeting_in_club(
    club_id: str,
    payload: MeetingCreate,
    current_user: User = Depends(get_current_active_user),
    controller: MeetingLifecycleController = Depends(get_lifecycle_controller),
) -> MeetingResponse:
    return await create_club_meeting(club_id, payload, current_user, controller)
