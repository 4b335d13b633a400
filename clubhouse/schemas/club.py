from datetime import datetime
from typing import Optional

from pydantic import Field

from .base import CamelModel


class ClubCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=120)
    description: Optional[str] = Field(None, max_length=2000)


class ClubJoinRequest(CamelModel):
    code: str = Field(..., min_length=1, max_length=32)


class ClubResponse(CamelModel):
    id: str
    name: str
    description: Optional[str] = None
    join_code: str
    creator_id: str
    role: Optional[str] = None
    member_count: int = 0
    created_at: Optional[datetime] = None

    @classmethod
    def from_club(cls, club, *, role: Optional[str] = None) -> "ClubResponse":
        return cls(
            id=club.club_id,
            name=club.name,
            description=club.description,
            join_code=club.join_code,
            creator_id=club.creator_id,
            role=role,
            member_count=len(club.memberships or []),
            created_at=club.created_at,
        )
