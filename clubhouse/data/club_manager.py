import logging
from typing import List, Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.club import Club, ClubMembership, ClubRole
from ..models.user import User
from ..utils.identifiers import (
    generate_club_id,
    generate_join_code,
    normalise_join_code,
)

logger = logging.getLogger("clubhouse")


class ClubManager:
    """Clubs, their join codes and who holds which role in them."""

    def __init__(self, db: Session):
        self.db = db

    def code_taken(self, code: str) -> bool:
        return (
            self.db.query(Club.club_id).filter(Club.join_code == code).first()
            is not None
        )

    def create_club(
        self, creator: User, name: str, description: Optional[str] = None
    ) -> Club:
        """Create a club and enrol its creator as the first admin."""
        clean_name = (name or "").strip()
        if not clean_name:
            raise ValueError("Club name is required")
        club = Club(
            club_id=generate_club_id(self.db),
            name=clean_name,
            description=(description or "").strip() or None,
            join_code=generate_join_code(self.code_taken),
            creator_id=creator.user_id,
        )
        club.memberships.append(
            ClubMembership(user_id=creator.user_id, role=ClubRole.ADMIN.value)
        )
        try:
            self.db.add(club)
            self.db.commit()
            self.db.refresh(club)
        except Exception:
            self.db.rollback()
            logger.exception("Failed to create club %r", clean_name)
            raise
        logger.info("Club %s created by %s", club.club_id, creator.user_id)
        return club

    def get_club(self, club_id: str) -> Optional[Club]:
        if not club_id:
            return None
        return self.db.query(Club).filter(Club.club_id == club_id).first()

    def get_by_code(self, code: str) -> Optional[Club]:
        clean = normalise_join_code(code)
        if not clean:
            return None
        return self.db.query(Club).filter(Club.join_code == clean).first()

    def join_by_code(self, user: User, code: str) -> Optional[Club]:
        """
        Add `user` to the club owning `code` as a regular member.

        Joining a club one already belongs to keeps the existing role.
        Returns None when no club matches the code.
        """
        club = self.get_by_code(code)
        if club is None:
            return None
        if self.get_membership(club.club_id, user.user_id) is None:
            self.db.add(
                ClubMembership(
                    club_id=club.club_id,
                    user_id=user.user_id,
                    role=ClubRole.MEMBER.value,
                )
            )
            self.db.commit()
            self.db.refresh(club)
            logger.info("User %s joined club %s", user.user_id, club.club_id)
        return club

    def get_membership(self, club_id: str, user_id: str) -> Optional[ClubMembership]:
        return (
            self.db.query(ClubMembership)
            .filter(
                ClubMembership.club_id == club_id,
                ClubMembership.user_id == user_id,
            )
            .first()
        )

    def list_user_clubs(self, user_id: str) -> List[ClubMembership]:
        return (
            self.db.query(ClubMembership)
            .filter(ClubMembership.user_id == user_id)
            .order_by(ClubMembership.joined_at)
            .all()
        )

    def is_member(self, club_id: str, user_id: str) -> bool:
        return self.get_membership(club_id, user_id) is not None

    def is_admin(self, club_id: str, user_id: str) -> bool:
        membership = self.get_membership(club_id, user_id)
        return membership is not None and membership.role == ClubRole.ADMIN.value


def get_club_manager(db: Session = Depends(get_db)) -> ClubManager:
    """Dependency provider for ClubManager."""
    return ClubManager(db)
