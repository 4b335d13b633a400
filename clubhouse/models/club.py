from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from clubhouse.database import Base


class ClubRole(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"


class Club(Base):
    __tablename__ = "clubs"

    club_id = Column(String(20), primary_key=True, index=True)
    name = Column(String(120), nullable=False, index=True)
    description = Column(String, nullable=True)
    join_code = Column(String(16), unique=True, nullable=False, index=True)
    creator_id = Column(String(20), ForeignKey("users.user_id"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    creator = relationship("User", foreign_keys=[creator_id])
    memberships = relationship(
        "ClubMembership",
        back_populates="club",
        cascade="all, delete-orphan",
    )
    meetings = relationship(
        "Meeting",
        back_populates="club",
        order_by="Meeting.created_at.desc()",
    )


class ClubMembership(Base):
    __tablename__ = "club_memberships"
    __table_args__ = (
        UniqueConstraint("club_id", "user_id", name="uq_club_membership_user"),
    )

    club_id = Column(
        String(20),
        ForeignKey("clubs.club_id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id = Column(
        String(20),
        ForeignKey("users.user_id", ondelete="CASCADE"),
        primary_key=True,
    )
    role = Column(String(16), default=ClubRole.MEMBER.value, nullable=False)
    joined_at = Column(DateTime(timezone=True), server_default=func.now())

    club = relationship("Club", back_populates="memberships")
    user = relationship("User", back_populates="club_memberships")

    def __repr__(self) -> str:
        return (
            f"ClubMembership(club_id={self.club_id!r}, user_id={self.user_id!r}, "
            f"role={self.role!r})"
        )
