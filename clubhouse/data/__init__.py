"""
Data access layer providing managers for users, clubs and meetings.
"""

from .club_manager import ClubManager
from .meeting_manager import MeetingManager
from .user_manager import UserManager

__all__ = ["UserManager", "ClubManager", "MeetingManager"]
