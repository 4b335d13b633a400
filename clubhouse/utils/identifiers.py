import re
import secrets
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy.orm import Session

from clubhouse.models.club import Club
from clubhouse.models.meeting import Meeting
from clubhouse.models.user import User

USER_ID_PREFIX = "USR"
USER_ID_SEQUENCE_WIDTH = 3
USER_ID_STEM_LENGTH = 6

MEETING_ID_PREFIX = "MTG"
CLUB_ID_PREFIX = "CLB"
DATED_ID_SUFFIX_WIDTH = 4

MESSAGE_SEQUENCE_WIDTH = 5

JOIN_CODE_LENGTH = 8
# No 0/O or 1/I/L so codes survive being read aloud or copied by hand.
JOIN_CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"
_JOIN_CODE_ATTEMPTS = 20


def _clean_stem(value: Optional[str]) -> str:
    """
    Normalise the last name into a six-character uppercase stem.
    Non-alphanumeric characters are stripped and the result padded with X.
    """
    cleaned = re.sub(r"[^A-Z0-9]", "", value.upper()) if value else ""
    if not cleaned:
        cleaned = "X" * USER_ID_STEM_LENGTH
    return (cleaned[:USER_ID_STEM_LENGTH]).ljust(USER_ID_STEM_LENGTH, "X")


def _clean_initial(value: Optional[str]) -> str:
    if not value:
        return "X"
    cleaned = re.sub(r"[^A-Z0-9]", "", value.upper())
    return cleaned[0] if cleaned else "X"


def build_user_id_prefix(first_name: Optional[str], last_name: Optional[str]) -> str:
    return f"{USER_ID_PREFIX}-{_clean_stem(last_name)}{_clean_initial(first_name)}"


def generate_user_id(
    db: Session, first_name: Optional[str], last_name: Optional[str]
) -> str:
    """
    Construct a unique `user_id` following the USR-LLLLLLF-NNN pattern.
    The sequence component increments per prefix to avoid collisions.
    """
    prefix = build_user_id_prefix(first_name, last_name)
    existing = (
        db.query(User.user_id)
        .filter(User.user_id.like(f"{prefix}-%"))
        .order_by(User.user_id.desc())
        .limit(1)
        .scalar()
    )
    sequence = 1
    if existing:
        try:
            sequence = int(existing.split("-")[-1]) + 1
        except (ValueError, IndexError):
            sequence = 1
    return f"{prefix}-{sequence:0{USER_ID_SEQUENCE_WIDTH}d}"


def _format_base36(number: int) -> str:
    if number < 0:
        raise ValueError("number must be non-negative")
    digits = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    if number == 0:
        return "0"
    result = []
    while number:
        number, remainder = divmod(number, 36)
        result.append(digits[remainder])
    return "".join(reversed(result))


def _generate_dated_id(db: Session, column, prefix: str, created_at: Optional[datetime]) -> str:
    timestamp = (created_at or datetime.now(timezone.utc)).astimezone(timezone.utc)
    date_prefix = f"{prefix}{timestamp:%Y%m%d}"
    latest: Optional[str] = (
        db.query(column)
        .filter(column.like(f"{date_prefix}-%"))
        .order_by(column.desc())
        .limit(1)
        .scalar()
    )
    sequence = 1
    if latest:
        try:
            sequence = int(latest.split("-")[-1], 36) + 1
        except (ValueError, IndexError):
            sequence = 1
    suffix = _format_base36(sequence).rjust(DATED_ID_SUFFIX_WIDTH, "0")
    return f"{date_prefix}-{suffix}"


def generate_meeting_id(db: Session, created_at: Optional[datetime] = None) -> str:
    """
    Construct a meeting identifier with the format MTGYYYYMMDD-XXXX where the
    suffix is a zero-padded base36 sequence scoped to the given day.
    """
    return _generate_dated_id(db, Meeting.meeting_id, MEETING_ID_PREFIX, created_at)


def generate_club_id(db: Session, created_at: Optional[datetime] = None) -> str:
    return _generate_dated_id(db, Club.club_id, CLUB_ID_PREFIX, created_at)


def generate_message_id(meeting_id: str, sequence: int) -> str:
    """Message ids are scoped to their meeting: MTGYYYYMMDD-XXXX-MSG-NNNNN."""
    return f"{meeting_id}-MSG-{sequence:0{MESSAGE_SEQUENCE_WIDTH}d}"


def generate_join_code(is_taken: Callable[[str], bool]) -> str:
    """
    Return a random human-shareable code that `is_taken` reports as free.

    Raises:
        RuntimeError: if no free code was found after a bounded number of draws.
    """
    for _ in range(_JOIN_CODE_ATTEMPTS):
        code = "".join(
            secrets.choice(JOIN_CODE_ALPHABET) for _ in range(JOIN_CODE_LENGTH)
        )
        if not is_taken(code):
            return code
    raise RuntimeError("Could not allocate a unique join code")


def normalise_join_code(value: Optional[str]) -> str:
    return re.sub(r"[^A-Z0-9]", "", (value or "").upper())
