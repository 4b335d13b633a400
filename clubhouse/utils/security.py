import re
from typing import Optional, Tuple

from passlib.context import CryptContext

MIN_PASSWORD_LENGTH = 8

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Check a login attempt against the stored bcrypt hash."""
    return pwd_context.verify(plain_password.strip(), hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password.strip())


def check_password_strength(password: Optional[str]) -> Tuple[bool, Optional[str]]:
    """
    Validate a new member password.

    Returns:
        (True, None) when acceptable, otherwise (False, reason) where the
        reason is safe to show to the person registering.
    """
    candidate = (password or "").strip()
    if len(candidate) < MIN_PASSWORD_LENGTH:
        return False, f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
    if not re.search(r"[A-Za-z]", candidate) or not re.search(r"\d", candidate):
        return False, "Password must contain both letters and numbers"
    return True, None
