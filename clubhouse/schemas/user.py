from typing import Any, Optional

from pydantic import Field, field_validator

from .base import CamelModel


class UserCreate(CamelModel):
    login: str = Field(..., min_length=3, max_length=64)
    password: str = Field(..., min_length=1)
    email: Optional[str] = Field(None, max_length=254)
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)

    @field_validator("login")
    @classmethod
    def normalise_login(cls, value: str) -> str:
        trimmed = (value or "").strip().lower()
        if not trimmed:
            raise ValueError("login is required")
        return trimmed

    @field_validator("email")
    @classmethod
    def normalise_email(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        trimmed = value.strip().lower()
        if not trimmed:
            return None
        if "@" not in trimmed:
            raise ValueError("email must contain '@'")
        return trimmed


class User(CamelModel):
    user_id: str
    login: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    display_name: str = ""
    is_active: bool = True


class UserSummary(CamelModel):
    """Compact sender/creator block embedded in meeting and message payloads."""

    user_id: str
    login: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    display_name: str

    @classmethod
    def from_user(cls, user: Any) -> Optional["UserSummary"]:
        if user is None:
            return None
        return cls(
            user_id=user.user_id,
            login=user.login,
            first_name=user.first_name,
            last_name=user.last_name,
            email=user.email,
            display_name=user.display_name,
        )


class LoginRequest(CamelModel):
    username: str
    password: str


class LoginResponse(CamelModel):
    login_successful: bool
    user_id: str
    login: str
