import logging
import os
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, Request, WebSocket, status
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from ..config.loader import get_access_token_expire_minutes
from ..data.user_manager import UserManager
from ..database import get_db
from ..models.user import User as UserModel
from ..schemas.user import User as UserSchema

# Set up a dedicated logger for authentication events
logger = logging.getLogger("auth_module")

COOKIE_NAME = "access_token"


# --- Configuration ---
def generate_dev_key() -> str:
    """Generate a secure default key for development environments ONLY."""
    key = secrets.token_urlsafe(48)
    logger.warning(
        "DEVELOPMENT MODE: using a generated JWT secret key. "
        "Set CLUBHOUSE_JWT_SECRET_KEY for production."
    )
    return key


def validate_secret_key(key: str) -> bool:
    """Validate that a JWT secret key meets minimum security requirements."""
    if not key:
        return False
    if len(key) < 32:
        logger.error("JWT secret key must be at least 32 characters long.")
        return False
    return True


def _is_production_mode() -> bool:
    env = os.getenv("CLUBHOUSE_ENV", "development").strip().lower()
    return env in {"production", "prod"}


SECRET_KEY = os.getenv("CLUBHOUSE_JWT_SECRET_KEY")
ALGORITHM = "HS256"
JWT_ISSUER = os.getenv("CLUBHOUSE_JWT_ISSUER", "clubhouse")
ACCESS_TOKEN_EXPIRE_MINUTES = get_access_token_expire_minutes()

if not SECRET_KEY:
    if _is_production_mode():
        raise RuntimeError(
            "Missing CLUBHOUSE_JWT_SECRET_KEY while CLUBHOUSE_ENV is set to production."
        )
    SECRET_KEY = generate_dev_key()
elif not validate_secret_key(SECRET_KEY):
    raise RuntimeError(
        "Invalid JWT secret key configuration. "
        "CLUBHOUSE_JWT_SECRET_KEY must be at least 32 characters long."
    )


# --- Token Utilities ---


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Creates a new JWT access token.
    The 'sub' (subject) of the token is the user's login.
    """
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire, "iat": now, "iss": JWT_ISSUER})
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    logger.info("Created access token for subject: %s", data.get("sub"))
    return encoded_jwt


def decode_access_token(token: Optional[str]) -> Optional[str]:
    """Return the login carried by a valid token, otherwise None."""
    if not token:
        return None
    try:
        payload = jwt.decode(
            token,
            SECRET_KEY,
            algorithms=[ALGORITHM],
            issuer=JWT_ISSUER,
            options={"verify_aud": False},
        )
    except JWTError as e:
        logger.warning("JWT decode failure: %s", e)
        return None
    return payload.get("sub")


def _strip_bearer(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    if value.startswith("Bearer "):
        return value.split(" ", 1)[1]
    return value


async def get_token_from_cookie(request: Request) -> Optional[str]:
    """
    Extracts the JWT from the 'access_token' HTTPOnly cookie.
    Handles the 'Bearer ' prefix.
    """
    return _strip_bearer(request.cookies.get(COOKIE_NAME))


# --- User Retrieval Dependencies ---


async def get_current_user(
    token: Optional[str] = Depends(get_token_from_cookie),
) -> str:
    """
    Dependency returning the login (subject) of a valid token.
    Raises 401 if the token is missing or invalid.
    """
    login = decode_access_token(token)
    if login is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials. Invalid or expired token.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return login


async def get_current_active_user(
    request: Request,
    current_user_login: str = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UserModel:
    """
    Resolve the token's login to an active user row bound to the request's
    session, so services can use it directly.
    """
    user_crud = UserManager()
    user_crud.set_db(db)
    user = user_crud.get_user_by_login(current_user_login)
    if not user or not user.is_active:
        logger.error(
            "Token valid but user '%s' missing or inactive.", current_user_login
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User associated with token not found.",
        )
    # A detached copy for middleware that runs after the session closes.
    request.state.user = UserSchema.model_validate(user)
    return user


def authenticate_websocket(websocket: WebSocket, db: Session) -> Optional[UserModel]:
    """
    Identify the user behind a websocket handshake from the auth cookie or
    a `token` query parameter. Returns None when neither yields a user.
    """
    token = _strip_bearer(websocket.cookies.get(COOKIE_NAME)) or _strip_bearer(
        websocket.query_params.get("token")
    )
    login = decode_access_token(token)
    if login is None:
        return None
    user_crud = UserManager()
    user_crud.set_db(db)
    user = user_crud.get_user_by_login(login)
    if user is None or not user.is_active:
        return None
    return user


__all__ = [
    "COOKIE_NAME",
    "create_access_token",
    "decode_access_token",
    "get_token_from_cookie",
    "get_current_user",
    "get_current_active_user",
    "authenticate_websocket",
    "ACCESS_TOKEN_EXPIRE_MINUTES",
    "SECRET_KEY",
    "ALGORITHM",
    "JWT_ISSUER",
]
