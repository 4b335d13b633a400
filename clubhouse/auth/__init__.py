from .auth import (
    COOKIE_NAME,
    create_access_token,
    decode_access_token,
    get_token_from_cookie,
    get_current_user,
    get_current_active_user,
    authenticate_websocket,
    ACCESS_TOKEN_EXPIRE_MINUTES,
    SECRET_KEY,
    ALGORITHM,
)

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
]
