import logging
from datetime import timedelta
from typing import Dict

from fastapi import APIRouter, Depends, HTTPException, Response, status

from ..auth.auth import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    COOKIE_NAME,
    create_access_token,
    get_current_active_user,
)
from ..config.loader import get_secure_cookies_enabled
from ..data.user_manager import UserManager, get_user_manager
from ..models.user import User as UserModel
from ..schemas.user import LoginRequest, LoginResponse, User, UserCreate
from ..utils.security import check_password_strength, get_password_hash

router = APIRouter(prefix="/api/auth", tags=["authentication"])

logger = logging.getLogger("auth_module")


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register_user(
    user: UserCreate,
    user_manager: UserManager = Depends(get_user_manager),
) -> Dict[str, str]:
    is_valid, error_message = check_password_strength(user.password)
    if not is_valid:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error_message)

    try:
        created = user_manager.add_user(
            login=user.login,
            hashed_password=get_password_hash(user.password),
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return {"message": "User registered successfully. Please log in.", "userId": created.user_id}


@router.post("/token", response_model=LoginResponse)
async def login_for_access_token(
    response: Response,
    token_request: LoginRequest,
    user_manager: UserManager = Depends(get_user_manager),
) -> LoginResponse:
    """
    Token login using a JSON body for credentials.
    Sets an HTTPOnly cookie with the access token.
    """
    user = user_manager.verify_user_credentials(
        token_request.username, token_request.password
    )
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token = create_access_token(
        data={"sub": user.login},
        expires_delta=timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    response.set_cookie(
        key=COOKIE_NAME,
        value=f"Bearer {access_token}",
        httponly=True,
        secure=get_secure_cookies_enabled(),
        max_age=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        expires=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        samesite="lax",
        path="/",
    )
    return LoginResponse(login_successful=True, user_id=user.user_id, login=user.login)


@router.post("/logout")
async def logout(response: Response) -> Dict[str, str]:
    """Logs the user out by clearing the access token cookie."""
    response.delete_cookie(
        key=COOKIE_NAME,
        path="/",
        httponly=True,
        secure=get_secure_cookies_enabled(),
        samesite="lax",
    )
    return {"message": "Logout successful"}


@router.get("/me", response_model=User)
async def read_current_user(
    current_user: UserModel = Depends(get_current_active_user),
) -> User:
    return User.model_validate(current_user)
