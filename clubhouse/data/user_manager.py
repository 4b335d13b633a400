import logging
import uuid
from typing import Optional

from fastapi import Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.user import User
from ..utils.identifiers import generate_user_id
from ..utils.security import verify_password

logger = logging.getLogger("auth_module")


class UserManager:
    """Manages user accounts using SQLAlchemy."""

    def __init__(self):
        self.db = None

    def set_db(self, db: Session):
        """Set the database session."""
        self.db = db

    def get_user_by_login(self, login: str) -> Optional[User]:
        """Get user data by login (case-insensitive)."""
        req_id = uuid.uuid4()
        if not login:
            logger.warning(f"[{req_id}] No login provided.")
            return None
        clean_login = login.strip().lower()
        user = self.db.query(User).filter(func.lower(User.login) == clean_login).first()
        if user:
            logger.debug(f"[{req_id}] User found with login: {login}")
        else:
            logger.info(f"[{req_id}] User not found with login: {login}")
        return user

    def get_user_by_email(self, email: str) -> Optional[User]:
        if not email:
            return None
        clean_email = email.strip().lower()
        return self.db.query(User).filter(func.lower(User.email) == clean_email).first()

    def get_user(self, user_id: str) -> Optional[User]:
        """Get user data by primary key user_id."""
        if not user_id:
            return None
        return self.db.query(User).filter(User.user_id == user_id).first()

    def login_exists(self, login: str) -> bool:
        return self.get_user_by_login(login) is not None

    def verify_user_credentials(self, identifier: str, password: str) -> Optional[User]:
        """
        Verify user credentials using login or email (case-insensitive).
        Returns the User object if credentials are valid, otherwise None.
        """
        req_id = uuid.uuid4()
        if not identifier or not password:
            logger.warning(f"[{req_id}] Identifier or password not provided.")
            return None

        clean_identifier = identifier.strip()
        user = self.get_user_by_login(clean_identifier)
        if not user:
            user = self.get_user_by_email(clean_identifier)

        if user and user.is_active and verify_password(password, user.hashed_password):
            return user

        logger.warning(f"[{req_id}] Failed login attempt for identifier: {identifier}")
        return None

    def add_user(
        self,
        login: str,
        hashed_password: str,
        email: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> User:
        """Add a new user. Raises ValueError if the login or email is taken."""
        req_id = uuid.uuid4()
        clean_login = (login or "").strip().lower()
        clean_email = email.strip().lower() if email else None
        if not clean_login:
            raise ValueError("A login is required to create a user.")
        if self.login_exists(clean_login):
            logger.warning(f"[{req_id}] Attempt to add existing login: {clean_login}")
            raise ValueError(f"User with login {clean_login} already exists.")
        if clean_email and self.get_user_by_email(clean_email):
            logger.warning(f"[{req_id}] Attempt to add existing email: {clean_email}")
            raise ValueError(f"User with email {clean_email} already exists.")

        db_user = User(
            user_id=generate_user_id(self.db, first_name, last_name),
            login=clean_login,
            email=clean_email,
            first_name=first_name,
            last_name=last_name,
            hashed_password=hashed_password,
            is_active=True,
        )
        try:
            self.db.add(db_user)
            self.db.commit()
            self.db.refresh(db_user)
        except Exception as e:
            self.db.rollback()
            logger.error(f"[{req_id}] Error adding user {clean_login}: {str(e)}")
            raise
        logger.info(f"[{req_id}] Added user {clean_login} with user_id {db_user.user_id}")
        return db_user


def get_user_manager(db: Session = Depends(get_db)) -> UserManager:
    """Dependency provider for UserManager."""
    manager = UserManager()
    manager.set_db(db)
    return manager
