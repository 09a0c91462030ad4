"""
Authentication Service for iReporter.
Credential store (registration, password verification, identity lookup)
and session issuance.
"""
from datetime import datetime
from typing import Optional
from uuid import UUID
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ...infrastructure.models import User
from ..errors import DuplicateEmail, InvalidCredentials, NotFound, StorageFailure, ValidationFailed
from ..models import UserCreate
from .access_policy import ADMIN_ROLE, USER_ROLE
from .security import (
    create_access_token,
    hash_password,
    verify_password,
    token_lifetime_seconds,
)

logger = logging.getLogger(__name__)

# Checked when the email is unknown so both failure paths cost one bcrypt verification
_dummy_hash: Optional[str] = None


def _get_dummy_hash() -> str:
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = hash_password("not-a-real-password")
    return _dummy_hash


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AuthService:
    """Service for handling all authentication operations"""

    # =========================================================================
    # Lookup
    # =========================================================================

    def find_by_email(self, email: str, db: Session) -> Optional[User]:
        return db.query(User).filter(User.email == normalize_email(email)).first()

    def find_by_username(self, username: str, db: Session) -> Optional[User]:
        return db.query(User).filter(User.username == username.strip()).first()

    def find_by_id(self, user_id, db: Session) -> User:
        """
        Raises:
            NotFound: no user with this id
        """
        if not isinstance(user_id, UUID):
            try:
                user_id = UUID(str(user_id))
            except ValueError:
                raise NotFound("User not found")
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFound("User not found")
        return user

    # =========================================================================
    # Email/Password Authentication
    # =========================================================================

    def register(self, profile: UserCreate, db: Session) -> User:
        """
        Register a new user with email and password.

        The role is always 'user'; admins are promoted out of band.

        Raises:
            DuplicateEmail: email already registered (case-insensitive)
            ValidationFailed: username already taken
        """
        email = normalize_email(profile.email)

        if self.find_by_email(email, db):
            raise DuplicateEmail()
        if self.find_by_username(profile.username, db):
            raise ValidationFailed("Username already taken")

        user = User(
            firstname=profile.firstname.strip(),
            lastname=profile.lastname.strip(),
            othernames=profile.othernames.strip() if profile.othernames else None,
            email=email,
            phone_number=profile.phone_number,
            username=profile.username.strip(),
            password_hash=hash_password(profile.password),
            role=USER_ROLE,
        )
        db.add(user)
        try:
            db.commit()
        except IntegrityError as e:
            # Lost a race with a concurrent signup for the same email/username
            db.rollback()
            if self.find_by_email(email, db):
                raise DuplicateEmail() from e
            raise ValidationFailed("Username already taken") from e
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Database error registering user: {e}")
            raise StorageFailure("Failed to create user") from e

        db.refresh(user)
        logger.info(f"Registered user {user.id}")
        return user

    def verify(self, email: str, password: str, db: Session) -> User:
        """
        Authenticate a user with email and password.

        Unknown email and wrong password raise the same error.

        Raises:
            InvalidCredentials
        """
        user = self.find_by_email(email, db)

        if not user:
            verify_password(password, _get_dummy_hash())
            logger.info("Failed login attempt")
            raise InvalidCredentials()

        if not verify_password(password, user.password_hash):
            logger.info(f"Failed login attempt for user {user.id}")
            raise InvalidCredentials()

        return user

    # =========================================================================
    # Token Management
    # =========================================================================

    def issue_session(self, user: User) -> dict:
        """
        Mint a bearer token for an authenticated user.

        Returns:
            Dict with access_token, token_type, expires_in
        """
        return {
            "access_token": create_access_token(user),
            "token_type": "bearer",
            "expires_in": token_lifetime_seconds(),
        }

    # =========================================================================
    # Administration
    # =========================================================================

    def promote_to_admin(self, email: str, db: Session) -> User:
        """
        Grant the admin role. Not reachable over HTTP.

        Raises:
            NotFound: no user with this email
        """
        user = self.find_by_email(email, db)
        if not user:
            raise NotFound("User not found")
        if user.role != ADMIN_ROLE:
            user.role = ADMIN_ROLE
            user.updated_at = datetime.utcnow()
            db.commit()
            logger.info(f"User {user.id} promoted to admin")
        return user


auth_service = AuthService()
