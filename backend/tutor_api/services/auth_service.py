import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError

from tutor_api.core.config import Settings
from tutor_api.core.errors import Conflict, Unauthenticated, ValidationError
from tutor_api.core.security import (
    TokenService,
    burn_password_check,
    get_password_hash,
    verify_password,
)
from tutor_api.models.user import ROLE_ADMIN, ROLE_USER, User
from tutor_api.storage.user_store import UserStore

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8
PASSWORD_TOO_SHORT_MESSAGE = "Password must be at least 8 characters long."
INVALID_CREDENTIALS_MESSAGE = "Invalid credentials."


def check_password_length(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(PASSWORD_TOO_SHORT_MESSAGE)


class AuthService:
    """Signup and login against the credential store."""

    def __init__(self, store: UserStore, tokens: TokenService, settings: Settings):
        self.store = store
        self.tokens = tokens
        self.settings = settings

    def signup(self, name: Optional[str], email: Optional[str], password: Optional[str]) -> User:
        # Validate before touching the store
        if not name or not email or not password:
            raise ValidationError("All fields are required.")
        check_password_length(password)

        # Explicit check gives a clean 409; the unique index catches the race
        if self.store.find_by_email(email) is not None:
            raise Conflict("User already exists.")

        role = ROLE_ADMIN if email in self.settings.get_admin_emails() else ROLE_USER
        hashed_password = get_password_hash(password)
        try:
            user = self.store.insert(name=name, email=email, hashed_password=hashed_password, role=role)
        except IntegrityError:
            # Another signup for the same email committed between check and insert
            self.store.rollback()
            raise Conflict("User already exists.") from None

        logger.info(f"Created user {user.id}")
        return user

    def login(self, email: Optional[str], password: Optional[str]) -> tuple[User, str]:
        """Return the user and a fresh session token"""
        if not email or not password:
            raise ValidationError("Email and password are required.")

        user = self.store.find_by_email(email)
        if user is None:
            # Same bcrypt cost as a wrong password, same message
            burn_password_check(password)
            logger.warning("Failed login attempt")
            raise Unauthenticated(INVALID_CREDENTIALS_MESSAGE)

        if not verify_password(password, user.hashed_password):
            logger.warning("Failed login attempt")
            raise Unauthenticated(INVALID_CREDENTIALS_MESSAGE)

        token = self.tokens.issue(user_id=user.id, email=user.email)
        logger.info(f"User {user.id} logged in")
        return user, token
