import uuid

from sqlalchemy import JSON, Column, DateTime, Integer, String

from tutor_api.core.database import Base
from tutor_api.utils.time_utils import utcnow

ROLE_USER = "user"
ROLE_ADMIN = "admin"


def _new_user_id() -> str:
    return uuid.uuid4().hex


class User(Base):
    """
    User model representing application users.

    Stores credentials, learning progression, password reset state and the
    AI usage window. Passwords are stored as hashes (never plaintext).
    """
    __tablename__ = "users"

    # Opaque id; clients only ever see it as a string
    id = Column(String(32), primary_key=True, default=_new_user_id)
    name = Column(String, nullable=False)
    # Unique index backs the check-then-insert in signup
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    role = Column(String, nullable=False, default=ROLE_USER)

    # Progression
    level = Column(Integer, nullable=False, default=1)
    xp = Column(Integer, nullable=False, default=0)
    badges = Column(JSON, nullable=False, default=list)

    # Reset token and its expiry are always set and cleared together
    reset_password_token = Column(String(64), nullable=True, index=True)
    reset_password_expires = Column(DateTime(timezone=True), nullable=True)

    # Usage window
    ai_usage_count = Column(Integer, nullable=False, default=0)
    ai_usage_last_reset = Column(DateTime(timezone=True), nullable=True, default=utcnow)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN
