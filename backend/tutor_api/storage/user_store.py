from datetime import datetime
from typing import Optional

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from tutor_api.models.user import ROLE_USER, User
from tutor_api.utils.time_utils import utcnow


class UserStore:
    """
    Credential store for user records.

    Every write commits immediately: callers rely on each step (for example
    a usage window reset) being durable on its own.
    """

    def __init__(self, db: Session):
        self.db = db

    def find_by_id(self, user_id: str) -> Optional[User]:
        return self.db.get(User, user_id)

    def find_by_email(self, email: str) -> Optional[User]:
        # Exact match: emails are case-sensitive as stored
        return self.db.query(User).filter(User.email == email).first()

    def list_users(self) -> list[User]:
        return self.db.query(User).order_by(User.created_at, User.id).all()

    def insert(self, name: str, email: str, hashed_password: str, role: str = ROLE_USER) -> User:
        now = utcnow()
        user = User(
            name=name,
            email=email,
            hashed_password=hashed_password,
            role=role,
            level=1,
            xp=0,
            badges=[],
            ai_usage_count=0,
            ai_usage_last_reset=now,
            created_at=now,
            updated_at=now,
        )
        self.db.add(user)
        self.db.commit()
        # Refresh to load the generated id
        self.db.refresh(user)
        return user

    def refresh(self, user: User) -> User:
        self.db.refresh(user)
        return user

    # Password reset state

    def set_reset_token(self, user_id: str, token: str, expires_at: datetime) -> None:
        self.db.execute(
            update(User)
            .execution_options(synchronize_session=False)
            .where(User.id == user_id)
            .values(
                reset_password_token=token,
                reset_password_expires=expires_at,
                updated_at=utcnow(),
            )
        )
        self.db.commit()

    def find_by_valid_reset_token(self, token: str, now: datetime) -> Optional[User]:
        return self.db.execute(
            select(User).where(
                User.reset_password_token == token,
                User.reset_password_expires > now,
            )
        ).scalars().first()

    def redeem_reset_token(self, user_id: str, token: str, hashed_password: str) -> bool:
        """
        Replace the password and clear both reset fields in one statement.

        Guarded on the token still being present, so of two concurrent
        redemptions only one updates a row. Returns whether this call won.
        """
        result = self.db.execute(
            update(User)
            .execution_options(synchronize_session=False)
            .where(User.id == user_id, User.reset_password_token == token)
            .values(
                hashed_password=hashed_password,
                reset_password_token=None,
                reset_password_expires=None,
                updated_at=utcnow(),
            )
        )
        self.db.commit()
        return result.rowcount == 1

    def clear_expired_reset_tokens(self, now: datetime) -> int:
        result = self.db.execute(
            update(User)
            .execution_options(synchronize_session=False)
            .where(
                User.reset_password_expires.is_not(None),
                User.reset_password_expires <= now,
            )
            .values(
                reset_password_token=None,
                reset_password_expires=None,
                updated_at=now,
            )
        )
        self.db.commit()
        return result.rowcount

    # Usage window

    def reset_usage_window_if_stale(self, user_id: str, now: datetime, window_start: datetime) -> bool:
        """
        Zero the counter when the last reset is older than window_start.

        Idempotent: a second call inside the new window matches no row.
        """
        result = self.db.execute(
            update(User)
            .execution_options(synchronize_session=False)
            .where(
                User.id == user_id,
                or_(
                    User.ai_usage_last_reset.is_(None),
                    User.ai_usage_last_reset < window_start,
                ),
            )
            .values(ai_usage_count=0, ai_usage_last_reset=now, updated_at=now)
        )
        self.db.commit()
        return result.rowcount == 1

    def try_increment_usage(self, user_id: str, limit: int) -> bool:
        """Add one use only while the count is below limit, as a single conditional UPDATE"""
        result = self.db.execute(
            update(User)
            .execution_options(synchronize_session=False)
            .where(User.id == user_id, User.ai_usage_count < limit)
            .values(ai_usage_count=User.ai_usage_count + 1, updated_at=utcnow())
        )
        self.db.commit()
        return result.rowcount == 1

    # Progression

    def update_progress(self, user: User, changes: dict) -> User:
        for field, value in changes.items():
            setattr(user, field, value)
        user.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(user)
        return user

    def rollback(self) -> None:
        self.db.rollback()
