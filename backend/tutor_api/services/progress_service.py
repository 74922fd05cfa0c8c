from typing import Any, Optional

from tutor_api.core.errors import NotFound, ValidationError
from tutor_api.models.user import User
from tutor_api.storage.user_store import UserStore

INVALID_PROGRESS_MESSAGE = "Invalid progress data."


def _is_int(value: Any) -> bool:
    # bool is an int subclass but never a valid level or xp
    return isinstance(value, int) and not isinstance(value, bool)


def normalize_progress(level: Any = None, xp: Any = None, badges: Any = None) -> dict:
    """Validate the supplied progress fields and return only those that were given"""
    changes: dict[str, Any] = {}

    if level is not None:
        if not _is_int(level) or level < 1:
            raise ValidationError(INVALID_PROGRESS_MESSAGE)
        changes["level"] = level

    if xp is not None:
        if not _is_int(xp) or xp < 0:
            raise ValidationError(INVALID_PROGRESS_MESSAGE)
        changes["xp"] = xp

    if badges is not None:
        if not isinstance(badges, list) or not all(isinstance(b, str) and b for b in badges):
            raise ValidationError(INVALID_PROGRESS_MESSAGE)
        # Badges are a set; keep first-seen order
        changes["badges"] = list(dict.fromkeys(badges))

    return changes


class ProgressService:
    def __init__(self, store: UserStore):
        self.store = store

    def update(
        self,
        user_id: str,
        level: Optional[Any] = None,
        xp: Optional[Any] = None,
        badges: Optional[Any] = None,
    ) -> tuple[User, bool]:
        """Apply progress changes; the flag says whether anything was written"""
        changes = normalize_progress(level=level, xp=xp, badges=badges)

        user = self.store.find_by_id(user_id)
        if user is None:
            raise NotFound("User not found.")

        if not changes:
            return user, False

        return self.store.update_progress(user, changes), True
