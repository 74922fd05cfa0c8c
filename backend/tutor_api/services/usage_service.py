import logging
from dataclasses import dataclass
from datetime import timedelta

from tutor_api.core.errors import NotFound, QuotaExceeded
from tutor_api.models.user import User
from tutor_api.storage.user_store import UserStore
from tutor_api.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class UsageResult:
    user: User
    count: int
    limit: int


class UsageService:
    """
    Daily AI usage gate for registered users.

    Every successful check consumes one use; there is no read-only peek.
    """

    def __init__(self, store: UserStore, limit: int, window: timedelta = timedelta(hours=24)):
        self.store = store
        self.limit = limit
        self.window = window

    def consume(self, user_id: str) -> UsageResult:
        user = self.store.find_by_id(user_id)
        if user is None:
            raise NotFound("User not found.")

        # Window reset is committed on its own, before the quota check,
        # so it sticks even if the increment below fails
        now = utcnow()
        if self.store.reset_usage_window_if_stale(user_id, now, now - self.window):
            logger.info(f"Usage window reset for user {user_id}")

        if not self.store.try_increment_usage(user_id, self.limit):
            user = self.store.refresh(user)
            logger.info(f"User {user_id} reached the daily AI usage limit ({self.limit})")
            raise QuotaExceeded(count=user.ai_usage_count, limit=self.limit)

        user = self.store.refresh(user)
        return UsageResult(user=user, count=user.ai_usage_count, limit=self.limit)
