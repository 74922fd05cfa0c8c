"""
Background scheduler for periodic tasks.

This module manages background jobs that run on a schedule:
- Purge expired password reset tokens: runs every RESET_PURGE_INTERVAL_MINUTES
"""

import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from tutor_api.core.database import Database
from tutor_api.storage.user_store import UserStore
from tutor_api.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

PURGE_JOB_ID = "purge_expired_reset_tokens"


def purge_expired_reset_tokens_job(database: Database) -> int:
    """
    Clear reset token and expiry on every user whose token has expired.

    Redemption already refuses expired tokens; this keeps the stored state
    consistent with that. Errors are logged, never raised into the scheduler.
    """
    db = database.session()
    try:
        cleared = UserStore(db).clear_expired_reset_tokens(utcnow())
        if cleared > 0:
            logger.info(f"Purge job completed: Cleared {cleared} expired reset tokens")
        else:
            logger.info("Purge job completed: No expired reset tokens found")
        return cleared
    except Exception:
        logger.exception("Error in purge_expired_reset_tokens_job")
        db.rollback()
        return 0
    finally:
        db.close()


class ResetTokenPurgeScheduler:
    """Owns one BackgroundScheduler; started and stopped by the app lifespan"""

    def __init__(self, database: Database, interval_minutes: int = 60):
        self.database = database
        self.interval_minutes = interval_minutes
        self._scheduler = BackgroundScheduler()

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def start(self) -> None:
        if self._scheduler.running:
            return
        self._scheduler.add_job(
            purge_expired_reset_tokens_job,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            args=[self.database],
            id=PURGE_JOB_ID,
            name="Purge expired password reset tokens",
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(
            f"Background scheduler started. Reset token purge runs every {self.interval_minutes} minutes."
        )

    def stop(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown()
            logger.info("Background scheduler stopped.")
