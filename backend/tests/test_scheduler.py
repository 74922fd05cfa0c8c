from datetime import timedelta
from unittest.mock import MagicMock

from sqlalchemy.exc import OperationalError

from tutor_api.core.scheduler import (
    PURGE_JOB_ID,
    ResetTokenPurgeScheduler,
    purge_expired_reset_tokens_job,
)
from tutor_api.models.user import User
from tutor_api.utils.time_utils import utcnow


def _give_reset_token(db_session, user_id, token, expires_at):
    user = db_session.get(User, user_id)
    user.reset_password_token = token
    user.reset_password_expires = expires_at
    db_session.commit()


def test_purge_clears_only_expired_tokens(signup, database, db_session):
    expired_id = signup(email="old@b.com")
    pending_id = signup(email="new@b.com")
    _give_reset_token(db_session, expired_id, "a" * 64, utcnow() - timedelta(minutes=5))
    _give_reset_token(db_session, pending_id, "b" * 64, utcnow() + timedelta(minutes=30))

    cleared = purge_expired_reset_tokens_job(database)

    assert cleared == 1
    db_session.expire_all()
    expired = db_session.get(User, expired_id)
    pending = db_session.get(User, pending_id)
    assert expired.reset_password_token is None
    assert expired.reset_password_expires is None
    assert pending.reset_password_token == "b" * 64
    assert pending.reset_password_expires is not None


def test_purge_with_nothing_to_clear(client, database):
    assert purge_expired_reset_tokens_job(database) == 0


def test_purge_logs_and_rolls_back_on_database_error():
    session = MagicMock()
    session.execute.side_effect = OperationalError("UPDATE", {}, Exception("disk I/O error"))
    database = MagicMock()
    database.session.return_value = session

    assert purge_expired_reset_tokens_job(database) == 0
    session.rollback.assert_called_once()
    session.close.assert_called_once()


def test_scheduler_start_and_stop(client, database):
    scheduler = ResetTokenPurgeScheduler(database, interval_minutes=5)

    scheduler.start()
    try:
        assert scheduler.running
        job = scheduler._scheduler.get_job(PURGE_JOB_ID)
        assert job is not None
        assert job.trigger.interval == timedelta(minutes=5)
    finally:
        scheduler.stop()

    assert not scheduler.running
