"""
Password reset tokens.

A user is either without a pending reset or holds exactly one opaque token
with an absolute expiry. Requesting a reset replaces any earlier token;
redeeming it (or the purge job after expiry) clears both fields together.
"""

import logging
import secrets
from datetime import timedelta
from typing import Callable, Optional
from urllib.parse import urlencode

from tutor_api.core.config import Settings
from tutor_api.core.errors import InvalidOrExpiredToken, ValidationError
from tutor_api.core.security import get_password_hash
from tutor_api.services.auth_service import check_password_length
from tutor_api.storage.user_store import UserStore
from tutor_api.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

RESET_TOKEN_BYTES = 32
RESET_REQUESTED_MESSAGE = "If a user with that email exists, a reset link will be sent."

# Delivers (email, reset_link) to the user
ResetLinkSender = Callable[[str, str], None]


def log_reset_link(email: str, reset_link: str) -> None:
    """Stand-in for an email sender"""
    logger.info(f"Password reset link for {email}: {reset_link}")


class PasswordResetService:
    def __init__(
        self,
        store: UserStore,
        settings: Settings,
        send_reset_link: ResetLinkSender = log_reset_link,
    ):
        self.store = store
        self.settings = settings
        self.send_reset_link = send_reset_link

    def build_reset_link(self, token: str) -> str:
        base_url = self.settings.PUBLIC_BASE_URL.rstrip("/")
        return f"{base_url}/reset-password?{urlencode({'token': token})}"

    def request_reset(self, email: Optional[str]) -> None:
        """
        Issue a reset token for the account with this email, if any.

        Returns nothing either way: callers must answer identically whether
        or not the account exists.
        """
        if not email:
            raise ValidationError("Email is required.")

        user = self.store.find_by_email(email)
        if user is None:
            logger.info("Password reset requested for unknown email")
            return

        token = secrets.token_hex(RESET_TOKEN_BYTES)
        expires_at = utcnow() + timedelta(seconds=self.settings.RESET_TOKEN_EXPIRE_SECONDS)
        self.store.set_reset_token(user.id, token, expires_at)
        logger.info(f"Password reset token issued for user {user.id}")

        # The token is already stored; a failed delivery must not change the answer
        try:
            self.send_reset_link(email, self.build_reset_link(token))
        except Exception:
            logger.exception(f"Failed to deliver password reset link for user {user.id}")

    def redeem(self, token: Optional[str], new_password: Optional[str]) -> None:
        # Both checks run before any store access
        if not token or not new_password:
            raise ValidationError("Token and password are required.")
        check_password_length(new_password)

        user = self.store.find_by_valid_reset_token(token, utcnow())
        if user is None:
            raise InvalidOrExpiredToken()

        hashed_password = get_password_hash(new_password)
        if not self.store.redeem_reset_token(user.id, token, hashed_password):
            # A concurrent redemption consumed the token first
            raise InvalidOrExpiredToken()

        logger.info(f"Password reset completed for user {user.id}")
