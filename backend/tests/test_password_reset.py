from datetime import timedelta
from unittest.mock import patch
from urllib.parse import parse_qs, urlparse

import pytest

from tutor_api.core.config import Settings
from tutor_api.models.user import User
from tutor_api.services.password_reset_service import PasswordResetService
from tutor_api.storage.user_store import UserStore
from tutor_api.utils.time_utils import as_utc, utcnow

RESET_REQUESTED = "If a user with that email exists, a reset link will be sent."
INVALID_TOKEN = "Password reset token is invalid or has expired."


def _token_from_link(link: str) -> str:
    return parse_qs(urlparse(link).query)["token"][0]


def _request_reset(client, email: str):
    return client.post("/api/auth/request-password-reset", json={"email": email})


class TestRequestReset:
    def test_issues_token_for_known_email(self, client, signup, db_session, sent_reset_links):
        user_id = signup(email="a@b.com")

        response = _request_reset(client, "a@b.com")

        assert response.status_code == 200
        assert response.json() == {"message": RESET_REQUESTED}

        user = db_session.get(User, user_id)
        assert len(user.reset_password_token) == 64  # 32 random bytes, hex
        remaining = as_utc(user.reset_password_expires) - utcnow()
        assert timedelta(minutes=59) < remaining <= timedelta(hours=1)

        assert len(sent_reset_links) == 1
        email, link = sent_reset_links[0]
        assert email == "a@b.com"
        assert link.startswith("http://localhost:9002/reset-password?token=")
        assert _token_from_link(link) == user.reset_password_token

    def test_unknown_email_gets_identical_response_and_creates_nothing(
        self, client, signup, db_session, sent_reset_links
    ):
        signup(email="a@b.com")

        known = _request_reset(client, "a@b.com")
        unknown = _request_reset(client, "nobody@b.com")

        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json()
        assert db_session.query(User).count() == 1
        assert [email for email, _ in sent_reset_links] == ["a@b.com"]

    def test_delivery_failure_still_answers_identically(self, client, app, signup, db_session):
        user_id = signup(email="a@b.com")

        def unreachable_mailer(email: str, link: str) -> None:
            raise ConnectionError("mail relay unreachable")

        app.state.reset_link_sender = unreachable_mailer
        known = _request_reset(client, "a@b.com")
        unknown = _request_reset(client, "nobody@b.com")

        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json() == {"message": RESET_REQUESTED}
        user = db_session.get(User, user_id)
        assert len(user.reset_password_token) == 64

    def test_email_required(self, client):
        with patch.object(UserStore, "find_by_email") as find_by_email:
            response = _request_reset(client, "")

        assert response.status_code == 400
        assert response.json()["message"] == "Email is required."
        find_by_email.assert_not_called()

    def test_new_request_replaces_previous_token(self, client, signup, sent_reset_links):
        signup(email="a@b.com")
        _request_reset(client, "a@b.com")
        _request_reset(client, "a@b.com")
        first, second = (_token_from_link(link) for _, link in sent_reset_links)

        stale = client.post(
            "/api/auth/reset-password", json={"token": first, "password": "newpassword1"}
        )
        fresh = client.post(
            "/api/auth/reset-password", json={"token": second, "password": "newpassword1"}
        )

        assert stale.status_code == 400
        assert fresh.status_code == 200


class TestRedeem:
    def test_resets_password_and_clears_token(self, client, signup, db_session, sent_reset_links):
        user_id = signup(email="a@b.com", password="password1")
        _request_reset(client, "a@b.com")
        token = _token_from_link(sent_reset_links[0][1])

        response = client.post(
            "/api/auth/reset-password", json={"token": token, "password": "newpassword1"}
        )

        assert response.status_code == 200
        assert response.json() == {"message": "Password has been reset successfully."}

        user = db_session.get(User, user_id)
        assert user.reset_password_token is None
        assert user.reset_password_expires is None
        assert user.hashed_password != "newpassword1"

        old_login = client.post("/api/auth/login", json={"email": "a@b.com", "password": "password1"})
        new_login = client.post(
            "/api/auth/login", json={"email": "a@b.com", "password": "newpassword1"}
        )
        assert old_login.status_code == 401
        assert new_login.status_code == 200

    def test_token_cannot_be_redeemed_twice(self, client, signup, sent_reset_links):
        signup(email="a@b.com")
        _request_reset(client, "a@b.com")
        token = _token_from_link(sent_reset_links[0][1])

        first = client.post("/api/auth/reset-password", json={"token": token, "password": "newpassword1"})
        second = client.post("/api/auth/reset-password", json={"token": token, "password": "newpassword2"})

        assert first.status_code == 200
        assert second.status_code == 400
        assert second.json()["message"] == INVALID_TOKEN

    def test_expired_token_is_rejected(self, client, signup, db_session, sent_reset_links):
        user_id = signup(email="a@b.com")
        _request_reset(client, "a@b.com")
        token = _token_from_link(sent_reset_links[0][1])

        user = db_session.get(User, user_id)
        user.reset_password_expires = utcnow() - timedelta(seconds=1)
        db_session.commit()

        response = client.post(
            "/api/auth/reset-password", json={"token": token, "password": "newpassword1"}
        )

        assert response.status_code == 400
        assert response.json()["message"] == INVALID_TOKEN

    def test_unknown_token_is_rejected(self, client, signup):
        signup(email="a@b.com")

        response = client.post(
            "/api/auth/reset-password", json={"token": "f" * 64, "password": "newpassword1"}
        )

        assert response.status_code == 400
        assert response.json()["message"] == INVALID_TOKEN

    @pytest.mark.parametrize(
        "payload, message",
        [
            ({"password": "newpassword1"}, "Token and password are required."),
            ({"token": "abc"}, "Token and password are required."),
            ({"token": "abc", "password": "short"}, "Password must be at least 8 characters long."),
        ],
    )
    def test_validation_happens_before_lookup(self, client, payload, message):
        with patch.object(UserStore, "find_by_valid_reset_token") as lookup:
            response = client.post("/api/auth/reset-password", json=payload)

        assert response.status_code == 400
        assert response.json()["message"] == message
        lookup.assert_not_called()


def test_reset_link_uses_public_base_url():
    settings = Settings(JWT_SECRET="s", PUBLIC_BASE_URL="https://tutor.example/", _env_file=None)
    service = PasswordResetService(store=None, settings=settings)

    assert service.build_reset_link("abc") == "https://tutor.example/reset-password?token=abc"
