import logging
from typing import Optional

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel

from tutor_api.api.dependencies import (
    SESSION_COOKIE_NAME,
    get_current_user,
    get_reset_link_sender,
    get_settings,
    get_token_service,
    get_user_store,
)
from tutor_api.core.config import Settings
from tutor_api.core.errors import map_unexpected_errors
from tutor_api.core.security import TokenService
from tutor_api.models.user import User
from tutor_api.schemas.user import to_user_response
from tutor_api.services.auth_service import AuthService
from tutor_api.services.password_reset_service import (
    RESET_REQUESTED_MESSAGE,
    PasswordResetService,
    ResetLinkSender,
)
from tutor_api.storage.user_store import UserStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


# Fields are optional so missing values reach our own checks and get the
# documented 400 messages instead of a generic body error
class SignupRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class PasswordResetRequest(BaseModel):
    email: Optional[str] = None


class PasswordResetConfirm(BaseModel):
    token: Optional[str] = None
    password: Optional[str] = None


def set_session_cookie(response: Response, token: str, settings: Settings) -> None:
    """Set the session token as an httpOnly cookie for the whole site"""
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=token,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        path="/",
        max_age=settings.ACCESS_TOKEN_EXPIRE_SECONDS,
    )


def clear_session_cookie(response: Response, settings: Settings) -> None:
    # path must match the one used in set_cookie()
    response.delete_cookie(
        key=SESSION_COOKIE_NAME,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        path="/",
    )


# Hashing routes are plain `def` so bcrypt runs in the threadpool

@router.post("/signup", status_code=status.HTTP_201_CREATED)
def signup(
    payload: SignupRequest,
    store: UserStore = Depends(get_user_store),
    tokens: TokenService = Depends(get_token_service),
    settings: Settings = Depends(get_settings),
):
    """Register a new user. Does not log them in."""
    with map_unexpected_errors("signup", rollback=store.rollback):
        user = AuthService(store, tokens, settings).signup(
            payload.name, payload.email, payload.password
        )
        return {"message": "User created successfully.", "userId": user.id}


@router.post("/login")
def login(
    payload: LoginRequest,
    response: Response,
    store: UserStore = Depends(get_user_store),
    tokens: TokenService = Depends(get_token_service),
    settings: Settings = Depends(get_settings),
):
    """Check credentials and set the session cookie"""
    with map_unexpected_errors("login", rollback=store.rollback):
        user, token = AuthService(store, tokens, settings).login(payload.email, payload.password)
        set_session_cookie(response, token, settings)
        return {"message": "Login successful.", "user": to_user_response(user)}


@router.post("/logout")
async def logout(response: Response, settings: Settings = Depends(get_settings)):
    """
    Log out by clearing the session cookie.

    Always succeeds, with or without a session. The token itself stays
    valid until it expires; there is no server-side session to revoke.
    """
    clear_session_cookie(response, settings)
    logger.info("Session cookie cleared")
    return {"message": "Logout successful."}


@router.post("/request-password-reset")
def request_password_reset(
    payload: PasswordResetRequest,
    store: UserStore = Depends(get_user_store),
    settings: Settings = Depends(get_settings),
    send_reset_link: ResetLinkSender = Depends(get_reset_link_sender),
):
    """Same answer whether or not the email is registered"""
    with map_unexpected_errors("password reset request", rollback=store.rollback):
        PasswordResetService(store, settings, send_reset_link).request_reset(payload.email)
        return {"message": RESET_REQUESTED_MESSAGE}


@router.post("/reset-password")
def reset_password(
    payload: PasswordResetConfirm,
    store: UserStore = Depends(get_user_store),
    settings: Settings = Depends(get_settings),
):
    with map_unexpected_errors("password reset", rollback=store.rollback):
        PasswordResetService(store, settings).redeem(payload.token, payload.password)
        return {"message": "Password has been reset successfully."}


@router.get("/me")
async def get_current_user_info(current_user: User = Depends(get_current_user)):
    """Get current user information"""
    return {"user": to_user_response(current_user)}
