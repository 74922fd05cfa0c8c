import logging

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tutor_api.core.config import Settings
from tutor_api.core.database import get_db
from tutor_api.core.errors import Forbidden, InternalError, InvalidToken, NotFound, Unauthenticated
from tutor_api.core.security import TokenClaims, TokenService
from tutor_api.models.user import User
from tutor_api.services.password_reset_service import ResetLinkSender
from tutor_api.storage.user_store import UserStore

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "token"

# Browsers send the session cookie; API clients may use a bearer header instead
# tokenUrl tells FastAPI where to find the login endpoint for Swagger UI
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/auth/login", auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def get_user_store(db: Session = Depends(get_db)) -> UserStore:
    return UserStore(db)


def get_token_claims(
    request: Request,
    bearer_token: str | None = Depends(oauth2_scheme),
    tokens: TokenService = Depends(get_token_service),
) -> TokenClaims:
    """
    Verify the session token from the cookie, falling back to the bearer header.

    Missing token -> 401 "Authentication required."; anything wrong with a
    present token -> 401 "Invalid token.", without saying what. A cookie that
    fails verification does not shadow a bearer token sent alongside it.
    """
    cookie_token = request.cookies.get(SESSION_COOKIE_NAME)
    if not cookie_token and not bearer_token:
        raise Unauthenticated("Authentication required.")
    if cookie_token:
        try:
            return tokens.verify(cookie_token)
        except InvalidToken:
            if not bearer_token:
                raise
    return tokens.verify(bearer_token)


def get_current_user(
    claims: TokenClaims = Depends(get_token_claims),
    store: UserStore = Depends(get_user_store),
) -> User:
    try:
        # If the user was deleted after the token was issued, this will be None
        user = store.find_by_id(claims.user_id)
    except SQLAlchemyError as e:
        logger.exception("Failed to load current user")
        raise InternalError(e) from e
    if user is None:
        raise NotFound("User not found.")
    return user


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        raise Forbidden("Admin access required.")
    return current_user


def get_reset_link_sender(request: Request) -> ResetLinkSender:
    return request.app.state.reset_link_sender
