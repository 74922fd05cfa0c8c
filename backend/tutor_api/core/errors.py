"""
Error taxonomy shared by services and routes.

Services raise these; the handlers registered in main.py turn them into
`{"message": ..., **payload}` JSON responses. Anything that is not an
AppError is caught at the route boundary, logged, and re-raised as
InternalError so clients never see internals.
"""

import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "An internal server error occurred."


class AppError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = INTERNAL_ERROR_MESSAGE

    def __init__(self, message: Optional[str] = None, payload: Optional[dict[str, Any]] = None):
        self.message = message or self.default_message
        self.payload = payload or {}
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request."


class InvalidOrExpiredToken(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Password reset token is invalid or has expired."


class Unauthenticated(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication required."


class InvalidToken(Unauthenticated):
    default_message = "Invalid token."


class Forbidden(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Forbidden."


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found."


class Conflict(AppError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Conflict."


class QuotaExceeded(AppError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Daily AI usage limit reached."

    def __init__(self, count: int, limit: int):
        super().__init__(
            payload={"limitReached": True, "usage": {"count": count, "limit": limit}}
        )
        self.count = count
        self.limit = limit


class InternalError(AppError):
    def __init__(self, cause: Optional[BaseException] = None):
        payload = {"error": safe_error_summary(cause)} if cause is not None else None
        super().__init__(payload=payload)


def safe_error_summary(exc: BaseException) -> str:
    """Non-sensitive one-word description of a fault: just its class name."""
    return type(exc).__name__ or "UnknownError"


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    headers = None
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, **exc.payload},
        headers=headers,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Body that is not a JSON object, or fields of the wrong type
    # Only locations are logged: the rejected input may contain a password
    locations = [error.get("loc") for error in exc.errors()]
    logger.info(f"Rejected malformed request to {request.url.path}: {locations}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": "Invalid request body."},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)


@contextmanager
def map_unexpected_errors(action: str, rollback: Optional[Callable[[], None]] = None) -> Iterator[None]:
    """
    Route-boundary guard: AppErrors pass through, anything else is rolled
    back, logged with its traceback and replaced by InternalError.
    """
    try:
        yield
    except AppError:
        raise
    except SQLAlchemyError as e:
        # Rollback prevents partial state if the transaction was partially applied
        if rollback is not None:
            rollback()
        logger.exception(f"Database error during {action}")
        raise InternalError(e) from e
    except Exception as e:
        if rollback is not None:
            rollback()
        logger.exception(f"Unexpected error during {action}")
        raise InternalError(e) from e
