from datetime import timedelta
from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from tutor_api.api.dependencies import get_settings, get_token_claims, get_user_store
from tutor_api.core.config import Settings
from tutor_api.core.errors import map_unexpected_errors
from tutor_api.core.security import TokenClaims
from tutor_api.schemas.user import to_user_response
from tutor_api.services.progress_service import ProgressService
from tutor_api.services.usage_service import UsageService
from tutor_api.storage.user_store import UserStore

router = APIRouter(prefix="/user", tags=["user"])


class ProgressUpdate(BaseModel):
    # Types are checked by ProgressService so bad values get the 400 message
    level: Optional[Any] = None
    xp: Optional[Any] = None
    badges: Optional[Any] = None


@router.post("/usage")
def record_usage(
    claims: TokenClaims = Depends(get_token_claims),
    store: UserStore = Depends(get_user_store),
    settings: Settings = Depends(get_settings),
):
    """Consume one AI use for the caller, or 429 when the daily quota is spent"""
    service = UsageService(
        store,
        limit=settings.AI_USAGE_LIMIT_REGISTERED,
        window=timedelta(hours=settings.USAGE_WINDOW_HOURS),
    )
    with map_unexpected_errors("usage update", rollback=store.rollback):
        result = service.consume(claims.user_id)
        return {
            "message": "Usage updated.",
            "limitReached": False,
            "user": to_user_response(result.user),
        }


@router.get("/usage/limits")
async def get_usage_limits(settings: Settings = Depends(get_settings)):
    """Published so the client can enforce the guest limit locally"""
    return {
        "guest": settings.AI_USAGE_LIMIT_GUEST,
        "registered": settings.AI_USAGE_LIMIT_REGISTERED,
    }


@router.post("/progress")
def update_progress(
    payload: ProgressUpdate,
    claims: TokenClaims = Depends(get_token_claims),
    store: UserStore = Depends(get_user_store),
):
    with map_unexpected_errors("progress update", rollback=store.rollback):
        user, changed = ProgressService(store).update(
            claims.user_id, level=payload.level, xp=payload.xp, badges=payload.badges
        )
        message = "Progress updated successfully." if changed else "No progress data to update."
        return {"message": message, "user": to_user_response(user)}
