from fastapi import APIRouter, Depends

from tutor_api.api.dependencies import get_user_store, require_admin
from tutor_api.core.errors import map_unexpected_errors
from tutor_api.models.user import User
from tutor_api.schemas.user import to_user_response
from tutor_api.storage.user_store import UserStore

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/users")
async def list_users(
    admin: User = Depends(require_admin),
    store: UserStore = Depends(get_user_store),
):
    """List every user without credentials or reset state"""
    with map_unexpected_errors("admin user listing", rollback=store.rollback):
        users = store.list_users()
        return {"success": True, "users": [to_user_response(user) for user in users]}
