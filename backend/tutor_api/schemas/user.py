from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_serializer
from pydantic.alias_generators import to_camel

from tutor_api.utils.time_utils import as_utc


class UserResponse(BaseModel):
    """
    Client-facing user record.

    Deliberately has no credential or reset-token fields, so serializing a
    User through it can never leak them.
    """
    id: str
    name: str
    email: str
    role: str
    level: int
    xp: int
    badges: list[str]
    ai_usage_count: int
    ai_usage_last_reset: Optional[datetime]
    created_at: datetime
    updated_at: Optional[datetime]

    model_config = ConfigDict(
        from_attributes=True, alias_generator=to_camel, populate_by_name=True
    )

    @field_serializer("ai_usage_last_reset", "created_at", "updated_at")
    def serialize_timestamp(self, value: Optional[datetime], _info):
        return as_utc(value).isoformat() if value else None


def to_user_response(user) -> dict:
    """Serialize a User model into the camelCase dict sent to clients"""
    return UserResponse.model_validate(user).model_dump(by_alias=True)
