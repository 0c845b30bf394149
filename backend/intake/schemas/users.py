"""User sync schemas — POST /api/v1/users/sync."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class UserSyncRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    id:    str = Field(..., min_length=1, description="Identity from the auth provider")
    email: str = Field(..., min_length=1)


class UserResponse(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    id:         str
    email:      str
    created_at: datetime
    updated_at: datetime
