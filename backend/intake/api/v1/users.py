"""
Users API Router
POST /api/v1/users/sync — called by the web client after sign-in.
"""

from __future__ import annotations

from fastapi import APIRouter

from intake.api.dependencies import Users
from intake.schemas.documents import ErrorResponse
from intake.schemas.users import UserResponse, UserSyncRequest

router = APIRouter(
    prefix="/users",
    tags=["Users"],
)


@router.post(
    "/sync",
    response_model=UserResponse,
    summary="Create or update the caller's user record",
    responses={422: {"model": ErrorResponse}},
)
async def sync_user(payload: UserSyncRequest, users: Users) -> UserResponse:
    user = await users.sync_user(payload.id, payload.email)
    return UserResponse.model_validate(user)
