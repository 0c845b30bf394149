"""
User Service — mirror identities from the external auth provider.

Users are created lazily: the first upload for an unknown id creates the
row, and the web client calls POST /users/sync after sign-in so the email
on file stays current.

The upsert is a single INSERT ... ON CONFLICT statement, so concurrent
first uploads by the same user never race on the primary key.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import HTTPException, status
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from intake.models.documents import User
from intake.schemas.documents import ApiErrors

logger = logging.getLogger(__name__)

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite":     sqlite.insert,
}


def fallback_email(user_id: str) -> str:
    return f"user-{user_id}@example.com"


def normalize_owner_id(owner_id: str | None) -> str:
    """
    Canonical form of a caller-supplied user id (surrounding whitespace
    removed). Every path that reads or writes by owner goes through here.
    """
    owner = (owner_id or "").strip()
    if not owner:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=ApiErrors.missing_user_id().model_dump(),
        )
    return owner


async def upsert_user(
    db: AsyncSession,
    user_id: str,
    email: str,
    *,
    overwrite_email: bool = True,
) -> User:
    """
    Insert the user, or update the email of an existing one.

    Does not commit; the caller owns the transaction.
    With overwrite_email=False an existing email is left untouched
    (used when the upload path only has a placeholder address).
    """
    dialect = db.get_bind().dialect.name
    insert = _INSERT_BY_DIALECT.get(dialect)
    if insert is None:
        raise RuntimeError(f"Unsupported database dialect for user upsert: {dialect}")

    now = datetime.now(timezone.utc)
    stmt = insert(User).values(id=user_id, email=email, created_at=now, updated_at=now)
    if overwrite_email:
        stmt = stmt.on_conflict_do_update(
            index_elements=[User.id],
            set_={"email": stmt.excluded.email, "updated_at": now},
        )
    else:
        stmt = stmt.on_conflict_do_nothing(index_elements=[User.id])

    await db.execute(stmt)
    user = await db.get(User, user_id, populate_existing=True)
    logger.debug("User upserted | user=%s overwrite_email=%s", user_id, overwrite_email)
    return user


class UserService:

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def sync_user(self, user_id: str, email: str) -> User:
        """Idempotent upsert keyed by the provider's user id."""
        user = await upsert_user(self._db, normalize_owner_id(user_id), email)
        await self._db.commit()
        logger.info("User synced | user=%s", user.id)
        return user
