"""
Composed FastAPI Dependencies

Combines DB session + object store + extractor + AI service into single
injectable objects. Route handlers import from here — never from
db/session, storage/s3 or services directly.

This is the single wiring point for the entire request context.
Tests replace any of these through app.dependency_overrides.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated, Optional

from fastapi import Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from intake.core.config import settings
from intake.db.session import get_db
from intake.llm.gateway import LLMGateway
from intake.processing.extractor import TextExtractor
from intake.services.ai import AIService
from intake.services.chat import ChatService
from intake.services.ingestion import INLINE, QUEUED, DocumentPipeline, TaskPublisher
from intake.services.users import UserService, normalize_owner_id
from intake.storage.s3 import ObjectStore


# ---------------------------------------------------------------------------
# 1. Process-wide singletons (stateless, safe to share)
# ---------------------------------------------------------------------------

@lru_cache(maxsize=1)
def get_object_store() -> ObjectStore:
    return ObjectStore()


@lru_cache(maxsize=1)
def get_extractor() -> TextExtractor:
    return TextExtractor()


@lru_cache(maxsize=1)
def get_ai_service() -> AIService:
    return AIService(LLMGateway())


def get_task_publisher() -> Optional[TaskPublisher]:
    """None in inline mode — the pipeline never touches the broker."""
    return TaskPublisher() if settings.queued_processing else None


# ---------------------------------------------------------------------------
# 2. Caller identity
#    The web client passes the auth provider's user id explicitly.
# ---------------------------------------------------------------------------

def require_user_id(
    user_id: Annotated[Optional[str], Query(alias="userId")] = None,
) -> str:
    """400 MISSING_USER_ID before any side effect when userId is absent or blank."""
    return normalize_owner_id(user_id)


# ---------------------------------------------------------------------------
# 3. Request-scoped services
# ---------------------------------------------------------------------------

def get_pipeline(
    db:        Annotated[AsyncSession, Depends(get_db)],
    storage:   Annotated[ObjectStore, Depends(get_object_store)],
    extractor: Annotated[TextExtractor, Depends(get_extractor)],
    ai:        Annotated[AIService, Depends(get_ai_service)],
    publisher: Annotated[Optional[TaskPublisher], Depends(get_task_publisher)],
) -> DocumentPipeline:
    mode = QUEUED if publisher is not None else INLINE
    return DocumentPipeline(
        db=db,
        storage=storage,
        extractor=extractor,
        ai=ai,
        publisher=publisher,
        mode=mode,
    )


def get_chat_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    ai: Annotated[AIService, Depends(get_ai_service)],
) -> ChatService:
    return ChatService(db=db, ai=ai)


def get_user_service(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> UserService:
    return UserService(db=db)


# ---------------------------------------------------------------------------
# Type aliases for cleaner route signatures
# ---------------------------------------------------------------------------

OwnerId  = Annotated[str,              Depends(require_user_id)]
Pipeline = Annotated[DocumentPipeline, Depends(get_pipeline)]
Chats    = Annotated[ChatService,      Depends(get_chat_service)]
Users    = Annotated[UserService,      Depends(get_user_service)]
