"""
Chat Service — one question, one answer, both persisted

Turn flow:
  1. Ownership check (same 404 as the document endpoints)
  2. USER message inserted and committed
  3. AI answer generated from the document's extracted text only
  4. AI message inserted and committed

The USER message is committed before the model is called, so a crash
between steps 2 and 4 leaves an unanswered question in the history.
"""

from __future__ import annotations

import logging
import uuid

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from intake.models.documents import ChatMessage, Document, MessageRole
from intake.schemas.documents import ApiErrors
from intake.services.ai import AIService
from intake.services.ingestion import parse_document_id
from intake.services.users import normalize_owner_id

logger = logging.getLogger(__name__)


class ChatService:

    def __init__(self, db: AsyncSession, ai: AIService) -> None:
        self._db = db
        self._ai = ai

    async def _owned_document(self, document_id: uuid.UUID | str, owner_id: str) -> Document:
        owner_id = normalize_owner_id(owner_id)
        document_id = parse_document_id(document_id)

        result = await self._db.execute(
            select(Document).where(
                Document.id == document_id,
                Document.user_id == owner_id,
            )
        )
        doc = result.scalars().first()
        if doc is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=ApiErrors.document_not_found(document_id).model_dump(),
            )
        return doc

    async def _append(self, document_id: uuid.UUID, role: MessageRole, content: str) -> ChatMessage:
        message = ChatMessage(document_id=document_id, role=role.value, content=content)
        self._db.add(message)
        await self._db.commit()
        return message

    async def send_message(
        self,
        document_id: uuid.UUID | str,
        owner_id: str,
        message: str,
    ) -> ChatMessage:
        """
        Record the question, answer it and record the answer.
        Returns the AI message.
        """
        if not message or not message.strip():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=ApiErrors.empty_message().model_dump(),
            )

        doc = await self._owned_document(document_id, owner_id)
        context = doc.extracted_text or ""

        await self._append(doc.id, MessageRole.USER, message)
        logger.info(
            "Chat question | doc=%s owner=%s chars=%d context_chars=%d",
            doc.id, doc.user_id, len(message), len(context),
        )

        answer = await self._ai.chat(context, message)

        reply = await self._append(doc.id, MessageRole.AI, answer)
        logger.info("Chat answer | doc=%s message=%s chars=%d", doc.id, reply.id, len(answer))
        return reply

    async def get_messages(self, document_id: uuid.UUID | str, owner_id: str) -> list[ChatMessage]:
        """Full history of one owned document, oldest first."""
        doc = await self._owned_document(document_id, owner_id)

        result = await self._db.execute(
            select(ChatMessage)
            .where(ChatMessage.document_id == doc.id)
            .order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc())
        )
        return list(result.scalars().all())
