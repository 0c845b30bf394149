"""
Chat API Router
/api/v1/chat/{document_id}

POST — ask one question about a document; returns the AI message
GET  — full conversation for the document, oldest first
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, status

from intake.api.dependencies import Chats, OwnerId
from intake.schemas.chat import ChatMessageResponse, ChatRequest
from intake.schemas.documents import ErrorResponse

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/chat",
    tags=["Chat"],
)


@router.post(
    "/{document_id}",
    response_model=ChatMessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Ask a question about a document",
    responses={
        400: {"model": ErrorResponse, "description": "Missing userId or empty message"},
        404: {"model": ErrorResponse, "description": "Document not found for this user"},
    },
)
async def send_message(
    document_id: str,
    payload:     ChatRequest,
    chats:       Chats,
) -> ChatMessageResponse:
    """
    The question and the answer are both stored. Only the document's
    extracted text is sent as context; earlier turns are not.
    """
    reply = await chats.send_message(document_id, payload.user_id, payload.message)
    return ChatMessageResponse.model_validate(reply)


@router.get(
    "/{document_id}",
    response_model=list[ChatMessageResponse],
    summary="Conversation history for a document",
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
async def get_messages(
    document_id: str,
    owner_id:    OwnerId,
    chats:       Chats,
) -> list[ChatMessageResponse]:
    messages = await chats.get_messages(document_id, owner_id)
    return [ChatMessageResponse.model_validate(m) for m in messages]
