"""
Chat — Pydantic Request/Response Schemas

POST /api/v1/chat/{document_id}   body: {"message": ..., "userId": ...}
GET  /api/v1/chat/{document_id}   → list of messages, oldest first
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from intake.models.documents import MessageRole


class ChatRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    message: str = Field("", description="Question about the document")
    user_id: str = Field("", description="Owner of the document")


class ChatMessageResponse(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    id:          int
    document_id: UUID
    role:        MessageRole
    content:     str
    created_at:  datetime
