"""
SQLAlchemy ORM Models — Users, Documents & Chat Messages

SQLAlchemy 2.x mapped classes with full async support. Column types are
dialect-neutral so the same models run on PostgreSQL (asyncpg) and SQLite
(aiosqlite, used for local development and the test suite).

Ownership:
  User      1 ─── * Document       (user_id; no lifecycle ownership)
  Document  1 ─── * ChatMessage    (document_id; ON DELETE CASCADE)

The ORM models do NOT enforce ownership on their own — every service query
filters by (Document.id, Document.user_id).
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class DocumentStatus(str, Enum):
    """
    Maps to documents.status.
    Transitions: PROCESSING → COMPLETED | FAILED (both terminal)
    """
    PROCESSING = "PROCESSING"   # row created, OCR + summary not finished
    COMPLETED  = "COMPLETED"    # extracted_text and ai_summary populated
    FAILED     = "FAILED"       # extraction or infrastructure failure

    @property
    def is_terminal(self) -> bool:
        return self is not DocumentStatus.PROCESSING


class MessageRole(str, Enum):
    USER = "USER"
    AI   = "AI"


# ---------------------------------------------------------------------------
# Declarative base — shared across all models
# ---------------------------------------------------------------------------

class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# User model — users
# ---------------------------------------------------------------------------

class User(Base):
    """
    Identity mirrored from the external auth provider.
    Upserted on upload and on explicit sync; never deleted by this service.
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
        comment="Stable identity from the auth provider",
    )
    email: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    documents: Mapped[list["Document"]] = relationship(back_populates="user")

    def __repr__(self) -> str:
        return f"<User id={self.id!r} email={self.email!r}>"


# ---------------------------------------------------------------------------
# Document model — documents
# ---------------------------------------------------------------------------

class Document(Base):
    """
    A single uploaded file plus its derived artifacts.

    extracted_text and ai_summary stay NULL until the pipeline reaches
    COMPLETED; a FAILED document never has both populated.
    """

    __tablename__ = "documents"
    __table_args__ = (
        CheckConstraint(
            "status IN ('PROCESSING', 'COMPLETED', 'FAILED')",
            name="documents_status_check",
        ),
        Index("idx_documents_user_created", "user_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    title: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Original filename as uploaded",
    )
    file_url: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Public locator returned by the object store",
    )
    user_id: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("users.id"),
        nullable=False,
    )

    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=DocumentStatus.PROCESSING.value,
    )
    extracted_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ai_summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    user: Mapped[User] = relationship(back_populates="documents")
    chat_messages: Mapped[list["ChatMessage"]] = relationship(
        back_populates="document",
        order_by="(ChatMessage.created_at, ChatMessage.id)",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return (
            f"<Document id={self.id} user={self.user_id!r} "
            f"status={self.status} title={self.title!r}>"
        )


# ---------------------------------------------------------------------------
# ChatMessage model — chat_messages
# ---------------------------------------------------------------------------

class ChatMessage(Base):
    """
    One turn in a document's conversation. Append-only.
    The integer id breaks created_at ties, so insert order is the final order.
    """

    __tablename__ = "chat_messages"
    __table_args__ = (
        CheckConstraint("role IN ('USER', 'AI')", name="chat_messages_role_check"),
        Index("idx_chat_messages_document", "document_id", "created_at"),
    )

    # BIGINT on PostgreSQL; SQLite only autoincrements INTEGER primary keys
    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
    )
    role: Mapped[str] = mapped_column(String(8), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )

    document: Mapped[Document] = relationship(back_populates="chat_messages")

    def __repr__(self) -> str:
        return f"<ChatMessage id={self.id} doc={self.document_id} role={self.role}>"
