"""
Document Ingestion Service

Orchestrates the upload pipeline:
  1. Validate owner, size and declared MIME type (before any side effect)
  2. Upload the bytes to the object store under uploads/<millis>-<rand>.<ext>
  3. Upsert the owning user, insert the document row (status=PROCESSING)
     and commit, so status polls can see the row while OCR runs
  4. Inline mode:  extract text → summarise → one COMPLETED update
     Queued mode:  publish a Celery task and return the PROCESSING row
  5. Any failure during processing marks the row FAILED and re-raises

Invariants enforced here:
  - Every read, update and delete filters by (document id, owner id);
    a document owned by someone else is indistinguishable from a
    missing one.
  - PROCESSING → COMPLETED | FAILED only; terminal rows are never
    reprocessed.
  - extracted_text and ai_summary are written in the same update that
    sets COMPLETED; a FAILED row never gets them.
  - Removing a document deletes its chat messages in the same transaction.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from intake.models.documents import ChatMessage, Document, DocumentStatus
from intake.processing.extractor import ExtractionError, TextExtractor
from intake.schemas.documents import (
    ALLOWED_CONTENT_TYPES,
    EXTENSION_BY_CONTENT_TYPE,
    MAX_FILE_SIZE_BYTES,
    ApiErrors,
)
from intake.services.ai import AIService
from intake.services.users import fallback_email, normalize_owner_id, upsert_user
from intake.storage.s3 import ObjectStore, build_object_path

logger = logging.getLogger(__name__)

INLINE = "inline"
QUEUED = "queued"


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def parse_document_id(document_id: uuid.UUID | str) -> uuid.UUID:
    """
    Coerce a path value to a UUID. Anything that is not a UUID cannot name
    a document, so it gets the same 404 as an unknown id.
    """
    if isinstance(document_id, uuid.UUID):
        return document_id
    try:
        return uuid.UUID(str(document_id).strip())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=ApiErrors.document_not_found(document_id).model_dump(),
        )


def validate_upload(
    file_bytes: bytes | None,
    mime_type: str | None,
    original_filename: str,
    owner_id: str | None,
) -> str:
    """
    Reject an upload before anything is written anywhere.
    Raises HTTPException with a structured ErrorResponse body.
    Returns the normalised owner id.
    """
    owner = normalize_owner_id(owner_id)

    if not file_bytes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=ApiErrors.missing_file().model_dump(),
        )

    if len(file_bytes) > MAX_FILE_SIZE_BYTES:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=ApiErrors.file_too_large(len(file_bytes)).model_dump(),
        )

    if mime_type not in ALLOWED_CONTENT_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=ApiErrors.unsupported_file_type(
                original_filename or "upload", mime_type or "unknown"
            ).model_dump(),
        )

    return owner


# ---------------------------------------------------------------------------
# Core pipeline
# ---------------------------------------------------------------------------

class DocumentPipeline:
    """
    Stateless service object — one instance per request (or per task).
    All dependencies are injected (testable, no hidden globals).
    """

    def __init__(
        self,
        db:        AsyncSession,
        storage:   ObjectStore,
        extractor: TextExtractor,
        ai:        AIService,
        publisher: Optional["TaskPublisher"] = None,
        mode:      str = INLINE,
    ) -> None:
        if mode not in (INLINE, QUEUED):
            raise ValueError(f"Unknown processing mode: {mode!r}")
        if mode == QUEUED and publisher is None:
            raise ValueError("Queued mode requires a TaskPublisher")

        self._db        = db
        self._storage   = storage
        self._extractor = extractor
        self._ai        = ai
        self._publisher = publisher
        self._mode      = mode

    @property
    def mode(self) -> str:
        return self._mode

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    async def ingest(
        self,
        file_bytes:        bytes,
        mime_type:         str,
        original_filename: str,
        owner_id:          str,
        owner_email:       str | None = None,
    ) -> Document:
        """
        Store the file, create the document and (inline mode) process it.

        Raises:
            HTTPException: validation (400/413), object store (500) and
                broker (503) failures.
            ExtractionError: inline processing could not read the file; the
                row is already FAILED and exc.document_id identifies it.
        """
        owner_id = validate_upload(file_bytes, mime_type, original_filename, owner_id)

        email = (owner_email or "").strip()
        has_real_email = bool(email)
        if not has_real_email:
            email = fallback_email(owner_id)

        logger.info(
            "Ingest start | owner=%s file=%s size=%d mime=%s mode=%s",
            owner_id, original_filename, len(file_bytes), mime_type, self._mode,
        )

        # ---- Step 1: Upload to object store ---------------------------
        storage_path = build_object_path(
            original_filename, EXTENSION_BY_CONTENT_TYPE.get(mime_type, ""),
        )
        try:
            file_url = await self._storage.put_object(storage_path, file_bytes, mime_type)
        except Exception as exc:
            logger.exception("Object store upload failed | owner=%s path=%s", owner_id, storage_path)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=ApiErrors.storage_error(str(exc)).model_dump(),
            )

        # ---- Step 2: Persist user + document (PROCESSING) -------------
        await upsert_user(self._db, owner_id, email, overwrite_email=has_real_email)

        doc = Document(
            id=uuid.uuid4(),
            title=original_filename or storage_path.rsplit("/", 1)[-1],
            file_url=file_url,
            user_id=owner_id,
            status=DocumentStatus.PROCESSING.value,
        )
        self._db.add(doc)
        await self._db.commit()

        logger.info("Document created | doc=%s owner=%s url=%s", doc.id, owner_id, file_url)

        # ---- Step 3: Process or hand off -------------------------------
        if self._mode == QUEUED:
            await self._enqueue(doc, storage_path)
            return doc

        return await self._process_document(doc, file_bytes)

    async def _enqueue(self, doc: Document, storage_path: str) -> None:
        if self._publisher is None:
            raise RuntimeError("Queued mode requires a TaskPublisher")
        try:
            await self._publisher.publish_processing_task(
                document_id=doc.id,
                owner_id=doc.user_id,
                storage_path=storage_path,
            )
        except Exception as exc:
            logger.error(
                "Failed to publish processing task | doc=%s error=%s", doc.id, exc,
            )
            await self.mark_failed(doc.id)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=ApiErrors.queue_error().model_dump(),
            )

    # ------------------------------------------------------------------
    # Processing (inline, or from the worker)
    # ------------------------------------------------------------------

    async def process(self, document_id: uuid.UUID, file_bytes: bytes) -> Document | None:
        """
        Run extraction + summary for an existing PROCESSING document.
        Returns None if the document no longer exists.
        """
        doc = await self._db.get(Document, document_id)
        if doc is None:
            logger.warning("Process skipped | doc=%s reason=not_found", document_id)
            return None
        return await self._process_document(doc, file_bytes)

    async def _process_document(self, doc: Document, file_bytes: bytes) -> Document:
        if doc.status != DocumentStatus.PROCESSING.value:
            logger.info("Process skipped | doc=%s status=%s", doc.id, doc.status)
            return doc

        document_id = doc.id
        try:
            text = await self._extractor.extract(file_bytes)
            summary = await self._ai.summarize(text)

            doc.extracted_text = text
            doc.ai_summary = summary
            doc.status = DocumentStatus.COMPLETED.value
            await self._db.commit()
        except Exception as exc:
            logger.error("Processing failed | doc=%s error=%s", document_id, exc)
            await self.mark_failed(document_id)
            if isinstance(exc, ExtractionError):
                exc.document_id = document_id
            raise

        logger.info(
            "Processing complete | doc=%s text_chars=%d summary_chars=%d",
            document_id, len(text), len(summary),
        )
        return doc

    async def mark_failed(self, document_id: uuid.UUID) -> None:
        """
        PROCESSING → FAILED. Discards any pending changes first, so the
        FAILED row never carries half-written derived fields.
        """
        await self._db.rollback()
        await self._db.execute(
            update(Document)
            .where(
                Document.id == document_id,
                Document.status == DocumentStatus.PROCESSING.value,
            )
            .values(
                status=DocumentStatus.FAILED.value,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        await self._db.commit()
        logger.warning("Document marked FAILED | doc=%s", document_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(
        self,
        document_id: uuid.UUID | str,
        owner_id: str,
        *,
        with_messages: bool = True,
    ) -> Document:
        """Fetch one owned document; 404 if absent, malformed or owned by someone else."""
        owner_id = normalize_owner_id(owner_id)
        document_id = parse_document_id(document_id)
        stmt = select(Document).where(
            Document.id == document_id,
            Document.user_id == owner_id,
        )
        if with_messages:
            stmt = stmt.options(selectinload(Document.chat_messages))

        result = await self._db.execute(stmt)
        doc = result.scalars().first()
        if doc is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=ApiErrors.document_not_found(document_id).model_dump(),
            )
        return doc

    async def list_documents(self, owner_id: str) -> list[Document]:
        """All documents of one owner, newest first."""
        owner_id = normalize_owner_id(owner_id)
        result = await self._db.execute(
            select(Document)
            .where(Document.user_id == owner_id)
            .order_by(Document.created_at.desc())
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def remove(self, document_id: uuid.UUID | str, owner_id: str) -> uuid.UUID:
        """
        Delete an owned document, its chat history and (best effort) its blob.
        The blob delete never blocks the row delete.
        Returns the id of the removed document.
        """
        doc = await self.get(document_id, owner_id, with_messages=False)
        document_id, owner_id, file_url = doc.id, doc.user_id, doc.file_url

        try:
            await self._storage.delete_by_url(file_url)
        except Exception as exc:
            logger.warning("Blob delete failed | doc=%s error=%s", document_id, exc)

        try:
            await self._db.execute(
                delete(ChatMessage).where(ChatMessage.document_id == document_id)
            )
            await self._db.execute(
                delete(Document).where(
                    Document.id == document_id,
                    Document.user_id == owner_id,
                )
            )
            await self._db.commit()
        except Exception:
            await self._db.rollback()
            raise

        logger.info("Document removed | doc=%s owner=%s", document_id, owner_id)
        return document_id


# ---------------------------------------------------------------------------
# Task publisher — thin abstraction over Celery .apply_async()
# Injected into DocumentPipeline so it can be mocked in tests.
# ---------------------------------------------------------------------------

class TaskPublisher:
    """
    Sends the document processing task to the Celery broker.
    Import is deferred so the broker connection is not required at module load time.
    """

    async def publish_processing_task(
        self,
        document_id:  uuid.UUID,
        owner_id:     str,
        storage_path: str,
    ) -> None:
        """
        Dispatch process_document to the Celery worker.
        Runs in a thread executor to avoid blocking the async event loop.
        """
        import asyncio
        from intake.workers.tasks import process_document

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            None,
            lambda: process_document.apply_async(
                kwargs={
                    "document_id":  str(document_id),
                    "owner_id":     owner_id,
                    "storage_path": storage_path,
                },
            ),
        )
        logger.info(
            "Processing task published | doc=%s owner=%s path=%s",
            document_id, owner_id, storage_path,
        )
