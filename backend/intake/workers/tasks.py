"""
Celery Tasks — Document Processing

Task: process_document
  1. Download the uploaded file from the object store
  2. Run DocumentPipeline.process() on an independent DB session:
     extract text → summarise → COMPLETED (or FAILED)
  3. Return a small status dict (stored in the result backend)

Failure handling:
  - Document missing (deleted before the worker ran) → {"status": "not_found"}
  - Blob missing → document marked FAILED, no retry
  - Transient download error → retried; FAILED once retries are exhausted
  - Extraction error → document already FAILED by the pipeline, no retry
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import uuid
from typing import Any

from celery import Task

from intake.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Async task helper
# Run async coroutines inside Celery's synchronous task context.
# ---------------------------------------------------------------------------

def run_async(coro):
    """Execute an async coroutine from a synchronous Celery task."""
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    # Called from inside a running loop (eager mode under an async caller)
    with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
        return pool.submit(asyncio.run, coro).result()


class _RetryDownload(Exception):
    """Internal signal: the download failed but may succeed on retry."""

    def __init__(self, cause: Exception) -> None:
        super().__init__(str(cause))
        self.cause = cause


# ---------------------------------------------------------------------------
# Main processing task
# ---------------------------------------------------------------------------

@celery_app.task(
    name="intake.workers.tasks.process_document",
    bind=True,
    max_retries=3,
    default_retry_delay=30,
    acks_late=True,
    reject_on_worker_lost=True,
    soft_time_limit=270,
    time_limit=330,
)
def process_document(
    self: Task,
    *,
    document_id:  str,
    owner_id:     str,
    storage_path: str,
) -> dict[str, Any]:
    """
    Queued counterpart of the inline upload path.
    Orchestrates: download → extract → summarise → persist.
    """
    final_attempt = self.request.retries >= self.max_retries
    try:
        return run_async(
            _process_document_async(
                document_id=uuid.UUID(document_id),
                owner_id=owner_id,
                storage_path=storage_path,
                final_attempt=final_attempt,
            )
        )
    except _RetryDownload as exc:
        raise self.retry(exc=exc.cause)


async def _process_document_async(
    document_id:   uuid.UUID,
    owner_id:      str,
    storage_path:  str,
    final_attempt: bool = False,
) -> dict[str, Any]:
    """Async implementation of the processing task."""
    from intake.db.session import build_worker_engine, session_scope
    from intake.llm.gateway import LLMGateway
    from intake.processing.extractor import ExtractionError, TextExtractor
    from intake.services.ai import AIService
    from intake.services.ingestion import INLINE, DocumentPipeline
    from intake.storage.s3 import ObjectNotFoundError, ObjectStore

    logger.info("Processing | doc=%s owner=%s path=%s", document_id, owner_id, storage_path)

    storage = ObjectStore()
    engine = build_worker_engine()
    try:
        async with session_scope(engine) as db:
            pipeline = DocumentPipeline(
                db=db,
                storage=storage,
                extractor=TextExtractor(),
                ai=AIService(LLMGateway()),
                mode=INLINE,
            )

            # --- Phase 1: Download from object store ---------------------
            try:
                file_bytes = await storage.get_object(storage_path)
            except ObjectNotFoundError:
                logger.error("Blob missing | doc=%s path=%s", document_id, storage_path)
                await pipeline.mark_failed(document_id)
                return {"status": "FAILED", "document_id": str(document_id), "reason": "blob_missing"}
            except Exception as exc:
                logger.exception("Download failed | doc=%s", document_id)
                if final_attempt:
                    await pipeline.mark_failed(document_id)
                    return {"status": "FAILED", "document_id": str(document_id), "reason": "download_error"}
                raise _RetryDownload(exc) from exc

            # --- Phase 2: Extract + summarise -----------------------------
            try:
                doc = await pipeline.process(document_id, file_bytes)
            except ExtractionError:
                return {"status": "FAILED", "document_id": str(document_id), "reason": "extraction_error"}

            if doc is None:
                return {"status": "not_found", "document_id": str(document_id)}

            logger.info("Processing complete | doc=%s status=%s", document_id, doc.status)
            return {"status": doc.status, "document_id": str(document_id)}
    finally:
        await engine.dispose()
