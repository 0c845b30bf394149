"""
Document API Router
/api/v1/documents

Implements:
  - Multipart upload with validation before any side effect
  - Inline processing (201) or queued processing (202)
  - Owner-scoped list / detail / status / delete
  - Structured error responses for all 4xx/5xx cases

Request lifecycle (upload):
  ┌─────────────────────────────────────────────────────────┐
  │ 1. Content-Length guard (413 before reading the body)   │
  │ 2. File + userId + MIME + size validation               │
  │ 3. Object store upload under uploads/                   │
  │ 4. DB insert (status=PROCESSING, committed)             │
  │ 5a. inline: OCR → summary → COMPLETED → 201             │
  │ 5b. queued: Celery task published → 202                 │
  └─────────────────────────────────────────────────────────┘

Identity:
  userId is supplied by the web client (form field on upload, query
  parameter elsewhere). A document owned by a different user is
  reported exactly like a missing one (404).
"""

from __future__ import annotations

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, File, Form, HTTPException, Request, UploadFile, status
from fastapi.responses import JSONResponse

from intake.api.dependencies import OwnerId, Pipeline
from intake.processing.extractor import ExtractionError
from intake.schemas.documents import (
    MAX_FILE_SIZE_BYTES,
    ApiErrors,
    DocumentDeletedResponse,
    DocumentDetailResponse,
    DocumentResponse,
    DocumentStatus,
    DocumentStatusResponse,
    ErrorResponse,
)
from intake.services.ingestion import QUEUED

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/documents",
    tags=["Documents"],
)

# Multipart framing overhead allowed on top of the file itself
_FORM_OVERHEAD_BYTES = 4096


# ---------------------------------------------------------------------------
# POST /documents/upload
# ---------------------------------------------------------------------------

@router.post(
    "/upload",
    response_model=DocumentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload a document for OCR and summarisation",
    description=(
        "Accepts JPG, JPEG, PNG or PDF files up to 5 MB. "
        "Inline mode returns 201 with the processed document; "
        "queued mode returns 202 and the client polls /documents/{id}/status."
    ),
    responses={
        201: {"model": DocumentResponse, "description": "File stored and processed"},
        202: {"model": DocumentResponse, "description": "File stored, processing queued"},
        400: {"model": ErrorResponse, "description": "Missing file / userId or unsupported type"},
        413: {"model": ErrorResponse, "description": "File exceeds 5 MB limit"},
        422: {"model": ErrorResponse, "description": "Text could not be extracted"},
        500: {"model": ErrorResponse, "description": "Object store or internal error"},
        503: {"model": ErrorResponse, "description": "Message broker unavailable"},
    },
)
async def upload_document(
    request:  Request,
    pipeline: Pipeline,
    file:     Annotated[Optional[UploadFile], File(description="JPG, PNG or PDF — max 5 MB")] = None,
    user_id:  Annotated[Optional[str], Form(alias="userId")] = None,
    email:    Annotated[Optional[str], Form()] = None,
) -> JSONResponse:
    # Guard: reject oversized requests before reading body
    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit() and int(content_length) > MAX_FILE_SIZE_BYTES + _FORM_OVERHEAD_BYTES:
        return JSONResponse(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            content=ApiErrors.file_too_large(int(content_length)).model_dump(mode="json"),
        )

    if file is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=ApiErrors.missing_file().model_dump(),
        )

    file_bytes = await file.read()

    try:
        doc = await pipeline.ingest(
            file_bytes=file_bytes,
            mime_type=file.content_type or "",
            original_filename=file.filename or "",
            owner_id=user_id,
            owner_email=email,
        )
    except ExtractionError as exc:
        headers = {"X-Document-ID": str(exc.document_id)} if exc.document_id else None
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=ApiErrors.extraction_failed(exc.message).model_dump(mode="json"),
            headers=headers,
        )

    body = DocumentResponse.model_validate(doc)
    status_code = (
        status.HTTP_202_ACCEPTED if pipeline.mode == QUEUED else status.HTTP_201_CREATED
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", by_alias=True),
        headers={
            "X-Document-ID": str(doc.id),
            "Location":      f"/api/v1/documents/{doc.id}",
        },
    )


# ---------------------------------------------------------------------------
# GET /documents  — list (owner-scoped, newest first)
# ---------------------------------------------------------------------------

@router.get(
    "",
    response_model=list[DocumentResponse],
    summary="List the caller's documents",
    responses={400: {"model": ErrorResponse}},
)
async def list_documents(owner_id: OwnerId, pipeline: Pipeline) -> list[DocumentResponse]:
    docs = await pipeline.list_documents(owner_id)
    return [DocumentResponse.model_validate(d) for d in docs]


# ---------------------------------------------------------------------------
# GET /documents/{document_id}  — detail with chat history
# ---------------------------------------------------------------------------

@router.get(
    "/{document_id}",
    response_model=DocumentDetailResponse,
    summary="Get one document with its chat history",
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
async def get_document(
    document_id: str,
    owner_id:    OwnerId,
    pipeline:    Pipeline,
) -> DocumentDetailResponse:
    doc = await pipeline.get(document_id, owner_id)
    return DocumentDetailResponse.model_validate(doc)


# ---------------------------------------------------------------------------
# GET /documents/{document_id}/status  — polling
# ---------------------------------------------------------------------------

@router.get(
    "/{document_id}/status",
    response_model=DocumentStatusResponse,
    summary="Poll processing status",
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
async def get_document_status(
    document_id: str,
    owner_id:    OwnerId,
    pipeline:    Pipeline,
) -> DocumentStatusResponse:
    doc = await pipeline.get(document_id, owner_id, with_messages=False)
    return DocumentStatusResponse(
        document_id=doc.id,
        status=DocumentStatus(doc.status),
        updated_at=doc.updated_at,
    )


# ---------------------------------------------------------------------------
# DELETE /documents/{document_id}
# ---------------------------------------------------------------------------

@router.delete(
    "/{document_id}",
    response_model=DocumentDeletedResponse,
    summary="Delete a document, its chat history and its stored file",
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
async def delete_document(
    document_id: str,
    owner_id:    OwnerId,
    pipeline:    Pipeline,
) -> DocumentDeletedResponse:
    removed_id = await pipeline.remove(document_id, owner_id)
    return DocumentDeletedResponse(document_id=removed_id)
