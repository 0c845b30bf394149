"""
Document Intake — Pydantic Request/Response Schemas

Covers the full lifecycle of POST /api/v1/documents/upload and the
document read/delete endpoints:
  - Upload validation constants (MIME allow-list, size ceiling)
  - Document responses (list, detail with chat history, status poll)
  - All structured error bodies (400, 404, 413, 422, 500, 503)

Design decisions:
  - document id is always server-generated (UUID4); never client-supplied.
  - JSON keys are camelCase (fileUrl, aiSummary, ...) to match the web
    client; Python attributes stay snake_case.
  - status is the pipeline state, separate from the HTTP status code.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from intake.models.documents import DocumentStatus
from intake.schemas.chat import ChatMessageResponse


# ---------------------------------------------------------------------------
# Allowed MIME types — enforced before touching the object store
# ---------------------------------------------------------------------------

ALLOWED_CONTENT_TYPES: frozenset[str] = frozenset(
    {
        "image/jpeg",
        "image/png",
        "application/pdf",
    }
)

# MIME → blob extension used when the upload has no usable filename suffix
EXTENSION_BY_CONTENT_TYPE: dict[str, str] = {
    "image/jpeg":      ".jpg",
    "image/png":       ".png",
    "application/pdf": ".pdf",
}

# 5 MB hard ceiling — enforced before any side effect
MAX_FILE_SIZE_BYTES: int = 5 * 1024 * 1024  # 5 MB


# ---------------------------------------------------------------------------
# Shared model config — snake_case attributes, camelCase JSON
# ---------------------------------------------------------------------------

class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ---------------------------------------------------------------------------
# Document responses
# ---------------------------------------------------------------------------

class DocumentResponse(CamelModel):
    """
    A document as returned by upload and list.
    HTTP 201 after inline processing, 202 when processing was queued.
    """
    id:             UUID           = Field(..., description="Server-generated document UUID")
    title:          str            = Field(..., description="Original filename as uploaded")
    file_url:       str            = Field(..., description="Public locator of the stored blob")
    user_id:        str            = Field(..., description="Owning user")
    status:         DocumentStatus
    extracted_text: Optional[str]  = None
    ai_summary:     Optional[str]  = None
    created_at:     datetime
    updated_at:     datetime


class DocumentDetailResponse(DocumentResponse):
    """GET /documents/{id} — the document plus its chat history, oldest first."""
    chat_messages: list[ChatMessageResponse] = Field(default_factory=list)


class DocumentStatusResponse(CamelModel):
    """Polled by clients to track processing progress."""
    document_id: UUID
    status:      DocumentStatus
    updated_at:  datetime


class DocumentDeletedResponse(CamelModel):
    message:     str = "Document deleted successfully"
    document_id: UUID


# ---------------------------------------------------------------------------
# Structured error bodies
# ---------------------------------------------------------------------------

class ErrorDetail(BaseModel):
    """Single structured error — may appear in a list."""
    field:   str | None = Field(None, description="Request field that caused the error, if applicable")
    message: str
    code:    str         = Field(..., description="Machine-readable error code for client handling")


class ErrorResponse(BaseModel):
    """
    Uniform error envelope for all 4xx/5xx responses.
    Clients should check `error_code` for programmatic handling.
    """
    error_code:    str              = Field(..., description="Stable machine-readable code")
    message:       str              = Field(..., description="Human-readable summary")
    details:       list[ErrorDetail] = Field(default_factory=list)
    request_id:    str | None       = Field(None, description="Trace ID for log correlation")


# ---------------------------------------------------------------------------
# Pre-defined error factories (keeps route handlers thin)
# ---------------------------------------------------------------------------

class ApiErrors:
    """Factories for every documented error case."""

    @staticmethod
    def unsupported_file_type(filename: str, detected_type: str) -> ErrorResponse:
        return ErrorResponse(
            error_code="UNSUPPORTED_FILE_TYPE",
            message=f"File type '{detected_type}' is not supported.",
            details=[
                ErrorDetail(
                    field="file",
                    message=(
                        f"'{filename}' has an unsupported type '{detected_type}'. "
                        f"Allowed: JPG, JPEG, PNG, PDF."
                    ),
                    code="UNSUPPORTED_FILE_TYPE",
                )
            ],
        )

    @staticmethod
    def file_too_large(size_bytes: int) -> ErrorResponse:
        max_mb = MAX_FILE_SIZE_BYTES // (1024 * 1024)
        return ErrorResponse(
            error_code="FILE_TOO_LARGE",
            message=f"Uploaded file exceeds the {max_mb} MB limit.",
            details=[
                ErrorDetail(
                    field="file",
                    message=f"Received {size_bytes:,} bytes; limit is {MAX_FILE_SIZE_BYTES:,} bytes.",
                    code="FILE_TOO_LARGE",
                )
            ],
        )

    @staticmethod
    def missing_file() -> ErrorResponse:
        return ErrorResponse(
            error_code="MISSING_FILE",
            message="File is required",
            details=[
                ErrorDetail(
                    field="file",
                    message="The 'file' multipart field is required and must not be empty.",
                    code="MISSING_FILE",
                )
            ],
        )

    @staticmethod
    def missing_user_id() -> ErrorResponse:
        return ErrorResponse(
            error_code="MISSING_USER_ID",
            message="User ID is required",
            details=[
                ErrorDetail(
                    field="userId",
                    message="Pass the owning user's id.",
                    code="MISSING_USER_ID",
                )
            ],
        )

    @staticmethod
    def empty_message() -> ErrorResponse:
        return ErrorResponse(
            error_code="EMPTY_MESSAGE",
            message="Message is required",
            details=[
                ErrorDetail(
                    field="message",
                    message="The chat message must contain non-whitespace text.",
                    code="EMPTY_MESSAGE",
                )
            ],
        )

    @staticmethod
    def extraction_failed(message: str) -> ErrorResponse:
        return ErrorResponse(
            error_code="EXTRACTION_FAILED",
            message=message,
            details=[],
        )

    @staticmethod
    def storage_error(detail: str | None = None) -> ErrorResponse:
        return ErrorResponse(
            error_code="STORAGE_ERROR",
            message="Failed to store the document. Please retry.",
            details=(
                [ErrorDetail(field=None, message=detail, code="STORAGE_ERROR")]
                if detail
                else []
            ),
        )

    @staticmethod
    def queue_error() -> ErrorResponse:
        return ErrorResponse(
            error_code="QUEUE_ERROR",
            message="Document was stored but could not be queued for processing.",
            details=[
                ErrorDetail(
                    field=None,
                    message="The message broker may be temporarily unavailable. Upload the file again later.",
                    code="QUEUE_ERROR",
                )
            ],
        )

    @staticmethod
    def internal_error(request_id: str | None = None) -> ErrorResponse:
        return ErrorResponse(
            error_code="INTERNAL_ERROR",
            message="An unexpected error occurred. Our team has been notified.",
            details=[],
            request_id=request_id,
        )

    @staticmethod
    def document_not_found(document_id: UUID | str) -> ErrorResponse:
        return ErrorResponse(
            error_code="DOCUMENT_NOT_FOUND",
            message="Document not found",
            details=[
                ErrorDetail(
                    field=None,
                    message=f"Document '{document_id}' does not exist or belongs to another user.",
                    code="DOCUMENT_NOT_FOUND",
                )
            ],
        )


