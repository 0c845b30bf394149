"""
Root conftest.py — Shared fixtures for ALL tests (unit + integration)

Fixture hierarchy (all function-scoped):
  db_engine → session_factory → db_session
  mock_storage, fake_extractor, fake_ai, mock_publisher
  pipeline        : DocumentPipeline over db_session + the fakes
  app_with_overrides → async_client

Environment strategy:
  - Every test gets its own SQLite file (aiosqlite) with the full schema;
    no PostgreSQL needed. Foreign keys are enforced.
  - S3 is a MagicMock(spec=ObjectStore) — no AWS calls.
  - OCR and the LLM are replaced by AsyncMocks returning fixed text.
  - Celery is never contacted (inline processing, mocked publisher).

How to run:
  pytest                                  # all tests
  pytest -m unit                          # unit tests only
  pytest -m integration                   # API tests through the ASGI stack
  pytest backend/tests/unit/test_ingestion.py
"""

from __future__ import annotations

import os
import uuid
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import AsyncClient

# ─────────────────────────────────────────────────────────────────────────────
# Patch settings BEFORE any app imports so modules read test config
# ─────────────────────────────────────────────────────────────────────────────

os.environ.setdefault("DATABASE_URL",          "sqlite+aiosqlite:///./intake-test.db")
os.environ.setdefault("DB_CREATE_TABLES",      "false")
os.environ.setdefault("AWS_REGION",            "us-east-1")
os.environ.setdefault("AWS_ACCESS_KEY_ID",     "test")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "test")
os.environ.setdefault("S3_BUCKET",             "test-bucket")
os.environ.setdefault("S3_PUBLIC_BASE_URL",    "https://storage.test/test-bucket")
os.environ.setdefault("OPENAI_API_KEY",        "")
os.environ.setdefault("PROCESSING_MODE",       "inline")
os.environ.setdefault("CELERY_BROKER_URL",     "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")
os.environ.setdefault("APP_ENV",               "development")
os.environ.setdefault("DEBUG",                 "true")

from sqlalchemy import event, select  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool  # noqa: E402

TEST_PUBLIC_BASE = "https://storage.test/test-bucket"

EXTRACTED_TEXT = "ACME Energy\nInvoice 2024-117\nTotal due: R$ 150,00\nDue date: 10/05/2024"
SUMMARY_TEXT = "Electricity invoice from ACME Energy. Total due is R$ 150,00, payable by 10/05/2024."
CHAT_ANSWER = "The total due is **R$ 150,00**, payable by **10/05/2024**."


# ─────────────────────────────────────────────────────────────────────────────
# Identity fixtures
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def owner_id() -> str:
    """Auth-provider style user id of the document owner."""
    return "user_2aBcDeFgHiJkLmNoP"


@pytest.fixture
def other_owner_id() -> str:
    return "user_9zYxWvUtSrQpOnMlK"


# ─────────────────────────────────────────────────────────────────────────────
# Sample file bytes
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def sample_pdf_bytes() -> bytes:
    """Minimal PDF — starts with the %PDF magic bytes."""
    return (
        b"%PDF-1.4\n"
        b"1 0 obj\n<< /Type /Catalog /Pages 2 0 R >>\nendobj\n"
        b"2 0 obj\n<< /Type /Pages /Kids [3 0 R] /Count 1 >>\nendobj\n"
        b"3 0 obj\n<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] >>\nendobj\n"
        b"trailer\n<< /Size 4 /Root 1 0 R >>\n%%EOF"
    )


@pytest.fixture
def sample_png_bytes() -> bytes:
    """PNG signature followed by filler — enough for MIME-level tests."""
    return b"\x89PNG\r\n\x1a\n" + b"\x00" * 256


@pytest.fixture
def sample_txt_bytes() -> bytes:
    return b"Plain text is not an accepted upload type.\n"


@pytest.fixture
def oversized_file_bytes() -> bytes:
    """One byte over the 5 MB ceiling."""
    return b"%PDF" + b"x" * (5 * 1024 * 1024 - 3)


# ─────────────────────────────────────────────────────────────────────────────
# Database — one SQLite file per test
# ─────────────────────────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def db_engine(tmp_path):
    from intake.models.documents import Base

    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'intake.db'}",
        poolclass=NullPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def fetch_document(session_factory):
    """
    Read a document through a fresh session, so assertions see what is
    committed rather than what the code under test holds in memory.
    """
    async def _fetch(document_id):
        from intake.models.documents import Document

        async with session_factory() as session:
            result = await session.execute(select(Document).where(Document.id == document_id))
            return result.scalars().first()

    return _fetch


@pytest.fixture
def count_rows(session_factory):
    async def _count(model) -> int:
        from sqlalchemy import func

        async with session_factory() as session:
            result = await session.execute(select(func.count()).select_from(model))
            return result.scalar_one()

    return _count


@pytest.fixture
def seed_document(session_factory):
    """
    Factory: insert a user + document directly, bypassing the pipeline.

    Usage:
        doc_id = await seed_document(owner_id, status="COMPLETED", text="...")
    """
    async def _seed(
        owner: str,
        *,
        status: str = "COMPLETED",
        text: str | None = EXTRACTED_TEXT,
        summary: str | None = SUMMARY_TEXT,
        title: str = "invoice.pdf",
        age_minutes: int = 0,
    ) -> uuid.UUID:
        from intake.models.documents import Document, User

        async with session_factory() as session:
            if await session.get(User, owner) is None:
                session.add(User(id=owner, email=f"{owner}@mail.test"))
                await session.flush()
            created = datetime.now(timezone.utc) - timedelta(minutes=age_minutes)
            doc = Document(
                id=uuid.uuid4(),
                title=title,
                file_url=f"{TEST_PUBLIC_BASE}/uploads/1700000000000-42.pdf",
                user_id=owner,
                status=status,
                extracted_text=text,
                ai_summary=summary,
                created_at=created,
                updated_at=created,
            )
            session.add(doc)
            await session.commit()
            return doc.id

    return _seed


# ─────────────────────────────────────────────────────────────────────────────
# Mock object store
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def mock_storage():
    """
    Fully mocked ObjectStore.
    All I/O methods are AsyncMock — no real AWS calls made.
    """
    from intake.storage.s3 import ObjectStore

    storage = MagicMock(spec=ObjectStore)

    async def _put_object(path, body, content_type):
        return f"{TEST_PUBLIC_BASE}/{path}"

    storage.put_object    = AsyncMock(side_effect=_put_object)
    storage.get_object    = AsyncMock(return_value=b"%PDF-1.4 stored")
    storage.delete_object = AsyncMock(return_value=None)
    storage.delete_by_url = AsyncMock(return_value=True)
    return storage


# ─────────────────────────────────────────────────────────────────────────────
# Fake extractor / AI / publisher
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def fake_extractor():
    from intake.processing.extractor import TextExtractor

    extractor = MagicMock(spec=TextExtractor)
    extractor.extract = AsyncMock(return_value=EXTRACTED_TEXT)
    return extractor


@pytest.fixture
def fake_ai():
    from intake.services.ai import AIService

    ai = MagicMock(spec=AIService)
    ai.summarize = AsyncMock(return_value=SUMMARY_TEXT)
    ai.chat      = AsyncMock(return_value=CHAT_ANSWER)
    return ai


@pytest.fixture
def mock_publisher():
    """Mocked TaskPublisher — records calls without touching Celery/broker."""
    from intake.services.ingestion import TaskPublisher

    publisher = MagicMock(spec=TaskPublisher)
    publisher.publish_processing_task = AsyncMock(return_value=None)
    return publisher


@pytest.fixture
def pipeline(db_session, mock_storage, fake_extractor, fake_ai):
    """Inline-mode DocumentPipeline with every external dependency faked."""
    from intake.services.ingestion import DocumentPipeline

    return DocumentPipeline(
        db=db_session,
        storage=mock_storage,
        extractor=fake_extractor,
        ai=fake_ai,
    )


# ─────────────────────────────────────────────────────────────────────────────
# FastAPI test client with dependency overrides
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def app_with_overrides(session_factory, mock_storage, fake_extractor, fake_ai):
    """
    FastAPI app with ALL external dependencies overridden:
      - get_db             → session on the per-test SQLite file
      - get_object_store   → mock_storage (no S3)
      - get_extractor      → fake_extractor (no OCR engines)
      - get_ai_service     → fake_ai (no LLM)
      - get_task_publisher → None (inline mode)
    """
    from intake.api.dependencies import (
        get_ai_service,
        get_extractor,
        get_object_store,
        get_task_publisher,
    )
    from intake.db.session import get_db
    from intake.main import app

    async def _test_db():
        async with session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db]             = _test_db
    app.dependency_overrides[get_object_store]   = lambda: mock_storage
    app.dependency_overrides[get_extractor]      = lambda: fake_extractor
    app.dependency_overrides[get_ai_service]     = lambda: fake_ai
    app.dependency_overrides[get_task_publisher] = lambda: None

    yield app

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def async_client(app_with_overrides) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client using the overridden app.

    httpx >= 0.28 removed the 'app=' shortcut; use ASGITransport explicitly.
    """
    from httpx import ASGITransport
    transport = ASGITransport(app=app_with_overrides)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
