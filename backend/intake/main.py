"""
Document Intake API: upload scanned images and PDFs, extract their text,
summarise them and chat about them.

Routes live under /api/v1. Every error leaves as a flat ErrorResponse
envelope carrying the request id that the middleware assigned.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from intake.api.v1.chat import router as chat_router
from intake.api.v1.documents import router as documents_router
from intake.api.v1.users import router as users_router
from intake.core.config import settings
from intake.db.session import check_db_health, get_engine, init_models
from intake.schemas.documents import ApiErrors, ErrorDetail, ErrorResponse

logger = logging.getLogger(__name__)

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

API_PREFIX = "/api/v1"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Startup | env=%s processing_mode=%s bucket=%s",
        settings.app_env, settings.processing_mode, settings.s3_bucket,
    )

    db_health = await check_db_health()
    if db_health["status"] != "ok":
        logger.critical("Startup aborted | database=%s", db_health)
        raise RuntimeError(f"DB unavailable: {db_health}")

    if settings.db_create_tables:
        await init_models()

    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY is not set; summaries and chat answers will be placeholders")

    yield

    logger.info("Shutdown | disposing database engine")
    await get_engine().dispose()


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or request.headers.get("X-Request-ID") or str(uuid.uuid4())


def _cors_origins() -> list[str]:
    if settings.app_env == "development":
        return ["*"]
    return [o.strip() for o in settings.cors_origins.split(",") if o.strip()]


def _install_error_handlers(app: FastAPI) -> None:

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Service errors carry an ErrorResponse dict; send it as the body itself."""
        if isinstance(exc.detail, dict) and "error_code" in exc.detail:
            body = ErrorResponse(**exc.detail)
        else:
            body = ErrorResponse(error_code=f"HTTP_{exc.status_code}", message=str(exc.detail))
        body.request_id = body.request_id or _request_id(request)
        return JSONResponse(
            status_code=exc.status_code,
            content=body.model_dump(mode="json"),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        body = ErrorResponse(
            error_code="VALIDATION_ERROR",
            message="Request validation failed.",
            details=[
                ErrorDetail(
                    field=" → ".join(str(loc) for loc in err["loc"]),
                    message=err["msg"],
                    code="VALIDATION_ERROR",
                )
                for err in exc.errors()
            ],
            request_id=_request_id(request),
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=body.model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        request_id = _request_id(request)
        logger.exception("Unhandled exception | path=%s request_id=%s", request.url.path, request_id)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ApiErrors.internal_error(request_id).model_dump(mode="json"),
            headers={"X-Request-ID": request_id},
        )


def _install_operations(app: FastAPI) -> None:

    @app.get("/health", tags=["Operations"], summary="Liveness")
    async def health() -> dict:
        return {"status": "ok", "service": "document-intake-api"}

    @app.get("/ready", tags=["Operations"], summary="Readiness (database reachable)")
    async def readiness() -> JSONResponse:
        db_status = await check_db_health()
        ready = db_status["status"] == "ok"
        return JSONResponse(
            status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "ready" if ready else "not_ready", "database": db_status},
        )


def create_app() -> FastAPI:
    docs_enabled = not settings.is_production
    app = FastAPI(
        title="Document Intake API",
        description=(
            "Upload images and PDFs, extract their text with OCR, "
            "get an AI summary and ask questions about each document."
        ),
        version="1.0.0",
        docs_url="/api/docs" if docs_enabled else None,
        redoc_url="/api/redoc" if docs_enabled else None,
        openapi_url="/api/openapi.json" if docs_enabled else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID", "X-Document-ID", "Location"],
    )

    @app.middleware("http")
    async def request_id_and_logging(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        start = time.perf_counter()

        response = await call_next(request)

        response.headers["X-Request-ID"] = request_id
        logger.info(
            "HTTP %s %s %d %.1fms | user=%s",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - start) * 1000,
            request.query_params.get("userId", "-"),
        )
        return response

    _install_error_handlers(app)

    for router in (documents_router, chat_router, users_router):
        app.include_router(router, prefix=API_PREFIX)

    _install_operations(app)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "intake.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.app_env == "development",
        log_level="debug" if settings.debug else "info",
    )
