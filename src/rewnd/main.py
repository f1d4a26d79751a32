"""FastAPI application entry point."""

from __future__ import annotations

import logging
import time
import traceback
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from rewnd.config import Settings
    from rewnd.storage.protocols import AuthVerifier, ObjectStorage, PhotoDatabase

import httpx
import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from rewnd.api.middleware import log_requests
from rewnd.api.routes import API_VERSION, router, service_router
from rewnd.api.schemas import ErrorResponse
from rewnd.config import get_settings
from rewnd.errors import AuthError, RewndError
from rewnd.imaging.pool import ProcessingPool
from rewnd.storage.publisher import PhotoPublisher
from rewnd.storage.supabase import build_supabase_collaborators

logger = logging.getLogger(__name__)

GENERIC_SERVER_MESSAGE = "Failed to process and upload photo"
HTTP_TIMEOUT_SECONDS = 30.0


def init_app_state(
    app: FastAPI,
    settings: Settings,
    *,
    storage: ObjectStorage,
    database: PhotoDatabase,
    auth: AuthVerifier,
) -> None:
    """Attach settings, the processing pool and the collaborators to the app."""
    app.state.settings = settings
    app.state.processing_config = settings.processing_config()
    app.state.processing_pool = ProcessingPool(settings)
    app.state.auth = auth
    app.state.publisher = PhotoPublisher(storage, database, settings.storage_bucket)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize on startup, clean up on shutdown."""
    settings = get_settings()

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting REWND photo service (environment=%s, max_concurrent=%s, quality=%s, max=%sx%s, thumbnail=%s)",
        settings.environment,
        settings.max_concurrent,
        settings.compression_quality,
        settings.max_image_width,
        settings.max_image_height,
        settings.thumbnail_width,
    )

    http_client = httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS)
    supabase = build_supabase_collaborators(settings, http_client)
    init_app_state(
        app,
        settings,
        storage=supabase.storage,
        database=supabase.database,
        auth=supabase.auth,
    )

    logger.info("REWND photo service ready")
    yield

    logger.info("Shutting down REWND photo service")
    await http_client.aclose()
    app.state.processing_pool.shutdown()
    logger.info("REWND photo service shutdown complete")


def _error_response(
    status_code: int,
    error: str,
    message: str,
    *,
    stack: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorResponse(error=error, message=message, stack=stack)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(exclude_none=True),
        headers=headers,
    )


def _include_stack(request: Request) -> bool:
    settings: Settings | None = getattr(request.app.state, "settings", None)
    return settings is not None and settings.environment == "development"


async def handle_rewnd_error(request: Request, exc: RewndError) -> JSONResponse:
    """Render service errors; server-side failures get a generic message."""
    if exc.status_code < status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc)
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthError) else None
        return _error_response(exc.status_code, exc.title, str(exc), headers=headers)

    logger.error("%s %s failed: %s", request.method, request.url.path, exc, exc_info=exc)
    message = GENERIC_SERVER_MESSAGE if exc.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR else str(exc)
    stack = "".join(traceback.format_exception(exc)) if _include_stack(request) else None
    return _error_response(exc.status_code, exc.title, message, stack=stack)


async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        return _error_response(exc.status_code, "Not Found", f"Cannot {request.method} {request.url.path}")
    error = "Upload error" if exc.status_code == status.HTTP_400_BAD_REQUEST else "Request failed"
    return _error_response(exc.status_code, error, str(exc.detail), headers=exc.headers)


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = "; ".join(
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg', 'invalid')}"
        for error in exc.errors()
    )
    return _error_response(status.HTTP_400_BAD_REQUEST, "Invalid request", problems or "Malformed request")


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    stack = "".join(traceback.format_exception(exc)) if _include_stack(request) else None
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Internal Server Error",
        GENERIC_SERVER_MESSAGE,
        stack=stack,
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="REWND Backend API",
        description="Photo upload, compression and styling for the REWND app",
        version=API_VERSION,
        lifespan=lifespan,
    )
    application.state.started_at = time.monotonic()

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.middleware("http")(log_requests)

    application.add_exception_handler(RewndError, handle_rewnd_error)  # type: ignore[arg-type]
    application.add_exception_handler(StarletteHTTPException, handle_http_exception)  # type: ignore[arg-type]
    application.add_exception_handler(RequestValidationError, handle_request_validation)  # type: ignore[arg-type]
    application.add_exception_handler(Exception, handle_unexpected_error)

    application.include_router(router)
    application.include_router(service_router)
    return application


app = create_app()


def run() -> None:
    """Serve the application with uvicorn using HOST/PORT from the environment."""
    settings = get_settings()
    uvicorn.run("rewnd.main:app", host=settings.host, port=settings.port, log_level=settings.log_level.lower())
