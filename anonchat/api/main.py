"""
anonchat.api.main — FastAPI application entry point
====================================================

Run with::

    uvicorn anonchat.api.main:app --reload --port 8000

or ``python -m anonchat``.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from anonchat import __version__  # noqa: E402
from anonchat.api.deps import get_chat_service  # noqa: E402
from anonchat.api.routes.anonymous import router as anonymous_router  # noqa: E402
from anonchat.errors import ChatError, StorageError  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — build the chat service and warm the engine."""
    service = get_chat_service()
    logger.info(
        "anonchat API started — engine ready (%s), reveal threshold %d",
        service.engine.url.database,
        service.config.reveal_threshold,
    )
    yield
    logger.info("anonchat API shutting down")


app = FastAPI(
    title="anonchat API",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Error envelope — {"error": "<code>", ...extra}
# ---------------------------------------------------------------------------
@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        {"error": "invalid_request", "details": jsonable_encoder(exc.errors())},
        status_code=400,
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(StorageError().to_dict(), status_code=500)


# Mount routers
app.include_router(anonymous_router, prefix="/api/chats")


@app.get("/api/health")
def health():
    return {"status": "ok"}
