"""FastAPI application entry point and configuration."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from ortac_backend.api.progress_router import router as progress_router
from ortac_backend.api.review_router import router as review_router
from ortac_backend.api.session_router import router as session_router
from ortac_backend.config import settings
from ortac_backend.database import async_session, engine
from ortac_backend.models import Base
from ortac_backend.srs.errors import (
    EngineError,
    InvalidReference,
    InvalidSessionState,
    PersistenceConflict,
)

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[EngineError], int] = {
    InvalidReference: 404,
    InvalidSessionState: 409,
    PersistenceConflict: 409,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Initialize database on startup and cleanup on shutdown."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    description="Adaptive quizzes with spaced review, difficulty tiers and gamified progress",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(session_router)
app.include_router(review_router)
app.include_router(progress_router)


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    status_code = next((code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)), 400)
    if isinstance(exc, PersistenceConflict):
        logger.warning("%s %s gave up after retries: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Check database connectivity and return status."""
    async with async_session() as session:
        await session.execute(text("SELECT 1"))
    return {"status": "ok"}
