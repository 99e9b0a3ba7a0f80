import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.note_lifecycle.api.v1.routes_autosave import router as autosave_router_v1
from src.note_lifecycle.api.v1.routes_notes import router as notes_router_v1
from src.note_lifecycle.api.v1.routes_signatures import router as signatures_router_v1
from src.note_lifecycle.api.v1.routes_system import router as system_router_v1
from src.note_lifecycle.config import settings
from src.note_lifecycle.domain.errors import (
    ConcurrentModificationError,
    HistoryAlreadyInitializedError,
    HistoryNotFoundError,
    NoteLockedError,
)
from src.note_lifecycle.engine import build_note_engine
from src.note_lifecycle.infra.db.bootstrap import init_sql_store

logger = logging.getLogger(__name__)

app = FastAPI(title="Clinical Note Lifecycle API")

# In-memory engine by default; swapped for a SQL-backed one at startup when
# configured.
app.state.lifecycle = build_note_engine()


@app.on_event("startup")
async def on_startup() -> None:
    """Application startup hook.

    When USE_SQL_REPOS is enabled and a DATABASE_URL is configured, the engine
    is rebuilt on top of the SQL-backed note store. In other environments
    (tests, local dev without a database), this is a no-op and the in-memory
    store remains active.
    """

    store = init_sql_store()
    if store is not None:
        app.state.lifecycle = build_note_engine(store=store)
        logger.info("Using SQL-backed note store")


@app.exception_handler(NoteLockedError)
async def note_locked_handler(request: Request, exc: NoteLockedError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_423_LOCKED, content={"detail": str(exc)})


@app.exception_handler(ConcurrentModificationError)
async def concurrent_modification_handler(request: Request, exc: ConcurrentModificationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={
            "detail": str(exc),
            "expected_revision": exc.expected_revision,
            "actual_revision": exc.actual_revision,
        },
    )


@app.exception_handler(HistoryNotFoundError)
async def history_not_found_handler(request: Request, exc: HistoryNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(HistoryAlreadyInitializedError)
async def history_exists_handler(request: Request, exc: HistoryAlreadyInitializedError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


# CORS configuration – permissive by default for development. Tighten via
# CORS_ALLOW_ORIGINS in production deployments.
allow_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()] or ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["system"])
async def health_check() -> dict:
    """Basic liveness probe for the API root."""
    return {"status": "ok"}


# Versioned API routers
app.include_router(system_router_v1, prefix="/api/v1")
app.include_router(notes_router_v1, prefix="/api/v1")
app.include_router(signatures_router_v1, prefix="/api/v1")
app.include_router(autosave_router_v1, prefix="/api/v1")
