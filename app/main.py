from contextlib import asynccontextmanager
import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from app.config import settings
from app.routers import health, jobs, projects, tickets, widget
from app.core.database import close_db
from app.core.structured_logging import setup_logging
from app.core.errors import OrtraceError
from app.core.errors.registry import error_registry
from app.core.errors.middleware import ortrace_error_handler
from app.core.log_middleware import CorrelationMiddleware
from app.core.readiness import ReadinessGate
from app.services.startup import initialize

# Structured logging before any logger calls
setup_logging(log_dir=settings.log_dir, log_level=settings.log_level.upper())

logger = logging.getLogger(__name__)

API_TITLE = "Ortrace API"
API_VERSION = "0.4.0"

API_DESCRIPTION = """
## Ortrace - Video Feedback Analysis

End users record their screen from the embeddable widget; each recording is
analysed by Gemini into a structured report (outcome, issues, metrics) that
the team triages from the dashboard.

Endpoints answer 503 (`ORT-SYS-001`, retryable) until start-up has reached
the database and applied migrations.
"""

TAGS_METADATA = [
    {"name": "health", "description": "Liveness and readiness."},
    {"name": "widget", "description": "Public endpoints used by the embedded recording widget."},
    {"name": "tickets", "description": "Dashboard: list, triage and read analysis reports."},
    {"name": "jobs", "description": "Analysis job status and retry."},
    {"name": "projects", "description": "Projects embedding the widget and their analysis questions."},
]


async def _cancel(task: asyncio.Task | None, name: str) -> None:
    if task is None or task.done():
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        logger.info("%s cancelled", name)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Start-up runs in a background task so the listener is serving (503)
    while the database is reached and migrated.
    """
    logger.info("Starting Ortrace API v%s...", API_VERSION)
    error_registry.load()

    state = {"worker": None}

    async def _init():
        state["worker"] = await initialize(app.state.readiness, settings)

    init_task = None
    if settings.auto_initialize:
        init_task = asyncio.create_task(_init(), name="startup-init")
    else:
        logger.info("auto_initialize disabled; readiness gate left for the caller to set")

    yield

    logger.info("Shutting down Ortrace API...")
    await _cancel(init_task, "Start-up task")
    await _cancel(state["worker"], "Analysis worker")
    close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=API_VERSION,
        openapi_tags=TAGS_METADATA,
        lifespan=lifespan,
    )
    app.state.readiness = ReadinessGate()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationMiddleware)

    app.add_exception_handler(OrtraceError, ortrace_error_handler)

    # Catch-all handler so unhandled exceptions return JSON (not bare text)
    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        logger.error("Unhandled exception on %s %s: %s", request.method, request.url.path, exc, exc_info=True)
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})

    app.include_router(health.router, tags=["health"])
    app.include_router(health.router, prefix="/api", tags=["health"], include_in_schema=False)
    app.include_router(widget.router, prefix="/api/v1/widget", tags=["widget"])
    app.include_router(tickets.router, prefix="/api/v1/tickets", tags=["tickets"])
    app.include_router(jobs.router, prefix="/api/v1/jobs", tags=["jobs"])
    app.include_router(projects.router, prefix="/api/v1/projects", tags=["projects"])

    if settings.storage_backend == "local":
        # Target of LocalArtifactStore.signed_url
        app.mount("/storage", StaticFiles(directory=settings.storage_path, check_dir=False), name="storage")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
