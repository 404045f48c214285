"""
Background start-up.

The lifespan hook spawns initialize() and yields immediately, so the HTTP
listener answers (503 via the readiness gate) while the database is still
being reached and migrated. On success the service container is published
and the worker loop is started. On failure the gate stays unset for the
life of the process; operators should alert on the ``startup_failed`` log
event and on /health staying 503.
"""

import asyncio
import logging
from typing import Optional

from app.config import Settings
from app.core.async_utils import run_sync
from app.core.database import get_engine, init_db
from app.core.errors.pipeline import StartupError
from app.core.readiness import ReadinessGate
from app.services.container import AppServices, build_services
from app.services.worker import AnalysisWorker

logger = logging.getLogger(__name__)

# Migrations on a cold database can take a while
_INIT_DB_TIMEOUT_S = 300


def _log_task_exit(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.critical("worker_task_died", exc_info=exc)


async def initialize(gate: ReadinessGate, config: Settings) -> Optional[asyncio.Task]:
    """Connect, migrate, publish services, start the worker. Returns the worker task."""
    try:
        try:
            await run_sync(init_db, timeout=_INIT_DB_TIMEOUT_S)
        except Exception as e:
            raise StartupError(f"Database initialisation failed: {e}", source="database", original_error=e)

        try:
            services: AppServices = build_services(config, get_engine())
        except Exception as e:
            raise StartupError(f"Service construction failed: {e}", source="services", original_error=e)
    except StartupError as e:
        logger.critical("startup_failed", extra={"source": e.source, "error": e.message})
        return None

    gate.set(services)

    if not config.worker_enabled:
        logger.info("worker_disabled")
        return None

    worker_task = asyncio.create_task(AnalysisWorker(services).run_forever(), name="analysis-worker")
    worker_task.add_done_callback(_log_task_exit)
    return worker_task
