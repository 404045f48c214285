"""
Health check endpoints.

- GET /health        : 200 "ok" once start-up finished, 503 "starting" before
- GET /health/queue  : job counts by status (503 while starting)
"""
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from app.core.async_utils import run_sync
from app.core.readiness import ReadinessGate, get_services
from app.core.structured_logging import APP_VERSION, SERVICE_NAME, get_uptime_s
from app.services.container import AppServices

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Cheap health check: no database round trip."""
    gate: ReadinessGate = request.app.state.readiness
    ready = gate.is_ready
    body = {
        "status": "ok" if ready else "starting",
        "version": APP_VERSION,
        "service": SERVICE_NAME,
        "uptime_s": round(get_uptime_s(), 1),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    return JSONResponse(status_code=200 if ready else 503, content=body)


@router.get("/health/queue")
async def queue_health(services: AppServices = Depends(get_services)):
    counts = await run_sync(services.queue.counts_by_status)
    return {"status": "ok", "jobs": counts}
