"""
Readiness gate.

The HTTP listener comes up before the database is reachable. The gate is a
handle-holder created with the app and stored on ``app.state.readiness``.
The background init task publishes the fully built service container into
it exactly once; until then every request that needs services is answered
with ORT-SYS-001 (503, retryable).

Readers never block: ``get()`` is a plain attribute read of a reference
that is only ever assigned once, after the container is complete. Writers
are serialised by a lock so a second ``set()`` is detected and rejected.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Optional

from fastapi import Request

from app.core.errors import OrtraceError

if TYPE_CHECKING:
    from app.services.container import AppServices

logger = logging.getLogger(__name__)


class ReadinessGate:
    """Set-once holder for the process's AppServices."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._services: Optional["AppServices"] = None

    def get(self) -> Optional["AppServices"]:
        """Return the services, or None while start-up is still running."""
        return self._services

    def set(self, services: "AppServices") -> None:
        with self._lock:
            if self._services is not None:
                raise RuntimeError("readiness gate already set")
            self._services = services
        logger.info("readiness_gate_opened")

    @property
    def is_ready(self) -> bool:
        return self._services is not None


def get_services(request: Request) -> "AppServices":
    """FastAPI dependency: the published services, or 503 while starting."""
    gate: ReadinessGate = request.app.state.readiness
    services = gate.get()
    if services is None:
        raise OrtraceError("ORT-SYS-001", detail="readiness gate not yet set")
    return services
