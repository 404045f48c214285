"""
Service container published through the readiness gate.

Built once by the start-up task after the database is reachable and
migrated. Frozen: handlers and the worker share the same instance and
never mutate it.
"""

from dataclasses import dataclass

from sqlalchemy.engine import Engine

from app.config import Settings
from app.services.analysis_client import AnalysisClient
from app.services.artifact_store import ArtifactStore, create_artifact_store
from app.services.job_queue import JobQueue
from app.services.project_service import ProjectService
from app.services.report_extractor import ReportExtractor
from app.services.ticket_service import TicketService


@dataclass(frozen=True)
class AppServices:
    settings: Settings
    engine: Engine
    queue: JobQueue
    store: ArtifactStore
    analysis: AnalysisClient
    tickets: TicketService
    projects: ProjectService
    extractor: ReportExtractor


def build_services(config: Settings, engine: Engine) -> AppServices:
    return AppServices(
        settings=config,
        engine=engine,
        queue=JobQueue(engine),
        store=create_artifact_store(config),
        analysis=AnalysisClient.from_settings(config),
        tickets=TicketService(engine),
        projects=ProjectService(engine),
        extractor=ReportExtractor(engine),
    )
