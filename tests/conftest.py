"""
Pytest configuration for Ortrace tests.

Points the app at a throwaway SQLite database and storage directory before
anything under app/ is imported, and disables the background start-up task
so each test decides when the readiness gate opens.
"""

import os
import tempfile

_test_data_dir = tempfile.mkdtemp(prefix="ortrace_test_")
os.environ["DATABASE_URL"] = f"sqlite:///{_test_data_dir}/test.db"
os.environ["ORTRACE_AUTO_INITIALIZE"] = "false"
os.environ["ORTRACE_DATA_DIRECTORY"] = _test_data_dir
os.environ["ORTRACE_STORAGE_PATH"] = os.path.join(_test_data_dir, "storage")
os.environ["ORTRACE_LOG_DIR"] = os.path.join(_test_data_dir, "logs")
os.environ.pop("ORTRACE_GEMINI_API_KEY", None)

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel

from app.config import settings
from app.core.database import get_engine

# Import all models so their tables are registered on SQLModel.metadata
from app.models.job import AnalysisJob  # noqa: F401
from app.models.project import Project  # noqa: F401
from app.models.report import Issue, Report  # noqa: F401
from app.models.ticket import FeedbackTicket, FeedbackType

SQLModel.metadata.create_all(get_engine())

# Load error registry so OrtraceError returns correct HTTP status codes
from app.core.errors.registry import error_registry
error_registry.load()

from app.services.analysis_client import AnalysisClient
from app.services.artifact_store import LocalArtifactStore
from app.services.container import AppServices
from app.services.job_queue import JobQueue
from app.services.project_service import ProjectService
from app.services.report_extractor import ReportExtractor
from app.services.ticket_service import TicketService


@pytest.fixture(autouse=True)
def clean_tables():
    """Every test starts from empty tables."""
    engine = get_engine()
    with engine.begin() as conn:
        for table in reversed(SQLModel.metadata.sorted_tables):
            conn.execute(table.delete())
    yield


@pytest.fixture
def engine():
    return get_engine()


@pytest.fixture
def store(tmp_path):
    return LocalArtifactStore(str(tmp_path / "storage"))


@pytest.fixture
def analysis():
    """AnalysisClient stand-in; set analyze_file.return_value / side_effect per test."""
    fake = MagicMock(spec=AnalysisClient)
    fake.analyze_file = AsyncMock(return_value='{"outcome": "success"}')
    fake.analyze = AsyncMock(return_value='{"outcome": "success"}')
    return fake


@pytest.fixture
def services(engine, store, analysis):
    return AppServices(
        settings=settings,
        engine=engine,
        queue=JobQueue(engine),
        store=store,
        analysis=analysis,
        tickets=TicketService(engine),
        projects=ProjectService(engine),
        extractor=ReportExtractor(engine),
    )


@pytest.fixture
def project(services):
    return services.projects.create(name="Checkout", domain="shop.example.com")


@pytest.fixture
def make_ticket(services, project):
    def _make(feedback_type=FeedbackType.BUG, description="Checkout button does nothing", project_id=None):
        return services.tickets.create(
            project_id=project_id or project.id,
            feedback_type=feedback_type,
            task_description=description,
        )

    return _make


@pytest.fixture
def client(services):
    """TestClient with the readiness gate already open."""
    from app.main import create_app

    app = create_app()
    app.state.readiness.set(services)
    with TestClient(app) as c:
        yield c
