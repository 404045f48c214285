"""
Ortrace Application Configuration
=================================

PURPOSE:
    Pydantic-Settings based configuration for the Ortrace backend.
    All settings can be overridden via environment variables (ORTRACE_ prefix).
    DATABASE_URL is read unprefixed by app.core.database, as hosting
    platforms inject it under that name.

UPDATED:
    2026-10-12 - Storage backend selection (local / gcs) and Gemini analysis settings.
    2026-10-16 - Worker poll interval, error backoff ceiling and analysis deadline.
"""

import logging
from typing import List, Literal, Optional

from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Process-wide settings, read once at import."""

    app_name: str = "Ortrace"
    debug: bool = False

    # Local data directory (default SQLite database lives here)
    data_directory: str = "./data"

    # Artifact storage: "local" writes under storage_path, "gcs" uses gcs_bucket
    storage_backend: Literal["local", "gcs"] = "local"
    storage_path: str = "./storage"
    gcs_bucket: Optional[str] = None
    gcp_project_id: Optional[str] = None
    signed_url_ttl_s: int = 3600

    # Video analysis (Gemini)
    gemini_api_key: Optional[str] = None
    google_genai_use_vertex: bool = False  # use Vertex AI application-default credentials
    analysis_model: str = "gemini-2.0-flash-lite"
    analysis_timeout_s: float = 300.0

    # Background worker
    worker_enabled: bool = True
    worker_poll_interval_s: float = 5.0
    worker_error_backoff_max_s: float = 60.0

    # Widget uploads (independent of the analysis payload ceiling)
    upload_max_bytes: int = 50 * 1024 * 1024

    # Start-up: when False the lifespan does not spawn the init task (tests)
    auto_initialize: bool = True

    # Logging
    log_dir: str = "logs"
    log_level: str = "INFO"

    # CORS
    cors_origins: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
    ]

    class Config:
        env_file = ".env"
        env_prefix = "ORTRACE_"


settings = Settings()
