"""
Artifact Store
==============

Byte storage for uploaded recordings behind one interface:

    put(path, data) -> path
    get(path) -> bytes            (ArtifactNotFoundError if missing)
    delete(path)                  (missing path is a no-op)
    exists(path) -> bool
    signed_url(path, expires_in) -> str

Two backends, chosen once at start-up by create_artifact_store():
  - LocalArtifactStore: files under settings.storage_path, atomic writes.
  - GCSArtifactStore: objects in a Google Cloud Storage bucket.

All methods are async; blocking filesystem and Cloud Storage calls run in
worker threads via run_sync.
"""

import logging
import mimetypes
import os
import tempfile
from datetime import timedelta
from pathlib import Path
from typing import Any, Optional, Protocol, runtime_checkable

from app.config import Settings
from app.core.async_utils import run_sync
from app.core.errors.pipeline import ArtifactNotFoundError, TransientIOError

logger = logging.getLogger(__name__)

# Not in every platform mime.types
mimetypes.add_type("video/webm", ".webm")
mimetypes.add_type("video/x-matroska", ".mkv")

# Cloud Storage transfers can be slow for large recordings
_IO_TIMEOUT_S = 120


@runtime_checkable
class ArtifactStore(Protocol):
    async def put(self, path: str, data: bytes) -> str: ...

    async def get(self, path: str) -> bytes: ...

    async def delete(self, path: str) -> None: ...

    async def exists(self, path: str) -> bool: ...

    async def signed_url(self, path: str, expires_in: int = 3600) -> str: ...


# ---------------------------------------------------------------------------
# Local filesystem
# ---------------------------------------------------------------------------

class LocalArtifactStore:
    """Artifacts as files below ``base_path``."""

    def __init__(self, base_path: str) -> None:
        self._base = Path(base_path).resolve()
        self._base.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        target = (self._base / path.lstrip("/")).resolve()
        if target != self._base and self._base not in target.parents:
            raise ValueError(f"Artifact path escapes storage root: {path!r}")
        return target

    def _write(self, path: str, data: bytes) -> str:
        """Atomic write: tmp -> fsync -> replace."""
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(target.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, str(target))
        except Exception:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
        return path

    def _read(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return target.read_bytes()
        except FileNotFoundError as e:
            raise ArtifactNotFoundError(f"Artifact not found: {path}", source="local", original_error=e)

    def _remove(self, path: str) -> None:
        self._resolve(path).unlink(missing_ok=True)

    async def put(self, path: str, data: bytes) -> str:
        try:
            await run_sync(self._write, path, data, timeout=_IO_TIMEOUT_S)
        except OSError as e:
            raise TransientIOError(f"Failed to write {path}: {e}", source="local", original_error=e)
        logger.info("artifact_stored", extra={"path": path, "size_bytes": len(data), "backend": "local"})
        return path

    async def get(self, path: str) -> bytes:
        try:
            return await run_sync(self._read, path, timeout=_IO_TIMEOUT_S)
        except ArtifactNotFoundError:
            raise
        except OSError as e:
            raise TransientIOError(f"Failed to read {path}: {e}", source="local", original_error=e)

    async def delete(self, path: str) -> None:
        await run_sync(self._remove, path)

    async def exists(self, path: str) -> bool:
        return await run_sync(self._resolve(path).is_file)

    async def signed_url(self, path: str, expires_in: int = 3600) -> str:
        # Served by the app's static /storage mount; no signing locally
        self._resolve(path)
        return f"/storage/{path.lstrip('/')}"


# ---------------------------------------------------------------------------
# Google Cloud Storage
# ---------------------------------------------------------------------------

class GCSArtifactStore:
    """Artifacts as objects in one GCS bucket."""

    def __init__(self, bucket: str, project_id: Optional[str] = None, client: Any = None) -> None:
        self._bucket_name = bucket
        self._project_id = project_id
        self._client = client

    def _bucket(self):
        if self._client is None:
            from google.cloud import storage as gcs_storage

            self._client = gcs_storage.Client(project=self._project_id)
        return self._client.bucket(self._bucket_name)

    def _blob(self, path: str):
        return self._bucket().blob(path.lstrip("/"))

    async def _call(self, path: str, func, *args):
        from google.api_core import exceptions as gcs_exceptions

        try:
            return await run_sync(func, *args, timeout=_IO_TIMEOUT_S)
        except gcs_exceptions.NotFound as e:
            raise ArtifactNotFoundError(
                f"Artifact not found: gs://{self._bucket_name}/{path}", source="gcs", original_error=e
            )
        except (gcs_exceptions.GoogleAPIError, TimeoutError, OSError) as e:
            raise TransientIOError(
                f"Cloud Storage error for gs://{self._bucket_name}/{path}: {e}",
                source="gcs",
                original_error=e,
            )

    async def put(self, path: str, data: bytes) -> str:
        content_type = mimetypes.guess_type(path)[0] or "application/octet-stream"
        blob = self._blob(path)
        await self._call(path, lambda: blob.upload_from_string(data, content_type=content_type))
        logger.info("artifact_stored", extra={"path": path, "size_bytes": len(data), "backend": "gcs"})
        return path

    async def get(self, path: str) -> bytes:
        blob = self._blob(path)
        return await self._call(path, blob.download_as_bytes)

    async def delete(self, path: str) -> None:
        blob = self._blob(path)
        try:
            await self._call(path, blob.delete)
        except ArtifactNotFoundError:
            logger.debug("delete of missing artifact gs://%s/%s", self._bucket_name, path)

    async def exists(self, path: str) -> bool:
        blob = self._blob(path)
        return await self._call(path, blob.exists)

    async def signed_url(self, path: str, expires_in: int = 3600) -> str:
        blob = self._blob(path)
        return await self._call(
            path,
            lambda: blob.generate_signed_url(
                version="v4", expiration=timedelta(seconds=expires_in), method="GET"
            ),
        )


def create_artifact_store(config: Settings) -> ArtifactStore:
    """Select the configured backend. Called once during start-up."""
    if config.storage_backend == "gcs":
        if not config.gcs_bucket:
            raise ValueError("ORTRACE_GCS_BUCKET is required when ORTRACE_STORAGE_BACKEND=gcs")
        logger.info("Artifact store: gcs bucket=%s", config.gcs_bucket)
        return GCSArtifactStore(config.gcs_bucket, project_id=config.gcp_project_id)

    logger.info("Artifact store: local path=%s", config.storage_path)
    return LocalArtifactStore(config.storage_path)
