"""
Exceptions raised inside the analysis pipeline (queue, storage, Gemini,
report extraction, start-up).

These never reach HTTP clients directly. The worker catches them at the
per-job boundary and records them against the job and ticket; routers that
touch the same services translate them into OrtraceError codes.
"""

from __future__ import annotations

from typing import Optional


class PipelineError(Exception):
    """Base exception for pipeline failures."""

    def __init__(
        self,
        message: str,
        source: str = "",
        original_error: Optional[Exception] = None,
    ):
        self.message = message
        self.source = source
        self.original_error = original_error
        super().__init__(message)


# ── Transient I/O: retryable by re-enqueue, never automatically ───────
class TransientIOError(PipelineError):
    """Artifact upload/download or other I/O failed."""


class ArtifactNotFoundError(TransientIOError):
    """The requested artifact path does not exist in the store."""


class AnalysisTimeoutError(TransientIOError):
    """The analysis call did not finish before its deadline."""


# ── External service failures ─────────────────────────────────────────
class ExternalServiceError(PipelineError):
    """Upstream analysis API returned an error or a malformed envelope."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
        source: str = "gemini",
        original_error: Optional[Exception] = None,
    ):
        self.status_code = status_code
        self.body = body
        super().__init__(message, source=source, original_error=original_error)


class NoContentError(PipelineError):
    """The upstream reply was well-formed but carried no text."""


class PayloadTooLargeError(PipelineError):
    """Artifact exceeds the analysis size ceiling; no call was made."""

    def __init__(self, size_bytes: int, max_bytes: int):
        self.size_bytes = size_bytes
        self.max_bytes = max_bytes
        super().__init__(
            f"Video too large ({size_bytes / (1024 * 1024):.1f}MB). "
            f"Max: {max_bytes // (1024 * 1024)}MB",
            source="gemini",
        )


# ── Parse failures: fatal to report generation only ───────────────────
class ReportParseError(PipelineError):
    """Model output did not contain a JSON object."""


# ── Missing rows referenced mid-pipeline ──────────────────────────────
class ResourceNotFoundError(PipelineError):
    """A ticket, job or project referenced by the pipeline no longer exists."""


# ── Start-up ──────────────────────────────────────────────────────────
class StartupError(PipelineError):
    """Database unreachable or migrations failed during background init."""
