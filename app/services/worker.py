"""
Analysis Worker
===============

Background task that drains the job queue, one job at a time:

    dequeue ─▶ download artifact ─▶ temp file ─▶ build prompt ─▶ Gemini
            ─▶ complete job ─▶ ticket analyzed ─▶ extract report

Per-job failures (download, analysis, timeout) fail the job and its ticket
and the loop moves on. Report extraction is best effort: a reply without
JSON leaves the job Completed and the ticket analyzed, with no report.

Failures outside a job (queue or ticket storage unreachable) are logged
and retried after a delay that doubles per consecutive failure, capped at
worker_error_backoff_max_s. When idle the loop sleeps worker_poll_interval_s.
"""

import asyncio
import logging
import os
import tempfile
from pathlib import PurePosixPath
from typing import Optional

from app.core.async_utils import run_sync
from app.core.errors.pipeline import (
    AnalysisTimeoutError,
    ReportParseError,
    ResourceNotFoundError,
)
from app.core.structured_logging import job_id_var
from app.models.job import AnalysisJob
from app.services.container import AppServices
from app.services.prompt_builder import DEFAULT_PROMPT, build_ticket_prompt

logger = logging.getLogger(__name__)


def _write_file(path: str, data: bytes) -> None:
    with open(path, "wb") as f:
        f.write(data)


class AnalysisWorker:
    def __init__(
        self,
        services: AppServices,
        poll_interval: Optional[float] = None,
        analysis_timeout: Optional[float] = None,
        error_backoff_max: Optional[float] = None,
    ) -> None:
        config = services.settings
        self.services = services
        self.poll_interval = poll_interval if poll_interval is not None else config.worker_poll_interval_s
        self.analysis_timeout = (
            analysis_timeout if analysis_timeout is not None else config.analysis_timeout_s
        )
        self.error_backoff_max = (
            error_backoff_max if error_backoff_max is not None else config.worker_error_backoff_max_s
        )

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def error_delay(self, consecutive_errors: int) -> float:
        return min(self.error_backoff_max, self.poll_interval * (2 ** max(0, consecutive_errors - 1)))

    async def run_forever(self) -> None:
        logger.info(
            "worker_started",
            extra={"poll_interval_s": self.poll_interval, "analysis_timeout_s": self.analysis_timeout},
        )
        consecutive_errors = 0
        while True:
            try:
                processed = await self.process_next_job()
            except Exception:
                consecutive_errors += 1
                delay = self.error_delay(consecutive_errors)
                logger.exception(
                    "worker_cycle_failed",
                    extra={"consecutive_errors": consecutive_errors, "retry_in_s": delay},
                )
                await asyncio.sleep(delay)
                continue

            consecutive_errors = 0
            if not processed:
                await asyncio.sleep(self.poll_interval)

    async def process_next_job(self) -> bool:
        """Claim and process one job. Returns False when the queue was empty."""
        # No deadline: an abandoned claim thread would still commit and strand the job
        job = await run_sync(self.services.queue.dequeue, timeout=None)
        if job is None:
            return False

        token = job_id_var.set(job.id)
        try:
            await self._process(job)
        finally:
            job_id_var.reset(token)
        return True

    # ------------------------------------------------------------------
    # One job
    # ------------------------------------------------------------------

    async def _process(self, job: AnalysisJob) -> None:
        svc = self.services
        logger.info("job_processing", extra={"ticket_id": job.ticket_id, "artifact": job.artifact_path})

        try:
            data = await svc.store.get(job.artifact_path)
        except Exception as e:
            await self._fail(job, f"Download failed: {e}")
            return

        suffix = PurePosixPath(job.artifact_path).suffix.lower()
        with tempfile.TemporaryDirectory(prefix="ortrace-job-") as tmp_dir:
            video_path = os.path.join(tmp_dir, f"recording{suffix}")
            try:
                await run_sync(_write_file, video_path, data)
            except OSError as e:
                await self._fail(job, f"Download failed: could not write temp file: {e}")
                return

            prompt = await self._build_prompt(job)

            try:
                raw_text = await self._analyze(video_path, prompt)
            except Exception as e:
                await self._fail(job, f"Analysis failed: {e}")
                return

        await run_sync(svc.queue.complete, job.id, raw_text, timeout=None)

        if job.ticket_id:
            if await run_sync(svc.tickets.mark_analyzed, job.ticket_id, timeout=None):
                await self._create_report(job.ticket_id, raw_text)

    async def _analyze(self, video_path: str, prompt: str) -> str:
        try:
            return await asyncio.wait_for(
                self.services.analysis.analyze_file(video_path, prompt),
                timeout=self.analysis_timeout,
            )
        except asyncio.TimeoutError as e:
            raise AnalysisTimeoutError(
                f"timed out after {self.analysis_timeout:g}s", source="worker", original_error=e
            )

    async def _fail(self, job: AnalysisJob, error: str) -> None:
        await run_sync(self.services.queue.fail, job.id, error, timeout=None)
        if job.ticket_id:
            await run_sync(self.services.tickets.mark_failed, job.ticket_id, timeout=None)

    async def _build_prompt(self, job: AnalysisJob) -> str:
        if not job.ticket_id:
            return job.prompt or DEFAULT_PROMPT

        try:
            return await run_sync(self._ticket_prompt, job.ticket_id)
        except Exception as e:
            logger.warning("prompt_fallback", extra={"ticket_id": job.ticket_id, "error": str(e)})
            return DEFAULT_PROMPT

    def _ticket_prompt(self, ticket_id: str) -> str:
        ticket = self.services.tickets.get(ticket_id)
        if ticket is None:
            raise ResourceNotFoundError(f"Ticket {ticket_id} not found", source="tickets")
        project = self.services.projects.get(ticket.project_id) if ticket.project_id else None
        return build_ticket_prompt(ticket, project)

    async def _create_report(self, ticket_id: str, raw_text: str) -> None:
        try:
            await run_sync(self.services.extractor.persist, ticket_id, raw_text)
        except ReportParseError as e:
            logger.warning("report_not_extracted", extra={"ticket_id": ticket_id, "error": e.message})
        except Exception:
            logger.exception("report_persist_failed", extra={"ticket_id": ticket_id})
