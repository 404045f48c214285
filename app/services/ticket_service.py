"""
Ticket Service
==============

Persistence for feedback tickets: widget submission, dashboard triage and
the processing-status transitions driven by the analysis worker.

Processing-status updates are single UPDATE statements so the worker never
needs a read-modify-write cycle. They are idempotent and report whether the
ticket row exists.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, List, Optional, Tuple

import sqlalchemy as sa
from sqlalchemy.engine import Engine
from sqlmodel import Session, col, func, select

from app.core.async_utils import run_sync
from app.models.job import NewJob
from app.models.report import Issue, Report
from app.models.ticket import (
    FeedbackTicket,
    FeedbackType,
    ProcessingStatus,
    TicketPriority,
    TicketStatus,
)

if TYPE_CHECKING:
    from app.services.container import AppServices

logger = logging.getLogger(__name__)

tickets_table: sa.Table = FeedbackTicket.__table__

MAX_PAGE_SIZE = 100

# Statuses attach_job may move to processing; the worker can finish a job
# before the ticket is linked to it, and that outcome must stand.
_PRE_ANALYSIS_STATUSES = (
    ProcessingStatus.PENDING.value,
    ProcessingStatus.RECORDING.value,
    ProcessingStatus.UPLOADING.value,
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TicketFilters:
    project_id: Optional[str] = None
    feedback_type: Optional[FeedbackType] = None
    ticket_status: Optional[TicketStatus] = None
    priority: Optional[TicketPriority] = None
    search: Optional[str] = None
    page: int = 1
    per_page: int = 20


class TicketService:
    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    # ------------------------------------------------------------------
    # Create / read
    # ------------------------------------------------------------------

    def create(
        self,
        project_id: str,
        feedback_type: FeedbackType,
        task_description: Optional[str] = None,
        submitter_email: Optional[str] = None,
        submitter_name: Optional[str] = None,
        page_url: Optional[str] = None,
    ) -> FeedbackTicket:
        ticket = FeedbackTicket(
            project_id=project_id,
            feedback_type=feedback_type.value,
            status=ProcessingStatus.RECORDING.value,
            task_description=task_description,
            submitter_email=submitter_email,
            submitter_name=submitter_name,
            page_url=page_url,
        )
        with Session(self._engine) as session:
            session.add(ticket)
            session.commit()
            session.refresh(ticket)
        logger.info("ticket_created", extra={"ticket_id": ticket.id, "project_id": project_id})
        return ticket

    def get(self, ticket_id: str) -> Optional[FeedbackTicket]:
        with Session(self._engine) as session:
            return session.get(FeedbackTicket, ticket_id)

    def list_tickets(self, filters: TicketFilters) -> Tuple[List[FeedbackTicket], int]:
        """Newest first. Returns (page of tickets, total matching)."""
        conditions = []
        if filters.project_id:
            conditions.append(FeedbackTicket.project_id == filters.project_id)
        if filters.feedback_type:
            conditions.append(FeedbackTicket.feedback_type == filters.feedback_type.value)
        if filters.ticket_status:
            conditions.append(FeedbackTicket.ticket_status == filters.ticket_status.value)
        if filters.priority:
            conditions.append(FeedbackTicket.priority == filters.priority.value)
        if filters.search:
            conditions.append(col(FeedbackTicket.task_description).ilike(f"%{filters.search}%"))

        per_page = max(1, min(filters.per_page, MAX_PAGE_SIZE))
        offset = (max(1, filters.page) - 1) * per_page

        with Session(self._engine) as session:
            total = session.exec(
                select(func.count()).select_from(FeedbackTicket).where(*conditions)
            ).one()
            items = session.exec(
                select(FeedbackTicket)
                .where(*conditions)
                .order_by(col(FeedbackTicket.created_at).desc())
                .offset(offset)
                .limit(per_page)
            ).all()
        return list(items), total

    def get_report(self, ticket_id: str) -> Optional[Tuple[Report, List[Issue]]]:
        with Session(self._engine) as session:
            report = session.exec(select(Report).where(Report.ticket_id == ticket_id)).first()
            if report is None:
                return None
            issues = session.exec(
                select(Issue).where(Issue.report_id == report.id).order_by(col(Issue.position))
            ).all()
            return report, list(issues)

    # ------------------------------------------------------------------
    # Single-statement updates
    # ------------------------------------------------------------------

    def _update(self, ticket_id: str, **values) -> bool:
        stmt = (
            sa.update(tickets_table)
            .where(tickets_table.c.id == ticket_id)
            .values(updated_at=_now(), **values)
        )
        with self._engine.begin() as conn:
            return conn.execute(stmt).rowcount == 1

    def _set_processing_status(self, ticket_id: str, status: ProcessingStatus) -> bool:
        found = self._update(ticket_id, status=status.value)
        if not found:
            logger.warning("ticket_missing", extra={"ticket_id": ticket_id, "status": status.value})
        return found

    def mark_uploading(self, ticket_id: str) -> bool:
        return self._set_processing_status(ticket_id, ProcessingStatus.UPLOADING)

    def mark_processing(self, ticket_id: str) -> bool:
        return self._set_processing_status(ticket_id, ProcessingStatus.PROCESSING)

    def mark_analyzed(self, ticket_id: str) -> bool:
        return self._set_processing_status(ticket_id, ProcessingStatus.ANALYZED)

    def mark_failed(self, ticket_id: str) -> bool:
        return self._set_processing_status(ticket_id, ProcessingStatus.FAILED)

    def attach_job(
        self,
        ticket_id: str,
        job_id: str,
        artifact_path: str,
        artifact_size_bytes: int,
        duration_seconds: Optional[int] = None,
    ) -> bool:
        """Link the ticket to its job and artifact.

        The status moves to processing only from a pre-analysis status;
        analyzed or failed is left as is.
        """
        status = tickets_table.c.status
        return self._update(
            ticket_id,
            analysis_job_id=job_id,
            artifact_path=artifact_path,
            artifact_size_bytes=artifact_size_bytes,
            duration_seconds=duration_seconds,
            status=sa.case(
                (status.in_(_PRE_ANALYSIS_STATUSES), ProcessingStatus.PROCESSING.value),
                else_=status,
            ),
        )

    # ------------------------------------------------------------------
    # Triage
    # ------------------------------------------------------------------

    def update_status(self, ticket_id: str, status: TicketStatus) -> bool:
        closed_at = _now() if status == TicketStatus.RESOLVED else None
        return self._update(ticket_id, ticket_status=status.value, closed_at=closed_at)

    def update_priority(self, ticket_id: str, priority: TicketPriority) -> bool:
        return self._update(ticket_id, priority=priority.value)

    def assign(self, ticket_id: str, assignee_id: Optional[str]) -> bool:
        return self._update(ticket_id, assignee_id=assignee_id)

    def close(self, ticket_id: str) -> bool:
        return self.update_status(ticket_id, TicketStatus.RESOLVED)

    def reopen(self, ticket_id: str) -> bool:
        return self.update_status(ticket_id, TicketStatus.OPEN)


# ---------------------------------------------------------------------------
# Recording intake
# ---------------------------------------------------------------------------

def recording_path(ticket: FeedbackTicket, filename: Optional[str]) -> str:
    """recordings/{project_id}/{ticket_id}{ext}, .webm when the upload has no extension."""
    suffix = PurePosixPath(filename or "").suffix.lower() or ".webm"
    return f"recordings/{ticket.project_id}/{ticket.id}{suffix}"


async def ingest_recording(
    services: "AppServices",
    ticket: FeedbackTicket,
    data: bytes,
    filename: Optional[str] = None,
    duration_seconds: Optional[int] = None,
) -> str:
    """Store a ticket's recording and enqueue its analysis. Returns the job id."""
    path = recording_path(ticket, filename)

    await run_sync(services.tickets.mark_uploading, ticket.id, timeout=None)
    try:
        await services.store.put(path, data)
    except Exception:
        await run_sync(services.tickets.mark_failed, ticket.id, timeout=None)
        raise

    job_id = await run_sync(
        services.queue.enqueue,
        NewJob(artifact_path=path, artifact_size_bytes=len(data), ticket_id=ticket.id),
        timeout=None,
    )
    await run_sync(
        services.tickets.attach_job,
        ticket.id,
        job_id,
        path,
        len(data),
        duration_seconds,
        timeout=None,
    )
    return job_id
