"""
Dashboard ticket endpoints: list/filter, detail, report, triage, retry.

Handlers are plain ``def`` so FastAPI runs them in its thread pool; every
one of them goes through the readiness gate.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.core.async_utils import run_sync
from app.core.errors import OrtraceError
from app.core.readiness import get_services
from app.models.report import ReportView
from app.models.schemas import (
    TicketAssigneeUpdate,
    TicketListResponse,
    TicketPriorityUpdate,
    TicketResponse,
    TicketStatusUpdate,
)
from app.models.ticket import (
    FeedbackTicket,
    FeedbackType,
    ProcessingStatus,
    TicketPriority,
    TicketStatus,
)
from app.services.container import AppServices
from app.services.ticket_service import MAX_PAGE_SIZE, TicketFilters

logger = logging.getLogger(__name__)

router = APIRouter()


def _require_ticket(services: AppServices, ticket_id: str) -> FeedbackTicket:
    ticket = services.tickets.get(ticket_id)
    if ticket is None:
        raise OrtraceError("ORT-API-001", detail=f"ticket {ticket_id} not found")
    return ticket


def _updated(services: AppServices, ticket_id: str, found: bool) -> TicketResponse:
    if not found:
        raise OrtraceError("ORT-API-001", detail=f"ticket {ticket_id} not found")
    return TicketResponse.model_validate(_require_ticket(services, ticket_id))


@router.get("", response_model=TicketListResponse)
def list_tickets(
    project_id: Optional[str] = None,
    feedback_type: Optional[FeedbackType] = None,
    ticket_status: Optional[TicketStatus] = None,
    priority: Optional[TicketPriority] = None,
    search: Optional[str] = Query(default=None, max_length=200),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=20, ge=1, le=MAX_PAGE_SIZE),
    services: AppServices = Depends(get_services),
):
    filters = TicketFilters(
        project_id=project_id,
        feedback_type=feedback_type,
        ticket_status=ticket_status,
        priority=priority,
        search=search,
        page=page,
        per_page=per_page,
    )
    items, total = services.tickets.list_tickets(filters)
    return TicketListResponse(
        items=[TicketResponse.model_validate(t) for t in items],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/{ticket_id}", response_model=TicketResponse)
def get_ticket(ticket_id: str, services: AppServices = Depends(get_services)):
    return TicketResponse.model_validate(_require_ticket(services, ticket_id))


@router.get("/{ticket_id}/report", response_model=ReportView)
def get_ticket_report(ticket_id: str, services: AppServices = Depends(get_services)):
    """
    The ticket's analysis report.

    A missing report is reported as "still processing" (retryable) unless
    the ticket's analysis failed, so pollers can tell the two apart.
    """
    ticket = _require_ticket(services, ticket_id)
    found = services.tickets.get_report(ticket_id)
    if found is None:
        if ticket.status == ProcessingStatus.FAILED.value:
            raise OrtraceError("ORT-API-003", detail=f"ticket {ticket_id} analysis failed")
        raise OrtraceError(
            "ORT-API-002",
            detail=f"no report yet for ticket {ticket_id}",
            context={"ticket_status": ticket.status},
        )
    report, issues = found
    return ReportView.from_rows(report, issues)


@router.get("/{ticket_id}/video-url")
async def get_ticket_video_url(ticket_id: str, services: AppServices = Depends(get_services)):
    ticket = await run_sync(_require_ticket, services, ticket_id)
    if not ticket.artifact_path:
        raise OrtraceError("ORT-API-008", detail=f"ticket {ticket_id} has no recording")
    ttl = services.settings.signed_url_ttl_s
    url = await services.store.signed_url(ticket.artifact_path, expires_in=ttl)
    return {"url": url, "expires_in": ttl}


@router.patch("/{ticket_id}/status", response_model=TicketResponse)
def update_ticket_status(
    ticket_id: str,
    body: TicketStatusUpdate,
    services: AppServices = Depends(get_services),
):
    return _updated(services, ticket_id, services.tickets.update_status(ticket_id, body.ticket_status))


@router.patch("/{ticket_id}/priority", response_model=TicketResponse)
def update_ticket_priority(
    ticket_id: str,
    body: TicketPriorityUpdate,
    services: AppServices = Depends(get_services),
):
    return _updated(services, ticket_id, services.tickets.update_priority(ticket_id, body.priority))


@router.patch("/{ticket_id}/assignee", response_model=TicketResponse)
def assign_ticket(
    ticket_id: str,
    body: TicketAssigneeUpdate,
    services: AppServices = Depends(get_services),
):
    return _updated(services, ticket_id, services.tickets.assign(ticket_id, body.assignee_id))


@router.post("/{ticket_id}/close", response_model=TicketResponse)
def close_ticket(ticket_id: str, services: AppServices = Depends(get_services)):
    return _updated(services, ticket_id, services.tickets.close(ticket_id))


@router.post("/{ticket_id}/reopen", response_model=TicketResponse)
def reopen_ticket(ticket_id: str, services: AppServices = Depends(get_services)):
    return _updated(services, ticket_id, services.tickets.reopen(ticket_id))


@router.post("/{ticket_id}/retry", response_model=TicketResponse)
def retry_ticket_analysis(ticket_id: str, services: AppServices = Depends(get_services)):
    """Re-queue the ticket's failed analysis job."""
    ticket = _require_ticket(services, ticket_id)
    job = services.queue.get_for_ticket(ticket_id)
    if job is None:
        raise OrtraceError("ORT-QUE-001", detail=f"ticket {ticket_id} has no job")
    if not services.queue.retry(job.id):
        raise OrtraceError(
            "ORT-QUE-002",
            detail=f"job {job.id} is {job.status}",
            context={"job_id": job.id},
        )
    services.tickets.mark_processing(ticket.id)
    logger.info("ticket_retry_requested", extra={"ticket_id": ticket_id, "job_id": job.id})
    return TicketResponse.model_validate(_require_ticket(services, ticket_id))
