"""
Public widget endpoints.

- POST /{project_id}/submit                       : open a ticket (status recording)
- POST /{project_id}/tickets/{ticket_id}/upload   : attach the recording, queue analysis

No authentication: the project id embedded in the widget is the only key.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from app.core.async_utils import run_sync
from app.core.errors import OrtraceError
from app.core.errors.pipeline import TransientIOError
from app.core.readiness import get_services
from app.models.schemas import TicketResponse, TicketSubmitRequest, UploadResponse
from app.models.ticket import ProcessingStatus
from app.services.container import AppServices
from app.services.ticket_service import ingest_recording

logger = logging.getLogger(__name__)

router = APIRouter()

READ_CHUNK_BYTES = 1024 * 1024


@router.post("/{project_id}/submit", response_model=TicketResponse, status_code=201)
def submit_feedback(
    project_id: str,
    body: TicketSubmitRequest,
    services: AppServices = Depends(get_services),
):
    if services.projects.get_active(project_id) is None:
        raise OrtraceError("ORT-API-004", detail=f"project {project_id} not found or inactive")
    ticket = services.tickets.create(
        project_id=project_id,
        feedback_type=body.feedback_type,
        task_description=body.task_description,
        submitter_email=body.submitter_email,
        submitter_name=body.submitter_name,
        page_url=body.page_url,
    )
    return TicketResponse.model_validate(ticket)


@router.post("/{project_id}/tickets/{ticket_id}/upload", response_model=UploadResponse, status_code=202)
async def upload_recording(
    project_id: str,
    ticket_id: str,
    file: UploadFile = File(...),
    duration_seconds: Optional[int] = Form(default=None, ge=0),
    services: AppServices = Depends(get_services),
):
    ticket = await run_sync(services.tickets.get, ticket_id)
    if ticket is None or ticket.project_id != project_id:
        raise OrtraceError("ORT-API-001", detail=f"ticket {ticket_id} not in project {project_id}")

    limit = services.settings.upload_max_bytes
    buffer = bytearray()
    while chunk := await file.read(READ_CHUNK_BYTES):
        buffer.extend(chunk)
        if len(buffer) > limit:
            raise OrtraceError(
                "ORT-API-006",
                detail=f"upload exceeds {limit} bytes",
                context={"ticket_id": ticket_id},
            )
    if not buffer:
        raise OrtraceError("ORT-API-007", detail="empty upload", context={"ticket_id": ticket_id})

    try:
        job_id = await ingest_recording(
            services, ticket, bytes(buffer), filename=file.filename, duration_seconds=duration_seconds
        )
    except TransientIOError as e:
        raise OrtraceError("ORT-STO-001", detail=e.message, context={"ticket_id": ticket_id})

    logger.info(
        "recording_uploaded",
        extra={"ticket_id": ticket_id, "job_id": job_id, "size_bytes": len(buffer)},
    )
    return UploadResponse(ticket_id=ticket_id, job_id=job_id, status=ProcessingStatus.PROCESSING.value)
