"""Analysis job status and retry."""
import logging

from fastapi import APIRouter, Depends

from app.core.errors import OrtraceError
from app.core.readiness import get_services
from app.models.schemas import JobResponse
from app.services.container import AppServices

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{job_id}", response_model=JobResponse)
def get_job(job_id: str, services: AppServices = Depends(get_services)):
    job = services.queue.get(job_id)
    if job is None:
        raise OrtraceError("ORT-API-005", detail=f"job {job_id} not found")
    return JobResponse.model_validate(job)


@router.post("/{job_id}/retry", response_model=JobResponse)
def retry_job(job_id: str, services: AppServices = Depends(get_services)):
    job = services.queue.get(job_id)
    if job is None:
        raise OrtraceError("ORT-API-005", detail=f"job {job_id} not found")
    if not services.queue.retry(job_id):
        raise OrtraceError("ORT-QUE-002", detail=f"job {job_id} is {job.status}")
    if job.ticket_id:
        services.tickets.mark_processing(job.ticket_id)
    return JobResponse.model_validate(services.queue.get(job_id))
