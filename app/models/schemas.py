from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.ticket import FeedbackType, TicketPriority, TicketStatus


class TicketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    project_id: Optional[str] = None
    analysis_job_id: Optional[str] = None
    feedback_type: str
    status: str  # processing status: pending, recording, uploading, processing, analyzed, failed
    ticket_status: str
    priority: str
    task_description: Optional[str] = None
    page_url: Optional[str] = None
    submitter_email: Optional[str] = None
    submitter_name: Optional[str] = None
    assignee_id: Optional[str] = None
    artifact_size_bytes: Optional[int] = None
    duration_seconds: Optional[int] = None
    closed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class TicketListResponse(BaseModel):
    items: List[TicketResponse]
    total: int
    page: int
    per_page: int


class TicketSubmitRequest(BaseModel):
    feedback_type: FeedbackType
    task_description: Optional[str] = Field(default=None, max_length=5000)
    submitter_email: Optional[str] = Field(default=None, max_length=320)
    submitter_name: Optional[str] = Field(default=None, max_length=255)
    page_url: Optional[str] = Field(default=None, max_length=2048)


class TicketStatusUpdate(BaseModel):
    ticket_status: TicketStatus


class TicketPriorityUpdate(BaseModel):
    priority: TicketPriority


class TicketAssigneeUpdate(BaseModel):
    assignee_id: Optional[str] = None


class UploadResponse(BaseModel):
    ticket_id: str
    job_id: str
    status: str


class JobResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    ticket_id: Optional[str] = None
    status: str
    artifact_size_bytes: int
    error_message: Optional[str] = None
    retry_count: int
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ProjectCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    domain: Optional[str] = Field(default=None, max_length=255)
    settings: Dict[str, Any] = Field(default_factory=dict)


class ProjectResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    domain: Optional[str] = None
    settings: Dict[str, Any]
    is_active: bool
    created_at: datetime
