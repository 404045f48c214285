"""
Feedback Ticket Model
=====================

One feedback submission from an end user, created by the public widget.

Two independent status fields:
  - status: processing pipeline state, mirrors the linked analysis job
    (processing job -> processing, completed -> analyzed, failed -> failed).
  - ticket_status: triage state set by team members from the dashboard.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlmodel import Column, Field, SQLModel, Text


class FeedbackType(str, Enum):
    BUG = "bug"
    FEEDBACK = "feedback"
    IDEA = "idea"

    @property
    def label(self) -> str:
        return self.value.capitalize()


class ProcessingStatus(str, Enum):
    PENDING = "pending"
    RECORDING = "recording"
    UPLOADING = "uploading"
    PROCESSING = "processing"
    ANALYZED = "analyzed"
    FAILED = "failed"


class TicketStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    IN_QA = "in_qa"
    TODO = "todo"
    BACKLOG = "backlog"
    RESOLVED = "resolved"


class TicketPriority(str, Enum):
    URGENT = "urgent"
    HIGH = "high"
    NEUTRAL = "neutral"
    LOW = "low"


class FeedbackTicket(SQLModel, table=True):
    __tablename__ = "tickets"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True, max_length=36)
    project_id: Optional[str] = Field(default=None, nullable=True, index=True, max_length=36)
    analysis_job_id: Optional[str] = Field(default=None, nullable=True, max_length=36)

    feedback_type: str = Field(default=FeedbackType.BUG.value, max_length=16)
    status: str = Field(default=ProcessingStatus.PENDING.value, index=True, max_length=16)
    ticket_status: str = Field(default=TicketStatus.OPEN.value, index=True, max_length=16)
    priority: str = Field(default=TicketPriority.NEUTRAL.value, max_length=16)

    task_description: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    page_url: Optional[str] = Field(default=None, nullable=True, max_length=2048)
    submitter_email: Optional[str] = Field(default=None, nullable=True, max_length=320)
    submitter_name: Optional[str] = Field(default=None, nullable=True, max_length=255)
    assignee_id: Optional[str] = Field(default=None, nullable=True, max_length=36)

    artifact_path: Optional[str] = Field(default=None, nullable=True, max_length=1024)
    artifact_size_bytes: Optional[int] = Field(default=None, nullable=True)
    duration_seconds: Optional[int] = Field(default=None, nullable=True)

    closed_at: Optional[datetime] = Field(default=None, nullable=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
