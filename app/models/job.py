"""
Analysis Job Model
==================

One queued unit of video-analysis work. Rows are created Pending when a
ticket's recording upload completes and are moved through the state machine
exclusively by app.services.job_queue:

    pending ──dequeue──▶ processing ──complete──▶ completed
                              │
                              └──fail──▶ failed ──retry──▶ pending
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import Index
from sqlmodel import Column, Field, SQLModel, Text


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class AnalysisJob(SQLModel, table=True):
    __tablename__ = "analysis_jobs"
    __table_args__ = (Index("ix_analysis_jobs_status_created", "status", "created_at"),)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True, max_length=36)
    user_id: Optional[str] = Field(default=None, nullable=True, max_length=36)
    ticket_id: Optional[str] = Field(default=None, nullable=True, index=True, max_length=36)
    status: str = Field(default=JobStatus.PENDING.value, max_length=16)
    artifact_path: str = Field(max_length=1024)
    artifact_size_bytes: int = Field(default=0)
    prompt: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    result_text: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    error_message: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    retry_count: int = Field(default=0)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: Optional[datetime] = Field(default=None, nullable=True)
    completed_at: Optional[datetime] = Field(default=None, nullable=True)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class NewJob:
    """Arguments for JobQueue.enqueue."""

    artifact_path: str
    artifact_size_bytes: int = 0
    ticket_id: Optional[str] = None
    user_id: Optional[str] = None
    prompt: Optional[str] = None
