"""
Project Model
=============

A customer site that embeds the feedback widget. ``settings`` is a free-form
JSON document; the analysis pipeline reads ``settings["analysis_questions"]``
to add per-feedback-type questions to the Gemini prompt.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field as PydanticField, ValidationError
from sqlalchemy import JSON
from sqlmodel import Column, Field, SQLModel

from app.models.ticket import FeedbackType

logger = logging.getLogger(__name__)


class AnalysisQuestion(BaseModel):
    id: str
    text: str
    enabled: bool = True
    is_custom: bool = False


def _defaults(pairs: List[tuple]) -> List[AnalysisQuestion]:
    return [AnalysisQuestion(id=qid, text=text) for qid, text in pairs]


def default_bug_questions() -> List[AnalysisQuestion]:
    return _defaults([
        ("bug-blocked", "Is the user completely blocked from completing the task?"),
        ("bug-workarounds", "Did the user try alternative paths or workarounds?"),
        ("bug-user-error", "Is this likely a user error or a product bug?"),
    ])


def default_feedback_questions() -> List[AnalysisQuestion]:
    return _defaults([
        ("feedback-friction", "Where does the user experience friction in the flow?"),
        ("feedback-expectation", "What expectation did the user have that was not met?"),
        ("feedback-smoother", "What would make this experience feel smoother?"),
    ])


def default_idea_questions() -> List[AnalysisQuestion]:
    return _defaults([
        ("idea-problem", "What problem is the user trying to solve?"),
        ("idea-benefit", "What benefit would this feature provide?"),
        ("idea-urgency", "How urgent is this request in their workflow?"),
    ])


class AnalysisQuestions(BaseModel):
    """Per-feedback-type question lists. Missing types get the defaults."""

    bug: List[AnalysisQuestion] = PydanticField(default_factory=default_bug_questions)
    feedback: List[AnalysisQuestion] = PydanticField(default_factory=default_feedback_questions)
    idea: List[AnalysisQuestion] = PydanticField(default_factory=default_idea_questions)

    def enabled_for_type(self, feedback_type: FeedbackType) -> List[AnalysisQuestion]:
        questions = getattr(self, feedback_type.value)
        return [q for q in questions if q.enabled]


class Project(SQLModel, table=True):
    __tablename__ = "projects"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True, max_length=36)
    owner_id: Optional[str] = Field(default=None, nullable=True, max_length=36)
    name: str = Field(max_length=255)
    domain: Optional[str] = Field(default=None, nullable=True, max_length=255)
    settings: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def analysis_questions(self) -> AnalysisQuestions:
        """Questions from settings; malformed or absent settings yield the defaults."""
        raw = (self.settings or {}).get("analysis_questions")
        if not isinstance(raw, dict):
            return AnalysisQuestions()
        try:
            return AnalysisQuestions.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Invalid analysis_questions on project %s: %s", self.id, exc)
            return AnalysisQuestions()
