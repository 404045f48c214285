"""
Report / Issue Models
=====================

Structured outcome of analysing a ticket's recording, plus the helpers that
turn Gemini's loosely-typed JSON into canonical shapes.

Gemini does not reliably respect the requested schema: list fields come back
as arrays or as a bare string, evidence as typed objects or prose. The
semi-structured fields are stored as received; every consumer reads them
through the ``*_from_value`` normalizers below, which are the only place the
ambiguous shapes are handled.
"""

import math
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel
from sqlalchemy import JSON
from sqlmodel import Column, Field, SQLModel, Text


class ReportOutcome(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class IssueSeverity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class EvidenceType(str, Enum):
    SCREENSHOT = "screenshot"
    TIMESTAMP = "timestamp"
    OBSERVATION = "observation"


# Defaults applied when the model omits a field or returns an unknown value
DEFAULT_OUTCOME = ReportOutcome.FAILED
DEFAULT_SEVERITY = IssueSeverity.MEDIUM
DEFAULT_ISSUE_TITLE = "Unknown Issue"


# ---------------------------------------------------------------------------
# Canonical shapes
# ---------------------------------------------------------------------------

class Evidence(BaseModel):
    type: EvidenceType
    value: str
    description: Optional[str] = None


class QuestionAnswer(BaseModel):
    question: str = ""
    answer: str = ""
    observations: List[str] = []
    confidence: int = 0
    timestamp: Optional[str] = None


# ---------------------------------------------------------------------------
# Normalizers (array-or-string union -> canonical list)
# ---------------------------------------------------------------------------

def string_list_from_value(value: Any) -> List[str]:
    """Array -> its string elements; bare string -> singleton; else []."""
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, list):
        return [v for v in value if isinstance(v, str)]
    return []


def evidence_from_value(value: Any) -> List[Evidence]:
    """Array of {type, value, description?}; bare string -> one observation."""
    if isinstance(value, str):
        if not value.strip():
            return []
        return [Evidence(type=EvidenceType.OBSERVATION, value=value)]
    if not isinstance(value, list):
        return []

    items: List[Evidence] = []
    for raw in value:
        if isinstance(raw, str) and raw.strip():
            items.append(Evidence(type=EvidenceType.OBSERVATION, value=raw))
            continue
        if not isinstance(raw, dict):
            continue
        try:
            kind = EvidenceType(str(raw.get("type", "")).lower())
        except ValueError:
            continue
        val = raw.get("value")
        if not isinstance(val, str):
            continue
        desc = raw.get("description")
        items.append(Evidence(type=kind, value=val, description=desc if isinstance(desc, str) else None))
    return items


def question_analysis_from_value(value: Any) -> List[QuestionAnswer]:
    """Array of structured entries; bare string -> one entry used as the answer."""
    if isinstance(value, str):
        return [QuestionAnswer(answer=value)] if value.strip() else []
    if not isinstance(value, list):
        return []

    entries: List[QuestionAnswer] = []
    for raw in value:
        if not isinstance(raw, dict):
            continue
        question = raw.get("question")
        answer = raw.get("answer")
        if not isinstance(question, str) and not isinstance(answer, str):
            continue
        timestamp = raw.get("timestamp")
        entries.append(
            QuestionAnswer(
                question=question if isinstance(question, str) else "",
                answer=answer if isinstance(answer, str) else "",
                observations=string_list_from_value(raw.get("observations")),
                confidence=int_from_value(raw.get("confidence"), upper=100),
                timestamp=timestamp if isinstance(timestamp, str) else None,
            )
        )
    return entries


# Largest value the INTEGER columns hold on PostgreSQL
INT_COLUMN_MAX = 2**31 - 1


def int_from_value(value: Any, upper: Optional[int] = None) -> int:
    """Integer or float (rounded) -> int clamped to [0, upper or INT_COLUMN_MAX].

    NaN, infinities and non-numbers -> 0.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if isinstance(value, float) and not math.isfinite(value):
        return 0
    number = max(0, int(round(value)))
    return min(number, INT_COLUMN_MAX if upper is None else upper)


def outcome_from_value(value: Any) -> ReportOutcome:
    try:
        return ReportOutcome(str(value).strip().lower())
    except ValueError:
        return DEFAULT_OUTCOME


def severity_from_value(value: Any) -> IssueSeverity:
    try:
        return IssueSeverity(str(value).strip().lower())
    except ValueError:
        return DEFAULT_SEVERITY


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------

class Report(SQLModel, table=True):
    __tablename__ = "reports"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True, max_length=36)
    ticket_id: str = Field(unique=True, index=True, max_length=36)
    outcome: str = Field(default=DEFAULT_OUTCOME.value, max_length=16)
    confidence: int = Field(default=0)
    overview: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))

    task_completion_rate: int = Field(default=0)
    total_hesitation_time: int = Field(default=0)
    retries_count: int = Field(default=0)
    abandonment_point: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))

    raw_analysis: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    question_analysis: Any = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    suggested_actions: Any = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    possible_solutions: Any = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Issue(SQLModel, table=True):
    __tablename__ = "issues"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True, max_length=36)
    report_id: str = Field(index=True, max_length=36)
    position: int = Field(default=0)
    title: str = Field(default=DEFAULT_ISSUE_TITLE, max_length=512)
    severity: str = Field(default=DEFAULT_SEVERITY.value, max_length=16)
    confidence: int = Field(default=0)
    observed_behavior: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    expected_behavior: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))

    tags: Any = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    evidence: Any = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    screenshots: Any = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    impact: Any = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    reproduction_steps: Any = Field(default_factory=list, sa_column=Column(JSON, nullable=False))


# ---------------------------------------------------------------------------
# Read views (normalised at read time)
# ---------------------------------------------------------------------------

class IssueView(BaseModel):
    id: str
    title: str
    severity: IssueSeverity
    confidence: int
    observed_behavior: Optional[str] = None
    expected_behavior: Optional[str] = None
    tags: List[str]
    evidence: List[Evidence]
    screenshots: List[str]
    impact: List[str]
    reproduction_steps: List[str]

    @classmethod
    def from_row(cls, row: Issue) -> "IssueView":
        return cls(
            id=row.id,
            title=row.title or DEFAULT_ISSUE_TITLE,
            severity=severity_from_value(row.severity),
            confidence=int_from_value(row.confidence, upper=100),
            observed_behavior=row.observed_behavior,
            expected_behavior=row.expected_behavior,
            tags=string_list_from_value(row.tags),
            evidence=evidence_from_value(row.evidence),
            screenshots=string_list_from_value(row.screenshots),
            impact=string_list_from_value(row.impact),
            reproduction_steps=string_list_from_value(row.reproduction_steps),
        )


class MetricsView(BaseModel):
    task_completion_rate: int
    total_hesitation_time: int
    retries_count: int
    abandonment_point: Optional[str] = None


class ReportView(BaseModel):
    id: str
    ticket_id: str
    outcome: ReportOutcome
    confidence: int
    overview: Optional[str] = None
    metrics: MetricsView
    issues: List[IssueView]
    question_analysis: List[QuestionAnswer]
    suggested_actions: List[str]
    possible_solutions: List[str]
    created_at: datetime

    @classmethod
    def from_rows(cls, report: Report, issues: List[Issue]) -> "ReportView":
        return cls(
            id=report.id,
            ticket_id=report.ticket_id,
            outcome=outcome_from_value(report.outcome),
            confidence=int_from_value(report.confidence, upper=100),
            overview=report.overview,
            metrics=MetricsView(
                task_completion_rate=int_from_value(report.task_completion_rate, upper=100),
                total_hesitation_time=int_from_value(report.total_hesitation_time),
                retries_count=int_from_value(report.retries_count),
                abandonment_point=report.abandonment_point,
            ),
            issues=[IssueView.from_row(i) for i in sorted(issues, key=lambda i: i.position)],
            question_analysis=question_analysis_from_value(report.question_analysis),
            suggested_actions=string_list_from_value(report.suggested_actions),
            possible_solutions=string_list_from_value(report.possible_solutions),
            created_at=report.created_at,
        )
