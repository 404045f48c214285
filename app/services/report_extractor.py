"""
Report Extractor
================

Turns Gemini's free-form reply into a persisted Report with Issues.

JSON recovery, first success wins (each stage must yield a JSON object):
  1. the whole reply, trimmed;
  2. the body of a ```json fenced block (marker matched case-insensitively);
  3. the first balanced {...} span, found by scanning forward from the first
     "{" while honouring quoted strings and backslash escapes. The scan is
     bounded to MAX_SCAN_CHARS.

If no stage succeeds a ReportParseError is raised. The job that produced
the reply is still Completed; only the report is missing.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from app.core.errors.pipeline import ReportParseError
from app.models.report import (
    DEFAULT_ISSUE_TITLE,
    Evidence,
    Issue,
    IssueSeverity,
    QuestionAnswer,
    Report,
    ReportOutcome,
    evidence_from_value,
    int_from_value,
    outcome_from_value,
    question_analysis_from_value,
    severity_from_value,
    string_list_from_value,
)

logger = logging.getLogger(__name__)

# Gemini replies are capped at 8192 output tokens; 256 KiB is well above that.
MAX_SCAN_CHARS = 256 * 1024

_FENCE_OPEN = re.compile(r"```json", re.IGNORECASE)


# ---------------------------------------------------------------------------
# JSON recovery
# ---------------------------------------------------------------------------

def _loads_object(text: str) -> Optional[Dict[str, Any]]:
    try:
        value = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None
    return value if isinstance(value, dict) else None


def _from_fence(text: str) -> Optional[Dict[str, Any]]:
    match = _FENCE_OPEN.search(text)
    if match is None:
        return None
    body = text[match.end():]
    end = body.find("```")
    if end != -1:
        body = body[:end]
    return _loads_object(body.strip())


def _balanced_span(text: str) -> Optional[str]:
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    quote: Optional[str] = None
    escaped = False
    limit = min(len(text), start + MAX_SCAN_CHARS)

    for i in range(start, limit):
        ch = text[i]
        if quote is not None:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == quote:
                quote = None
            continue
        if ch in ('"', "'"):
            quote = ch
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def extract_json_object(text: str) -> Dict[str, Any]:
    """Recover the analysis JSON object from a model reply."""
    stripped = text.strip()

    parsed = _loads_object(stripped)
    if parsed is not None:
        return parsed

    parsed = _from_fence(stripped)
    if parsed is not None:
        return parsed

    span = _balanced_span(stripped)
    if span is not None:
        parsed = _loads_object(span)
        if parsed is not None:
            return parsed

    raise ReportParseError("No JSON object found in analysis output", source="extractor")


# ---------------------------------------------------------------------------
# Field mapping
# ---------------------------------------------------------------------------

@dataclass
class ExtractedIssue:
    title: str
    severity: IssueSeverity
    confidence: int
    observed_behavior: Optional[str]
    expected_behavior: Optional[str]
    tags: List[str]
    evidence: List[Evidence]
    screenshots: List[str]
    impact: List[str]
    reproduction_steps: List[str]
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass
class ExtractedReport:
    outcome: ReportOutcome
    confidence: int
    overview: Optional[str]
    task_completion_rate: int
    total_hesitation_time: int
    retries_count: int
    abandonment_point: Optional[str]
    issues: List[ExtractedIssue]
    question_analysis: List[QuestionAnswer]
    suggested_actions: List[str]
    possible_solutions: List[str]
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)


def _text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value.strip() else None


def _issue(raw: Dict[str, Any]) -> ExtractedIssue:
    return ExtractedIssue(
        title=_text(raw.get("title")) or DEFAULT_ISSUE_TITLE,
        severity=severity_from_value(raw.get("severity")),
        confidence=int_from_value(raw.get("confidence"), upper=100),
        observed_behavior=_text(raw.get("observed_behavior")),
        expected_behavior=_text(raw.get("expected_behavior")),
        tags=string_list_from_value(raw.get("tags")),
        evidence=evidence_from_value(raw.get("evidence")),
        screenshots=string_list_from_value(raw.get("screenshots")),
        impact=string_list_from_value(raw.get("impact")),
        reproduction_steps=string_list_from_value(raw.get("reproduction_steps")),
        raw=raw,
    )


def parse_report(text: str) -> ExtractedReport:
    """Recover and normalise the analysis JSON in ``text``."""
    data = extract_json_object(text)
    metrics = data.get("metrics") if isinstance(data.get("metrics"), dict) else {}
    raw_issues = data.get("issues") if isinstance(data.get("issues"), list) else []

    return ExtractedReport(
        outcome=outcome_from_value(data.get("outcome")),
        confidence=int_from_value(data.get("confidence"), upper=100),
        overview=_text(data.get("overview")),
        task_completion_rate=int_from_value(metrics.get("task_completion_rate"), upper=100),
        total_hesitation_time=int_from_value(metrics.get("total_hesitation_time")),
        retries_count=int_from_value(metrics.get("retries_count")),
        abandonment_point=_text(metrics.get("abandonment_point")),
        issues=[_issue(i) for i in raw_issues if isinstance(i, dict)],
        question_analysis=question_analysis_from_value(data.get("question_analysis")),
        suggested_actions=string_list_from_value(data.get("suggested_actions")),
        possible_solutions=string_list_from_value(data.get("possible_solutions")),
        raw=data,
    )


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

def _raw_list_field(data: Dict[str, Any], key: str) -> Any:
    """Stored as received; absent or non-list/non-string values become []."""
    value = data.get(key)
    return value if isinstance(value, (list, str)) else []


class ReportExtractor:
    """Parses model output and writes one Report (plus Issues) per ticket."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def persist(self, ticket_id: str, raw_text: str) -> Report:
        """
        Parse ``raw_text`` and store it as the ticket's report.

        Raises ReportParseError when the text holds no JSON object. If the
        ticket already has a report it is returned unchanged.
        """
        extracted = parse_report(raw_text)

        with Session(self._engine) as session:
            existing = session.exec(select(Report).where(Report.ticket_id == ticket_id)).first()
            if existing is not None:
                logger.warning("report_exists", extra={"ticket_id": ticket_id, "report_id": existing.id})
                return existing

            report = Report(
                ticket_id=ticket_id,
                outcome=extracted.outcome.value,
                confidence=extracted.confidence,
                overview=extracted.overview,
                task_completion_rate=extracted.task_completion_rate,
                total_hesitation_time=extracted.total_hesitation_time,
                retries_count=extracted.retries_count,
                abandonment_point=extracted.abandonment_point,
                raw_analysis=raw_text,
                question_analysis=_raw_list_field(extracted.raw, "question_analysis"),
                suggested_actions=_raw_list_field(extracted.raw, "suggested_actions"),
                possible_solutions=_raw_list_field(extracted.raw, "possible_solutions"),
            )
            session.add(report)

            for position, issue in enumerate(extracted.issues):
                session.add(
                    Issue(
                        report_id=report.id,
                        position=position,
                        title=issue.title,
                        severity=issue.severity.value,
                        confidence=issue.confidence,
                        observed_behavior=issue.observed_behavior,
                        expected_behavior=issue.expected_behavior,
                        tags=_raw_list_field(issue.raw, "tags"),
                        evidence=_raw_list_field(issue.raw, "evidence"),
                        screenshots=_raw_list_field(issue.raw, "screenshots"),
                        impact=_raw_list_field(issue.raw, "impact"),
                        reproduction_steps=_raw_list_field(issue.raw, "reproduction_steps"),
                    )
                )

            session.commit()
            session.refresh(report)

        logger.info(
            "report_created",
            extra={"ticket_id": ticket_id, "report_id": report.id, "issues": len(extracted.issues)},
        )
        return report
