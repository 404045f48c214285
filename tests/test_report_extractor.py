"""
Tests for the report extractor: JSON recovery stages, field normalisation,
persistence (one report per ticket, raw list fields stored as received).
"""

import json

import pytest
from sqlmodel import Session, select

from app.core.errors.pipeline import ReportParseError
from app.models.report import (
    EvidenceType,
    INT_COLUMN_MAX,
    Issue,
    IssueSeverity,
    Report,
    ReportOutcome,
    ReportView,
)
from app.services import report_extractor
from app.services.report_extractor import ReportExtractor, extract_json_object, parse_report

SAMPLE = {
    "outcome": "partial",
    "confidence": 82,
    "overview": "The user filled the form but hesitated at the submit button.",
    "metrics": {
        "task_completion_rate": 60,
        "total_hesitation_time": 14,
        "retries_count": 2,
        "abandonment_point": "payment step",
    },
    "issues": [
        {
            "title": "Submit button unresponsive",
            "severity": "high",
            "tags": ["checkout", "button"],
            "observed_behavior": "Nothing happens on click",
            "expected_behavior": "Order is submitted",
            "evidence": [{"type": "timestamp", "value": "00:42", "description": "third click"}],
            "impact": "Users cannot pay",
            "reproduction_steps": ["Open cart", "Click submit"],
            "confidence": 90,
        }
    ],
    "question_analysis": [
        {"question": "Is this reproducible?", "answer": "Yes", "observations": ["3 clicks"], "confidence": 70}
    ],
    "suggested_actions": ["Add a loading spinner on submit"],
    "possible_solutions": "Debounce the submit handler",
}


class TestExtractJsonObject:
    def test_plain_json(self):
        assert extract_json_object(json.dumps(SAMPLE)) == SAMPLE

    def test_fenced_json_matches_raw(self):
        fenced = "Here is the analysis:\n```json\n" + json.dumps(SAMPLE, indent=2) + "\n```\nThanks!"
        assert extract_json_object(fenced) == extract_json_object(json.dumps(SAMPLE))

    def test_fence_marker_case_insensitive(self):
        text = "```JSON\n{\"outcome\": \"success\"}\n```"
        assert extract_json_object(text) == {"outcome": "success"}

    def test_unterminated_fence(self):
        text = "```json\n{\"outcome\": \"failed\"}"
        assert extract_json_object(text) == {"outcome": "failed"}

    def test_brace_matching_with_surrounding_prose(self):
        text = 'Sure! {"outcome": "success", "overview": "closing } brace in a string"} Hope that helps.'
        assert extract_json_object(text) == {
            "outcome": "success",
            "overview": "closing } brace in a string",
        }

    def test_brace_matching_handles_escaped_quotes(self):
        text = 'Result: {"overview": "she said \\"hi {\\" twice", "confidence": 5} end'
        assert extract_json_object(text)["confidence"] == 5

    def test_brace_matching_apostrophes_inside_strings(self):
        text = "Analysis: {\"overview\": \"the user's cart didn't update\", \"confidence\": 40} done"
        assert extract_json_object(text)["confidence"] == 40

    def test_prose_raises(self):
        with pytest.raises(ReportParseError):
            extract_json_object("The user seemed confused but I could not produce JSON.")

    def test_non_object_json_raises(self):
        with pytest.raises(ReportParseError):
            extract_json_object("[1, 2, 3]")

    def test_unbalanced_braces_raise(self):
        with pytest.raises(ReportParseError):
            extract_json_object('prefix {"outcome": "success"')

    def test_scan_is_bounded(self, monkeypatch):
        monkeypatch.setattr(report_extractor, "MAX_SCAN_CHARS", 64)
        text = "x {" + '"overview": "' + "a" * 200 + '"}'
        with pytest.raises(ReportParseError):
            extract_json_object(text)


class TestParseReport:
    def test_bare_string_tags_wrapped(self):
        report = parse_report('{"outcome":"success","issues":[{"tags":"ux"}]}')
        assert report.outcome == ReportOutcome.SUCCESS
        assert report.issues[0].tags == ["ux"]

    def test_full_mapping(self):
        report = parse_report(json.dumps(SAMPLE))
        assert report.outcome == ReportOutcome.PARTIAL
        assert report.confidence == 82
        assert report.task_completion_rate == 60
        assert report.total_hesitation_time == 14
        assert report.retries_count == 2
        assert report.abandonment_point == "payment step"
        issue = report.issues[0]
        assert issue.severity == IssueSeverity.HIGH
        assert issue.impact == ["Users cannot pay"]
        assert issue.evidence[0].type == EvidenceType.TIMESTAMP
        assert report.question_analysis[0].question == "Is this reproducible?"
        assert report.possible_solutions == ["Debounce the submit handler"]

    def test_missing_fields_get_defaults(self):
        report = parse_report('{"issues": [{}]}')
        assert report.outcome == ReportOutcome.FAILED
        assert report.confidence == 0
        assert report.task_completion_rate == 0
        assert report.suggested_actions == []
        issue = report.issues[0]
        assert issue.title == "Unknown Issue"
        assert issue.severity == IssueSeverity.MEDIUM
        assert issue.tags == []

    def test_unknown_enums_and_bad_numbers(self):
        report = parse_report(
            '{"outcome": "great", "confidence": 250, "metrics": {"task_completion_rate": -5, '
            '"retries_count": "two"}, "issues": [{"severity": "blocker", "confidence": 55.6}]}'
        )
        assert report.outcome == ReportOutcome.FAILED
        assert report.confidence == 100
        assert report.task_completion_rate == 0
        assert report.retries_count == 0
        assert report.issues[0].severity == IssueSeverity.MEDIUM
        assert report.issues[0].confidence == 56

    def test_infinite_and_oversized_numbers(self):
        report = parse_report(
            '{"confidence": 1e999, "metrics": {"task_completion_rate": Infinity, '
            '"total_hesitation_time": 1e12, "retries_count": -Infinity}, '
            '"issues": [{"title": "Stuck", "confidence": NaN}]}'
        )
        assert report.confidence == 0
        assert report.task_completion_rate == 0
        assert report.total_hesitation_time == INT_COLUMN_MAX
        assert report.retries_count == 0
        assert report.issues[0].title == "Stuck"
        assert report.issues[0].confidence == 0

    def test_huge_integer_clamped(self):
        report = parse_report('{"metrics": {"retries_count": ' + str(10**40) + "}}")
        assert report.retries_count == INT_COLUMN_MAX

    def test_evidence_string_becomes_observation(self):
        report = parse_report('{"issues": [{"evidence": "User clicked twice"}]}')
        evidence = report.issues[0].evidence
        assert len(evidence) == 1
        assert evidence[0].type == EvidenceType.OBSERVATION
        assert evidence[0].value == "User clicked twice"

    def test_question_analysis_string(self):
        report = parse_report('{"question_analysis": "Not blocked, found a workaround"}')
        assert len(report.question_analysis) == 1
        assert report.question_analysis[0].question == ""
        assert report.question_analysis[0].answer == "Not blocked, found a workaround"

    def test_string_list_filters_non_strings(self):
        report = parse_report('{"suggested_actions": ["one", 2, null, "three"]}')
        assert report.suggested_actions == ["one", "three"]


class TestReportExtractorPersist:
    def test_persists_report_and_issues(self, engine, make_ticket):
        ticket = make_ticket()
        raw = "```json\n" + json.dumps(SAMPLE) + "\n```"
        report = ReportExtractor(engine).persist(ticket.id, raw)

        with Session(engine) as session:
            stored = session.exec(select(Report).where(Report.ticket_id == ticket.id)).one()
            issues = session.exec(select(Issue).where(Issue.report_id == stored.id)).all()

        assert stored.id == report.id
        assert stored.outcome == "partial"
        assert stored.raw_analysis == raw
        # semi-structured fields kept as received
        assert stored.possible_solutions == "Debounce the submit handler"
        assert len(issues) == 1
        assert issues[0].impact == "Users cannot pay"

        view = ReportView.from_rows(stored, list(issues))
        assert view.possible_solutions == ["Debounce the submit handler"]
        assert view.issues[0].impact == ["Users cannot pay"]
        assert view.metrics.retries_count == 2

    def test_prose_creates_no_report(self, engine, make_ticket):
        ticket = make_ticket()
        with pytest.raises(ReportParseError):
            ReportExtractor(engine).persist(ticket.id, "I could not analyse this video.")
        with Session(engine) as session:
            assert session.exec(select(Report)).first() is None

    def test_second_extraction_keeps_first_report(self, engine, make_ticket):
        ticket = make_ticket()
        extractor = ReportExtractor(engine)
        first = extractor.persist(ticket.id, '{"outcome": "success"}')
        second = extractor.persist(ticket.id, '{"outcome": "failed"}')
        assert second.id == first.id
        assert second.outcome == "success"

    def test_infinite_numbers_still_persist(self, engine, make_ticket):
        ticket = make_ticket()
        raw = '{"outcome": "success", "confidence": 1e999, "metrics": {"total_hesitation_time": 1e999}}'
        ReportExtractor(engine).persist(ticket.id, raw)

        with Session(engine) as session:
            stored = session.exec(select(Report).where(Report.ticket_id == ticket.id)).one()
        assert stored.outcome == "success"
        assert stored.confidence == 0
        assert stored.total_hesitation_time == 0
