"""Tests for prompt construction from tickets and project questions."""

from app.models.project import AnalysisQuestions, Project
from app.models.ticket import FeedbackTicket, FeedbackType
from app.services.prompt_builder import FEEDBACK_GUIDANCE, build_ticket_prompt


def _ticket(feedback_type=FeedbackType.BUG, description="Cannot check out"):
    return FeedbackTicket(project_id="p1", feedback_type=feedback_type.value, task_description=description)


def _project(questions=None):
    settings = {"analysis_questions": questions} if questions is not None else {}
    return Project(id="p1", name="Shop", settings=settings)


def test_bug_prompt_includes_guidance_and_enabled_question():
    project = _project({"bug": [{"id": "q1", "text": "Is this reproducible?", "enabled": True}]})
    prompt = build_ticket_prompt(_ticket(), project)

    assert "This submission type is: Bug." in prompt
    assert "Focus on identifying bugs, errors, and unexpected behavior in the recording." in prompt
    assert "- Is this reproducible?" in prompt
    assert "User's description: Cannot check out" in prompt


def test_disabled_questions_are_left_out():
    project = _project(
        {
            "bug": [
                {"id": "q1", "text": "Is this reproducible?", "enabled": False},
                {"id": "q2", "text": "Which browser?", "enabled": True, "is_custom": True},
            ]
        }
    )
    prompt = build_ticket_prompt(_ticket(), project)
    assert "Is this reproducible?" not in prompt
    assert "- Which browser?" in prompt


def test_no_enabled_questions_omits_block():
    project = _project({"idea": [{"id": "q1", "text": "Why?", "enabled": False}]})
    prompt = build_ticket_prompt(_ticket(FeedbackType.IDEA), project)
    assert "Answer these questions" not in prompt
    assert FEEDBACK_GUIDANCE[FeedbackType.IDEA] in prompt


def test_project_without_settings_uses_default_questions():
    prompt = build_ticket_prompt(_ticket(FeedbackType.FEEDBACK), _project())
    assert "Where does the user experience friction in the flow?" in prompt
    assert "This submission type is: Feedback." in prompt


def test_malformed_questions_fall_back_to_defaults():
    project = _project({"bug": "not a list"})
    questions = project.analysis_questions()
    assert questions == AnalysisQuestions()


def test_missing_description_and_project():
    prompt = build_ticket_prompt(_ticket(description=None), None)
    assert "User's description: No description provided" in prompt
    assert "Answer these questions" not in prompt
