"""
Prompt construction for video analysis.

Ticket-linked jobs get a prompt tailored to the submission type, the user's
own description and the project's enabled analysis questions, rendered from
a Jinja2 template. Everything else falls back to DEFAULT_PROMPT.
"""

from typing import Optional

from jinja2 import DictLoader, Environment, StrictUndefined

from app.models.project import Project
from app.models.ticket import FeedbackTicket, FeedbackType

DEFAULT_PROMPT = (
    "Analyze this video recording of a user session. Identify any usability issues, "
    "points of confusion, and areas for improvement. Provide your analysis as a structured "
    "JSON report with issues, metrics, and recommendations."
)

FEEDBACK_GUIDANCE = {
    FeedbackType.BUG: "Focus on identifying bugs, errors, and unexpected behavior in the recording.",
    FeedbackType.FEEDBACK: "Analyze the user experience, usability issues, and areas for improvement.",
    FeedbackType.IDEA: "Analyze the feature request or suggestion shown in the recording.",
}

RESPONSE_FORMAT = """Respond with a single JSON object with exactly these fields:
- outcome: "success" | "partial" | "failed"
- confidence: number 0-100, your overall confidence in the analysis
- overview: 2-4 sentences for a human reader covering what the user did, what worked or did not, and the main takeaway. Be concrete ("The user filled the form but hesitated at the submit button"), not vague ("Some friction was observed").
- metrics: { task_completion_rate, total_hesitation_time, retries_count, abandonment_point }
- issues: array of the top issues, each with title (short, shown as a label), severity ("critical" | "high" | "medium" | "low"), tags, observed_behavior, expected_behavior, evidence, impact, reproduction_steps, confidence
- question_analysis: array of { question, answer, observations, confidence, timestamp }, one per question listed above
- suggested_actions: array of strings, recommended next steps
- possible_solutions: array of strings, concrete fixes for the issues found (e.g. "Add a loading spinner on submit")"""

TEMPLATES = {
    "ticket_analysis": """Analyze this screen recording. This submission type is: {{ type_label }}.

{{ guidance }}

User's description: {{ description }}
{% if questions %}

Answer these questions in your analysis (include each in question_analysis):
{% for question in questions %}
- {{ question }}
{% endfor %}
{% endif %}

{{ response_format }}""",
}

# Plain-text prompts: no HTML autoescaping
_env = Environment(
    loader=DictLoader(TEMPLATES),
    autoescape=False,
    trim_blocks=True,
    lstrip_blocks=True,
    undefined=StrictUndefined,
)


def build_ticket_prompt(ticket: FeedbackTicket, project: Optional[Project]) -> str:
    """Prompt for a ticket's recording. Raises ValueError on an unknown feedback type."""
    feedback_type = FeedbackType(ticket.feedback_type)
    description = (ticket.task_description or "").strip() or "No description provided"

    questions = []
    if project is not None:
        questions = [q.text for q in project.analysis_questions().enabled_for_type(feedback_type)]

    return _env.get_template("ticket_analysis").render(
        type_label=feedback_type.label,
        guidance=FEEDBACK_GUIDANCE[feedback_type],
        description=description,
        questions=questions,
        response_format=RESPONSE_FORMAT,
    )
