"""
Prompt builders for the interview workflow.

Three prompts are used: the next interview question, the structured instance
extraction once the interview is saturated, and context compaction. All are
pure string builders so they can be asserted on in tests.
"""

from typing import Iterable, List, Sequence

from knowledge_interview.domain.models.interview_state import ConversationTurn, InterviewSession


_INTERVIEWER_PERSONA = (
    "You are an expert knowledge interviewer. Your goal is to draw out specific, "
    "practical professional knowledge through focused follow-up questions."
)

_INTERVIEW_STRATEGY = [
    "Build on what has already been covered; do not repeat ground.",
    "Dig into specific processes and methodologies.",
    "Ask for concrete examples with step-by-step detail.",
    "Explore decision criteria, edge cases and how problems were solved.",
    "Identify the tools, frameworks and technologies involved.",
]


def _join(items: Iterable[str], empty: str = "None yet") -> str:
    values = sorted(items)
    return ", ".join(values) if values else empty


def format_recent_conversation(turns: Sequence[ConversationTurn]) -> str:
    if not turns:
        return "No previous conversation"
    return "\n\n".join(f"Q: {turn.question}\nA: {turn.answer}" for turn in turns)


def identify_focus_areas(session: InterviewSession) -> List[str]:
    """Pick what the next question should dig into"""

    areas = []
    if len(session.extracted_skills) < 3:
        areas.append("Technical skills and tools")
    if len(session.identified_workflows) < 2:
        areas.append("Step-by-step processes")
    if len(session.conversation_history) < 3:
        areas.append("Concrete examples and scenarios")
    if not areas:
        areas.append("Deep dive into existing topics")
    return areas


def build_interview_prompt(session: InterviewSession, recent_turns: int, max_turns: int) -> str:
    """Prompt for the next interview question.

    The model is expected to return a single question with no preamble.
    """
    progress = (
        f"{len(session.conversation_history)} of up to {max_turns} questions answered, "
        f"saturation score {session.threshold_metrics.overall_score:.1f}/100"
    )
    strategy = "\n".join(f"{i}. {line}" for i, line in enumerate(_INTERVIEW_STRATEGY, start=1))
    focus = "\n".join(f"- {area}" for area in identify_focus_areas(session))

    return (
        f"{_INTERVIEWER_PERSONA}\n\n"
        f"USER PROFILE:\n{session.profile_summary or 'No profile information yet'}\n\n"
        f"SESSION PROGRESS: {progress}\n"
        f"IDENTIFIED SKILLS: {_join(session.extracted_skills)}\n"
        f"CAPTURED WORKFLOWS: {_join(session.identified_workflows)}\n\n"
        f"RECENT CONVERSATION:\n{format_recent_conversation(session.recent_turns(recent_turns))}\n\n"
        f"INTERVIEW STRATEGY:\n{strategy}\n\n"
        f"CURRENT FOCUS AREAS:\n{focus}\n\n"
        f"Return only the next question, with no numbering or commentary."
    )


def build_instance_prompt(session: InterviewSession, instance_count: int, key_topics: Sequence[str]) -> str:
    """Prompt for structured extraction of question/answer instances"""

    return (
        f"Generate exactly {instance_count} high-quality question-answer pairs for a "
        f"professional knowledge dataset, based on the interview below.\n\n"
        f"INTERVIEW CONTEXT:\n{session.global_context}\n\n"
        f"EXTRACTED KNOWLEDGE:\n"
        f"Skills: {_join(session.extracted_skills)}\n"
        f"Workflows: {_join(session.identified_workflows)}\n"
        f"Key topics: {', '.join(key_topics) if key_topics else 'None'}\n\n"
        f"REQUIREMENTS:\n"
        f"1. Each pair captures specific, actionable professional knowledge.\n"
        f"2. Questions are clear and practical.\n"
        f"3. Answers are detailed, 150-400 words, with concrete examples.\n"
        f"4. Include at least one tag and a category for every pair.\n"
        f"5. Difficulty is one of beginner, intermediate, advanced.\n\n"
        f"Respond with a JSON array only, each element shaped like:\n"
        f'{{"question": "...", "answer": "...", "tags": ["tag1", "tag2"], '
        f'"category": "primary_skill_area", "difficulty": "intermediate", "confidence_score": 85}}'
    )


def build_compaction_prompt(
    context: str,
    target_length: int,
    skills: Iterable[str],
    workflows: Iterable[str]
) -> str:
    """Prompt asking the summarizer to shrink the running context"""

    return (
        f"Compress the interview context below while keeping every piece of "
        f"professional knowledge it contains.\n\n"
        f"ORIGINAL CONTEXT ({len(context)} characters):\n{context}\n\n"
        f"GOALS:\n"
        f"- Stay under {target_length} characters.\n"
        f"- Preserve every skill, tool and workflow mentioned.\n"
        f"- Keep concrete examples, specific processes and decision criteria.\n"
        f"- Drop repetition and small talk.\n\n"
        f"MUST PRESERVE:\n"
        f"Skills: {_join(skills, 'None')}\n"
        f"Workflows: {_join(workflows, 'None')}\n\n"
        f"Return only the compressed context."
    )
