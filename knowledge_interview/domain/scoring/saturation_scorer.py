from typing import NamedTuple
from pydantic import BaseModel

from knowledge_interview.domain.models.interview_state import InterviewSession, ThresholdMetrics


class SaturationWeights(BaseModel):
    """Targets and weights of the saturation score"""
    depth_target: int = 15
    depth_weight: float = 30.0
    diversity_target: int = 8
    diversity_weight: float = 25.0
    complexity_target: int = 5
    complexity_weight: float = 25.0
    richness_target: int = 4000
    richness_weight: float = 20.0
    ready_score: float = 85.0
    max_turns: int = 25


DEFAULT_WEIGHTS = SaturationWeights()


class SaturationResult(NamedTuple):
    metrics: ThresholdMetrics
    generation_ready: bool


def _ratio(value: int, target: int) -> float:
    if target <= 0:
        return 1.0
    return min(max(value, 0) / target, 1.0)  # Cap at 1.0


def score_saturation(
    turns: int,
    skills: int,
    workflows: int,
    context_length: int,
    weights: SaturationWeights = DEFAULT_WEIGHTS
) -> SaturationResult:
    """Score how much signal the conversation holds.

    Each dimension is capped at its weight, so the overall score stays
    within [0, 100]. The turn cap makes the interview ready regardless of
    score.
    """
    metrics = ThresholdMetrics(
        conversation_depth=_ratio(turns, weights.depth_target) * weights.depth_weight,
        skill_diversity=_ratio(skills, weights.diversity_target) * weights.diversity_weight,
        workflow_complexity=_ratio(workflows, weights.complexity_target) * weights.complexity_weight,
        context_richness=_ratio(context_length, weights.richness_target) * weights.richness_weight,
    )
    metrics.overall_score = (
        metrics.conversation_depth
        + metrics.skill_diversity
        + metrics.workflow_complexity
        + metrics.context_richness
    )

    ready = metrics.overall_score >= weights.ready_score or turns >= weights.max_turns
    return SaturationResult(metrics=metrics, generation_ready=ready)


def score_session(
    session: InterviewSession,
    weights: SaturationWeights = DEFAULT_WEIGHTS
) -> SaturationResult:
    """Score a session from its current statistics"""
    return score_saturation(
        turns=len(session.conversation_history),
        skills=len(session.extracted_skills),
        workflows=len(session.identified_workflows),
        context_length=len(session.global_context),
        weights=weights
    )
