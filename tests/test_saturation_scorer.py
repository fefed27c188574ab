import pytest

from knowledge_interview.domain.models.interview_state import ConversationTurn, InterviewSession
from knowledge_interview.domain.scoring.saturation_scorer import (
    SaturationWeights, score_saturation, score_session
)


def test_empty_conversation_scores_zero():
    result = score_saturation(turns=0, skills=0, workflows=0, context_length=0)

    assert result.metrics.overall_score == 0
    assert result.generation_ready is False


def test_all_targets_met_scores_100_and_is_ready():
    result = score_saturation(turns=15, skills=8, workflows=5, context_length=4000)

    assert result.metrics.conversation_depth == pytest.approx(30)
    assert result.metrics.skill_diversity == pytest.approx(25)
    assert result.metrics.workflow_complexity == pytest.approx(25)
    assert result.metrics.context_richness == pytest.approx(20)
    assert result.metrics.overall_score == pytest.approx(100)
    assert result.generation_ready is True


def test_turn_cap_overrides_a_zero_score():
    weights = SaturationWeights(depth_weight=0)

    result = score_saturation(turns=25, skills=0, workflows=0, context_length=0, weights=weights)

    assert result.metrics.overall_score == 0
    assert result.generation_ready is True


def test_turn_cap_with_default_weights():
    result = score_saturation(turns=25, skills=0, workflows=0, context_length=0)

    assert result.metrics.overall_score == pytest.approx(30)
    assert result.generation_ready is True


def test_ready_threshold_is_inclusive():
    below = score_saturation(turns=15, skills=8, workflows=5, context_length=0)
    at = score_saturation(turns=15, skills=8, workflows=5, context_length=1000)

    assert below.metrics.overall_score == pytest.approx(80)
    assert below.generation_ready is False
    assert at.metrics.overall_score == pytest.approx(85)
    assert at.generation_ready is True


def test_components_are_capped_at_their_weight():
    result = score_saturation(turns=24, skills=40, workflows=30, context_length=90000)

    assert result.metrics.overall_score == pytest.approx(100)


@pytest.mark.parametrize("dimension", ["turns", "skills", "workflows", "context_length"])
def test_score_is_monotonic_in_each_dimension(dimension):
    base = {"turns": 3, "skills": 2, "workflows": 1, "context_length": 500}
    previous = -1.0
    for value in [0, 1, 2, 5, 8, 15, 24, 100, 5000]:
        inputs = dict(base, **{dimension: value})
        score = score_saturation(**inputs).metrics.overall_score
        assert score >= previous
        assert 0 <= score <= 100
        previous = score


def test_score_session_reads_session_statistics():
    session = InterviewSession(user_id="u1", tab_id="t1")
    session.conversation_history = [
        ConversationTurn(question="q", answer="a") for _ in range(3)
    ]
    session.extracted_skills = {"react", "node.js"}
    session.identified_workflows = {"Code review workflow"}
    session.global_context = "x" * 2000

    result = score_session(session)

    assert result.metrics.conversation_depth == pytest.approx(3 / 15 * 30)
    assert result.metrics.skill_diversity == pytest.approx(2 / 8 * 25)
    assert result.metrics.workflow_complexity == pytest.approx(1 / 5 * 25)
    assert result.metrics.context_richness == pytest.approx(10)
    assert result.generation_ready is False
