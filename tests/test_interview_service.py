import asyncio

import pytest

from knowledge_interview.application.api.api_server import build_interview_service
from knowledge_interview.domain.context.memory.profile_memory_store import InMemoryProfileStore
from knowledge_interview.domain.errors import (
    ParseError, ProviderError, QuotaExceededError, SessionNotFoundError, ValidationError
)
from knowledge_interview.domain.models.interview_state import SubscriptionTier, WorkflowState
from knowledge_interview.infrastructure.billing.quota_gate import InMemoryQuotaGate

from conftest import FakeCompletion, GENERIC_ANSWER, answer_times, make_settings


async def test_start_session_returns_first_question(service):
    started = await service.start_session("u1", "t1")

    assert started.session_id
    assert started.first_question.startswith("Question 1")
    assert started.state == WorkflowState.INTERVIEW
    assert started.progress["questions_answered"] == 0
    assert started.progress["max_questions"] == 25


async def test_start_session_resumes_existing_interview(service, completion):
    first = await service.start_session("u1", "t1")
    again = await service.start_session("u1", "t1")

    assert again.session_id == first.session_id
    assert again.first_question == first.first_question
    assert len(completion.calls_of("question")) == 1


async def test_react_and_node_answer_is_extracted(service):
    started = await service.start_session("u1", "t1")

    result = await service.submit_answer(
        "u1", "t1", started.session_id,
        "I use React for the frontend and Node.js for backend APIs"
    )

    assert {"react", "node.js"} <= set(result.skills_extracted)
    assert result.is_complete is False
    assert result.next_question
    assert result.progress["questions_answered"] == 1
    assert result.threshold_metrics.overall_score < 85


async def test_generic_answers_complete_by_turn_cap(service, instance_store):
    _, results = await answer_times(service, "u1", "t1", 25)

    assert all(not r.is_complete for r in results[:-1])
    final = results[-1]
    assert final.is_complete is True
    assert final.next_question is None
    assert len(final.generated_instances) == 3
    assert final.dataset_id in instance_store.datasets

    status = await service.get_status("u1", "t1")
    assert status["state"] == "complete"
    assert status["is_complete"] is True


async def test_answers_after_completion_are_rejected(service_factory):
    service = service_factory(make_settings(max_turns=2))
    started, results = await answer_times(service, "u1", "t1", 2)
    assert results[-1].is_complete

    with pytest.raises(ValidationError):
        await service.submit_answer("u1", "t1", started.session_id, GENERIC_ANSWER)


async def test_short_answer_is_rejected(service):
    started = await service.start_session("u1", "t1")

    with pytest.raises(ValidationError) as exc_info:
        await service.submit_answer("u1", "t1", started.session_id, "   too short   ")

    assert exc_info.value.details["min_length"] == 15
    status = await service.get_status("u1", "t1")
    assert status["conversation_history"] == []


async def test_missing_ids_are_rejected(service):
    with pytest.raises(ValidationError):
        await service.start_session("", "t1")
    with pytest.raises(ValidationError):
        await service.start_session("u1", "  ")


async def test_unknown_tab_is_not_found(service):
    with pytest.raises(SessionNotFoundError):
        await service.submit_answer("u1", "missing", "whatever", GENERIC_ANSWER)
    with pytest.raises(SessionNotFoundError):
        await service.get_status("u1", "missing")


async def test_stale_session_id_is_not_found(service):
    await service.start_session("u1", "t1")

    with pytest.raises(SessionNotFoundError):
        await service.submit_answer("u1", "t1", "some-old-session", GENERIC_ANSWER)


async def test_provider_failure_leaves_session_untouched(service, completion):
    started = await service.start_session("u1", "t1")
    before = (await service.registry.get("u1", "t1")).model_dump()
    completion.queue("question", ProviderError("down"), ProviderError("still down"))

    with pytest.raises(ProviderError):
        await service.submit_answer(
            "u1", "t1", started.session_id, "I use React for the frontend every day"
        )

    after = (await service.registry.get("u1", "t1")).model_dump()
    assert after == before

    retried = await service.submit_answer(
        "u1", "t1", started.session_id, "I use React for the frontend every day"
    )
    assert retried.progress["questions_answered"] == 1


async def test_malformed_generation_can_be_retried(service_factory, completion, quota_gate):
    service = service_factory(make_settings(max_turns=3))
    started, _ = await answer_times(service, "u1", "t1", 2)
    completion.queue("instances", "Invalid JSON { malformed")

    with pytest.raises(ParseError):
        await service.submit_answer("u1", "t1", started.session_id, GENERIC_ANSWER)

    status = await service.get_status("u1", "t1")
    assert status["state"] == "interview"
    assert len(status["conversation_history"]) == 2
    assert await quota_gate.remaining("u1") == 20

    result = await service.submit_answer("u1", "t1", started.session_id, GENERIC_ANSWER)
    assert result.is_complete is True
    assert len(result.generated_instances) == 3
    assert await quota_gate.remaining("u1") == 17


async def test_concurrent_answers_on_one_tab_are_serialized(service_factory):
    service = service_factory(completion_override=FakeCompletion(delay=0.01))
    started = await service.start_session("u1", "t1")

    first, second = await asyncio.gather(
        service.submit_answer("u1", "t1", started.session_id, "First answer about my React work"),
        service.submit_answer("u1", "t1", started.session_id, "Second answer about my Node.js work"),
    )

    status = await service.get_status("u1", "t1")
    history = status["conversation_history"]
    assert len(history) == 2
    assert history[0]["question"] == started.first_question
    assert history[1]["question"] == first.next_question
    assert second.progress["questions_answered"] == 2


async def test_two_tabs_cannot_double_spend_quota(profile_store, instance_store):
    gate = InMemoryQuotaGate(limits={
        SubscriptionTier.BASIC: 5, SubscriptionTier.PRO: 50, SubscriptionTier.ENTERPRISE: 200
    })
    service = build_interview_service(
        make_settings(max_turns=3), completion=FakeCompletion(delay=0.005),
        quota_gate=gate, profile_store=profile_store, instance_store=instance_store
    )

    outcomes = await asyncio.gather(
        answer_times(service, "u1", "t1", 3),
        answer_times(service, "u1", "t2", 3),
        return_exceptions=True
    )

    failures = [o for o in outcomes if isinstance(o, Exception)]
    successes = [o for o in outcomes if not isinstance(o, Exception)]
    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], QuotaExceededError)
    assert successes[0][1][-1].is_complete
    assert await gate.remaining("u1") == 2
    assert len(instance_store.datasets) == 1


async def test_cancelled_submit_leaves_session_and_releases_lock(service, completion):
    started = await service.start_session("u1", "t1")
    entered = asyncio.Event()

    async def stalled(prompt):
        entered.set()
        await asyncio.sleep(1)
        return "never used"

    completion.queue("question", stalled)
    task = asyncio.create_task(
        service.submit_answer("u1", "t1", started.session_id, "An answer that will be cancelled")
    )
    await entered.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    status = await service.get_status("u1", "t1")
    assert status["conversation_history"] == []
    assert status["current_question"] == started.first_question

    result = await service.submit_answer("u1", "t1", started.session_id, "An answer that goes through")
    assert result.progress["questions_answered"] == 1


async def test_close_flushes_once(service, profile_store):
    started = await service.start_session("u1", "t1")
    await service.submit_answer("u1", "t1", started.session_id,
                                "I use React for the frontend and Node.js for backend APIs")

    await service.close_session("u1", "t1")
    saves = profile_store.save_count
    await service.close_session("u1", "t1")

    assert profile_store.save_count == saves
    profile = await profile_store.load("u1")
    assert {"react", "node.js"} <= profile.extracted_skills
    with pytest.raises(SessionNotFoundError):
        await service.get_status("u1", "t1")


async def test_new_session_after_close_is_seeded_from_profile(service):
    started = await service.start_session("u1", "t1")
    await service.submit_answer("u1", "t1", started.session_id,
                                "I use React for the frontend and Node.js for backend APIs")
    await service.close_session("u1", "t1")

    restarted = await service.start_session("u1", "t1")
    status = await service.get_status("u1", "t1")

    assert restarted.session_id != started.session_id
    assert {"react", "node.js"} <= set(status["extracted_skills"])
    assert status["conversation_history"] == []


async def test_reset_session_starts_over(service):
    started = await service.start_session("u1", "t1")
    await service.submit_answer("u1", "t1", started.session_id, GENERIC_ANSWER)

    fresh = await service.reset_session("u1", "t1")

    assert fresh.session_id != started.session_id
    assert fresh.progress["questions_answered"] == 0
    assert fresh.first_question


async def test_list_sessions_reports_each_tab(service):
    await service.start_session("u1", "t1")
    await answer_times(service, "u1", "t2", 1)
    await service.start_session("u2", "t1")

    sessions = await service.list_sessions("u1")

    assert [s["tab_id"] for s in sessions] == ["t1", "t2"]
    assert sessions[0]["progress"]["questions_answered"] == 0
    assert sessions[1]["progress"]["questions_answered"] == 1
    assert sessions[0]["state"] == "interview"


class StallingProfileStore(InMemoryProfileStore):
    """Profile store whose saves hang until `stall` is switched off"""

    def __init__(self):
        super().__init__()
        self.stall = True
        self.entered = asyncio.Event()

    async def save(self, user_id, update):
        if self.stall:
            self.entered.set()
            await asyncio.sleep(1)
        return await super().save(user_id, update)


async def test_cancel_during_context_update_stores_and_charges_nothing(completion, instance_store, quota_gate):
    profile_store = StallingProfileStore()
    service = build_interview_service(
        make_settings(max_turns=2), completion=completion,
        quota_gate=quota_gate, profile_store=profile_store, instance_store=instance_store
    )
    started, _ = await answer_times(service, "u1", "t1", 1)

    task = asyncio.create_task(service.submit_answer("u1", "t1", started.session_id, GENERIC_ANSWER))
    await profile_store.entered.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    status = await service.get_status("u1", "t1")
    assert len(status["conversation_history"]) == 1
    assert status["state"] == "interview"
    assert instance_store.datasets == {}
    assert await quota_gate.remaining("u1") == 20

    profile_store.stall = False
    result = await service.submit_answer("u1", "t1", started.session_id, GENERIC_ANSWER)

    assert result.is_complete is True
    assert len(instance_store.datasets) == 1
    assert await quota_gate.remaining("u1") == 17


async def test_profile_store_crash_during_context_update_stores_and_charges_nothing(
    completion, instance_store, quota_gate
):
    class CrashingProfileStore(InMemoryProfileStore):
        async def save(self, user_id, update):
            raise RuntimeError("connection reset")

    service = build_interview_service(
        make_settings(max_turns=2), completion=completion,
        quota_gate=quota_gate, profile_store=CrashingProfileStore(), instance_store=instance_store
    )
    started, _ = await answer_times(service, "u1", "t1", 1)

    with pytest.raises(RuntimeError):
        await service.submit_answer("u1", "t1", started.session_id, GENERIC_ANSWER)

    assert instance_store.datasets == {}
    assert await quota_gate.remaining("u1") == 20
    assert len((await service.get_status("u1", "t1"))["conversation_history"]) == 1


async def test_open_and_closed_tabs_leave_no_locks_behind(service):
    for i in range(50):
        await service.start_session("u1", f"tab-{i}")
        await service.close_session("u1", f"tab-{i}")

    assert service.registry.active_count() == 0
    assert service.registry._locks == {}
    assert service.engine.quota_gate._locks == {}
