from collections import deque
from typing import Any, Callable, Dict, List, Optional
import asyncio
import json

import pytest

from knowledge_interview.application.api.api_server import build_interview_service
from knowledge_interview.domain.context.memory.instance_memory_store import InMemoryInstanceStore
from knowledge_interview.domain.context.memory.profile_memory_store import InMemoryProfileStore
from knowledge_interview.domain.ports.collaborators import TextCompletion
from knowledge_interview.infrastructure.billing.quota_gate import InMemoryQuotaGate
from knowledge_interview.infrastructure.config.settings import Settings


def prompt_kind(prompt: str) -> str:
    if "question-answer pairs" in prompt:
        return "instances"
    if "Compress the interview context" in prompt:
        return "summary"
    return "question"


def make_instances(count: int = 3) -> List[Dict[str, Any]]:
    return [
        {
            "question": f"How do you structure a React and Node.js deployment pipeline, case {i}?",
            "answer": (
                "I start by running the test suite in CI, then build a Docker image, push it to the "
                "registry and roll it out with a staged deployment so regressions are caught early "
                f"before reaching every user. Variant {i}."
            ),
            "tags": ["react", "node.js", "deployment"],
            "category": "devops",
            "difficulty": "intermediate",
            "confidence_score": 80,
        }
        for i in range(count)
    ]


def instances_json(count: int = 3) -> str:
    return json.dumps(make_instances(count))


class FakeCompletion(TextCompletion):
    """Scripted text completion routed by prompt kind.

    Each kind takes queued replies first (strings, exceptions or callables),
    then falls back to its default.
    """

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.calls: List[Dict[str, Any]] = []
        self.queues: Dict[str, deque] = {"question": deque(), "instances": deque(), "summary": deque()}
        self.question_counter = 0
        self.defaults: Dict[str, Any] = {
            "question": self._next_question,
            "instances": instances_json(3),
            "summary": "Summary: react, node.js, deployment pipelines.",
        }

    def _next_question(self, prompt: str) -> str:
        self.question_counter += 1
        return f"Question {self.question_counter}: can you walk me through that in more detail?"

    def queue(self, kind: str, *replies: Any):
        self.queues[kind].extend(replies)

    def calls_of(self, kind: str) -> List[Dict[str, Any]]:
        return [call for call in self.calls if call["kind"] == kind]

    async def complete(self, prompt: str, max_tokens: int, temperature: float, timeout_ms: int) -> str:
        kind = prompt_kind(prompt)
        self.calls.append({"kind": kind, "prompt": prompt, "max_tokens": max_tokens, "timeout_ms": timeout_ms})
        if self.delay:
            await asyncio.sleep(self.delay)

        reply = self.queues[kind].popleft() if self.queues[kind] else self.defaults[kind]
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            reply = reply(prompt)
            if asyncio.iscoroutine(reply):
                reply = await reply
        return reply


def make_settings(**overrides) -> Settings:
    values = dict(
        openai_api_key="test-key",
        backoff_base_s=0.0,
        question_timeout_s=2.0,
        generation_timeout_s=2.0,
        compaction_timeout_s=2.0,
        log_format="console",
        _env_file=None,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def completion() -> FakeCompletion:
    return FakeCompletion()


@pytest.fixture
def profile_store() -> InMemoryProfileStore:
    return InMemoryProfileStore()


@pytest.fixture
def instance_store() -> InMemoryInstanceStore:
    return InMemoryInstanceStore()


@pytest.fixture
def quota_gate(profile_store) -> InMemoryQuotaGate:
    return InMemoryQuotaGate(profile_store=profile_store)


@pytest.fixture
def service_factory(completion, profile_store, instance_store, quota_gate):
    def factory(settings: Optional[Settings] = None, completion_override: Optional[TextCompletion] = None):
        return build_interview_service(
            settings or make_settings(),
            completion=completion_override or completion,
            quota_gate=quota_gate,
            profile_store=profile_store,
            instance_store=instance_store
        )
    return factory


@pytest.fixture
def service(service_factory, settings):
    return service_factory(settings)


GENERIC_ANSWER = "I mostly just get the work done day to day."


async def answer_times(service, user_id: str, tab_id: str, count: int, answer: str = GENERIC_ANSWER):
    """Start a session and submit `count` answers, returning the results"""
    started = await service.start_session(user_id, tab_id)
    results = []
    for _ in range(count):
        results.append(await service.submit_answer(user_id, tab_id, started.session_id, answer))
    return started, results
