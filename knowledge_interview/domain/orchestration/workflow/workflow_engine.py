from typing import List, Optional
from dataclasses import dataclass, field
import asyncio
import structlog

from knowledge_interview.domain.context.context_compactor import ContextCompactor
from knowledge_interview.domain.errors import (
    InterviewError, ParseError, PersistenceError, ProviderError, QuotaExceededError
)
from knowledge_interview.domain.extraction.skill_extractor import ExtractionResult, extract_key_topics
from knowledge_interview.domain.models.interview_state import (
    ConversationTurn, ExtractionContext, GeneratedInstance, InterviewSession,
    ProfileUpdate, WorkflowState
)
from knowledge_interview.domain.ports.collaborators import (
    DurableInstanceStore, DurableProfileStore, QuotaGate, TextCompletion
)
from knowledge_interview.domain.scoring.saturation_scorer import (
    DEFAULT_WEIGHTS, SaturationWeights, score_session
)
from knowledge_interview.infrastructure.config.settings import Settings
from knowledge_interview.infrastructure.observability.logging import interview_logger, metrics
from .instance_parser import parse_instances
from .prompts import build_instance_prompt, build_interview_prompt
from .retry import call_with_retry
from .transitions import Effect, WorkflowEvent, transition

logger = structlog.get_logger(__name__)


@dataclass
class StepOutcome:
    """Result of driving the engine from one external event"""
    session: InterviewSession
    error: Optional[InterviewError] = None
    trace: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None


class WorkflowEngine:
    """Executes the effects named by the transition function.

    The engine mutates the session it is given. Callers pass a draft copy
    and only keep it when the outcome is ok, so a failed step never touches
    stored state.
    """

    def __init__(
        self,
        completion: TextCompletion,
        quota_gate: QuotaGate,
        profile_store: DurableProfileStore,
        instance_store: DurableInstanceStore,
        compactor: ContextCompactor,
        settings: Settings,
        weights: Optional[SaturationWeights] = None
    ):
        self.completion = completion
        self.quota_gate = quota_gate
        self.profile_store = profile_store
        self.instance_store = instance_store
        self.compactor = compactor
        self.settings = settings
        self.weights = weights or DEFAULT_WEIGHTS.model_copy(update={"max_turns": settings.max_turns})

    async def run(self, session: InterviewSession, event: WorkflowEvent) -> StepOutcome:
        """Drive the session from an event until no effects remain"""

        trace: List[str] = []
        current_event = event

        while True:
            step = transition(session.state, current_event)
            self._log_transition(session, step.state, current_event)
            trace.append(f"{session.state.value}->{step.state.value}")
            session.update_state(step.state)

            if not step.effects:
                return StepOutcome(session=session, trace=trace)

            try:
                for effect in step.effects:
                    current_event = await self._execute(effect, session)
            except InterviewError as e:
                failed = transition(session.state, WorkflowEvent.FAILED)
                self._log_transition(session, failed.state, WorkflowEvent.FAILED, error=e)
                trace.append(f"{session.state.value}->{failed.state.value}")
                session.update_state(failed.state)
                return StepOutcome(session=session, error=e, trace=trace)

    async def record_answer(
        self,
        session: InterviewSession,
        answer: str,
        extraction: ExtractionResult
    ) -> ConversationTurn:
        """Append the answered question and keep the context under its ceiling"""

        turn = ConversationTurn(
            question=session.current_question,
            answer=answer,
            skills_extracted=sorted(extraction.skills),
            workflows_identified=sorted(extraction.workflows)
        )
        session.record_turn(turn)
        await self._compact(session)
        return turn

    async def _execute(self, effect: Effect, session: InterviewSession) -> WorkflowEvent:
        if effect == Effect.GENERATE_QUESTION:
            return await self._generate_question(session)
        if effect == Effect.SCORE_SATURATION:
            return self._score(session)
        if effect == Effect.GENERATE_INSTANCES:
            return await self._generate_instances(session)
        if effect == Effect.COMPACT_AND_PERSIST:
            return await self._compact_and_persist(session)
        raise ValueError(f"Unknown effect: {effect}")

    async def _generate_question(self, session: InterviewSession) -> WorkflowEvent:
        """Ask the model for the next interview question"""

        prompt = build_interview_prompt(session, self.settings.recent_turns, self.settings.max_turns)
        timeout_s = self.settings.question_timeout_s
        text = await call_with_retry(
            "question_generation",
            lambda: self.completion.complete(
                prompt,
                max_tokens=self.settings.question_max_tokens,
                temperature=self.settings.question_temperature,
                timeout_ms=int(timeout_s * 1000)
            ),
            timeout_s=timeout_s,
            attempts=self.settings.provider_attempts,
            backoff_base=self.settings.backoff_base_s
        )

        question = (text or "").strip()
        if not question:
            raise ProviderError("Model returned an empty question", {"session_id": session.session_id})

        session.current_question = question
        return WorkflowEvent.QUESTION_GENERATED

    def _score(self, session: InterviewSession) -> WorkflowEvent:
        result = score_session(session, self.weights)
        session.threshold_metrics = result.metrics
        session.generation_ready = result.generation_ready
        return WorkflowEvent.SATURATED if result.generation_ready else WorkflowEvent.CONTINUE

    async def _generate_instances(self, session: InterviewSession) -> WorkflowEvent:
        """Generate and validate the dataset instances"""

        logger.info("Generating instances", session_id=session.session_id,
                    turns=len(session.conversation_history))

        key_topics = extract_key_topics(
            [f"{turn.question} {turn.answer}" for turn in session.conversation_history]
        )
        prompt = build_instance_prompt(session, self.settings.instances_per_session, key_topics)
        timeout_s = self.settings.generation_timeout_s
        raw = await call_with_retry(
            "instance_generation",
            lambda: self.completion.complete(
                prompt,
                max_tokens=self.settings.generation_max_tokens,
                temperature=self.settings.generation_temperature,
                timeout_ms=int(timeout_s * 1000)
            ),
            timeout_s=timeout_s,
            attempts=self.settings.provider_attempts,
            backoff_base=self.settings.backoff_base_s
        )

        parsed = parse_instances(
            raw,
            min_question_length=self.settings.min_instance_question_length,
            min_answer_length=self.settings.min_instance_answer_length
        )
        if not parsed.ok:
            raise ParseError(
                f"Failed to parse generated instances: {parsed.error}",
                {"session_id": session.session_id, "dropped": parsed.dropped}
            )

        # Staged on the draft only; nothing durable happens until ContextUpdate
        session.generated_instances = [
            self._enrich(instance, session)
            for instance in parsed.instances[:self.settings.instances_per_session]
        ]
        logger.info("Instances staged", session_id=session.session_id,
                    count=len(session.generated_instances), dropped=parsed.dropped)
        return WorkflowEvent.INSTANCES_GENERATED

    async def _compact_and_persist(self, session: InterviewSession) -> WorkflowEvent:
        """Compact the context, update the profile, then pay for and store the instances.

        Storing the instances is the last await of the step, so the caller
        commits the session right after the dataset exists.
        """
        await self._compact(session)

        try:
            await self.profile_store.save(session.user_id, ProfileUpdate(
                global_context=session.global_context,
                extracted_skills=set(session.extracted_skills),
                identified_workflows=set(session.identified_workflows)
            ))
        except PersistenceError as e:
            # Close flushes the same data again
            logger.warning("Profile save failed", session_id=session.session_id, error=str(e))

        await self._store_instances(session)
        return WorkflowEvent.CONTEXT_PERSISTED

    async def _store_instances(self, session: InterviewSession):
        instances = session.generated_instances
        session.generated_instances = []

        # Quota is only spent once there is a validated set to store
        decision = await self.quota_gate.enforce_and_consume(session.user_id, len(instances))
        if not decision.allowed:
            metrics.increment("quota_denials")
            raise QuotaExceededError(
                "Insufficient quota to store generated instances",
                {"requested": len(instances), "remaining": decision.remaining}
            )

        try:
            dataset_id = await self.instance_store.create(session.user_id, instances)
        except BaseException:
            # Also covers cancellation while the write is in flight
            await asyncio.shield(self.quota_gate.refund(session.user_id, len(instances)))
            raise

        session.generated_instances = instances
        session.dataset_id = dataset_id
        logger.info("Instances stored", session_id=session.session_id,
                    dataset_id=dataset_id, count=len(instances))

    async def _compact(self, session: InterviewSession):
        if not self.compactor.needs_compaction(session.global_context):
            return

        result = await self.compactor.compact(
            session.global_context,
            session.extracted_skills,
            session.identified_workflows,
            session_id=session.session_id
        )
        session.global_context = result.text
        session.compaction_count += 1

    def _enrich(self, instance: GeneratedInstance, session: InterviewSession) -> GeneratedInstance:
        text = " ".join([instance.question, instance.answer, *instance.tags]).lower()
        skills = sorted(s for s in session.extracted_skills if s.lower() in text)
        workflows = sorted(
            w for w in session.identified_workflows
            if w.strip() and w.split()[0].lower() in text
        )
        return instance.model_copy(update={
            "session_id": session.session_id,
            "extraction_context": ExtractionContext(
                skills_referenced=skills,
                workflow_elements=workflows,
                conversation_turn=len(session.conversation_history)
            )
        })

    def _log_transition(
        self,
        session: InterviewSession,
        to_state: WorkflowState,
        event: WorkflowEvent,
        error: Optional[InterviewError] = None
    ):
        summary = session.get_state_summary()
        if error is not None:
            summary["error"] = error.to_dict()
        interview_logger.log_workflow_transition(
            session_id=session.session_id,
            from_state=session.state.value,
            to_state=to_state.value,
            event=event.value,
            state_summary=summary
        )
