from typing import Any, Dict, List, Optional
import structlog
from pydantic import BaseModel, Field

from knowledge_interview.domain.errors import SessionNotFoundError, ValidationError
from knowledge_interview.domain.context.state.session_registry import SessionRegistry
from knowledge_interview.domain.extraction.skill_extractor import extract
from knowledge_interview.domain.models.interview_state import (
    GeneratedInstance, InterviewSession, ThresholdMetrics, WorkflowState
)
from knowledge_interview.domain.orchestration.workflow.transitions import WorkflowEvent
from knowledge_interview.domain.orchestration.workflow.workflow_engine import WorkflowEngine
from knowledge_interview.infrastructure.config.settings import Settings

logger = structlog.get_logger(__name__)


class StartSessionResult(BaseModel):
    """Reply to start_session"""
    session_id: str
    first_question: str
    state: WorkflowState
    progress: Dict[str, Any]


class SubmitAnswerResult(BaseModel):
    """Reply to submit_answer"""
    session_id: str
    is_complete: bool
    next_question: Optional[str] = None
    generated_instances: List[GeneratedInstance] = Field(default_factory=list)
    dataset_id: Optional[str] = None
    progress: Dict[str, Any]
    threshold_metrics: ThresholdMetrics
    skills_extracted: List[str] = Field(default_factory=list)
    workflows_identified: List[str] = Field(default_factory=list)


class InterviewService:
    """Interview operations exposed to the surrounding application"""

    def __init__(self, registry: SessionRegistry, engine: WorkflowEngine, settings: Settings):
        self.registry = registry
        self.engine = engine
        self.settings = settings

    async def start_session(self, user_id: str, tab_id: str) -> StartSessionResult:
        """Create (or resume) the tab's interview and make sure a question is waiting"""

        self._require_ids(user_id, tab_id)
        await self.registry.get_or_create(user_id, tab_id)

        async with self.registry.checkout(user_id, tab_id) as checkout:
            session = checkout.draft
            if session.state == WorkflowState.INTERVIEW and not session.current_question:
                outcome = await self.engine.run(session, WorkflowEvent.START)
                if not outcome.ok:
                    raise outcome.error
                checkout.commit()
                logger.info("Interview started", session_id=session.session_id,
                            user_id=user_id, tab_id=tab_id)

        return StartSessionResult(
            session_id=session.session_id,
            first_question=session.current_question,
            state=session.state,
            progress=session.get_progress(self.settings.max_turns)
        )

    async def submit_answer(
        self,
        user_id: str,
        tab_id: str,
        session_id: str,
        answer: str
    ) -> SubmitAnswerResult:
        """Record an answer and advance the interview by one step.

        On any failure the stored session is left as it was before the call,
        so the same answer can be submitted again.
        """
        self._require_ids(user_id, tab_id)
        answer = (answer or "").strip()
        if len(answer) < self.settings.min_answer_length:
            raise ValidationError(
                f"Answer must be at least {self.settings.min_answer_length} characters",
                {"min_length": self.settings.min_answer_length, "length": len(answer)}
            )

        async with self.registry.checkout(user_id, tab_id) as checkout:
            session = checkout.draft
            if session.session_id != session_id:
                raise SessionNotFoundError(
                    "Session has ended or was replaced; start a new session",
                    {"session_id": session_id}
                )
            if session.state != WorkflowState.INTERVIEW:
                raise ValidationError(
                    f"Interview is not accepting answers (state: {session.state.value})",
                    {"state": session.state.value}
                )
            if not session.current_question:
                raise ValidationError("No question is awaiting an answer; start the session again")

            extraction = extract(answer)
            await self.engine.record_answer(session, answer, extraction)
            outcome = await self.engine.run(session, WorkflowEvent.ANSWER_RECORDED)
            if not outcome.ok:
                logger.warning("Answer step failed", session_id=session.session_id,
                               error_code=outcome.error.code, trace=outcome.trace)
                raise outcome.error
            checkout.commit()

        return SubmitAnswerResult(
            session_id=session.session_id,
            is_complete=session.is_complete,
            next_question=None if session.is_complete else session.current_question,
            generated_instances=list(session.generated_instances),
            dataset_id=session.dataset_id,
            progress=session.get_progress(self.settings.max_turns),
            threshold_metrics=session.threshold_metrics,
            skills_extracted=sorted(extraction.skills),
            workflows_identified=sorted(extraction.workflows)
        )

    async def get_status(self, user_id: str, tab_id: str) -> Dict[str, Any]:
        """Snapshot of the tab's session"""

        session = await self._get(user_id, tab_id)
        snapshot = session.snapshot()
        snapshot["progress"] = session.get_progress(self.settings.max_turns)
        return snapshot

    async def close_session(self, user_id: str, tab_id: str) -> None:
        """Flush the session to the profile and evict it; closing twice is a no-op"""

        await self.registry.close(user_id, tab_id)

    async def reset_session(self, user_id: str, tab_id: str) -> StartSessionResult:
        """Throw away the tab's interview and start a fresh one"""

        await self.registry.reset(user_id, tab_id)
        return await self.start_session(user_id, tab_id)

    async def list_sessions(self, user_id: str) -> List[Dict[str, Any]]:
        """Progress of every active tab of a user"""

        return [
            {
                "tab_id": session.tab_id,
                "session_id": session.session_id,
                "state": session.state.value,
                "progress": session.get_progress(self.settings.max_turns),
                "last_activity": session.last_activity.isoformat()
            }
            for session in await self.registry.list_by_user(user_id)
        ]

    async def _get(self, user_id: str, tab_id: str) -> InterviewSession:
        session = await self.registry.get(user_id, tab_id)
        if session is None:
            raise SessionNotFoundError(
                "No active interview for this tab; start a new session",
                {"user_id": user_id, "tab_id": tab_id}
            )
        return session

    @staticmethod
    def _require_ids(user_id: str, tab_id: str):
        if not (user_id or "").strip() or not (tab_id or "").strip():
            raise ValidationError("user_id and tab_id are required")
