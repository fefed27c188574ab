from typing import Iterable, List, Optional
import structlog
from pydantic import BaseModel, Field

from knowledge_interview.domain.errors import ProviderError
from knowledge_interview.domain.ports.collaborators import TextCompletion
from knowledge_interview.domain.orchestration.workflow.prompts import build_compaction_prompt
from knowledge_interview.domain.orchestration.workflow.retry import call_with_retry
from knowledge_interview.infrastructure.observability.logging import interview_logger, metrics

logger = structlog.get_logger(__name__)


class CompactionResult(BaseModel):
    """Outcome of one compaction"""
    text: str
    method: str = Field(description="none, summarizer or truncation")
    original_length: int
    compacted_length: int
    skills_preserved: List[str] = Field(default_factory=list)
    workflows_preserved: List[str] = Field(default_factory=list)

    @property
    def compression_ratio(self) -> float:
        return self.compacted_length / self.original_length if self.original_length else 1.0


def truncate_to_budget(text: str, max_chars: int) -> str:
    """Keep the most recent whole words that fit within max_chars.

    Falls back to a hard character slice when even the last word is too long.
    The result is never longer than the input.
    """
    if max_chars <= 0:
        return ""
    if len(text) <= max_chars:
        return text

    kept: List[str] = []
    used = 0
    for word in reversed(text.split()):
        cost = len(word) + (1 if kept else 0)
        if used + cost > max_chars:
            break
        kept.append(word)
        used += cost

    if not kept:
        return text[-max_chars:]
    return " ".join(reversed(kept))


class ContextCompactor:
    """Shrinks an oversized running context while keeping its knowledge signal"""

    def __init__(
        self,
        completion: TextCompletion,
        max_context_size: int = 16000,
        compact_ratio: float = 0.6,
        timeout_s: float = 20.0,
        attempts: int = 1,
        backoff_base: float = 0.5,
        temperature: float = 0.3
    ):
        self.completion = completion
        self.max_context_size = max_context_size
        self.compact_ratio = compact_ratio
        self.timeout_s = timeout_s
        self.attempts = attempts
        self.backoff_base = backoff_base
        self.temperature = temperature

    def needs_compaction(self, context: str) -> bool:
        return len(context) > self.max_context_size

    def target_length(self, context: str) -> int:
        return min(int(len(context) * self.compact_ratio), self.max_context_size)

    async def compact(
        self,
        context: str,
        skills: Iterable[str] = (),
        workflows: Iterable[str] = (),
        session_id: Optional[str] = None
    ) -> CompactionResult:
        """Compact the context if it is over the ceiling.

        Summarizer failures degrade to word-budget truncation; this method
        does not raise for provider problems.
        """
        skills = sorted(skills)
        workflows = sorted(workflows)
        original_length = len(context)

        if not self.needs_compaction(context):
            return CompactionResult(
                text=context,
                method="none",
                original_length=original_length,
                compacted_length=original_length
            )

        target = self.target_length(context)
        logger.info("Compacting context", session_id=session_id,
                    original_length=original_length, target_length=target)

        method = "summarizer"
        try:
            summary = await self._summarize(context, target, skills, workflows)
        except ProviderError as e:
            logger.warning("Summarizer failed, truncating context", session_id=session_id, error=str(e))
            metrics.increment("compaction_fallbacks")
            summary = ""
            method = "truncation"

        usable = 0 < len(summary) < original_length and len(summary) <= self.max_context_size
        if method == "summarizer" and not usable:
            logger.info("Summary out of budget, truncating", session_id=session_id, summary_length=len(summary))
            method = "truncation"

        if method == "truncation":
            source = summary if 0 < len(summary) < original_length else context
            text = truncate_to_budget(source, target)
        else:
            text = summary

        result = CompactionResult(
            text=text,
            method=method,
            original_length=original_length,
            compacted_length=len(text),
            skills_preserved=[s for s in skills if s.lower() in text.lower()],
            workflows_preserved=[w for w in workflows if w.lower() in text.lower()]
        )
        interview_logger.log_context_compaction(
            method=method,
            original_length=original_length,
            compacted_length=result.compacted_length,
            details={
                "session_id": session_id,
                "skills_preserved": len(result.skills_preserved),
                "workflows_preserved": len(result.workflows_preserved)
            }
        )
        return result

    async def _summarize(self, context: str, target: int, skills: List[str], workflows: List[str]) -> str:
        prompt = build_compaction_prompt(context, target, skills, workflows)
        summary = await call_with_retry(
            "compaction",
            lambda: self.completion.complete(
                prompt,
                max_tokens=max(target // 3, 256),
                temperature=self.temperature,
                timeout_ms=int(self.timeout_s * 1000)
            ),
            timeout_s=self.timeout_s,
            attempts=self.attempts,
            backoff_base=self.backoff_base
        )
        return (summary or "").strip()
