"""
OpenAI text completion through langchain-openai.

A fresh ChatOpenAI client is built per call so each call can carry its own
token limit, temperature and timeout. Retries are left to the workflow
engine, so the client's own retries are disabled.
"""

from typing import Optional

import openai
import structlog
from langchain_core.messages import HumanMessage
from langchain_openai import ChatOpenAI

from knowledge_interview.domain.errors import ProviderError
from knowledge_interview.domain.ports.collaborators import TextCompletion

logger = structlog.get_logger(__name__)


class OpenAICompletion(TextCompletion):
    """TextCompletion backed by an OpenAI chat model"""

    def __init__(self, api_key: str, model: str = "gpt-4o-mini", base_url: Optional[str] = None):
        if not api_key:
            raise ValueError("An OpenAI API key is required (INTERVIEW_OPENAI_API_KEY)")
        self.api_key = api_key
        self.model = model
        self.base_url = base_url or None

    def _client(self, max_tokens: int, temperature: float, timeout_ms: int) -> ChatOpenAI:
        return ChatOpenAI(
            model=self.model,
            api_key=self.api_key,
            base_url=self.base_url,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout_ms / 1000,
            max_retries=0,
        )

    async def complete(self, prompt: str, max_tokens: int, temperature: float, timeout_ms: int) -> str:
        """Send a single-message prompt and return the reply text"""

        llm = self._client(max_tokens, temperature, timeout_ms)
        try:
            response = await llm.ainvoke([HumanMessage(content=prompt)])
        except openai.APITimeoutError as e:
            raise TimeoutError(f"OpenAI request timed out after {timeout_ms}ms") from e
        except openai.OpenAIError as e:
            logger.warning("OpenAI request failed", model=self.model, error=str(e))
            raise ProviderError(f"OpenAI request failed: {e}", {"model": self.model}) from e

        content = response.content
        if isinstance(content, list):
            # Content blocks: keep the text parts
            content = "".join(
                block.get("text", "") if isinstance(block, dict) else str(block)
                for block in content
            )
        return content or ""
