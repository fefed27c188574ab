from abc import ABC, abstractmethod
from typing import List
from pydantic import BaseModel

from knowledge_interview.domain.models.interview_state import (
    GeneratedInstance, UserProfile, ProfileUpdate
)


class QuotaDecision(BaseModel):
    """Outcome of a quota check-and-consume"""
    allowed: bool
    remaining: int


class TextCompletion(ABC):
    """Text generation collaborator"""

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        max_tokens: int,
        temperature: float,
        timeout_ms: int
    ) -> str:
        """Return generated text; raises TimeoutError or ProviderError"""
        pass


class QuotaGate(ABC):
    """Billing collaborator guarding instance generation"""

    @abstractmethod
    async def enforce_and_consume(self, user_id: str, count: int) -> QuotaDecision:
        """Atomically check and consume `count` units for a user"""
        pass

    @abstractmethod
    async def refund(self, user_id: str, count: int) -> None:
        """Return units consumed for work that was not persisted"""
        pass


class DurableProfileStore(ABC):
    """Per-user profile storage"""

    @abstractmethod
    async def load(self, user_id: str) -> UserProfile:
        """Load a profile; unknown users get an empty one"""
        pass

    @abstractmethod
    async def save(self, user_id: str, update: ProfileUpdate) -> UserProfile:
        """Merge an update; skills and workflows are union-merged"""
        pass


class DurableInstanceStore(ABC):
    """Storage for generated instance datasets"""

    @abstractmethod
    async def create(self, owner_id: str, instances: List[GeneratedInstance]) -> str:
        """Persist instances and return the dataset id"""
        pass
