from typing import Dict, Optional
import asyncio
import structlog

from knowledge_interview.domain.models.interview_state import ProfileUpdate, SubscriptionTier, UserProfile
from knowledge_interview.domain.ports.collaborators import DurableProfileStore

logger = structlog.get_logger(__name__)


class InMemoryProfileStore(DurableProfileStore):
    """Process-local profile store with union merge for skills and workflows"""

    def __init__(self):
        self.profiles: Dict[str, UserProfile] = {}
        self.save_count = 0
        self._lock = asyncio.Lock()

    async def load(self, user_id: str) -> UserProfile:
        """Load a copy of the user's profile"""

        async with self._lock:
            profile = self.profiles.get(user_id)
            if profile is None:
                return UserProfile(user_id=user_id)
            return profile.model_copy(deep=True)

    async def save(self, user_id: str, update: ProfileUpdate) -> UserProfile:
        """Merge a partial update into the stored profile"""

        async with self._lock:
            profile = self.profiles.get(user_id) or UserProfile(user_id=user_id)

            # Union, never overwrite: sibling tabs flush into the same profile
            profile.extracted_skills |= set(update.extracted_skills)
            profile.identified_workflows |= set(update.identified_workflows)
            if update.global_context is not None:
                profile.global_context = update.global_context

            self.profiles[user_id] = profile
            self.save_count += 1

            logger.debug("Profile saved", user_id=user_id,
                         skills=len(profile.extracted_skills),
                         workflows=len(profile.identified_workflows))
            return profile.model_copy(deep=True)

    async def set_profile(
        self,
        user_id: str,
        display_name: Optional[str] = None,
        headline: Optional[str] = None,
        subscription_tier: Optional[SubscriptionTier] = None
    ) -> UserProfile:
        """Set descriptive profile fields"""

        async with self._lock:
            profile = self.profiles.get(user_id) or UserProfile(user_id=user_id)
            if display_name is not None:
                profile.display_name = display_name
            if headline is not None:
                profile.headline = headline
            if subscription_tier is not None:
                profile.subscription_tier = subscription_tier
            self.profiles[user_id] = profile
            return profile.model_copy(deep=True)
