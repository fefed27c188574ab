from typing import AsyncIterator, Callable, Dict, Optional
from contextlib import asynccontextmanager
from datetime import date, datetime
import asyncio
import structlog

from knowledge_interview.domain.errors import ValidationError
from knowledge_interview.domain.models.interview_state import SubscriptionTier
from knowledge_interview.domain.ports.collaborators import DurableProfileStore, QuotaDecision, QuotaGate

logger = structlog.get_logger(__name__)


# Instances a user may generate per day
DAILY_LIMITS: Dict[SubscriptionTier, int] = {
    SubscriptionTier.BASIC: 20,
    SubscriptionTier.PRO: 50,
    SubscriptionTier.ENTERPRISE: 200,
}


class InMemoryQuotaGate(QuotaGate):
    """Daily instance quota per user, reset at the start of each day.

    The user's tier is read from the profile store when one is given,
    otherwise every user gets `default_tier`.
    """

    def __init__(
        self,
        limits: Optional[Dict[SubscriptionTier, int]] = None,
        profile_store: Optional[DurableProfileStore] = None,
        default_tier: SubscriptionTier = SubscriptionTier.BASIC,
        today: Callable[[], date] = lambda: datetime.utcnow().date()
    ):
        self.limits = dict(limits or DAILY_LIMITS)
        self.profile_store = profile_store
        self.default_tier = default_tier
        self.today = today
        self.usage: Dict[str, Dict[str, object]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @asynccontextmanager
    async def _user_lock(self, user_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        self._lock_users[user_id] = self._lock_users.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[user_id] -= 1
            if not self._lock_users[user_id]:
                del self._lock_users[user_id]
                del self._locks[user_id]

    def _current_usage(self, user_id: str) -> int:
        record = self.usage.get(user_id)
        if record is None or record["day"] != self.today():
            return 0
        return int(record["used"])

    async def _limit(self, user_id: str) -> int:
        tier = self.default_tier
        if self.profile_store is not None:
            tier = (await self.profile_store.load(user_id)).subscription_tier
        return self.limits[tier]

    async def remaining(self, user_id: str) -> int:
        """Units left today"""

        async with self._user_lock(user_id):
            return max(await self._limit(user_id) - self._current_usage(user_id), 0)

    async def enforce_and_consume(self, user_id: str, count: int) -> QuotaDecision:
        """Check and consume under one per-user lock, so two tabs cannot double-spend"""

        if count <= 0:
            raise ValidationError("Quota count must be positive", {"count": count})

        async with self._user_lock(user_id):
            limit = await self._limit(user_id)
            used = self._current_usage(user_id)
            remaining = limit - used

            if count > remaining:
                logger.info("Quota denied", user_id=user_id, requested=count, remaining=remaining)
                return QuotaDecision(allowed=False, remaining=max(remaining, 0))

            self.usage[user_id] = {"day": self.today(), "used": used + count}
            logger.info("Quota consumed", user_id=user_id, consumed=count, remaining=remaining - count)
            return QuotaDecision(allowed=True, remaining=remaining - count)

    async def refund(self, user_id: str, count: int) -> None:
        """Give back units for instances that were not stored"""

        async with self._user_lock(user_id):
            used = self._current_usage(user_id)
            self.usage[user_id] = {"day": self.today(), "used": max(used - count, 0)}
            logger.info("Quota refunded", user_id=user_id, refunded=count)
