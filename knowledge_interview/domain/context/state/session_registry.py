from typing import Any, AsyncIterator, Dict, List, Optional, Tuple
from contextlib import asynccontextmanager
from datetime import datetime
import asyncio
import structlog

from knowledge_interview.domain.errors import SessionNotFoundError, ValidationError
from knowledge_interview.domain.models.interview_state import InterviewSession, ProfileUpdate
from knowledge_interview.domain.ports.collaborators import DurableProfileStore
from knowledge_interview.infrastructure.observability.logging import interview_logger

logger = structlog.get_logger(__name__)

SessionKey = Tuple[str, str]

# Fields merged with set union instead of replaced
UNION_FIELDS = frozenset({"extracted_skills", "identified_workflows"})
IDENTITY_FIELDS = frozenset({"user_id", "tab_id", "session_id"})


class SessionCheckout:
    """Draft of a session held under its key lock"""

    def __init__(self, registry: "SessionRegistry", key: SessionKey, draft: InterviewSession):
        self._registry = registry
        self.key = key
        self.draft = draft
        self.committed = False

    def commit(self, session: Optional[InterviewSession] = None):
        """Store the draft (or a replacement) as the live session"""
        self._registry._sessions[self.key] = session or self.draft
        self.committed = True


class SessionRegistry:
    """Active interview sessions keyed by (user_id, tab_id).

    Work on one key is serialized by a per-key lock; different keys,
    including two tabs of the same user, run independently.
    """

    def __init__(self, profile_store: DurableProfileStore):
        self.profile_store = profile_store
        self._sessions: Dict[SessionKey, InterviewSession] = {}
        self._locks: Dict[SessionKey, asyncio.Lock] = {}
        self._lock_users: Dict[SessionKey, int] = {}

    @asynccontextmanager
    async def _key_lock(self, key: SessionKey) -> AsyncIterator[None]:
        """Hold the key's lock; the lock is dropped once nobody holds or waits on it"""

        # No await between lookup and insert, so this cannot race on one loop
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    async def _seed(self, user_id: str, tab_id: str) -> InterviewSession:
        profile = await self.profile_store.load(user_id)
        return InterviewSession(
            user_id=user_id,
            tab_id=tab_id,
            global_context=profile.global_context,
            profile_summary=profile.summary(),
            extracted_skills=set(profile.extracted_skills),
            identified_workflows=set(profile.identified_workflows)
        )

    async def get_or_create(self, user_id: str, tab_id: str) -> InterviewSession:
        """Return the active session for a key, seeding it from the profile on first touch"""

        key = (user_id, tab_id)
        async with self._key_lock(key):
            session = self._sessions.get(key)
            if session is None:
                session = await self._seed(user_id, tab_id)
                self._sessions[key] = session
                interview_logger.log_session_event(
                    "created", user_id, tab_id, session.session_id,
                    {"seeded_skills": len(session.extracted_skills)}
                )
            return session.model_copy(deep=True)

    async def get(self, user_id: str, tab_id: str) -> Optional[InterviewSession]:
        """Snapshot of an active session, if any"""

        session = self._sessions.get((user_id, tab_id))
        return session.model_copy(deep=True) if session else None

    @asynccontextmanager
    async def checkout(self, user_id: str, tab_id: str) -> AsyncIterator[SessionCheckout]:
        """Hold the key lock and yield a draft copy of the session.

        Nothing is stored unless `commit()` is called, so an exception or
        cancellation inside the block leaves the live session untouched.
        """
        key = (user_id, tab_id)
        async with self._key_lock(key):
            session = self._sessions.get(key)
            if session is None:
                raise SessionNotFoundError(
                    "No active interview for this tab; start a new session",
                    {"user_id": user_id, "tab_id": tab_id}
                )
            yield SessionCheckout(self, key, session.model_copy(deep=True))

    async def update(self, user_id: str, tab_id: str, partial: Dict[str, Any]) -> InterviewSession:
        """Merge fields into a session: union for skills/workflows, last write wins otherwise"""

        unknown = set(partial) - set(InterviewSession.model_fields)
        if unknown:
            raise ValidationError(f"Unknown session fields: {', '.join(sorted(unknown))}")
        locked = IDENTITY_FIELDS & set(partial)
        if locked:
            raise ValidationError(f"Session identity cannot be updated: {', '.join(sorted(locked))}")

        async with self.checkout(user_id, tab_id) as checkout:
            data = checkout.draft.model_dump()
            for field_name, value in partial.items():
                if field_name in UNION_FIELDS:
                    if isinstance(value, str):
                        raise ValidationError(f"{field_name} must be a collection of strings")
                    data[field_name] = set(data[field_name]) | set(value)
                else:
                    data[field_name] = value
            data["last_activity"] = datetime.utcnow()

            try:
                updated = InterviewSession.model_validate(data)
            except ValueError as e:
                raise ValidationError(f"Invalid session update: {e}") from e

            checkout.commit(updated)
            return updated.model_copy(deep=True)

    async def close(self, user_id: str, tab_id: str) -> bool:
        """Flush a session to the profile store and evict it.

        Returns False when there was nothing to close.
        """
        key = (user_id, tab_id)
        async with self._key_lock(key):
            session = self._sessions.get(key)
            if session is None:
                logger.debug("Close on inactive session ignored", user_id=user_id, tab_id=tab_id)
                return False

            # A failed flush keeps the session so close can be retried
            await self.profile_store.save(user_id, ProfileUpdate(
                global_context=session.global_context,
                extracted_skills=set(session.extracted_skills),
                identified_workflows=set(session.identified_workflows)
            ))
            del self._sessions[key]

        interview_logger.log_session_event(
            "closed", user_id, tab_id, session.session_id,
            {"turns": len(session.conversation_history), "state": session.state.value}
        )
        return True

    async def reset(self, user_id: str, tab_id: str) -> InterviewSession:
        """Discard the tab's in-memory session and start over from the profile"""

        key = (user_id, tab_id)
        async with self._key_lock(key):
            previous = self._sessions.get(key)
            session = await self._seed(user_id, tab_id)
            self._sessions[key] = session

        interview_logger.log_session_event(
            "reset", user_id, tab_id, session.session_id,
            {"previous_session_id": previous.session_id if previous else None}
        )
        return session.model_copy(deep=True)

    async def list_by_user(self, user_id: str) -> List[InterviewSession]:
        """Snapshots of all active tabs of a user"""

        return [
            session.model_copy(deep=True)
            for (owner, _tab), session in sorted(self._sessions.items())
            if owner == user_id
        ]

    async def flush_all(self) -> int:
        """Close every active session; used at shutdown"""

        closed = 0
        for user_id, tab_id in list(self._sessions):
            try:
                if await self.close(user_id, tab_id):
                    closed += 1
            except Exception as e:
                logger.error("Failed to flush session", user_id=user_id, tab_id=tab_id, error=str(e))
        logger.info("Session registry flushed", closed=closed)
        return closed

    def active_count(self) -> int:
        return len(self._sessions)
