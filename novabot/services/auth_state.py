"""Two-tier authentication state with read-repair."""

import json
from enum import StrEnum
from typing import Protocol

import redis.asyncio as redis
import structlog
from pydantic import ValidationError
from redis.exceptions import RedisError

from novabot.schemas.auth_schema import Session, UserProfile

logger = structlog.get_logger()

SESSION_KEY_PREFIX = "session:"


class SessionTier(Protocol):
    """One place a session can live."""

    async def load(self, user_id: str) -> Session | None: ...

    async def save(self, session: Session) -> None: ...

    async def clear(self, user_id: str) -> None: ...


class MemoryTier:
    """Process-local session cache. Lost on restart."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    async def load(self, user_id: str) -> Session | None:
        return self._sessions.get(user_id)

    async def save(self, session: Session) -> None:
        self._sessions[session.user_id] = session

    async def clear(self, user_id: str) -> None:
        self._sessions.pop(user_id, None)


class DurableTier:
    """Redis-backed session record shared by every instance."""

    def __init__(
        self,
        redis_client: redis.Redis,  # type: ignore[type-arg]
        ttl_seconds: int | None = None,
    ) -> None:
        self._redis = redis_client
        self._ttl = ttl_seconds or None

    @staticmethod
    def key(user_id: str) -> str:
        return f"{SESSION_KEY_PREFIX}{user_id}"

    async def load(self, user_id: str) -> Session | None:
        raw = await self._redis.get(self.key(user_id))
        if not raw:
            return None
        try:
            data = json.loads(raw)
            if not data.get("authenticated"):
                return None
            return Session.model_validate(data)
        except (ValueError, AttributeError, ValidationError):
            logger.warning("Discarding unreadable session record", user_id=user_id)
            return None

    async def save(self, session: Session) -> None:
        payload = {"authenticated": True, **session.model_dump(mode="json")}
        await self._redis.set(self.key(session.user_id), json.dumps(payload), ex=self._ttl)

    async def clear(self, user_id: str) -> None:
        await self._redis.delete(self.key(user_id))


class ReconcileAction(StrEnum):
    NONE = "none"
    WRITE_THROUGH = "write_through"
    HYDRATE = "hydrate"


# (cache says authenticated, record says authenticated) -> repair
RECONCILIATION: dict[tuple[bool, bool], ReconcileAction] = {
    (True, True): ReconcileAction.NONE,
    (True, False): ReconcileAction.WRITE_THROUGH,
    (False, True): ReconcileAction.HYDRATE,
    (False, False): ReconcileAction.NONE,
}


class ReconcilingStateSynchronizer:
    """Answers "is this user logged in?" from a cache and a durable record.

    Either tier saying yes is enough; the other tier is repaired on the
    spot. A failing durable tier reads as "no record" and its write
    failures are logged, so the cache keeps answering.
    """

    def __init__(self, cache: MemoryTier, record: SessionTier) -> None:
        self._cache = cache
        self._record = record

    @property
    def cached_sessions(self) -> int:
        return len(self._cache)

    async def is_authenticated(self, user_id: str) -> bool:
        return await self.get_session(user_id) is not None

    async def get_session(self, user_id: str) -> Session | None:
        """Reconciled session of ``user_id``, or None when logged out."""
        cached = await self._cache.load(user_id)
        stored = await self._load_record(user_id)

        action = RECONCILIATION[(cached is not None, stored is not None)]
        match action:
            case ReconcileAction.WRITE_THROUGH:
                await self._save_record(cached)  # type: ignore[arg-type]
            case ReconcileAction.HYDRATE:
                await self._cache.save(stored)  # type: ignore[arg-type]

        if action is not ReconcileAction.NONE:
            logger.info("Auth state repaired", user_id=user_id, action=action.value)
        return cached or stored

    async def login(self, user_id: str, profile: UserProfile, token: str) -> Session:
        """Store a fresh session in both tiers, replacing whatever was there."""
        session = Session(
            user_id=user_id,
            display_name=profile.display_name,
            surname1=profile.surname1,
            surname2=profile.surname2,
            username=profile.username,
            bearer_token=token,
        )
        await self._cache.save(session)
        await self._save_record(session)
        logger.info(
            "User logged in",
            user_id=user_id,
            username=profile.username,
            token=session.token_preview,
        )
        return session

    async def logout(self, user_id: str) -> None:
        """Remove the session from both tiers."""
        await self._cache.clear(user_id)
        try:
            await self._record.clear(user_id)
        except (RedisError, OSError):
            logger.exception("Failed to clear session record", user_id=user_id)
        logger.info("User logged out", user_id=user_id)

    async def _load_record(self, user_id: str) -> Session | None:
        try:
            return await self._record.load(user_id)
        except (RedisError, OSError):
            logger.exception("Session record unreadable", user_id=user_id)
            return None

    async def _save_record(self, session: Session) -> None:
        try:
            await self._record.save(session)
        except (RedisError, OSError):
            logger.exception("Failed to persist session record", user_id=session.user_id)
