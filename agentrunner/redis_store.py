"""Redis-backed session persistence."""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from .errors import SessionAlreadyExistsError, SessionNotFoundError
from .logging_utils import BaseLogger
from .models import Event, Session
from .sessions import SessionService

try:
    import redis.asyncio as aioredis
except ImportError as exc:
    raise RuntimeError("redis package is required for RedisSessionService") from exc

AsyncRedisClient = aioredis.Redis


def _now_utc() -> datetime:
    """Return the current UTC timestamp."""
    return datetime.now(timezone.utc)


def _text(value: bytes | str | None) -> str | None:
    """Decode a Redis reply that may be bytes or str."""
    if value is None:
        return None
    return value.decode("utf-8") if isinstance(value, bytes) else str(value)


class RedisSessionService(SessionService, BaseLogger):
    """Session storage on top of an asyncio Redis client."""

    def __init__(self, client: AsyncRedisClient, key_prefix: str = "agentrunner"):
        """Initialize the service with a Redis client and key namespace."""
        BaseLogger.__init__(self, f"{self.__class__.__name__}")
        self.client = client
        self.key_prefix = key_prefix

    def _session_key(self, app_name: str, user_id: str, session_id: str) -> str:
        """Return the Redis hash key for session metadata and state."""
        return f"{self.key_prefix}:session:{app_name}:{user_id}:{session_id}"

    def _events_key(self, app_name: str, user_id: str, session_id: str) -> str:
        """Return the Redis list key for the session event log."""
        return f"{self._session_key(app_name, user_id, session_id)}:events"

    def _index_key(self, app_name: str, user_id: str) -> str:
        """Return the Redis set key listing a user's session ids."""
        return f"{self.key_prefix}:sessions:{app_name}:{user_id}"

    async def create(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str | None = None,
        state: dict[str, Any] | None = None,
    ) -> Session:
        """Persist a new session hash and register it in the user index."""
        session_id = session_id or uuid.uuid4().hex
        key = self._session_key(app_name, user_id, session_id)
        if await self.client.exists(key):
            raise SessionAlreadyExistsError(app_name, user_id, session_id)
        session = Session(
            id=session_id,
            app_name=app_name,
            user_id=user_id,
            state=dict(state or {}),
            last_update_time=_now_utc(),
        )
        pipeline = self.client.pipeline()
        pipeline.hset(key, mapping=self._serialize_session(session))
        pipeline.sadd(self._index_key(app_name, user_id), session_id)
        await pipeline.execute()
        self.logger.debug("Created session %s in Redis under %s", session_id, key)
        return session

    async def get(self, *, app_name: str, user_id: str, session_id: str) -> Session:
        """Load session metadata and its full event log."""
        raw = await self.client.hgetall(self._session_key(app_name, user_id, session_id))
        if not raw:
            raise SessionNotFoundError(app_name, user_id, session_id)
        raw_events = await self.client.lrange(
            self._events_key(app_name, user_id, session_id), 0, -1
        )
        session = self._deserialize_session(raw)
        try:
            session.events = [Event.model_validate_json(item) for item in raw_events]
        except ValidationError as exc:
            raise ValueError(f"Invalid event payload in session {session_id}") from exc
        return session

    async def list(self, *, app_name: str, user_id: str) -> list[Session]:
        """List a user's sessions without loading event logs."""
        session_ids = sorted(
            _text(item) for item in await self.client.smembers(self._index_key(app_name, user_id))
        )
        sessions: list[Session] = []
        for session_id in session_ids:
            raw = await self.client.hgetall(self._session_key(app_name, user_id, session_id))
            if not raw:
                self.logger.warning("Session index references missing session %s", session_id)
                continue
            sessions.append(self._deserialize_session(raw))
        return sessions

    async def delete(self, *, app_name: str, user_id: str, session_id: str) -> None:
        """Remove session hash, event log and index entry."""
        key = self._session_key(app_name, user_id, session_id)
        if not await self.client.exists(key):
            raise SessionNotFoundError(app_name, user_id, session_id)
        pipeline = self.client.pipeline()
        pipeline.delete(key, self._events_key(app_name, user_id, session_id))
        pipeline.srem(self._index_key(app_name, user_id), session_id)
        await pipeline.execute()

    async def append_event(self, session: Session, event: Event) -> Event:
        """Append a final event to the Redis log and the caller's session."""
        if event.is_partial:
            return event
        key = self._session_key(*session.key())
        if not await self.client.exists(key):
            raise SessionNotFoundError(*session.key())
        state = {**session.state, **event.actions.state_delta}
        pipeline = self.client.pipeline()
        pipeline.rpush(self._events_key(*session.key()), event.model_dump_json())
        pipeline.hset(
            key,
            mapping={
                "state": json.dumps(state),
                "last_update_time": event.timestamp.isoformat(),
            },
        )
        await pipeline.execute()
        self._apply_event(session, event)
        self.logger.debug(
            "Appended event %s by %s to session %s", event.id, event.author, session.id
        )
        return event

    @staticmethod
    def _serialize_session(session: Session) -> dict[str, str]:
        """Convert session metadata to a Redis hash mapping."""
        return {
            "id": session.id,
            "app_name": session.app_name,
            "user_id": session.user_id,
            "state": json.dumps(session.state),
            "last_update_time": session.last_update_time.isoformat(),
        }

    @staticmethod
    def _deserialize_session(raw: dict) -> Session:
        """Parse a Redis hash mapping into a session without events."""
        normalized = {_text(key): _text(value) for key, value in raw.items()}
        try:
            return Session(
                id=normalized["id"],
                app_name=normalized["app_name"],
                user_id=normalized["user_id"],
                state=json.loads(normalized.get("state") or "{}"),
                last_update_time=datetime.fromisoformat(normalized["last_update_time"]),
            )
        except (KeyError, ValidationError) as exc:
            raise ValueError(f"Invalid session payload: {normalized}") from exc
