"""Session service interface and the in-memory implementation."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from .errors import SessionAlreadyExistsError, SessionNotFoundError
from .logging_utils import BaseLogger
from .models import Event, Session


class SessionService:
    """Interface for storing sessions and their event logs."""

    async def create(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str | None = None,
        state: dict[str, Any] | None = None,
    ) -> Session:  # pragma: no cover - interface
        """Create and return a new session."""
        raise NotImplementedError

    async def get(self, *, app_name: str, user_id: str, session_id: str) -> Session:
        """Return a stored session or raise `SessionNotFoundError`."""
        raise NotImplementedError  # pragma: no cover - interface

    async def list(self, *, app_name: str, user_id: str) -> list[Session]:
        """Return every session of one user, without events."""
        raise NotImplementedError  # pragma: no cover - interface

    async def delete(self, *, app_name: str, user_id: str, session_id: str) -> None:
        """Remove a session or raise `SessionNotFoundError`."""
        raise NotImplementedError  # pragma: no cover - interface

    async def append_event(self, session: Session, event: Event) -> Event:
        """Persist one event and apply it to the caller's session object."""
        raise NotImplementedError  # pragma: no cover - interface

    @staticmethod
    def _apply_event(session: Session, event: Event) -> None:
        """Apply a committed event to an in-memory session view."""
        if event.actions.state_delta:
            session.state.update(event.actions.state_delta)
        session.events.append(event)
        session.last_update_time = event.timestamp


class InMemorySessionService(SessionService, BaseLogger):
    """Keeps sessions in a dict; not shared between processes."""

    def __init__(self):
        """Initialize empty session storage."""
        BaseLogger.__init__(self, f"{self.__class__.__name__}")
        self._sessions: dict[tuple[str, str, str], Session] = {}

    async def create(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str | None = None,
        state: dict[str, Any] | None = None,
    ) -> Session:
        """Create a session, generating an id when none is given."""
        session_id = session_id or uuid.uuid4().hex
        key = (app_name, user_id, session_id)
        if key in self._sessions:
            raise SessionAlreadyExistsError(app_name, user_id, session_id)
        session = Session(
            id=session_id,
            app_name=app_name,
            user_id=user_id,
            state=dict(state or {}),
            last_update_time=datetime.now(timezone.utc),
        )
        self._sessions[key] = session
        self.logger.debug("Created session %s for %s/%s", session_id, app_name, user_id)
        return session.model_copy(deep=True)

    async def get(self, *, app_name: str, user_id: str, session_id: str) -> Session:
        """Return a deep copy of the stored session."""
        stored = self._sessions.get((app_name, user_id, session_id))
        if stored is None:
            raise SessionNotFoundError(app_name, user_id, session_id)
        return stored.model_copy(deep=True)

    async def list(self, *, app_name: str, user_id: str) -> list[Session]:
        """List a user's sessions without their event logs."""
        return [
            session.model_copy(update={"events": []}, deep=True)
            for (app, user, _), session in self._sessions.items()
            if app == app_name and user == user_id
        ]

    async def delete(self, *, app_name: str, user_id: str, session_id: str) -> None:
        """Delete a stored session."""
        if self._sessions.pop((app_name, user_id, session_id), None) is None:
            raise SessionNotFoundError(app_name, user_id, session_id)

    async def append_event(self, session: Session, event: Event) -> Event:
        """Append a final event to both the caller's view and the stored session."""
        if event.is_partial:
            return event
        stored = self._sessions.get(session.key())
        if stored is None:
            raise SessionNotFoundError(*session.key())
        self._apply_event(session, event)
        self._apply_event(stored, event.model_copy(deep=True))
        return event
