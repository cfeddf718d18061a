"""Long-term memory service and its session-scoped view."""

from __future__ import annotations

import re
from collections import deque
from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel

from .logging_utils import BaseLogger
from .models import Session

_WORD_PATTERN = re.compile(r"[a-z0-9]+")


class MemoryEntry(BaseModel):
    session_id: str
    author: str
    text: str
    timestamp: datetime


def _words(text: str) -> set[str]:
    return set(_WORD_PATTERN.findall(text.lower()))


class MemoryService:
    """Interface for cross-session recall."""

    async def add_session_to_memory(self, session: Session) -> None:
        """Ingest the committed events of a session."""
        raise NotImplementedError  # pragma: no cover - interface

    async def search_memory(
        self, *, app_name: str, user_id: str, query: str
    ) -> list[MemoryEntry]:  # pragma: no cover - interface
        """Return entries relevant to a query."""
        raise NotImplementedError


class InMemoryMemoryService(MemoryService, BaseLogger):
    """Bounded per-user keyword memory."""

    def __init__(self, max_entries: int = 500):
        """Initialize bounded memory storage."""
        BaseLogger.__init__(self, f"{self.__class__.__name__}")
        self.max_entries = max_entries
        self._entries: dict[tuple[str, str], deque[MemoryEntry]] = {}

    async def add_session_to_memory(self, session: Session) -> None:
        entries = self._entries.setdefault(
            (session.app_name, session.user_id), deque(maxlen=self.max_entries)
        )
        known = {(entry.session_id, entry.timestamp, entry.text) for entry in entries}
        added = 0
        for event in session.events:
            text = event.text
            if not text or event.is_partial:
                continue
            entry = MemoryEntry(
                session_id=session.id, author=event.author, text=text, timestamp=event.timestamp
            )
            if (entry.session_id, entry.timestamp, entry.text) in known:
                continue
            entries.append(entry)
            added += 1
        self.logger.debug("Added %d memory entries from session %s", added, session.id)

    async def search_memory(self, *, app_name: str, user_id: str, query: str) -> list[MemoryEntry]:
        query_words = _words(query)
        if not query_words:
            return []
        return [
            entry
            for entry in self._entries.get((app_name, user_id), ())
            if query_words & _words(entry.text)
        ]


@dataclass
class SessionMemory:
    """Memory service view bound to one session's app and user."""

    service: MemoryService
    app_name: str
    user_id: str
    session_id: str

    async def add_session(self, session: Session) -> None:
        """Ingest a session of the bound user."""
        await self.service.add_session_to_memory(session)

    async def search(self, query: str) -> list[MemoryEntry]:
        """Search the bound user's memory."""
        return await self.service.search_memory(
            app_name=self.app_name, user_id=self.user_id, query=query
        )
