"""Artifact storage for binary and text blobs kept outside the event log."""

from __future__ import annotations

from dataclasses import dataclass

from .logging_utils import BaseLogger
from .models import Part


class ArtifactService:
    """Interface for versioned artifact storage."""

    async def save(
        self, *, app_name: str, user_id: str, session_id: str, filename: str, part: Part
    ) -> int:  # pragma: no cover - interface
        """Store a new version of an artifact and return its version number."""
        raise NotImplementedError

    async def load(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
        filename: str,
        version: int | None = None,
    ) -> Part | None:  # pragma: no cover - interface
        """Return one version (latest by default) or None when absent."""
        raise NotImplementedError

    async def list(
        self, *, app_name: str, user_id: str, session_id: str
    ) -> list[str]:  # pragma: no cover - interface
        """Return artifact names stored for a session."""
        raise NotImplementedError

    async def delete(
        self, *, app_name: str, user_id: str, session_id: str, filename: str
    ) -> None:  # pragma: no cover - interface
        """Remove every version of an artifact."""
        raise NotImplementedError


class InMemoryArtifactService(ArtifactService, BaseLogger):
    def __init__(self):
        BaseLogger.__init__(self, f"{self.__class__.__name__}")
        self._artifacts: dict[tuple[str, str, str, str], list[Part]] = {}

    async def save(
        self, *, app_name: str, user_id: str, session_id: str, filename: str, part: Part
    ) -> int:
        versions = self._artifacts.setdefault((app_name, user_id, session_id, filename), [])
        versions.append(part.model_copy(deep=True))
        self.logger.debug("Saved artifact %s version %d", filename, len(versions) - 1)
        return len(versions) - 1

    async def load(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
        filename: str,
        version: int | None = None,
    ) -> Part | None:
        versions = self._artifacts.get((app_name, user_id, session_id, filename))
        if not versions:
            return None
        if version is None:
            return versions[-1].model_copy(deep=True)
        if not 0 <= version < len(versions):
            return None
        return versions[version].model_copy(deep=True)

    async def list(self, *, app_name: str, user_id: str, session_id: str) -> list[str]:
        return sorted(
            filename
            for (app, user, session, filename) in self._artifacts
            if (app, user, session) == (app_name, user_id, session_id)
        )

    async def delete(self, *, app_name: str, user_id: str, session_id: str, filename: str) -> None:
        self._artifacts.pop((app_name, user_id, session_id, filename), None)


@dataclass
class SessionArtifacts:
    """Artifact service view bound to one session."""

    service: ArtifactService
    app_name: str
    user_id: str
    session_id: str

    async def save(self, filename: str, part: Part) -> int:
        """Save an artifact for the bound session."""
        return await self.service.save(
            app_name=self.app_name,
            user_id=self.user_id,
            session_id=self.session_id,
            filename=filename,
            part=part,
        )

    async def load(self, filename: str, version: int | None = None) -> Part | None:
        """Load an artifact of the bound session."""
        return await self.service.load(
            app_name=self.app_name,
            user_id=self.user_id,
            session_id=self.session_id,
            filename=filename,
            version=version,
        )

    async def list(self) -> list[str]:
        """List artifact names of the bound session."""
        return await self.service.list(
            app_name=self.app_name, user_id=self.user_id, session_id=self.session_id
        )
