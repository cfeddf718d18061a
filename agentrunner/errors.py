"""Exception types raised by the runner and its collaborators."""

from __future__ import annotations


class AgentRunnerError(Exception):
    """Base class for every error the runtime raises itself."""


class AgentConfigError(AgentRunnerError, ValueError):
    """Invalid agent or tree construction; raised at build time only."""


class DuplicateAgentNameError(AgentConfigError):
    """Two agents in one tree share a name."""

    def __init__(self, name: str):
        super().__init__(f"Duplicate agent name in tree: {name!r}")
        self.name = name


class SessionNotFoundError(AgentRunnerError, LookupError):
    """No session exists for the requested (app, user, session) key."""

    def __init__(self, app_name: str, user_id: str, session_id: str):
        super().__init__(f"Session not found: app={app_name} user={user_id} session={session_id}")
        self.app_name = app_name
        self.user_id = user_id
        self.session_id = session_id


class SessionAlreadyExistsError(AgentRunnerError):
    """A session with the requested key is already stored."""

    def __init__(self, app_name: str, user_id: str, session_id: str):
        super().__init__(
            f"Session already exists: app={app_name} user={user_id} session={session_id}"
        )
        self.app_name = app_name
        self.user_id = user_id
        self.session_id = session_id


class UnsupportedCapabilityError(AgentRunnerError):
    """The resolved agent or its model cannot honour the requested run mode."""


class EventPersistenceError(AgentRunnerError):
    """Appending an event to the session failed."""


class ToolArgumentError(AgentRunnerError, ValueError):
    """Tool arguments are missing or fail validation."""


class ToolExecutionError(AgentRunnerError):
    """A tool failed while running or while parsing its result."""
