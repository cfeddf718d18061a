"""Per-turn invocation context shared by every agent in a run."""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, TypeVar

from .artifacts import SessionArtifacts
from .constants import INVOCATION_ID_PREFIX
from .memory import SessionMemory
from .models import Content, RunConfig, Session
from .sessions import SessionService

if TYPE_CHECKING:
    from .agents.base import BaseAgent
    from .tree import AgentTreeIndex

T = TypeVar("T")


def new_invocation_id() -> str:
    """Return a fresh invocation id."""
    return f"{INVOCATION_ID_PREFIX}{uuid.uuid4()}"


class CancellationToken:
    """One-shot cancellation signal observable from any task of a turn."""

    def __init__(self):
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        """Block until cancellation is requested."""
        await self._event.wait()


@dataclass
class InvocationContext:
    """Everything an agent needs to run one turn.

    A context is derived per agent with `for_agent`; all derived copies share
    the same session object, collaborators and cancellation token. `branch`
    is the dotted path of parallel fan-outs the agent runs under, or None on
    the main line of the turn.
    """

    invocation_id: str
    agent: BaseAgent
    session: Session
    session_service: SessionService
    agent_tree: AgentTreeIndex
    run_config: RunConfig = field(default_factory=RunConfig)
    user_content: Content | None = None
    artifacts: SessionArtifacts | None = None
    memory: SessionMemory | None = None
    cancellation: CancellationToken = field(default_factory=CancellationToken)
    branch: str | None = None

    def for_agent(self, agent: BaseAgent) -> InvocationContext:
        """Return a copy of this context addressed to another agent."""
        return replace(self, agent=agent)

    def for_branch(self, name: str) -> InvocationContext:
        """Return a copy of this context one branch level deeper."""
        branch = f"{self.branch}.{name}" if self.branch else name
        return replace(self, branch=branch)

    @property
    def cancelled(self) -> bool:
        return self.cancellation.cancelled

    def cancel(self) -> None:
        """Request cancellation of the whole turn."""
        self.cancellation.cancel()

    def raise_if_cancelled(self) -> None:
        """Raise `asyncio.CancelledError` once cancellation was requested."""
        if self.cancellation.cancelled:
            raise asyncio.CancelledError(f"invocation {self.invocation_id} cancelled")

    async def until_cancelled(self, awaitable: Awaitable[T]) -> T:
        """Await `awaitable` unless the turn is cancelled first.

        The awaitable runs as its own task raced against the cancellation
        token. When the token wins, the task is cancelled and awaited so it can
        unwind, then `asyncio.CancelledError` is raised to the caller.
        """
        self.raise_if_cancelled()
        step = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self.cancellation.wait())
        abandoned = True
        try:
            await asyncio.wait({step, waiter}, return_when=asyncio.FIRST_COMPLETED)
            abandoned = not step.done()
        finally:
            pending = [waiter]
            if abandoned:
                pending.append(step)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        if abandoned:
            self.raise_if_cancelled()
        return step.result()
