"""Agent contract, capability facets and the caller-supplied function agent."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable, Iterator, Sequence
from contextlib import aclosing
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from ..constants import USER_AUTHOR
from ..errors import AgentConfigError, DuplicateAgentNameError
from ..logging_utils import BaseLogger
from ..models import Event

if TYPE_CHECKING:
    from ..context import InvocationContext
    from ..llm import BaseLLM


@runtime_checkable
class TransferPolicy(Protocol):
    """Agents that declare whether control may move to their parent or peers."""

    disallow_transfer_to_parent: bool
    disallow_transfer_to_peers: bool


@runtime_checkable
class LLMCapable(TransferPolicy, Protocol):
    """Agents driven by a model; always carry a transfer policy."""

    @property
    def canonical_model(self) -> BaseLLM | None: ...


class BaseAgent(BaseLogger):
    """A named node of an agent tree that produces events for a turn.

    Subclasses implement `_run_async_impl` as an async generator. Callers use
    `run`, which addresses the context to this agent, stamps author, branch and
    invocation id on every event the implementation yields and abandons the
    implementation at whatever await it is blocked on once the turn is
    cancelled.
    """

    def __init__(
        self,
        *,
        name: str,
        description: str = "",
        sub_agents: Sequence[BaseAgent] | None = None,
    ) -> None:
        """Validate identity and take ownership of child agents."""
        if not isinstance(name, str) or not name.isidentifier():
            raise AgentConfigError(f"Agent name must be a valid identifier, got {name!r}")
        if name == USER_AUTHOR:
            raise AgentConfigError(f"Agent name {USER_AUTHOR!r} is reserved for user input")
        super().__init__(f"{self.__class__.__name__}[{name}]")
        self.name = name
        self.description = description
        children = tuple(sub_agents or ())
        seen: set[str] = set()
        for child in children:
            if not isinstance(child, BaseAgent):
                raise AgentConfigError(f"Sub-agent of {name} is not an agent: {child!r}")
            if child.name in seen:
                raise DuplicateAgentNameError(child.name)
            seen.add(child.name)
        self._sub_agents = children

    @property
    def sub_agents(self) -> tuple[BaseAgent, ...]:
        return self._sub_agents

    def walk(self) -> Iterator[BaseAgent]:
        """Yield this agent and every descendant, depth first."""
        yield self
        for child in self._sub_agents:
            yield from child.walk()

    def find_agent(self, name: str) -> BaseAgent | None:
        """Return the first agent in this subtree with the given name."""
        for agent in self.walk():
            if agent.name == name:
                return agent
        return None

    async def run(self, ctx: InvocationContext) -> AsyncGenerator[Event, None]:
        """Run this agent for one turn."""
        ctx = ctx.for_agent(self)
        ctx.raise_if_cancelled()
        self.logger.debug("Starting invocation %s", ctx.invocation_id)
        async with aclosing(self._run_async_impl(ctx)) as events:
            while True:
                event = await ctx.until_cancelled(anext(events, None))
                if event is None:
                    break
                if not event.author:
                    event.author = self.name
                if not event.invocation_id:
                    event.invocation_id = ctx.invocation_id
                if event.branch is None:
                    event.branch = ctx.branch
                yield event
        self.logger.debug("Finished invocation %s", ctx.invocation_id)

    def _run_async_impl(self, ctx: InvocationContext) -> AsyncGenerator[Event, None]:
        """Produce this agent's events."""
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"


RunFunction = Callable[["InvocationContext"], AsyncGenerator[Event, None]]


class FunctionAgent(BaseAgent):
    """Agent whose behaviour is a caller-supplied async generator function."""

    def __init__(
        self,
        *,
        name: str,
        run_fn: RunFunction,
        description: str = "",
        sub_agents: Sequence[BaseAgent] | None = None,
    ) -> None:
        super().__init__(name=name, description=description, sub_agents=sub_agents)
        if not callable(run_fn):
            raise AgentConfigError(f"run_fn of agent {name} must be callable")
        self.run_fn = run_fn

    async def _run_async_impl(self, ctx: InvocationContext) -> AsyncGenerator[Event, None]:
        async with aclosing(self.run_fn(ctx)) as events:
            async for event in events:
                yield event


def as_llm_agent(agent: BaseAgent | None) -> LLMCapable | None:
    """Return the agent when it exposes the LLM-capable facet."""
    if isinstance(agent, LLMCapable):
        return agent
    return None
