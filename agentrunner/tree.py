"""Immutable name and parent lookup over a rooted agent tree."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from types import MappingProxyType

from .agents.base import BaseAgent
from .errors import DuplicateAgentNameError


class AgentTreeIndex:
    """Name-to-agent and name-to-parent tables built once from a root agent.

    The index never changes after construction; build a new one when the tree
    changes. It is safe to share between concurrently running agents.
    """

    def __init__(self, root: BaseAgent, agents: Mapping[str, BaseAgent], parents: Mapping[str, BaseAgent]):
        self.root = root
        self._agents = MappingProxyType(dict(agents))
        self._parents = MappingProxyType(dict(parents))

    @classmethod
    def build(cls, root: BaseAgent) -> AgentTreeIndex:
        """Index every agent reachable from root; raise on duplicate names."""
        agents: dict[str, BaseAgent] = {}
        parents: dict[str, BaseAgent] = {}
        stack: list[tuple[BaseAgent, BaseAgent | None]] = [(root, None)]
        while stack:
            agent, parent = stack.pop()
            if agent.name in agents:
                raise DuplicateAgentNameError(agent.name)
            agents[agent.name] = agent
            if parent is not None:
                parents[agent.name] = parent
            stack.extend((child, agent) for child in reversed(agent.sub_agents))
        return cls(root, agents, parents)

    def find(self, name: str) -> BaseAgent | None:
        """Return the agent with this name, or None when it is not in the tree."""
        return self._agents.get(name)

    def parent_of(self, agent: BaseAgent | str) -> BaseAgent | None:
        """Return the parent agent, or None for the root and unknown names."""
        name = agent if isinstance(agent, str) else agent.name
        return self._parents.get(name)

    def ancestry(self, agent: BaseAgent) -> Iterator[BaseAgent]:
        """Yield the agent followed by each ancestor up to the root."""
        current: BaseAgent | None = agent
        while current is not None:
            yield current
            current = self._parents.get(current.name)

    def __contains__(self, name: object) -> bool:
        return name in self._agents

    def __len__(self) -> int:
        return len(self._agents)
