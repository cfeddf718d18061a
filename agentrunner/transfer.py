"""Resolve which agent handles the next turn of a session."""

from __future__ import annotations

import logging

from .agents.base import BaseAgent, as_llm_agent
from .constants import USER_AUTHOR
from .models import Session
from .tree import AgentTreeIndex

logger = logging.getLogger(__name__)


def is_transferable(agent: BaseAgent, index: AgentTreeIndex) -> bool:
    """Return True when control may stay with `agent` across turns.

    Every agent on the path from `agent` up to and including the root must be
    LLM-capable and must allow transfer to its parent. A single ancestor that
    disallows it pins the whole subtree below it.
    """
    for current in index.ancestry(agent):
        llm_agent = as_llm_agent(current)
        if llm_agent is None:
            logger.debug("Agent %s is not LLM-capable; %s is not resumable", current.name, agent.name)
            return False
        if llm_agent.disallow_transfer_to_parent:
            logger.debug(
                "Agent %s disallows transfer to parent; %s is not resumable", current.name, agent.name
            )
            return False
    return True


def find_agent_to_run(session: Session, index: AgentTreeIndex) -> BaseAgent:
    """Pick the agent for the next turn from the session history.

    Events are scanned newest first. User events and events from agents outside
    the tree are skipped. The first known author whose chain is transferable is
    returned; otherwise the root agent handles the turn.
    """
    for event in reversed(session.events):
        if event.author == USER_AUTHOR:
            continue
        agent = index.find(event.author)
        if agent is None:
            logger.warning("Event from an unknown agent: %s, event id: %s", event.author, event.id)
            continue
        if is_transferable(agent, index):
            return agent
    return index.root
