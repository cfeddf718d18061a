import logging

from agentrunner.agents import LlmAgent, SequentialAgent
from agentrunner.llm import StubLLM
from agentrunner.models import Content, Event, Session
from agentrunner.transfer import find_agent_to_run, is_transferable
from agentrunner.tree import AgentTreeIndex

from conftest import emitting_agent


def _llm(name: str, **kwargs) -> LlmAgent:
    return LlmAgent(name=name, model=StubLLM(f"model-{name}"), **kwargs)


def _session(*authors: str) -> Session:
    events = [Event.from_content(Content.from_text("x"), author=author) for author in authors]
    return Session(id="s", app_name="app", user_id="u", events=events)


def _two_child_tree() -> AgentTreeIndex:
    root = _llm(
        "root",
        sub_agents=[
            _llm("no_transfer", disallow_transfer_to_parent=True),
            _llm("allows_transfer"),
        ],
    )
    return AgentTreeIndex.build(root)


def test_resumes_agent_that_allows_transfer():
    """The most recent transferable author keeps control."""
    index = _two_child_tree()
    agent = find_agent_to_run(_session("allows_transfer", "user"), index)
    assert agent.name == "allows_transfer"


def test_agent_that_disallows_transfer_falls_back_to_root():
    index = _two_child_tree()
    agent = find_agent_to_run(_session("no_transfer", "user"), index)
    assert agent is index.root


def test_only_user_events_resolve_to_root():
    index = _two_child_tree()
    assert find_agent_to_run(_session("user"), index) is index.root
    assert find_agent_to_run(_session(), index) is index.root


def test_scan_continues_past_non_transferable_authors():
    """Older transferable authors are still considered."""
    index = _two_child_tree()
    agent = find_agent_to_run(_session("allows_transfer", "user", "no_transfer", "user"), index)
    assert agent.name == "allows_transfer"


def test_unknown_author_is_skipped_and_logged(caplog):
    index = _two_child_tree()
    with caplog.at_level(logging.WARNING, logger="agentrunner.transfer"):
        agent = find_agent_to_run(_session("allows_transfer", "ghost", "user"), index)
    assert agent.name == "allows_transfer"
    assert "Event from an unknown agent: ghost" in caplog.text


def test_middle_ancestor_disallowing_transfer_pins_its_subtree():
    """A leaf that allows transfer is not resumed below a blocking ancestor."""
    leaf = _llm("leaf")
    middle = _llm("middle", disallow_transfer_to_parent=True, sub_agents=[leaf])
    index = AgentTreeIndex.build(_llm("root", sub_agents=[middle]))

    assert not is_transferable(leaf, index)
    assert find_agent_to_run(_session("leaf", "user"), index) is index.root


def test_three_level_chain_without_blocking_ancestor_resumes_leaf():
    leaf = _llm("leaf")
    middle = _llm("middle", sub_agents=[leaf])
    index = AgentTreeIndex.build(_llm("root", sub_agents=[middle]))

    assert is_transferable(leaf, index)
    assert find_agent_to_run(_session("leaf", "user"), index) is leaf


def test_non_llm_ancestor_blocks_transfer():
    """Workflow agents are not LLM-capable, so their children are not resumed."""
    leaf = _llm("leaf")
    index = AgentTreeIndex.build(SequentialAgent(name="pipeline", sub_agents=[leaf]))
    assert find_agent_to_run(_session("leaf", "user"), index) is index.root


def test_non_llm_author_is_not_transferable():
    index = AgentTreeIndex.build(_llm("root", sub_agents=[emitting_agent("custom")]))
    assert find_agent_to_run(_session("custom", "user"), index) is index.root


def test_resolved_agent_is_always_in_tree():
    index = _two_child_tree()
    for authors in [(), ("user",), ("ghost",), ("no_transfer",), ("allows_transfer", "ghost")]:
        agent = find_agent_to_run(_session(*authors), index)
        assert agent.name in index
