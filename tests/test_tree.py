import pytest

from agentrunner.agents import FunctionAgent, SequentialAgent
from agentrunner.errors import AgentConfigError, DuplicateAgentNameError
from agentrunner.tree import AgentTreeIndex

from conftest import emitting_agent


def _tree():
    leaf = emitting_agent("leaf")
    middle = SequentialAgent(name="middle", sub_agents=[leaf])
    root = SequentialAgent(name="root", sub_agents=[middle, emitting_agent("sibling")])
    return root, middle, leaf


def test_build_indexes_every_agent():
    root, middle, leaf = _tree()
    index = AgentTreeIndex.build(root)
    assert len(index) == 4
    assert index.find("leaf") is leaf
    assert index.find("missing") is None
    assert "sibling" in index


def test_parent_lookup():
    root, middle, leaf = _tree()
    index = AgentTreeIndex.build(root)
    assert index.parent_of(leaf) is middle
    assert index.parent_of("middle") is root
    assert index.parent_of(root) is None
    assert index.parent_of("missing") is None


def test_ancestry_runs_from_agent_to_root():
    root, middle, leaf = _tree()
    index = AgentTreeIndex.build(root)
    assert [agent.name for agent in index.ancestry(leaf)] == ["leaf", "middle", "root"]


def test_duplicate_names_across_levels_are_rejected():
    """Names must be unique in the whole tree, not only among siblings."""
    nested = SequentialAgent(name="middle", sub_agents=[emitting_agent("dup")])
    root = SequentialAgent(name="root", sub_agents=[nested, emitting_agent("dup")])
    with pytest.raises(DuplicateAgentNameError) as excinfo:
        AgentTreeIndex.build(root)
    assert excinfo.value.name == "dup"


def test_duplicate_direct_children_fail_at_construction():
    with pytest.raises(DuplicateAgentNameError):
        SequentialAgent(name="root", sub_agents=[emitting_agent("a"), emitting_agent("a")])


def test_one_agent_can_be_indexed_by_independent_trees():
    shared = emitting_agent("shared")
    first = AgentTreeIndex.build(SequentialAgent(name="first", sub_agents=[shared]))
    second = AgentTreeIndex.build(shared)
    assert first.parent_of(shared).name == "first"
    assert second.parent_of(shared) is None
    assert second.root is shared


@pytest.mark.parametrize("name", ["user", "has space", "", "1st"])
def test_invalid_agent_names_are_rejected(name):
    with pytest.raises(AgentConfigError):
        emitting_agent(name)


def test_non_agent_child_is_rejected():
    with pytest.raises(AgentConfigError):
        SequentialAgent(name="root", sub_agents=["not-an-agent"])


def test_function_agent_requires_callable():
    with pytest.raises(AgentConfigError):
        FunctionAgent(name="broken", run_fn=None)


def test_find_agent_walks_subtree():
    root, _, leaf = _tree()
    assert root.find_agent("leaf") is leaf
    assert root.find_agent("missing") is None
    assert [agent.name for agent in root.walk()] == ["root", "middle", "leaf", "sibling"]
