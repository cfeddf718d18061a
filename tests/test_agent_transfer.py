import pytest

from agentrunner.agents import LlmAgent, SequentialAgent
from agentrunner.errors import AgentConfigError, ToolArgumentError
from agentrunner.llm import StubLLM
from agentrunner.models import Content, FunctionCall, Part
from agentrunner.runner import Runner
from agentrunner.sessions import InMemorySessionService
from agentrunner.tools import FunctionTool

from conftest import collect, make_context, run


def _transfer(agent_name: str) -> Content:
    call = FunctionCall(name="transfer_to_agent", args={"agent_name": agent_name})
    return Content(role="model", parts=[Part(function_call=call)])


def _call(agent: str, target: str) -> tuple:
    return (agent, "call", {"agent_name": target})


def _handoff(agent: str) -> tuple:
    return (agent, "response", {})


def _shape(event) -> tuple:
    """Reduce an event to (author, kind, payload) without generated ids."""
    part = event.content.parts[0]
    if part.function_call is not None:
        return (event.author, "call", part.function_call.args)
    if part.function_response is not None:
        return (event.author, "response", part.function_response.response)
    return (event.author, part.text)


async def _rounds(root, count: int) -> list[list[tuple]]:
    session_service = InMemorySessionService()
    runner = Runner(app_name="app", agent=root, session_service=session_service)
    session = await session_service.create(app_name="app", user_id="u1")
    rounds = []
    for number in range(count):
        message = Content.from_text(f"round {number}")
        events = await collect(runner.run(user_id="u1", session_id=session.id, new_message=message))
        rounds.append([_shape(event) for event in events])
    return rounds


def test_transfer_to_child_that_stays_in_control():
    model = StubLLM("stub", [_transfer("sub_agent_1"), "response1", "response2"])
    sub_agent = LlmAgent(name="sub_agent_1", model=model)
    root = LlmAgent(name="root_agent", model=model, sub_agents=[sub_agent])

    rounds = run(_rounds(root, 2))

    assert rounds[0] == [
        _call("root_agent", "sub_agent_1"),
        _handoff("root_agent"),
        ("sub_agent_1", "response1"),
    ]
    assert rounds[1] == [("sub_agent_1", "response2")]


def test_transfer_to_single_child_returns_control_to_parent():
    model = StubLLM("stub", [_transfer("sub_agent_1"), "response1", "response2"])
    sub_agent = LlmAgent(
        name="sub_agent_1",
        model=model,
        disallow_transfer_to_parent=True,
        disallow_transfer_to_peers=True,
    )
    root = LlmAgent(name="root_agent", model=model, sub_agents=[sub_agent])

    rounds = run(_rounds(root, 2))

    assert rounds[0] == [
        _call("root_agent", "sub_agent_1"),
        _handoff("root_agent"),
        ("sub_agent_1", "response1"),
    ]
    assert rounds[1] == [("root_agent", "response2")]


def test_chained_transfer_ends_with_nearest_resumable_agent():
    model = StubLLM("stub", [_transfer("sub_agent_1"), _transfer("sub_agent_1_1"), "response1", "response2"])
    leaf = LlmAgent(
        name="sub_agent_1_1",
        model=model,
        disallow_transfer_to_parent=True,
        disallow_transfer_to_peers=True,
    )
    middle = LlmAgent(name="sub_agent_1", model=model, sub_agents=[leaf])
    root = LlmAgent(name="root_agent", model=model, sub_agents=[middle])

    rounds = run(_rounds(root, 2))

    assert rounds[0] == [
        _call("root_agent", "sub_agent_1"),
        _handoff("root_agent"),
        _call("sub_agent_1", "sub_agent_1_1"),
        _handoff("sub_agent_1"),
        ("sub_agent_1_1", "response1"),
    ]
    assert rounds[1] == [("sub_agent_1", "response2")]


def test_transfer_to_peer():
    model = StubLLM("stub", [_transfer("billing"), _transfer("support"), "support here"])
    billing = LlmAgent(name="billing", model=model)
    support = LlmAgent(name="support", model=model)
    root = LlmAgent(name="desk", model=model, sub_agents=[billing, support])

    rounds = run(_rounds(root, 1))

    assert rounds[0][-1] == ("support", "support here")
    assert [shape[0] for shape in rounds[0]] == ["desk", "desk", "billing", "billing", "support"]


def test_transfer_to_parent():
    model = StubLLM("stub", [_transfer("desk"), "desk again"])
    billing = LlmAgent(name="billing", model=model)
    root = LlmAgent(name="desk", model=model, sub_agents=[billing])
    ctx = make_context(root).for_agent(billing)

    events = run(collect(billing.run(ctx)))

    assert [_shape(event) for event in events] == [
        _call("billing", "desk"),
        _handoff("billing"),
        ("desk", "desk again"),
    ]


def test_offered_targets_follow_transfer_flags():
    model = StubLLM("stub", ["ok"] * 3)
    child = LlmAgent(name="child", model=model)
    loner = LlmAgent(name="loner", model=model, disallow_transfer_to_peers=True, sub_agents=[child])
    peer = LlmAgent(name="peer", model=model)
    root = LlmAgent(name="root", model=model, sub_agents=[loner, peer])
    ctx = make_context(root)

    assert [agent.name for agent in root.transfer_targets(ctx)] == ["loner", "peer"]
    assert [agent.name for agent in loner.transfer_targets(ctx)] == ["child", "root"]
    assert [agent.name for agent in peer.transfer_targets(ctx)] == ["root", "loner"]

    run(collect(loner.run(ctx)))
    declaration = model.requests[0].tools[0]
    assert declaration["name"] == "transfer_to_agent"
    assert declaration["parameters"]["properties"]["agent_name"]["enum"] == ["child", "root"]


def test_transfer_to_disallowed_peer_fails():
    model = StubLLM("stub", [_transfer("peer")])
    loner = LlmAgent(name="loner", model=model, disallow_transfer_to_peers=True)
    root = LlmAgent(name="root", model=model, sub_agents=[loner, LlmAgent(name="peer", model=model)])

    with pytest.raises(ToolArgumentError, match="peer"):
        run(collect(loner.run(make_context(root).for_agent(loner))))


def test_workflow_parent_is_not_a_transfer_target():
    model = StubLLM("stub", ["hi"])
    step = LlmAgent(name="step", model=model)
    root = SequentialAgent(name="flow", sub_agents=[step, LlmAgent(name="other", model=model)])

    assert step.transfer_targets(make_context(root)) == []
    run(collect(step.run(make_context(root))))
    assert model.requests[0].tools == []


def test_transfer_tool_name_is_reserved():
    def transfer_to_agent(agent_name: str) -> str:
        return agent_name

    with pytest.raises(AgentConfigError):
        LlmAgent(name="rogue", tools=[FunctionTool(transfer_to_agent)])
