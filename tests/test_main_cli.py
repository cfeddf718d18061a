from io import StringIO

import pytest

import main as agentrunner_main
from agentrunner.agents import FunctionAgent
from agentrunner.redis_store import RedisSessionService

from conftest import text_event


async def _broken_turn(ctx):
    if ctx.user_content.text == "fail":
        raise RuntimeError("tool crashed")
    yield text_event(f"got {ctx.user_content.text}")


broken_agent = FunctionAgent(name="fragile", run_fn=_broken_turn)


def make_agent():
    return FunctionAgent(name="factory_made", run_fn=_broken_turn)


def test_parser_defaults():
    """CLI should default to the demo agent, fakeredis and streaming output."""
    args = agentrunner_main._build_parser().parse_args([])
    assert args.agent == "agentrunner.demo:root_agent"
    assert args.redis_url == "fakeredis://"
    assert args.streaming_mode == "sse"
    assert args.save_blobs is False


def test_parser_rejects_unknown_streaming_mode():
    with pytest.raises(SystemExit):
        agentrunner_main._build_parser().parse_args(["--streaming-mode", "websocket"])


def test_load_agent_accepts_instances_and_factories():
    assert agentrunner_main._load_agent("test_main_cli:broken_agent") is broken_agent
    assert agentrunner_main._load_agent("test_main_cli:make_agent").name == "factory_made"


@pytest.mark.parametrize("target", ["no_colon", "test_main_cli:text_event", "test_main_cli:"])
def test_load_agent_rejects_bad_references(target):
    with pytest.raises((ValueError, TypeError)):
        agentrunner_main._load_agent(target)


def test_session_service_from_fakeredis_url():
    assert isinstance(agentrunner_main._session_service_from_url("fakeredis://"), RedisSessionService)


def test_console_streams_demo_agent_replies():
    out = StringIO()
    code = agentrunner_main.run_cli(
        ["--log-level", "ERROR"],
        stdin=["hello there\n", "\n", "exit\n", "ignored\n"],
        stdout=out,
    )
    assert code == 0
    assert out.getvalue().splitlines() == ["echo: hello there", "echo: hello there"]


def test_console_without_streaming_prints_authors():
    out = StringIO()
    agentrunner_main.run_cli(
        ["--streaming-mode", "none", "--log-level", "ERROR"],
        stdin=["owls\n"],
        stdout=out,
    )
    assert out.getvalue().splitlines() == ["drafter: echo: owls", "reviewer: echo: owls"]


def test_console_reports_errors_and_keeps_going():
    out = StringIO()
    agentrunner_main.run_cli(
        ["--agent", "test_main_cli:broken_agent", "--streaming-mode", "none", "--log-level", "ERROR"],
        stdin=["fail\n", "works\n"],
        stdout=out,
    )
    assert out.getvalue().splitlines() == ["AGENT_ERROR: tool crashed", "fragile: got works"]
