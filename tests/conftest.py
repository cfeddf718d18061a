import asyncio
import sys
from collections.abc import AsyncGenerator, Sequence
from contextlib import aclosing
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from agentrunner.agents import BaseAgent, FunctionAgent  # noqa: E402
from agentrunner.context import InvocationContext, new_invocation_id  # noqa: E402
from agentrunner.models import Content, Event, LLMResponse, RunConfig, Session  # noqa: E402
from agentrunner.sessions import InMemorySessionService  # noqa: E402
from agentrunner.tree import AgentTreeIndex  # noqa: E402

try:
    import fakeredis  # type: ignore
except ImportError:  # pragma: no cover
    fakeredis = None


def run(coro):
    """Run a coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)


async def collect(events: AsyncGenerator[Event, None], limit: int | None = None) -> list[Event]:
    """Drain an event stream, closing it early after `limit` items."""
    collected: list[Event] = []
    async with aclosing(events) as stream:
        async for event in stream:
            collected.append(event)
            if limit is not None and len(collected) >= limit:
                break
    return collected


def text_event(text: str, *, partial: bool = False) -> Event:
    """Build a model text event."""
    return Event(llm_response=LLMResponse(content=Content.from_text(text, role="model"), partial=partial))


def emitting_agent(name: str, texts: Sequence[str] = ("hello",), **kwargs) -> FunctionAgent:
    """Agent that yields one text event per entry of `texts`."""

    async def _run(ctx):
        for text in texts:
            yield text_event(text)

    return FunctionAgent(name=name, run_fn=_run, **kwargs)


def failing_agent(name: str, error: Exception, *, after: Sequence[str] = ()) -> FunctionAgent:
    """Agent that yields `after` texts and then raises `error`."""

    async def _run(ctx):
        for text in after:
            yield text_event(text)
        raise error

    return FunctionAgent(name=name, run_fn=_run)


async def cancel_after(
    agent: BaseAgent, ctx: InvocationContext, delay: float = 0.05, timeout: float = 1.0
) -> list[Event]:
    """Drive `agent` and set the turn's cancellation token after `delay` seconds.

    A run that ignores the token hits `timeout` and fails with `TimeoutError`.
    """
    asyncio.get_running_loop().call_later(delay, ctx.cancel)
    return await asyncio.wait_for(collect(agent.run(ctx)), timeout=timeout)


def make_context(root: BaseAgent, session: Session | None = None, **kwargs) -> InvocationContext:
    """Build an invocation context for driving an agent without a runner."""
    session = session or Session(id="s1", app_name="app", user_id="u1")
    return InvocationContext(
        invocation_id=new_invocation_id(),
        agent=root,
        session=session,
        session_service=InMemorySessionService(),
        agent_tree=AgentTreeIndex.build(root),
        run_config=kwargs.pop("run_config", RunConfig()),
        **kwargs,
    )


def _require_fakeredis():
    """Return a factory for async fakeredis clients or skip when unavailable."""
    if not fakeredis:
        pytest.skip("fakeredis not available")
    server = fakeredis.FakeServer()
    return lambda: fakeredis.FakeAsyncRedis(server=server, decode_responses=False)


@pytest.fixture()
def session_service() -> InMemorySessionService:
    """Provide an empty in-memory session service."""
    return InMemorySessionService()


@pytest.fixture()
def redis_factory():
    """Provide a factory for asyncio Redis clients backed by fakeredis.

    Clients bind to the running loop on first use, so tests create them inside
    the coroutine they run.
    """
    return _require_fakeredis()
