"""Console entrypoint that chats with an agent tree."""

from __future__ import annotations

import argparse
import asyncio
import importlib
import logging
import sys
from collections.abc import Iterable
from contextlib import aclosing
from typing import TextIO

import redis.asyncio as aioredis

try:
    import fakeredis
except ImportError:
    fakeredis = None

from agentrunner.agents import BaseAgent
from agentrunner.artifacts import InMemoryArtifactService
from agentrunner.logging_utils import configure_logging
from agentrunner.memory import InMemoryMemoryService
from agentrunner.models import Content, RunConfig, StreamingMode
from agentrunner.redis_store import RedisSessionService
from agentrunner.runner import Runner

LOGGER = logging.getLogger(__name__)

EXIT_COMMANDS = {"exit", "quit"}


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(description="Chat with an agent tree from the console")
    parser.add_argument(
        "--agent",
        default="agentrunner.demo:root_agent",
        help="Root agent as module:attribute (a BaseAgent or a factory returning one)",
    )
    parser.add_argument("--app-name", default="console", help="Application name for sessions")
    parser.add_argument("--user-id", default="console-user", help="User id for the session")
    parser.add_argument("--session-id", help="Resume this session id instead of creating one")
    parser.add_argument("--redis-url", default="fakeredis://", help="Redis connection URL")
    parser.add_argument(
        "--streaming-mode",
        choices=[mode.value for mode in StreamingMode],
        default=StreamingMode.SSE.value,
        help="Model streaming mode",
    )
    parser.add_argument(
        "--save-blobs",
        action="store_true",
        help="Save inline input blobs as artifacts",
    )
    parser.add_argument("--log-level", default="WARNING", help="Python logging level")
    return parser


def _session_service_from_url(url: str) -> RedisSessionService:
    """Construct a Redis-backed session service from a connection URL."""
    if url.startswith("fakeredis://"):
        if not fakeredis:
            raise RuntimeError("fakeredis is not installed")
        return RedisSessionService(fakeredis.FakeAsyncRedis(decode_responses=False))
    return RedisSessionService(aioredis.Redis.from_url(url))


def _load_agent(target: str) -> BaseAgent:
    """Import a root agent from a ``module:attribute`` reference."""
    module_name, _, attribute = target.partition(":")
    if not module_name or not attribute:
        raise ValueError(f"Agent reference must look like module:attribute, got {target!r}")
    agent = getattr(importlib.import_module(module_name), attribute)
    if not isinstance(agent, BaseAgent) and callable(agent):
        agent = agent()
    if not isinstance(agent, BaseAgent):
        raise ValueError(f"{target} is not an agent: {agent!r}")
    return agent


async def run_console(
    runner: Runner,
    *,
    user_id: str,
    session_id: str,
    lines: Iterable[str],
    run_config: RunConfig,
    out: TextIO,
) -> int:
    """Send each input line as one turn and print the agent's text.

    Returns the number of turns that ended with an error.
    """
    streaming = run_config.streaming_mode == StreamingMode.SSE
    failures = 0
    for line in lines:
        text = line.strip()
        if not text:
            continue
        if text.lower() in EXIT_COMMANDS:
            break
        events = runner.run(
            user_id=user_id,
            session_id=session_id,
            new_message=Content.from_text(text),
            run_config=run_config,
        )
        streamed = False
        try:
            async with aclosing(events) as stream:
                async for event in stream:
                    if streaming and event.is_partial:
                        if event.text:
                            print(event.text, end="", file=out, flush=True)
                            streamed = True
                    elif streaming and event.text:
                        # The final event repeats the streamed text.
                        print("" if streamed else event.text, file=out, flush=True)
                        streamed = False
                    elif event.text:
                        print(f"{event.author}: {event.text}", file=out, flush=True)
        except Exception as exc:
            failures += 1
            LOGGER.debug("Turn failed", exc_info=True)
            if streamed:
                print(file=out)
            print(f"AGENT_ERROR: {exc}", file=out, flush=True)
    return failures


async def _serve(args: argparse.Namespace, lines: Iterable[str], out: TextIO) -> int:
    agent = _load_agent(args.agent)
    session_service = _session_service_from_url(args.redis_url)
    runner = Runner(
        app_name=args.app_name,
        agent=agent,
        session_service=session_service,
        artifact_service=InMemoryArtifactService(),
        memory_service=InMemoryMemoryService(),
    )
    if args.session_id:
        session = await session_service.get(
            app_name=args.app_name, user_id=args.user_id, session_id=args.session_id
        )
    else:
        session = await session_service.create(app_name=args.app_name, user_id=args.user_id)
    LOGGER.info("Chatting with %s in session %s", agent.name, session.id)
    run_config = RunConfig(
        streaming_mode=StreamingMode(args.streaming_mode),
        save_input_blobs_as_artifacts=args.save_blobs,
    )
    await run_console(
        runner,
        user_id=args.user_id,
        session_id=session.id,
        lines=lines,
        run_config=run_config,
        out=out,
    )
    return 0


def run_cli(
    argv: list[str] | None = None,
    *,
    stdin: Iterable[str] | None = None,
    stdout: TextIO | None = None,
) -> int:
    """Execute CLI entrypoint logic and return process exit code."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)
    return asyncio.run(_serve(args, stdin if stdin is not None else sys.stdin, stdout or sys.stdout))


if __name__ == "__main__":
    sys.exit(run_cli())
