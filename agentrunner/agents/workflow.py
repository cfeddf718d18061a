"""Workflow agents that compose their children without a model of their own."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator, Sequence
from contextlib import aclosing
from typing import TYPE_CHECKING, Any

from ..errors import AgentConfigError
from ..models import Event
from .base import BaseAgent

if TYPE_CHECKING:
    from ..context import InvocationContext

_EVENT = "event"
_ERROR = "error"
_DONE = "done"


async def _relay(child: BaseAgent, ctx: InvocationContext) -> AsyncGenerator[Event, None]:
    async with aclosing(child.run(ctx)) as events:
        async for event in events:
            yield event


class SequentialAgent(BaseAgent):
    """Run children one after another, relaying every event in order."""

    async def _run_async_impl(self, ctx: InvocationContext) -> AsyncGenerator[Event, None]:
        for child in self.sub_agents:
            ctx.raise_if_cancelled()
            async with aclosing(_relay(child, ctx)) as events:
                async for event in events:
                    yield event


class LoopAgent(BaseAgent):
    """Run children in sequence repeatedly.

    ``max_iterations`` of 0 loops until the caller stops pulling, the turn is
    cancelled or a child fails. Children are reused across iterations, so any
    state they keep carries over.
    """

    def __init__(
        self,
        *,
        name: str,
        description: str = "",
        sub_agents: Sequence[BaseAgent] | None = None,
        max_iterations: int = 0,
    ) -> None:
        super().__init__(name=name, description=description, sub_agents=sub_agents)
        if isinstance(max_iterations, bool) or not isinstance(max_iterations, int) or max_iterations < 0:
            raise AgentConfigError(f"max_iterations of {name} must be a non-negative int, got {max_iterations!r}")
        self.max_iterations = max_iterations

    async def _run_async_impl(self, ctx: InvocationContext) -> AsyncGenerator[Event, None]:
        iteration = 0
        while self.max_iterations == 0 or iteration < self.max_iterations:
            # Yield to the loop so external task cancellation lands between iterations.
            await asyncio.sleep(0)
            ctx.raise_if_cancelled()
            self.logger.debug("Iteration %d of invocation %s", iteration + 1, ctx.invocation_id)
            for child in self.sub_agents:
                ctx.raise_if_cancelled()
                async with aclosing(_relay(child, ctx)) as events:
                    async for event in events:
                        yield event
            iteration += 1


class ParallelAgent(BaseAgent):
    """Run every child concurrently and merge their events into one stream.

    Each child keeps its own order; the interleaving across children is
    whatever the scheduler produces. Every child runs on its own branch, so
    model agents inside one child do not see a sibling's events. The first
    child error is raised and the remaining children are cancelled. Closing
    the stream early or cancelling the turn cancels them too.
    """

    async def _run_async_impl(self, ctx: InvocationContext) -> AsyncGenerator[Event, None]:
        if not self.sub_agents:
            return
        queue: asyncio.Queue[tuple[str, Any]] = asyncio.Queue(maxsize=len(self.sub_agents))
        tasks = [
            asyncio.create_task(
                self._drive(child, ctx.for_branch(f"{self.name}.{child.name}"), queue),
                name=f"{self.name}:{child.name}",
            )
            for child in self.sub_agents
        ]
        cancel_waiter = asyncio.create_task(ctx.cancellation.wait())
        getter: asyncio.Task | None = None
        running = len(tasks)
        try:
            while running:
                getter = asyncio.create_task(queue.get())
                done, _ = await asyncio.wait({getter, cancel_waiter}, return_when=asyncio.FIRST_COMPLETED)
                if cancel_waiter in done:
                    self.logger.info("Cancelling %d running children of invocation %s", running, ctx.invocation_id)
                    ctx.raise_if_cancelled()
                kind, payload = getter.result()
                getter = None
                if kind == _DONE:
                    running -= 1
                elif kind == _ERROR:
                    self.logger.warning("Child failed, cancelling siblings: %s", payload)
                    raise payload
                else:
                    yield payload
        finally:
            pending = [task for task in tasks if not task.done()]
            if getter is not None:
                pending.append(getter)
            pending.append(cancel_waiter)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    async def _drive(self, child: BaseAgent, ctx: InvocationContext, queue: asyncio.Queue) -> None:
        try:
            async with aclosing(_relay(child, ctx)) as events:
                async for event in events:
                    await queue.put((_EVENT, event))
        except asyncio.CancelledError as exc:
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise
            await queue.put((_ERROR, exc))
            return
        except Exception as exc:
            await queue.put((_ERROR, exc))
            return
        await queue.put((_DONE, None))
