"""Model-driven agent with a function-calling loop."""

from __future__ import annotations

import inspect
from collections.abc import AsyncGenerator, Awaitable, Callable, Mapping, Sequence
from contextlib import aclosing
from typing import TYPE_CHECKING

from pydantic import BaseModel

from ..constants import DEFAULT_MAX_LLM_CALLS, MODEL_ROLE, TRANSFER_TOOL_NAME, USER_AUTHOR
from ..errors import AgentConfigError, ToolExecutionError
from ..llm import BaseLLM, LLMRequest
from ..models import Content, Event, EventActions, FunctionResponse, LLMResponse, Part, StreamingMode
from ..tools import BaseTool, CallbackContext, ToolContext, TransferToAgentTool
from .base import BaseAgent, as_llm_agent

if TYPE_CHECKING:
    from ..context import InvocationContext

_MaybeResponse = LLMResponse | None | Awaitable[LLMResponse | None]
BeforeModelCallback = Callable[[CallbackContext, LLMRequest], _MaybeResponse]
AfterModelCallback = Callable[[CallbackContext, LLMResponse], _MaybeResponse]


class LlmAgent(BaseAgent):
    """Agent that asks a model what to say and which tools to call.

    Each model call sees the session history of its branch, the agent
    instruction and an identity preamble. Function calls in a final response
    are executed, their results are emitted as one function-response event and
    the model is called again. The loop ends when the model stops calling
    tools, when a tool asks to skip summarization, when the model transfers
    the turn to another agent, or after ``max_llm_calls`` calls.

    Before-model callbacks run in order ahead of every model call; the first
    one to return a response replaces the call. After-model callbacks run in
    order on every final response; the first one to return a response replaces
    it. Callbacks may be plain or async functions and their exceptions end the
    turn.
    """

    def __init__(
        self,
        *,
        name: str,
        model: BaseLLM | None = None,
        instruction: str = "",
        description: str = "",
        sub_agents: Sequence[BaseAgent] | None = None,
        tools: Sequence[BaseTool] | None = None,
        disallow_transfer_to_parent: bool = False,
        disallow_transfer_to_peers: bool = False,
        input_schema: type[BaseModel] | None = None,
        output_schema: type[BaseModel] | None = None,
        output_key: str | None = None,
        max_llm_calls: int = DEFAULT_MAX_LLM_CALLS,
        before_model_callbacks: Sequence[BeforeModelCallback] | None = None,
        after_model_callbacks: Sequence[AfterModelCallback] | None = None,
    ) -> None:
        super().__init__(name=name, description=description, sub_agents=sub_agents)
        if max_llm_calls < 1:
            raise AgentConfigError(f"max_llm_calls of {name} must be positive, got {max_llm_calls}")
        self.model = model
        self.instruction = instruction
        self.tools = tuple(tools or ())
        names = [tool.name for tool in self.tools]
        if len(set(names)) != len(names):
            raise AgentConfigError(f"Agent {name} declares duplicate tool names: {names}")
        if TRANSFER_TOOL_NAME in names:
            raise AgentConfigError(f"Tool name {TRANSFER_TOOL_NAME!r} is reserved for agent transfer")
        self._tools_by_name = {tool.name: tool for tool in self.tools}
        self.disallow_transfer_to_parent = disallow_transfer_to_parent
        self.disallow_transfer_to_peers = disallow_transfer_to_peers
        self.input_schema = input_schema
        self.output_schema = output_schema
        self.output_key = output_key
        self.max_llm_calls = max_llm_calls
        self.before_model_callbacks = tuple(before_model_callbacks or ())
        self.after_model_callbacks = tuple(after_model_callbacks or ())

    @property
    def canonical_model(self) -> BaseLLM | None:
        return self.model

    def resolve_model(self, ctx: InvocationContext) -> BaseLLM:
        """Return this agent's model, falling back to the nearest ancestor's."""
        for agent in ctx.agent_tree.ancestry(self):
            llm_agent = as_llm_agent(agent)
            if llm_agent is not None and llm_agent.canonical_model is not None:
                return llm_agent.canonical_model
        raise AgentConfigError(f"No model found for agent {self.name}")

    def transfer_targets(self, ctx: InvocationContext) -> list[BaseAgent]:
        """Agents the model may hand the turn to: children, then parent and peers.

        Parent and peers are only offered when the parent is model-driven and
        the matching ``disallow_transfer_to_*`` flag is off.
        """
        targets = list(self.sub_agents)
        parent = ctx.agent_tree.parent_of(self)
        if parent is None or as_llm_agent(parent) is None:
            return targets
        if not self.disallow_transfer_to_parent:
            targets.append(parent)
        if not self.disallow_transfer_to_peers:
            targets.extend(peer for peer in parent.sub_agents if peer is not self)
        return targets

    def system_instruction(self) -> str:
        sections = [self.instruction] if self.instruction else []
        sections.append(f'You are an agent. Your internal name is "{self.name}".')
        if self.description:
            sections.append(f'The description about you is "{self.description}".')
        return "\n\n".join(sections)

    async def _run_async_impl(self, ctx: InvocationContext) -> AsyncGenerator[Event, None]:
        model = self.resolve_model(ctx)
        stream = ctx.run_config.streaming_mode == StreamingMode.SSE
        produced: list[Event] = []
        for call_number in range(1, self.max_llm_calls + 1):
            ctx.raise_if_cancelled()
            tools = self._tools_for_call(ctx)
            request = self._build_request(ctx, model, produced, tools)
            self.logger.debug("Model call %d with %d history items", call_number, len(request.contents))
            callback_context = CallbackContext(ctx)
            finals: list[Event] = []
            async with aclosing(self._call_model(model, request, stream, callback_context)) as responses:
                async for response in responses:
                    event = Event(llm_response=response)
                    if not response.partial:
                        if not finals:
                            event.actions.state_delta.update(callback_context.actions.state_delta)
                        self._apply_output_key(event)
                        finals.append(event)
                        produced.append(event)
                    yield event

            calls = [call for event in finals for call in event.function_calls()]
            if not calls:
                return
            response_event = await self._call_tools(ctx, calls, tools)
            produced.append(response_event)
            yield response_event
            target_name = response_event.actions.transfer_to_agent
            if target_name:
                target = ctx.agent_tree.find(target_name)
                self.logger.info("Transferring invocation %s to %s", ctx.invocation_id, target_name)
                async with aclosing(target.run(ctx)) as events:
                    async for event in events:
                        yield event
                return
            if response_event.actions.skip_summarization:
                return
        self.logger.warning("Stopped after %d model calls in invocation %s", self.max_llm_calls, ctx.invocation_id)

    def _tools_for_call(self, ctx: InvocationContext) -> dict[str, BaseTool]:
        tools: dict[str, BaseTool] = dict(self._tools_by_name)
        targets = self.transfer_targets(ctx)
        if targets:
            tools[TRANSFER_TOOL_NAME] = TransferToAgentTool([agent.name for agent in targets])
        return tools

    async def _call_model(
        self, model: BaseLLM, request: LLMRequest, stream: bool, callback_context: CallbackContext
    ) -> AsyncGenerator[LLMResponse, None]:
        for callback in self.before_model_callbacks:
            replacement = await _resolve(callback(callback_context, request))
            if replacement is not None:
                self.logger.debug("Model call replaced by before-model callback %s", _callable_name(callback))
                yield replacement
                return
        async with aclosing(model.generate_content(request, stream=stream)) as responses:
            async for response in responses:
                if not response.partial:
                    response = await self._after_model(callback_context, response)
                yield response

    async def _after_model(self, callback_context: CallbackContext, response: LLMResponse) -> LLMResponse:
        for callback in self.after_model_callbacks:
            replacement = await _resolve(callback(callback_context, response))
            if replacement is not None:
                self.logger.debug("Model response replaced by after-model callback %s", _callable_name(callback))
                return replacement
        return response

    def _build_request(
        self, ctx: InvocationContext, model: BaseLLM, produced: list[Event], tools: Mapping[str, BaseTool]
    ) -> LLMRequest:
        committed = {event.id for event in ctx.session.events}
        history = list(ctx.session.events) + [event for event in produced if event.id not in committed]
        contents: list[Content] = []
        for event in history:
            content = event.content
            if event.is_partial or content is None or content.is_empty():
                continue
            if not _visible_from(ctx.branch, event.branch):
                continue
            role = USER_AUTHOR if event.author == USER_AUTHOR else content.role or MODEL_ROLE
            contents.append(content.model_copy(update={"role": role}, deep=True))
        return LLMRequest(
            model=model.name,
            contents=contents,
            system_instruction=self.system_instruction(),
            tools=[tool.declaration() for tool in tools.values()],
        )

    async def _call_tools(self, ctx: InvocationContext, calls, tools: Mapping[str, BaseTool]) -> Event:
        parts: list[Part] = []
        actions = EventActions()
        for call in calls:
            tool = tools.get(call.name)
            if tool is None:
                raise ToolExecutionError(f"Function {call.name} is not found in the tools of agent {self.name}")
            tool_context = ToolContext(ctx, function_call_id=call.id)
            self.logger.info("Calling tool %s (call id %s)", call.name, call.id)
            result = await tool.run(args=dict(call.args), tool_context=tool_context)
            actions.state_delta.update(tool_context.actions.state_delta)
            actions.skip_summarization = actions.skip_summarization or tool_context.actions.skip_summarization
            actions.transfer_to_agent = tool_context.actions.transfer_to_agent or actions.transfer_to_agent
            parts.append(Part(function_response=FunctionResponse(id=call.id, name=call.name, response=result)))
        return Event(
            llm_response=LLMResponse(content=Content(role=USER_AUTHOR, parts=parts)),
            actions=actions,
        )

    def _apply_output_key(self, event: Event) -> None:
        if not self.output_key or event.function_calls():
            return
        text = event.text
        if not text:
            return
        if self.output_schema is not None:
            event.actions.state_delta[self.output_key] = self.output_schema.model_validate_json(text).model_dump()
        else:
            event.actions.state_delta[self.output_key] = text


async def _resolve(result: _MaybeResponse) -> LLMResponse | None:
    if inspect.isawaitable(result):
        return await result
    return result


def _callable_name(func: Callable) -> str:
    return getattr(func, "__qualname__", repr(func))


def _visible_from(branch: str | None, event_branch: str | None) -> bool:
    """True when an event on `event_branch` belongs to the history of `branch`."""
    if not branch or not event_branch:
        return True
    return branch == event_branch or branch.startswith(f"{event_branch}.")
