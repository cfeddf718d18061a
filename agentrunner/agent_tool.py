"""Expose an agent as a tool another agent's model can call."""

from __future__ import annotations

from contextlib import aclosing
from typing import Any

from pydantic import ValidationError

from .agents.base import BaseAgent
from .artifacts import InMemoryArtifactService
from .constants import RESERVED_STATE_PREFIX, USER_AUTHOR
from .errors import ToolArgumentError, ToolExecutionError
from .memory import InMemoryMemoryService
from .models import Content, Event, RunConfig, StreamingMode
from .runner import Runner
from .sessions import InMemorySessionService
from .tools import BaseTool, ToolContext

_DEFAULT_PARAMETERS = {
    "type": "object",
    "properties": {"request": {"type": "string"}},
    "required": ["request"],
}


class AgentTool(BaseTool):
    """Run a whole agent turn in an isolated session as one tool call.

    Every call gets fresh in-memory session, artifact and memory services. The
    caller's state is copied in, minus internal keys, and state written by the
    inner run is passed back through the tool context.
    """

    def __init__(self, agent: BaseAgent, *, skip_summarization: bool = False):
        super().__init__(name=agent.name, description=agent.description)
        self.agent = agent
        self.skip_summarization = skip_summarization

    def declaration(self) -> dict[str, Any]:
        input_schema = getattr(self.agent, "input_schema", None)
        parameters = input_schema.model_json_schema() if input_schema is not None else dict(_DEFAULT_PARAMETERS)
        return {"name": self.name, "description": self.description, "parameters": parameters}

    async def run(self, *, args: dict[str, Any], tool_context: ToolContext) -> dict[str, Any]:
        if self.skip_summarization:
            tool_context.actions.skip_summarization = True
        message = Content.from_text(self._request_text(args), role=USER_AUTHOR)

        session_service = InMemorySessionService()
        runner = Runner(
            app_name=self.agent.name,
            agent=self.agent,
            session_service=session_service,
            artifact_service=InMemoryArtifactService(),
            memory_service=InMemoryMemoryService(),
        )
        state = {
            key: value for key, value in tool_context.state.items() if not key.startswith(RESERVED_STATE_PREFIX)
        }
        session = await session_service.create(app_name=self.agent.name, user_id=tool_context.user_id, state=state)

        last: Event | None = None
        events = runner.run(
            user_id=session.user_id,
            session_id=session.id,
            new_message=message,
            run_config=RunConfig(streaming_mode=StreamingMode.SSE),
        )
        async with aclosing(events) as stream:
            async for event in stream:
                tool_context.invocation_context.raise_if_cancelled()
                if event.actions.state_delta:
                    tool_context.actions.state_delta.update(event.actions.state_delta)
                if event.is_partial or event.content is None:
                    continue
                last = event

        if last is None:
            return {}
        text = "\n".join(part.text for part in last.content.parts if part.text and not part.thought)
        if not text:
            return {}
        output_schema = getattr(self.agent, "output_schema", None)
        if output_schema is None:
            return {"result": text}
        try:
            return output_schema.model_validate_json(text).model_dump(exclude_none=True)
        except ValidationError as exc:
            raise ToolExecutionError(f"Agent {self.agent.name} returned output that does not match its schema") from exc

    def _request_text(self, args: dict[str, Any]) -> str:
        input_schema = getattr(self.agent, "input_schema", None)
        if input_schema is not None:
            try:
                return input_schema.model_validate(args).model_dump_json()
            except ValidationError as exc:
                raise ToolArgumentError(f"Invalid arguments for tool {self.name}: {exc}") from exc
        if "request" not in args:
            raise ToolArgumentError(f"Tool {self.name} requires a 'request' argument")
        return str(args["request"])
