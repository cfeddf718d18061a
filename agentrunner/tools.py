"""Tool interface offered to LLM agents and the contexts tools and callbacks run with."""

from __future__ import annotations

import inspect
from collections.abc import Callable, Mapping, Sequence
from types import MappingProxyType
from typing import Any, get_type_hints

from pydantic import BaseModel, ValidationError, create_model

from .constants import TRANSFER_TOOL_NAME
from .context import InvocationContext
from .errors import AgentConfigError, ToolArgumentError
from .models import EventActions


class CallbackContext:
    """View of the running turn handed to model callbacks.

    Writes go through `set_state` into `actions.state_delta`; the first final
    response of the model call carries them into the session.
    """

    def __init__(self, invocation_context: InvocationContext):
        self.invocation_context = invocation_context
        self.actions = EventActions()

    @property
    def state(self) -> Mapping[str, Any]:
        """Session state with this context's pending writes applied."""
        return MappingProxyType({**self.invocation_context.session.state, **self.actions.state_delta})

    def set_state(self, key: str, value: Any) -> None:
        self.actions.state_delta[key] = value

    @property
    def user_id(self) -> str:
        return self.invocation_context.session.user_id


class ToolContext(CallbackContext):
    """Callback context for one tool call; its actions ride on the function-response event."""

    def __init__(self, invocation_context: InvocationContext, function_call_id: str | None = None):
        super().__init__(invocation_context)
        self.function_call_id = function_call_id


class BaseTool:
    """Abstract interface for something a model may call."""

    def __init__(self, *, name: str, description: str = ""):
        self.name = name
        self.description = description

    def declaration(self) -> dict[str, Any]:  # pragma: no cover - interface
        """Return the function declaration sent to the model."""
        raise NotImplementedError

    async def run(
        self, *, args: dict[str, Any], tool_context: ToolContext
    ) -> dict[str, Any]:  # pragma: no cover - interface
        """Execute one call and return the function response payload."""
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"


class FunctionTool(BaseTool):
    """Tool backed by a typed Python function, sync or async.

    The handler either takes a single pydantic model argument or plain
    annotated keyword parameters; a parameter annotated with `ToolContext`
    receives the call's tool context. Arguments are validated before the call.
    A pydantic result is dumped, a mapping is returned as is and anything else
    is wrapped as ``{"result": value}``.
    """

    def __init__(self, func: Callable[..., Any], *, name: str | None = None, description: str | None = None):
        if not callable(func):
            raise AgentConfigError(f"FunctionTool needs a callable, got {func!r}")
        name = name or func.__name__
        if description is None:
            description = inspect.getdoc(func) or ""
        super().__init__(name=name, description=description)
        self.func = func
        self._context_param, self._model_param, self._args_model = _inspect_handler(func, name)

    def declaration(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self._args_model.model_json_schema(),
        }

    async def run(self, *, args: dict[str, Any], tool_context: ToolContext) -> dict[str, Any]:
        try:
            parsed = self._args_model.model_validate(args)
        except ValidationError as exc:
            raise ToolArgumentError(f"Invalid arguments for tool {self.name}: {exc}") from exc
        if self._model_param is not None:
            kwargs: dict[str, Any] = {self._model_param: parsed}
        else:
            kwargs = {field: getattr(parsed, field) for field in type(parsed).model_fields}
        if self._context_param is not None:
            kwargs[self._context_param] = tool_context
        result = self.func(**kwargs)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, BaseModel):
            return result.model_dump(mode="json")
        if isinstance(result, Mapping):
            return dict(result)
        return {"result": result}


def _inspect_handler(func: Callable[..., Any], name: str) -> tuple[str | None, str | None, type[BaseModel]]:
    """Return the tool-context parameter, the model parameter and the argument model of a handler."""
    hints = get_type_hints(func)
    context_param: str | None = None
    fields: dict[str, Any] = {}
    for param in inspect.signature(func).parameters.values():
        if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            raise AgentConfigError(f"Tool {name} cannot take *args or **kwargs")
        annotation = hints.get(param.name, Any)
        if inspect.isclass(annotation) and issubclass(annotation, CallbackContext):
            context_param = param.name
            continue
        default = ... if param.default is param.empty else param.default
        fields[param.name] = (annotation, default)
    if len(fields) == 1:
        param_name, (annotation, _) = next(iter(fields.items()))
        if inspect.isclass(annotation) and issubclass(annotation, BaseModel):
            return context_param, param_name, annotation
    return context_param, None, create_model(f"{name}_args", **fields)


class TransferToAgentTool(BaseTool):
    """Built-in tool a model calls to hand the rest of the turn to another agent."""

    def __init__(self, targets: Sequence[str]):
        super().__init__(
            name=TRANSFER_TOOL_NAME,
            description="Transfer the question to another agent that is better suited to answer it.",
        )
        self.targets = tuple(targets)

    def declaration(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": {"agent_name": {"type": "string", "enum": list(self.targets)}},
                "required": ["agent_name"],
            },
        }

    async def run(self, *, args: dict[str, Any], tool_context: ToolContext) -> dict[str, Any]:
        agent_name = args.get("agent_name")
        if agent_name not in self.targets:
            raise ToolArgumentError(f"Cannot transfer to {agent_name!r}, allowed targets are {list(self.targets)}")
        tool_context.actions.transfer_to_agent = agent_name
        return {}
