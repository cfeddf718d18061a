"""Agent runtime: agent trees, turn execution and session persistence."""

from .agent_tool import AgentTool
from .agents import (
    BaseAgent,
    FunctionAgent,
    LlmAgent,
    LoopAgent,
    ParallelAgent,
    SequentialAgent,
)
from .artifacts import InMemoryArtifactService
from .context import InvocationContext
from .llm import BaseLLM, LLMRequest, StubLLM
from .memory import InMemoryMemoryService
from .models import Content, Event, Part, RunConfig, Session, StreamingMode
from .runner import Runner
from .sessions import InMemorySessionService
from .tools import BaseTool, CallbackContext, FunctionTool, ToolContext
from .tree import AgentTreeIndex

__all__ = [
    "AgentTool",
    "AgentTreeIndex",
    "BaseAgent",
    "BaseLLM",
    "BaseTool",
    "CallbackContext",
    "Content",
    "Event",
    "FunctionAgent",
    "FunctionTool",
    "InMemoryArtifactService",
    "InMemoryMemoryService",
    "InMemorySessionService",
    "InvocationContext",
    "LLMRequest",
    "LlmAgent",
    "LoopAgent",
    "ParallelAgent",
    "Part",
    "RunConfig",
    "Runner",
    "SequentialAgent",
    "Session",
    "StreamingMode",
    "StubLLM",
    "ToolContext",
]
