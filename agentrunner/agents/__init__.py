from .base import BaseAgent, FunctionAgent, LLMCapable, RunFunction, TransferPolicy, as_llm_agent
from .llm_agent import LlmAgent
from .workflow import LoopAgent, ParallelAgent, SequentialAgent

__all__ = [
    "BaseAgent",
    "FunctionAgent",
    "LLMCapable",
    "LlmAgent",
    "LoopAgent",
    "ParallelAgent",
    "RunFunction",
    "SequentialAgent",
    "TransferPolicy",
    "as_llm_agent",
]
