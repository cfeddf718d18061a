"""Model clients used by LLM agents."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, Iterable
from typing import Any

from pydantic import BaseModel, Field

from .constants import MODEL_ROLE, STUB_STREAM_CHUNK_CHARS
from .models import Content, LLMResponse, Part
from .streaming import StreamingResponseAggregator

logger = logging.getLogger(__name__)


class LLMRequest(BaseModel):
    """One model call: history, instructions and the tools on offer."""

    model: str
    contents: list[Content] = Field(default_factory=list)
    system_instruction: str = ""
    tools: list[dict[str, Any]] = Field(default_factory=list)


class BaseLLM:
    """Abstract interface for model backends."""

    def __init__(self, name: str):
        self.name = name

    def generate_content(
        self, request: LLMRequest, *, stream: bool = False
    ) -> AsyncGenerator[LLMResponse, None]:  # pragma: no cover - interface
        """Yield responses for a request.

        With ``stream=False`` a backend yields exactly one final response. With
        ``stream=True`` it yields partial text responses followed by final ones.
        """
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"


ScriptedResponse = Content | str | Exception


class StubLLM(BaseLLM):
    """Deterministic model that replays scripted responses in order.

    Each call consumes one scripted entry. Strings become model text, `Content`
    is returned as is and an exception is raised from the call. Once the script
    runs out the stub echoes the latest user text when `echo` is set and raises
    otherwise. Every request is recorded on `requests`.
    """

    def __init__(
        self,
        name: str = "stub-model",
        responses: Iterable[ScriptedResponse] | None = None,
        *,
        echo: bool = False,
        chunk_chars: int = STUB_STREAM_CHUNK_CHARS,
    ):
        super().__init__(name)
        if chunk_chars < 1:
            raise ValueError("chunk_chars must be positive")
        self._responses = list(responses or [])
        self.echo = echo
        self.chunk_chars = chunk_chars
        self.requests: list[LLMRequest] = []

    async def generate_content(
        self, request: LLMRequest, *, stream: bool = False
    ) -> AsyncGenerator[LLMResponse, None]:
        self.requests.append(request.model_copy(deep=True))
        content = self._next_content(request)
        logger.debug("Stub model %s answering call %d (stream=%s)", self.name, len(self.requests), stream)
        if not stream:
            yield LLMResponse(content=content, turn_complete=True, finish_reason="STOP")
            return
        aggregator = StreamingResponseAggregator()
        for fragment in self._fragments(content):
            for response in aggregator.process_response(fragment):
                yield response
        final = aggregator.close()
        if final is not None:
            yield final

    def _next_content(self, request: LLMRequest) -> Content:
        if self._responses:
            scripted = self._responses.pop(0)
            if isinstance(scripted, Exception):
                raise scripted
            if isinstance(scripted, str):
                return Content.from_text(scripted, role=MODEL_ROLE)
            return scripted.model_copy(deep=True)
        if self.echo:
            return Content.from_text(f"echo: {_last_user_text(request)}", role=MODEL_ROLE)
        raise RuntimeError(f"Stub model {self.name} has no scripted responses left")

    def _fragments(self, content: Content) -> list[LLMResponse]:
        fragments: list[LLMResponse] = []
        for part in content.parts:
            if part.text:
                for start in range(0, len(part.text), self.chunk_chars):
                    chunk = part.text[start : start + self.chunk_chars]
                    piece = Part(text=chunk, thought=part.thought)
                    fragments.append(LLMResponse(content=Content(role=content.role, parts=[piece])))
            else:
                fragments.append(LLMResponse(content=Content(role=content.role, parts=[part])))
        if fragments:
            fragments[-1].finish_reason = "STOP"
        return fragments


def _last_user_text(request: LLMRequest) -> str:
    for content in reversed(request.contents):
        if content.role != MODEL_ROLE and content.text:
            return content.text
    return ""
