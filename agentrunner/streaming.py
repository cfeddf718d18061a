"""Aggregation of incremental model output into partial and final responses."""

from __future__ import annotations

from .constants import MODEL_ROLE
from .models import Content, LLMResponse, Part


class StreamingResponseAggregator:
    """Turn raw streamed fragments into partial responses plus one final response.

    Text fragments are relayed immediately with ``partial=True`` and buffered.
    A fragment carrying anything other than text (a function call, for example)
    first flushes the buffer as a final response and is then relayed as final
    itself. `close` returns the consolidated final response for whatever text
    and thought content is still buffered, or None when nothing is.
    """

    def __init__(self):
        self._text = ""
        self._thought_text = ""
        self._role: str | None = None
        self._last: LLMResponse | None = None

    def process_response(self, fragment: LLMResponse) -> list[LLMResponse]:
        """Return the responses to relay for one fragment, in order."""
        self._last = fragment
        content = fragment.content
        if content is not None and content.parts:
            self._role = content.role

        if content is None or not content.parts or _only_empty_text(content.parts):
            if fragment.error_code:
                return self._flush_then(fragment)
            return []

        if all(part.text is not None and _is_plain_text(part) for part in content.parts):
            for part in content.parts:
                if part.thought:
                    self._thought_text += part.text or ""
                else:
                    self._text += part.text or ""
            return [fragment.model_copy(update={"partial": True})]

        return self._flush_then(fragment)

    def close(self) -> LLMResponse | None:
        """Return the consolidated final response, resetting the buffer."""
        if not (self._text or self._thought_text) or self._last is None:
            self._reset()
            return None
        parts: list[Part] = []
        if self._thought_text:
            parts.append(Part(text=self._thought_text, thought=True))
        if self._text:
            parts.append(Part(text=self._text))
        last = self._last
        response = LLMResponse(
            content=Content(role=self._role or MODEL_ROLE, parts=parts),
            partial=False,
            turn_complete=last.finish_reason is not None,
            finish_reason=last.finish_reason,
            usage_metadata=last.usage_metadata,
            error_code=last.error_code,
            error_message=last.error_message,
        )
        self._reset()
        return response

    def _flush_then(self, fragment: LLMResponse) -> list[LLMResponse]:
        last = self._last
        flushed = self.close()
        self._last = last
        relayed = fragment.model_copy(update={"partial": False})
        return [flushed, relayed] if flushed is not None else [relayed]

    def _reset(self) -> None:
        self._text = ""
        self._thought_text = ""
        self._role = None
        self._last = None


def _is_plain_text(part: Part) -> bool:
    return part.inline_data is None and part.function_call is None and part.function_response is None


def _only_empty_text(parts: list[Part]) -> bool:
    return all(_is_plain_text(part) and not part.text for part in parts)
