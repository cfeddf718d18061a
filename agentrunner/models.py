"""Typed domain models for conversation content, events and sessions."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .constants import USER_AUTHOR


def _now_utc() -> datetime:
    """Return the current UTC timestamp."""
    return datetime.now(timezone.utc)


class Blob(BaseModel):
    model_config = ConfigDict(ser_json_bytes="base64", val_json_bytes="base64")

    mime_type: str
    data: bytes


class FunctionCall(BaseModel):
    id: str = Field(default_factory=lambda: f"call-{uuid.uuid4().hex[:12]}")
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class FunctionResponse(BaseModel):
    id: str | None = None
    name: str
    response: dict[str, Any] = Field(default_factory=dict)


class Part(BaseModel):
    text: str | None = None
    thought: bool = False
    inline_data: Blob | None = None
    function_call: FunctionCall | None = None
    function_response: FunctionResponse | None = None

    @classmethod
    def from_text(cls, text: str) -> Part:
        """Build a plain text part."""
        return cls(text=text)

    @classmethod
    def from_bytes(cls, data: bytes, mime_type: str) -> Part:
        """Build an inline binary part."""
        return cls(inline_data=Blob(mime_type=mime_type, data=data))


class Content(BaseModel):
    role: str = USER_AUTHOR
    parts: list[Part] = Field(default_factory=list)

    @classmethod
    def from_text(cls, text: str, role: str = USER_AUTHOR) -> Content:
        """Build single-part text content."""
        return cls(role=role, parts=[Part.from_text(text)])

    @property
    def text(self) -> str:
        """Concatenate non-thought text parts."""
        return "".join(part.text for part in self.parts if part.text and not part.thought)

    def is_empty(self) -> bool:
        """Return True when the content carries no parts."""
        return not self.parts


class LLMResponse(BaseModel):
    content: Content | None = None
    partial: bool = False
    turn_complete: bool = False
    finish_reason: str | None = None
    usage_metadata: dict[str, int] | None = None
    error_code: str | None = None
    error_message: str | None = None


class EventActions(BaseModel):
    state_delta: dict[str, Any] = Field(default_factory=dict)
    skip_summarization: bool = False
    transfer_to_agent: str | None = None


class Event(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    invocation_id: str = ""
    author: str = ""
    branch: str | None = None
    llm_response: LLMResponse | None = None
    actions: EventActions = Field(default_factory=EventActions)
    timestamp: datetime = Field(default_factory=_now_utc)

    @classmethod
    def from_content(cls, content: Content, **kwargs: Any) -> Event:
        """Build an event that carries a single final response."""
        return cls(llm_response=LLMResponse(content=content), **kwargs)

    @property
    def is_partial(self) -> bool:
        """True for transient streaming output that must not be persisted."""
        return self.llm_response is not None and self.llm_response.partial

    @property
    def content(self) -> Content | None:
        """Return response content, if any."""
        if self.llm_response is None:
            return None
        return self.llm_response.content

    @property
    def text(self) -> str:
        """Return concatenated response text, or an empty string."""
        content = self.content
        return content.text if content else ""

    def function_calls(self) -> list[FunctionCall]:
        """Return function calls carried by this event."""
        content = self.content
        if content is None:
            return []
        return [part.function_call for part in content.parts if part.function_call]


class StreamingMode(str, Enum):
    NONE = "none"
    SSE = "sse"
    BIDI = "bidi"


class RunConfig(BaseModel):
    streaming_mode: StreamingMode = StreamingMode.NONE
    support_cfc: bool = False
    save_input_blobs_as_artifacts: bool = False


class Session(BaseModel):
    id: str
    app_name: str
    user_id: str
    state: dict[str, Any] = Field(default_factory=dict)
    events: list[Event] = Field(default_factory=list)
    last_update_time: datetime = Field(default_factory=_now_utc)

    def key(self) -> tuple[str, str, str]:
        """Return the (app, user, session) identity triple."""
        return self.app_name, self.user_id, self.id
