"""Constants for runner configuration."""

USER_AUTHOR = "user"
"""Author recorded on events that carry the inbound user message."""

MODEL_ROLE = "model"
"""Content role used for everything an agent produces."""

CFC_MODEL_PREFIX = "gemini-2"
"""Model-name prefix of the only family that supports compositional function calling."""

RESERVED_STATE_PREFIX = "_agentrunner"
"""State keys with this prefix are internal and never copied into nested runs."""

ARTIFACT_NAME_TEMPLATE = "artifact_{invocation_id}_{index}"
"""Name under which an inline input blob is saved as an artifact."""

ARTIFACT_PLACEHOLDER_TEMPLATE = "Uploaded file: {name}. It has been saved to the artifacts"
"""Text that replaces an inline blob in the committed user event."""

INVOCATION_ID_PREFIX = "e-"
"""Prefix of generated invocation ids."""

DEFAULT_MAX_LLM_CALLS = 20
"""Upper bound on model calls one LLM agent makes in a single turn."""

STUB_STREAM_CHUNK_CHARS = 8
"""Fragment size the stub model uses when it simulates streaming."""

TRANSFER_TOOL_NAME = "transfer_to_agent"
"""Name of the built-in tool a model calls to hand the turn to another agent."""
