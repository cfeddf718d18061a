"""Small agent tree used by the console entrypoint when no agent is given."""

from .agents import LlmAgent, SequentialAgent
from .llm import StubLLM

root_agent = SequentialAgent(
    name="pipeline",
    description="Drafts a reply and then reviews it.",
    sub_agents=[
        LlmAgent(
            name="drafter",
            model=StubLLM("stub-drafter", echo=True),
            instruction="Draft a short reply to the user.",
            output_key="draft",
        ),
        LlmAgent(
            name="reviewer",
            model=StubLLM("stub-reviewer", echo=True),
            instruction="Review the draft stored in state and restate it.",
        ),
    ],
)
