"""Turn driver: resolve the agent, commit input, run it and persist its events."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import aclosing

from .agents.base import BaseAgent, as_llm_agent
from .artifacts import ArtifactService, SessionArtifacts
from .constants import ARTIFACT_NAME_TEMPLATE, ARTIFACT_PLACEHOLDER_TEMPLATE, CFC_MODEL_PREFIX, USER_AUTHOR
from .context import InvocationContext, new_invocation_id
from .errors import EventPersistenceError, UnsupportedCapabilityError
from .logging_utils import BaseLogger
from .memory import MemoryService, SessionMemory
from .models import Content, Event, LLMResponse, Part, RunConfig, Session
from .sessions import SessionService
from .transfer import find_agent_to_run
from .tree import AgentTreeIndex


class Runner(BaseLogger):
    """Run turns of one agent tree against a session service.

    The tree is indexed once at construction, so duplicate agent names fail
    here rather than mid-turn. A runner holds no per-turn state and may be
    used for many sessions, including nested inside another runner's turn.
    """

    def __init__(
        self,
        *,
        app_name: str,
        agent: BaseAgent,
        session_service: SessionService,
        artifact_service: ArtifactService | None = None,
        memory_service: MemoryService | None = None,
    ):
        super().__init__(f"Runner[{app_name}]")
        self.app_name = app_name
        self.agent = agent
        self.session_service = session_service
        self.artifact_service = artifact_service
        self.memory_service = memory_service
        self.agent_tree = AgentTreeIndex.build(agent)
        self.logger.debug("Indexed %d agents under %s", len(self.agent_tree), agent.name)

    async def run(
        self,
        *,
        user_id: str,
        session_id: str,
        new_message: Content | None = None,
        run_config: RunConfig | None = None,
    ) -> AsyncGenerator[Event, None]:
        """Run one turn and yield every event the agent produces.

        Final events are committed to the session before they are yielded;
        partial events are only yielded. Errors end the turn.

        Asking for `save_input_blobs_as_artifacts` without an artifact service
        raises `UnsupportedCapabilityError` before anything is committed,
        rather than silently keeping the blobs inline.
        """
        run_config = run_config or RunConfig()
        session = await self.session_service.get(app_name=self.app_name, user_id=user_id, session_id=session_id)
        agent = find_agent_to_run(session, self.agent_tree)
        if run_config.support_cfc:
            self._validate_cfc(agent)
        if run_config.save_input_blobs_as_artifacts and self.artifact_service is None:
            raise UnsupportedCapabilityError("Saving input blobs as artifacts requires an artifact service")

        ctx = self._new_context(session, agent, run_config, new_message)
        self.logger.info("Turn %s: agent %s handles session %s", ctx.invocation_id, agent.name, session.id)
        if new_message is not None and not new_message.is_empty():
            await self._commit_user_message(ctx, new_message)

        async with aclosing(agent.run(ctx)) as events:
            async for event in events:
                if not event.is_partial:
                    await self._append(session, event)
                yield event
        self.logger.info("Turn %s finished with %d session events", ctx.invocation_id, len(session.events))

    def _new_context(
        self, session: Session, agent: BaseAgent, run_config: RunConfig, new_message: Content | None
    ) -> InvocationContext:
        artifacts = None
        if self.artifact_service is not None:
            artifacts = SessionArtifacts(self.artifact_service, self.app_name, session.user_id, session.id)
        memory = None
        if self.memory_service is not None:
            memory = SessionMemory(self.memory_service, self.app_name, session.user_id, session.id)
        return InvocationContext(
            invocation_id=new_invocation_id(),
            agent=agent,
            session=session,
            session_service=self.session_service,
            agent_tree=self.agent_tree,
            run_config=run_config,
            user_content=new_message,
            artifacts=artifacts,
            memory=memory,
        )

    @staticmethod
    def _validate_cfc(agent: BaseAgent) -> None:
        llm_agent = as_llm_agent(agent)
        if llm_agent is None:
            raise UnsupportedCapabilityError(f"CFC requires an LLM agent, got {agent.name}")
        model = llm_agent.canonical_model
        if model is None or not model.name.startswith(CFC_MODEL_PREFIX):
            model_name = model.name if model is not None else None
            raise UnsupportedCapabilityError(f"CFC is not supported for model: {model_name}")

    async def _commit_user_message(self, ctx: InvocationContext, new_message: Content) -> None:
        message = new_message.model_copy(deep=True)
        if ctx.run_config.save_input_blobs_as_artifacts and ctx.artifacts is not None:
            for index, part in enumerate(message.parts):
                if part.inline_data is None:
                    continue
                name = ARTIFACT_NAME_TEMPLATE.format(invocation_id=ctx.invocation_id, index=index)
                await ctx.artifacts.save(name, part)
                self.logger.debug("Saved input blob %s (%s)", name, part.inline_data.mime_type)
                message.parts[index] = Part.from_text(ARTIFACT_PLACEHOLDER_TEMPLATE.format(name=name))
        event = Event(
            invocation_id=ctx.invocation_id,
            author=USER_AUTHOR,
            llm_response=LLMResponse(content=message),
        )
        await self._append(ctx.session, event)

    async def _append(self, session: Session, event: Event) -> None:
        try:
            await self.session_service.append_event(session, event)
        except Exception as exc:
            self.logger.warning("Failed to append event %s to session %s: %s", event.id, session.id, exc)
            raise EventPersistenceError(f"Failed to append event {event.id} to session {session.id}") from exc
