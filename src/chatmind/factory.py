# factory.py
# Session setup. Builds an AgentRuntime for one (agent, session) pair:
# restores recent history from storage, resolves the agent's tools and
# knowledge bases once, and wires the ports together.

import logging
from collections.abc import Callable, Iterable

from chatmind.completion import CompletionPort, OpenAICompletion
from chatmind.config import AgentConfig
from chatmind.dispatcher import ToolRegistry
from chatmind.errors import UnsupportedMessageKind
from chatmind.models import KnowledgeBase, Message, Role
from chatmind.runtime import AgentRuntime
from chatmind.sink import MessageSink, NotificationPort, PersistencePort, StoredMessage

logger = logging.getLogger(__name__)


def restore_message(record: StoredMessage) -> Message | None:
    """
    Rebuild a Message from a stored record.

    Returns None for system and user records with empty content, which
    carry nothing worth replaying. Raises UnsupportedMessageKind for any
    role outside the known four.
    """
    try:
        role = Role(record.role)
    except ValueError:
        logger.error("Unsupported message role %r, content=%r", record.role, record.content)
        raise UnsupportedMessageKind(f"Unsupported message role: {record.role!r}") from None

    if role is Role.SYSTEM or role is Role.USER:
        if not record.content:
            return None
        return Message(id=record.id, role=role, content=record.content)
    if role is Role.ASSISTANT:
        return Message(
            id=record.id, role=role, content=record.content, tool_calls=record.tool_calls
        )
    if role is Role.TOOL:
        return Message(id=record.id, role=role, tool_results=record.tool_results)
    raise UnsupportedMessageKind(f"Unsupported message role: {record.role!r}")


class AgentFactory:
    """
    Creates session-bound runtimes.

    Example:
        factory = AgentFactory(
            registry=build_registry(),
            persistence=InMemoryMessageStore(),
            notifier=ConsoleNotifier(),
            knowledge_bases=[KnowledgeBase(id="kb-1", description="Product FAQ")],
        )
        runtime = factory.create(AgentConfig.from_env(), session_id="s-1")
    """

    def __init__(
        self,
        registry: ToolRegistry,
        persistence: PersistencePort,
        notifier: NotificationPort | None = None,
        knowledge_bases: Iterable[KnowledgeBase] = (),
        completion_factory: Callable[[AgentConfig], CompletionPort] | None = None,
    ) -> None:
        self._registry = registry
        self._persistence = persistence
        self._notifier = notifier
        self._knowledge_catalog = {kb.id: kb for kb in knowledge_bases}
        self._completion_factory = completion_factory or (lambda cfg: OpenAICompletion(model=cfg.model))

    def load_memory(self, session_id: str, limit: int) -> list[Message]:
        """Most recent `limit` stored messages, oldest first, system prompt leading."""
        memory: list[Message] = []
        for record in self._persistence.query(session_id, limit):
            message = restore_message(record)
            if message is None:
                continue
            if message.role is Role.SYSTEM:
                memory.insert(0, message)
            else:
                memory.append(message)
        return memory

    def resolve_knowledge_bases(self, config: AgentConfig) -> list[KnowledgeBase]:
        resolved = []
        for kb_id in config.allowed_knowledge_bases:
            kb = self._knowledge_catalog.get(kb_id)
            if kb is None:
                logger.warning("Knowledge base '%s' not found; skipping.", kb_id)
                continue
            resolved.append(kb)
        return resolved

    def create(self, config: AgentConfig, session_id: str, quiet: bool = False) -> AgentRuntime:
        history = self.load_memory(session_id, config.max_messages)
        dispatcher = self._registry.dispatcher(config.allowed_tools, config.unknown_tool_policy)
        logger.info(
            "Creating agent '%s' for session %s: %d message(s) restored, tools=%s",
            config.agent_id,
            session_id,
            len(history),
            dispatcher.tool_names,
        )
        return AgentRuntime(
            session_id=session_id,
            completion=self._completion_factory(config),
            dispatcher=dispatcher,
            sink=MessageSink(self._persistence, self._notifier),
            config=config,
            knowledge_bases=self.resolve_knowledge_bases(config),
            history=history,
            quiet=quiet,
        )
