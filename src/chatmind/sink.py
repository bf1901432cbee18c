# sink.py
# Persistence + notification contract consumed by the runtime.
#
# MessageSink wraps two ports. Persistence is synchronous and authoritative:
# a message only gets an id once it is stored. Notification is best-effort
# and only ever sees messages that already have an id.

import logging
import uuid
from typing import Any, Protocol

from pydantic import BaseModel, Field

from chatmind import display
from chatmind.models import Message, MessageView, SinkEvent, ToolCall, ToolResult

logger = logging.getLogger(__name__)


class StoredMessage(BaseModel):
    """A persisted message record. `role` is kept as raw text from storage."""

    id: str
    session_id: str
    role: str
    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tool_results: list[ToolResult] = Field(default_factory=list)


class PersistencePort(Protocol):
    def create(self, session_id: str, message: Message) -> str: ...

    def query(self, session_id: str, limit: int) -> list[StoredMessage]: ...


class NotificationPort(Protocol):
    def send(self, session_id: str, event: SinkEvent) -> None: ...


class MessageSink:
    """Persist-then-notify adapter over the two external ports."""

    def __init__(self, persistence: PersistencePort, notifier: NotificationPort | None = None) -> None:
        self._persistence = persistence
        self._notifier = notifier

    def persist(self, session_id: str, message: Message) -> Message:
        """Store `message`; return a copy carrying the assigned id. Failures propagate."""
        message_id = self._persistence.create(session_id, message)
        if not message_id:
            raise RuntimeError("Persistence returned no message id.")
        return message.model_copy(update={"id": str(message_id)})

    def notify(self, session_id: str, message: Message) -> None:
        if self._notifier is None:
            return
        event = SinkEvent(
            payload={"message": MessageView.from_message(session_id, message)},
            metadata={"chat_message_id": message.id},
        )
        try:
            self._notifier.send(session_id, event)
        except Exception:
            logger.warning("Notification for message %s failed", message.id, exc_info=True)


class InMemoryMessageStore:
    """PersistencePort backed by a dict. Used by the demo and tests."""

    def __init__(self) -> None:
        self._records: dict[str, list[StoredMessage]] = {}

    def create(self, session_id: str, message: Message) -> str:
        message_id = uuid.uuid4().hex
        record = StoredMessage(
            id=message_id,
            session_id=session_id,
            role=message.role.value,
            content=message.content,
            tool_calls=message.tool_calls,
            tool_results=message.tool_results,
        )
        self._records.setdefault(session_id, []).append(record)
        return message_id

    def add_record(self, record: StoredMessage | dict[str, Any]) -> None:
        """Insert a pre-built record, e.g. a user message stored before the run."""
        if isinstance(record, dict):
            record = StoredMessage.model_validate(record)
        self._records.setdefault(record.session_id, []).append(record)

    def query(self, session_id: str, limit: int) -> list[StoredMessage]:
        """The `limit` most recent records, oldest first."""
        records = self._records.get(session_id, [])
        return list(records[-limit:]) if limit > 0 else []


class ConsoleNotifier:
    """NotificationPort that renders each event on the terminal."""

    def send(self, session_id: str, event: SinkEvent) -> None:
        display.message_delivered(session_id, event)
