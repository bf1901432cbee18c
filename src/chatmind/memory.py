# memory.py
# Windowed, per-session conversation log with a pinned system message.
#
# The pinned message sits outside the window and is never evicted. Every
# other message competes for `max_messages` slots; the oldest goes first.

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from chatmind.errors import UnsupportedMessageKind
from chatmind.models import Message, Role

logger = logging.getLogger(__name__)

DEFAULT_MAX_MESSAGES = 20


@dataclass
class _SessionLog:
    pinned: Message | None = None
    window: list[Message] = field(default_factory=list)


class ConversationMemory:
    """
    Sliding-window message store keyed by session id.

    Appending a system message pins it, replacing any previously pinned
    one. `clear()` drops the pinned message too; callers that want to keep
    the system prompt must append it again.
    """

    def __init__(self, max_messages: int = DEFAULT_MAX_MESSAGES) -> None:
        if max_messages < 1:
            raise ValueError("max_messages must be at least 1.")
        self._max_messages = max_messages
        self._sessions: dict[str, _SessionLog] = {}

    @property
    def max_messages(self) -> int:
        return self._max_messages

    def append(self, session_id: str, messages: Message | Iterable[Message]) -> None:
        if isinstance(messages, Message):
            messages = [messages]

        log = self._sessions.setdefault(session_id, _SessionLog())
        for message in messages:
            if not isinstance(message, Message):
                raise UnsupportedMessageKind(
                    f"Cannot store {type(message).__name__} in conversation memory."
                )
            if message.role is Role.SYSTEM:
                log.pinned = message
            elif message.role in (Role.USER, Role.ASSISTANT, Role.TOOL):
                log.window.append(message)
            else:
                raise UnsupportedMessageKind(f"Unsupported message role: {message.role!r}")

        evicted = len(log.window) - self._max_messages
        if evicted > 0:
            del log.window[:evicted]
            logger.debug("Evicted %d message(s) from session %s", evicted, session_id)

    def get(self, session_id: str) -> list[Message]:
        """Ordered snapshot: pinned system message first, then the window."""
        log = self._sessions.get(session_id)
        if log is None:
            return []
        head = [log.pinned] if log.pinned is not None else []
        return head + list(log.window)

    def clear(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def size(self, session_id: str) -> int:
        return len(self.get(session_id))
