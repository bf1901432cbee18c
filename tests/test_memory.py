import pytest

from chatmind.errors import UnsupportedMessageKind
from chatmind.memory import ConversationMemory
from chatmind.models import Message, Role, ToolCall, ToolResult

SESSION = "s-1"


def _users(*contents):
    return [Message.user(c) for c in contents]


# ---------------------------------------------------------------------------
# Windowing
# ---------------------------------------------------------------------------

def test_window_keeps_most_recent_messages_in_order():
    memory = ConversationMemory(max_messages=3)
    for message in _users("m1", "m2", "m3", "m4", "m5"):
        memory.append(SESSION, message)

    assert [m.content for m in memory.get(SESSION)] == ["m3", "m4", "m5"]


def test_batch_append_is_windowed_once_after_insertion():
    memory = ConversationMemory(max_messages=2)
    memory.append(SESSION, _users("a", "b", "c", "d"))

    assert [m.content for m in memory.get(SESSION)] == ["c", "d"]


def test_pinned_system_message_survives_eviction():
    memory = ConversationMemory(max_messages=2)
    memory.append(SESSION, Message.system("be brief"))
    memory.append(SESSION, _users("a", "b", "c"))

    history = memory.get(SESSION)
    assert history[0].role is Role.SYSTEM
    assert [m.content for m in history] == ["be brief", "b", "c"]
    assert memory.size(SESSION) == 3


def test_new_system_message_replaces_pinned_one():
    memory = ConversationMemory()
    memory.append(SESSION, Message.system("old"))
    memory.append(SESSION, Message.user("hi"))
    memory.append(SESSION, Message.system("new"))

    assert [m.content for m in memory.get(SESSION)] == ["new", "hi"]


def test_tool_messages_count_towards_window():
    memory = ConversationMemory(max_messages=2)
    call = ToolCall(call_id="c1", tool_name="echo")
    memory.append(
        SESSION,
        [
            Message.user("go"),
            Message.assistant(tool_calls=[call]),
            Message.tool([ToolResult(call_id="c1", tool_name="echo", response_data="ok")]),
        ],
    )

    assert [m.role for m in memory.get(SESSION)] == [Role.ASSISTANT, Role.TOOL]


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

def test_clear_removes_pinned_message_too():
    memory = ConversationMemory()
    memory.append(SESSION, [Message.system("sys"), Message.user("hi")])

    memory.clear(SESSION)

    assert memory.get(SESSION) == []
    assert memory.size(SESSION) == 0


def test_sessions_are_isolated():
    memory = ConversationMemory(max_messages=1)
    memory.append("a", Message.user("for a"))
    memory.append("b", Message.user("for b"))

    assert [m.content for m in memory.get("a")] == ["for a"]
    assert [m.content for m in memory.get("b")] == ["for b"]


def test_get_returns_a_snapshot():
    memory = ConversationMemory()
    memory.append(SESSION, Message.user("hi"))

    snapshot = memory.get(SESSION)
    snapshot.append(Message.user("sneaky"))

    assert memory.size(SESSION) == 1


def test_unknown_session_is_empty():
    assert ConversationMemory().get("nobody") == []


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def test_non_message_is_rejected():
    memory = ConversationMemory()

    with pytest.raises(UnsupportedMessageKind):
        memory.append(SESSION, [{"role": "user", "content": "raw dict"}])


def test_window_must_be_positive():
    with pytest.raises(ValueError):
        ConversationMemory(max_messages=0)
