import pytest
from unittest.mock import MagicMock

from chatmind.dispatcher import (
    TERMINATE_ACK,
    Tool,
    ToolDispatcher,
    ToolKind,
    ToolRegistry,
    UnknownToolPolicy,
)
from chatmind.errors import UnknownTool
from chatmind.models import Message, Role, ToolCall


def _assistant(*calls):
    return Message.assistant(tool_calls=list(calls))


def _call(call_id, name, arguments=None):
    return ToolCall(call_id=call_id, tool_name=name, arguments=arguments if arguments is not None else {})


# ---------------------------------------------------------------------------
# Registry resolution
# ---------------------------------------------------------------------------

@pytest.fixture
def registry():
    return ToolRegistry(
        [
            Tool(name="echo", fn=lambda a: a["message"]),
            Tool(name="summarize", fn=lambda a: a["text"]),
            Tool(name="search", fn=lambda a: "results", kind=ToolKind.OPTIONAL),
            Tool(name="send_email", fn=lambda a: "queued", kind=ToolKind.OPTIONAL),
        ]
    )


def test_resolve_without_allow_list_gives_fixed_tools_only(registry):
    assert [t.name for t in registry.resolve()] == ["echo", "summarize"]


def test_resolve_adds_allow_listed_optional_tools_in_order(registry):
    tools = registry.resolve(["send_email", "search"])

    assert [t.name for t in tools] == ["echo", "summarize", "send_email", "search"]


def test_resolve_skips_unknown_and_fixed_names(registry):
    tools = registry.resolve(["nope", "echo", "search"])

    assert [t.name for t in tools] == ["echo", "summarize", "search"]


def test_duplicate_registration_is_rejected(registry):
    with pytest.raises(ValueError, match="already registered"):
        registry.register(Tool(name="echo", fn=lambda a: ""))


def test_registry_builds_dispatcher_with_policy(registry):
    dispatcher = registry.dispatcher(["search"], UnknownToolPolicy.FAIL)

    assert dispatcher.tool_names == ["echo", "summarize", "search"]
    with pytest.raises(UnknownTool):
        dispatcher.dispatch([], _assistant(_call("c1", "send_email")))


def test_descriptors_append_terminate(registry):
    names = [d.name for d in registry.dispatcher().descriptors()]

    assert names == ["echo", "summarize", "terminate"]


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

def test_results_align_with_calls_by_call_id():
    dispatcher = ToolDispatcher([Tool(name="echo", fn=lambda a: a["message"])])
    assistant = _assistant(_call("c1", "echo", {"message": "one"}), _call("c2", "echo", {"message": "two"}))

    result = dispatcher.dispatch([], assistant)

    assert [(r.call_id, r.response_data) for r in result.tool_message.tool_results] == [
        ("c1", "one"),
        ("c2", "two"),
    ]


def test_dispatch_returns_new_history_with_pair_appended():
    dispatcher = ToolDispatcher([Tool(name="echo", fn=lambda a: "ok")])
    history = [Message.system("sys"), Message.user("hi")]
    assistant = _assistant(_call("c1", "echo"))

    result = dispatcher.dispatch(history, assistant)

    assert len(history) == 2
    assert result.history[:2] == history
    assert result.history[2] is assistant
    assert result.history[3] is result.tool_message
    assert result.tool_message.role is Role.TOOL


def test_unknown_tool_degrades_to_error_payload():
    good = MagicMock(return_value="sent")
    dispatcher = ToolDispatcher([Tool(name="good", fn=good)])
    assistant = _assistant(_call("c1", "missing"), _call("c2", "good", {"x": 1}))

    result = dispatcher.dispatch([], assistant)

    first, second = result.tool_message.tool_results
    assert first.call_id == "c1"
    assert "unknown tool 'missing'" in first.response_data
    assert second.response_data == "sent"
    good.assert_called_once_with({"x": 1})


def test_unknown_tool_fails_whole_batch_before_running_anything():
    good = MagicMock(return_value="sent")
    dispatcher = ToolDispatcher([Tool(name="good", fn=good)], UnknownToolPolicy.FAIL)

    with pytest.raises(UnknownTool, match="missing"):
        dispatcher.dispatch([], _assistant(_call("c1", "good"), _call("c2", "missing")))

    good.assert_not_called()


def test_tool_names_match_case_sensitively():
    dispatcher = ToolDispatcher([Tool(name="echo", fn=lambda a: "ok")])

    result = dispatcher.dispatch([], _assistant(_call("c1", "Echo")))

    assert result.tool_message.tool_results[0].response_data.startswith("Error: unknown tool")


def test_capability_exception_becomes_error_string():
    failing = Tool(name="flaky", fn=MagicMock(side_effect=ConnectionError("timed out")))
    fine = Tool(name="fine", fn=lambda a: "ok")
    dispatcher = ToolDispatcher([failing, fine])

    result = dispatcher.dispatch([], _assistant(_call("c1", "flaky"), _call("c2", "fine")))

    flaky, ok = result.tool_message.tool_results
    assert flaky.response_data == "Error: tool 'flaky' failed: timed out"
    assert ok.response_data == "ok"


def test_json_string_arguments_are_decoded():
    fn = MagicMock(return_value="ok")
    dispatcher = ToolDispatcher([Tool(name="echo", fn=fn)])

    dispatcher.dispatch([], _assistant(_call("c1", "echo", '{"message": "hi"}')))

    fn.assert_called_once_with({"message": "hi"})


def test_malformed_arguments_become_error_payload():
    fn = MagicMock()
    dispatcher = ToolDispatcher([Tool(name="echo", fn=fn)])

    result = dispatcher.dispatch(
        [], _assistant(_call("c1", "echo", "{broken: json}"), _call("c2", "echo", "[1, 2]"))
    )

    bad_json, not_object = result.tool_message.tool_results
    assert bad_json.response_data.startswith("Error: invalid arguments for tool 'echo'")
    assert "JSON object" in not_object.response_data
    fn.assert_not_called()


def test_non_string_result_is_stringified():
    dispatcher = ToolDispatcher([Tool(name="count", fn=lambda a: 42)])

    result = dispatcher.dispatch([], _assistant(_call("c1", "count")))

    assert result.tool_message.tool_results[0].response_data == "42"


def test_terminate_needs_no_registration():
    dispatcher = ToolDispatcher([])

    result = dispatcher.dispatch([], _assistant(_call("c1", "terminate")))

    assert result.terminated is True
    assert result.tool_message.tool_results[0].response_data == TERMINATE_ACK


def test_registered_terminate_implementation_is_used():
    dispatcher = ToolDispatcher([Tool(name="terminate", fn=lambda a: "bye")])

    result = dispatcher.dispatch([], _assistant(_call("c1", "terminate")))

    assert result.terminated is True
    assert result.tool_message.tool_results[0].response_data == "bye"
    assert [d.name for d in dispatcher.descriptors()] == ["terminate"]


def test_batch_without_terminate_is_not_terminated():
    dispatcher = ToolDispatcher([Tool(name="echo", fn=lambda a: "ok")])

    assert dispatcher.dispatch([], _assistant(_call("c1", "echo"))).terminated is False


def test_dispatch_requires_tool_calls():
    with pytest.raises(ValueError):
        ToolDispatcher([]).dispatch([], Message.assistant("just text"))
