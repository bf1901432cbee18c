# dispatcher.py
# Tool registry and dispatch.
#
# The registry holds every capability the process knows about, split into
# FIXED (always on) and OPTIONAL (allow-listed per agent). A dispatcher is a
# resolved, per-session view of the registry: it turns an assistant
# message's tool calls into one aggregate tool-result message.
#
# The reserved `terminate` tool needs no implementation. The runtime
# recognises it by name after dispatch.

import json
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from chatmind.errors import ToolExecutionError, UnknownTool
from chatmind.models import (
    TERMINATE_TOOL,
    Message,
    ToolCall,
    ToolDescriptor,
    ToolResult,
)

logger = logging.getLogger(__name__)

TERMINATE_DESCRIPTOR = ToolDescriptor(
    name=TERMINATE_TOOL,
    description=(
        "Call this when the user's request has been fully handled and no "
        "further actions are needed. Ends the current task."
    ),
    parameters={"type": "object", "properties": {}},
)
TERMINATE_ACK = "Task terminated."


class ToolKind(str, Enum):
    FIXED = "fixed"
    OPTIONAL = "optional"


class UnknownToolPolicy(str, Enum):
    ERROR_PAYLOAD = "error_payload"
    FAIL = "fail"


@dataclass(frozen=True)
class Tool:
    """A named capability. `fn` takes the decoded argument object and returns a string."""

    name: str
    fn: Callable[[dict[str, Any]], str]
    description: str = ""
    parameters: dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )
    kind: ToolKind = ToolKind.FIXED

    def descriptor(self) -> ToolDescriptor:
        return ToolDescriptor(
            name=self.name, description=self.description, parameters=self.parameters
        )


class ToolRegistry:
    """Process-wide catalogue of capabilities."""

    def __init__(self, tools: Iterable[Tool] = ()) -> None:
        self._tools: dict[str, Tool] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' is already registered.")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def fixed_tools(self) -> list[Tool]:
        return [t for t in self._tools.values() if t.kind is ToolKind.FIXED]

    def optional_tools(self) -> list[Tool]:
        return [t for t in self._tools.values() if t.kind is ToolKind.OPTIONAL]

    def resolve(self, allowed_tools: Iterable[str] | None = None) -> list[Tool]:
        """
        Runtime tool set for one session: every fixed tool, then the
        allow-listed optional tools in allow-list order. Names that are not
        optional tools are skipped.
        """
        runtime_tools = self.fixed_tools()
        optional = {t.name: t for t in self.optional_tools()}
        for name in allowed_tools or ():
            tool = optional.get(name)
            if tool is None:
                logger.warning("Allow-listed tool '%s' is not an optional tool; skipping.", name)
                continue
            if tool not in runtime_tools:
                runtime_tools.append(tool)
        return runtime_tools

    def dispatcher(
        self,
        allowed_tools: Iterable[str] | None = None,
        unknown_tool_policy: UnknownToolPolicy = UnknownToolPolicy.ERROR_PAYLOAD,
    ) -> "ToolDispatcher":
        return ToolDispatcher(self.resolve(allowed_tools), unknown_tool_policy)


@dataclass
class DispatchResult:
    """History snapshot after dispatch, plus the aggregate tool-result message."""

    history: list[Message]
    tool_message: Message

    @property
    def terminated(self) -> bool:
        return any(r.tool_name == TERMINATE_TOOL for r in self.tool_message.tool_results)


def _decode_arguments(call: ToolCall) -> dict[str, Any]:
    args = call.arguments
    if isinstance(args, str):
        args = json.loads(args) if args.strip() else {}
    if not isinstance(args, dict):
        raise ValueError(f"arguments must be a JSON object, got {type(args).__name__}")
    return args


class ToolDispatcher:
    """Runs one batch of tool calls against a resolved tool set."""

    def __init__(
        self,
        tools: Iterable[Tool],
        unknown_tool_policy: UnknownToolPolicy = UnknownToolPolicy.ERROR_PAYLOAD,
    ) -> None:
        self._tools = {t.name: t for t in tools}
        self._unknown_tool_policy = UnknownToolPolicy(unknown_tool_policy)

    @property
    def tool_names(self) -> list[str]:
        return list(self._tools)

    def descriptors(self) -> list[ToolDescriptor]:
        descriptors = [t.descriptor() for t in self._tools.values()]
        if TERMINATE_TOOL not in self._tools:
            descriptors.append(TERMINATE_DESCRIPTOR)
        return descriptors

    def _is_known(self, name: str) -> bool:
        return name in self._tools or name == TERMINATE_TOOL

    def _invoke(self, call: ToolCall) -> str:
        if not self._is_known(call.tool_name):
            logger.warning("Unknown tool requested: %s", call.tool_name)
            return f"Error: unknown tool '{call.tool_name}'."

        try:
            args = _decode_arguments(call)
        except ValueError as exc:
            # json.JSONDecodeError is a ValueError
            return f"Error: invalid arguments for tool '{call.tool_name}': {exc}"

        tool = self._tools.get(call.tool_name)
        if tool is None:
            return TERMINATE_ACK

        try:
            response = tool.fn(args)
        except Exception as exc:
            err = ToolExecutionError(call.tool_name, exc)
            logger.warning("%s", err, exc_info=True)
            return str(err)
        return response if isinstance(response, str) else str(response)

    def dispatch(self, history: list[Message], assistant_message: Message) -> DispatchResult:
        """
        Execute every tool call on `assistant_message`.

        Returns a new history (input untouched) ending with the assistant
        message and the aggregate tool-result message, so the pair always
        lands in memory together.
        Raises UnknownTool under the FAIL policy before any call runs.
        """
        if not assistant_message.tool_calls:
            raise ValueError("Assistant message carries no tool calls to dispatch.")

        if self._unknown_tool_policy is UnknownToolPolicy.FAIL:
            unknown = [c.tool_name for c in assistant_message.tool_calls if not self._is_known(c.tool_name)]
            if unknown:
                raise UnknownTool(f"Unknown tool(s) requested: {', '.join(unknown)}")

        results = [
            ToolResult(call_id=call.call_id, tool_name=call.tool_name, response_data=self._invoke(call))
            for call in assistant_message.tool_calls
        ]
        tool_message = Message.tool(results)
        return DispatchResult(
            history=[*history, assistant_message, tool_message],
            tool_message=tool_message,
        )
