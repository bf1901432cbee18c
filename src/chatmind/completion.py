# completion.py
# Completion-service port and its OpenAI-compatible adapter.
#
# The adapter is the only place that knows the chat-completions wire shape.
# It receives the conversation read-only and builds its own request list.

import json
import logging
import os
from typing import Any, Protocol

from openai import OpenAI

from chatmind.errors import UnsupportedMessageKind
from chatmind.models import AssistantTurn, Message, Role, ToolCall, ToolDescriptor

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


class CompletionPort(Protocol):
    def complete(
        self,
        history: list[Message],
        instruction: str,
        tools: list[ToolDescriptor],
    ) -> AssistantTurn | None: ...


def _encode_arguments(call: ToolCall) -> str:
    if isinstance(call.arguments, str):
        return call.arguments
    return json.dumps(call.arguments)


def to_openai_messages(history: list[Message]) -> list[dict[str, Any]]:
    """
    Render the conversation as chat-completions messages.

    An aggregate tool message expands to one `tool` entry per result. Tool
    results whose call is not pending (its assistant turn fell out of the
    window) are dropped; the API rejects them.
    """
    out: list[dict[str, Any]] = []
    pending: set[str] = set()

    for message in history:
        if message.role is Role.SYSTEM:
            out.append({"role": "system", "content": message.content})
            pending.clear()
        elif message.role is Role.USER:
            out.append({"role": "user", "content": message.content})
            pending.clear()
        elif message.role is Role.ASSISTANT:
            entry: dict[str, Any] = {"role": "assistant", "content": message.content or None}
            if message.tool_calls:
                entry["tool_calls"] = [
                    {
                        "id": call.call_id,
                        "type": "function",
                        "function": {"name": call.tool_name, "arguments": _encode_arguments(call)},
                    }
                    for call in message.tool_calls
                ]
            out.append(entry)
            pending = {call.call_id for call in message.tool_calls}
        elif message.role is Role.TOOL:
            for result in message.tool_results:
                if result.call_id not in pending:
                    logger.debug("Dropping orphan tool result %s", result.call_id)
                    continue
                out.append(
                    {"role": "tool", "tool_call_id": result.call_id, "content": result.response_data}
                )
        else:
            raise UnsupportedMessageKind(f"Unsupported message role: {message.role!r}")

    return out


def to_openai_tools(tools: list[ToolDescriptor]) -> list[dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameters,
            },
        }
        for tool in tools
    ]


class OpenAICompletion:
    """
    CompletionPort over any OpenAI-compatible endpoint (OpenRouter by default).

    Example:
        completion = OpenAICompletion(model="anthropic/claude-3.5-haiku")
        turn = completion.complete(history, instruction, tools)
    """

    def __init__(
        self,
        model: str,
        client: OpenAI | None = None,
        base_url: str | None = None,
        api_key: str | None = None,
    ) -> None:
        self._model = model
        self._client = client or OpenAI(
            base_url=base_url or os.getenv("CHATMIND_BASE_URL", OPENROUTER_BASE_URL),
            api_key=api_key or os.getenv("OPENROUTER_API_KEY"),
        )

    def complete(
        self,
        history: list[Message],
        instruction: str,
        tools: list[ToolDescriptor],
    ) -> AssistantTurn | None:
        messages = to_openai_messages(history)
        messages.append({"role": "system", "content": instruction})

        kwargs: dict[str, Any] = {"model": self._model, "messages": messages}
        if tools:
            kwargs["tools"] = to_openai_tools(tools)

        response = self._client.chat.completions.create(**kwargs)
        if response is None or not response.choices:
            return None

        output = response.choices[0].message
        calls = [
            ToolCall(
                call_id=call.id,
                tool_name=call.function.name,
                arguments=call.function.arguments or "{}",
            )
            for call in (output.tool_calls or [])
        ]
        return AssistantTurn(text=(output.content or "").strip(), tool_calls=calls)
