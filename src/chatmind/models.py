# models.py
# Data contracts for the agent runtime.
# No business logic lives here. Schema and validation only.

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, model_validator

TERMINATE_TOOL = "terminate"


class Role(str, Enum):
    """Closed set of conversation roles."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class AgentState(str, Enum):
    IDLE = "idle"
    THINKING = "thinking"
    ACTING = "acting"
    FINISHED = "finished"
    ERROR = "error"


class ToolCall(BaseModel):
    """A structured request from the model to run one tool."""

    call_id: str = Field(..., description="Identifier pairing this call with its result.")
    tool_name: str = Field(..., description="Matched case-sensitively against the registry.")
    arguments: dict[str, Any] | str = Field(
        default_factory=dict,
        description="Decoded JSON object, or the raw JSON string as sent by the model.",
    )


class ToolResult(BaseModel):
    """The response to a single ToolCall."""

    call_id: str
    tool_name: str
    response_data: str = ""


class Message(BaseModel):
    """One turn in a conversation."""

    role: Role
    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tool_results: list[ToolResult] = Field(default_factory=list)
    id: str | None = Field(default=None, description="Assigned by the persistence layer.")

    @model_validator(mode="after")
    def _check_role_payload(self) -> "Message":
        if self.tool_calls and self.role is not Role.ASSISTANT:
            raise ValueError("tool_calls are only allowed on assistant messages")
        if self.tool_results and self.role is not Role.TOOL:
            raise ValueError("tool_results are only allowed on tool messages")
        return self

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str = "", tool_calls: list[ToolCall] | None = None) -> "Message":
        return cls(role=Role.ASSISTANT, content=content, tool_calls=tool_calls or [])

    @classmethod
    def tool(cls, results: list[ToolResult]) -> "Message":
        return cls(role=Role.TOOL, tool_results=results)


class AssistantTurn(BaseModel):
    """What the completion service decided for one think step."""

    text: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)

    def to_message(self) -> Message:
        return Message.assistant(self.text, self.tool_calls)


class ToolDescriptor(BaseModel):
    """Callable-tool description handed to the completion service."""

    name: str
    description: str = ""
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )


class KnowledgeBase(BaseModel):
    """Opaque knowledge-base reference injected into the decision instruction."""

    id: str
    description: str = ""


class RunResult(BaseModel):
    """Outcome of a single AgentRuntime.run()."""

    state: AgentState
    steps: int = Field(..., description="Number of think/execute pairs performed.")
    forced_finish: bool = Field(
        default=False, description="True when the step budget ended the run."
    )
    terminated: bool = Field(
        default=False, description="True when the model called the terminate tool."
    )


class MessageView(BaseModel):
    """Client-facing projection of a persisted message."""

    id: str
    session_id: str
    role: Role
    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tool_results: list[ToolResult] = Field(default_factory=list)

    @classmethod
    def from_message(cls, session_id: str, message: Message) -> "MessageView":
        if message.id is None:
            raise ValueError("Cannot build a view of an unpersisted message.")
        return cls(
            id=message.id,
            session_id=session_id,
            role=message.role,
            content=message.content,
            tool_calls=message.tool_calls,
            tool_results=message.tool_results,
        )


class SinkEvent(BaseModel):
    """Event pushed to the notification channel after persistence."""

    type: str = "AI_GENERATED_CONTENT"
    payload: dict[str, MessageView]
    metadata: dict[str, str]
