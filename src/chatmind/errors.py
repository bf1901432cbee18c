# errors.py
# Exception taxonomy for the agent runtime.


class ChatMindError(Exception):
    """Base class for all runtime errors."""


class InvalidState(ChatMindError):
    """Raised when run() is called while not IDLE, or execute() has nothing pending."""


class PreconditionFailed(ChatMindError):
    """Raised when the completion service returns no usable result. Fatal to the run."""


class UnsupportedMessageKind(ChatMindError):
    """Raised when a message role falls outside system/user/assistant/tool."""


class UnknownTool(ChatMindError):
    """Raised when a tool call names a capability absent from the registry."""


class ToolExecutionError(ChatMindError):
    """A capability raised while running. Recovered into the tool-result payload."""

    def __init__(self, tool_name: str, cause: Exception) -> None:
        self.tool_name = tool_name
        self.cause = cause
        super().__init__(f"Error: tool '{tool_name}' failed: {cause}")
