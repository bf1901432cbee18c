# config.py
# Agent configuration. Values come from the constructor or, via from_env(),
# from CHATMIND_* environment variables (a local .env file is honoured).

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from chatmind.dispatcher import UnknownToolPolicy
from chatmind.memory import DEFAULT_MAX_MESSAGES

DEFAULT_MAX_STEPS = 20
DEFAULT_MODEL = "anthropic/claude-3.5-haiku"


def _split(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


class AgentConfig(BaseModel):
    """Static per-agent configuration handed to the factory and runtime."""

    agent_id: str = "default"
    name: str = "ChatMind"
    description: str = ""
    model: str = DEFAULT_MODEL
    system_prompt: str | None = None
    max_messages: int = Field(default=DEFAULT_MAX_MESSAGES, ge=1, description="Memory window size.")
    max_steps: int = Field(default=DEFAULT_MAX_STEPS, ge=1, description="Think/execute pairs per run.")
    allowed_tools: list[str] = Field(default_factory=list)
    allowed_knowledge_bases: list[str] = Field(default_factory=list)
    unknown_tool_policy: UnknownToolPolicy = UnknownToolPolicy.ERROR_PAYLOAD

    @classmethod
    def from_env(cls, **overrides) -> "AgentConfig":
        load_dotenv()
        values: dict = {}
        env = {
            "agent_id": os.getenv("CHATMIND_AGENT_ID"),
            "name": os.getenv("CHATMIND_AGENT_NAME"),
            "model": os.getenv("CHATMIND_MODEL"),
            "system_prompt": os.getenv("CHATMIND_SYSTEM_PROMPT"),
            "max_messages": os.getenv("CHATMIND_MAX_MESSAGES"),
            "max_steps": os.getenv("CHATMIND_MAX_STEPS"),
            "unknown_tool_policy": os.getenv("CHATMIND_UNKNOWN_TOOL_POLICY"),
        }
        values.update({k: v for k, v in env.items() if v})
        if os.getenv("CHATMIND_ALLOWED_TOOLS"):
            values["allowed_tools"] = _split(os.getenv("CHATMIND_ALLOWED_TOOLS"))
        if os.getenv("CHATMIND_ALLOWED_KBS"):
            values["allowed_knowledge_bases"] = _split(os.getenv("CHATMIND_ALLOWED_KBS"))
        values.update(overrides)
        return cls.model_validate(values)
