import pytest
from pydantic import ValidationError
from unittest.mock import patch

from chatmind.config import AgentConfig
from chatmind.dispatcher import UnknownToolPolicy


def test_defaults():
    config = AgentConfig()

    assert config.max_messages == 20
    assert config.max_steps == 20
    assert config.system_prompt is None
    assert config.allowed_tools == []
    assert config.unknown_tool_policy is UnknownToolPolicy.ERROR_PAYLOAD


@pytest.mark.parametrize("field", ["max_messages", "max_steps"])
def test_bounds_must_be_positive(field):
    with pytest.raises(ValidationError):
        AgentConfig(**{field: 0})


@patch("chatmind.config.load_dotenv")
def test_from_env_reads_chatmind_variables(mock_load_dotenv, monkeypatch):
    monkeypatch.setenv("CHATMIND_MAX_STEPS", "5")
    monkeypatch.setenv("CHATMIND_MAX_MESSAGES", "8")
    monkeypatch.setenv("CHATMIND_SYSTEM_PROMPT", "be brief")
    monkeypatch.setenv("CHATMIND_ALLOWED_TOOLS", "search, send_email,")
    monkeypatch.setenv("CHATMIND_ALLOWED_KBS", "kb-1")
    monkeypatch.setenv("CHATMIND_UNKNOWN_TOOL_POLICY", "fail")

    config = AgentConfig.from_env()

    mock_load_dotenv.assert_called_once()
    assert config.max_steps == 5
    assert config.max_messages == 8
    assert config.system_prompt == "be brief"
    assert config.allowed_tools == ["search", "send_email"]
    assert config.allowed_knowledge_bases == ["kb-1"]
    assert config.unknown_tool_policy is UnknownToolPolicy.FAIL


@patch("chatmind.config.load_dotenv")
def test_from_env_overrides_win(mock_load_dotenv, monkeypatch):
    monkeypatch.setenv("CHATMIND_MAX_STEPS", "5")

    config = AgentConfig.from_env(max_steps=2, allowed_tools=["echo"])

    assert config.max_steps == 2
    assert config.allowed_tools == ["echo"]
