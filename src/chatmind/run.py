# run.py
# Entry point. Config and wiring only. No logic lives here.
#
# Swap CHATMIND_MODEL for any OpenRouter-supported model.
# https://openrouter.ai/models

from chatmind import display
from chatmind.config import AgentConfig
from chatmind.factory import AgentFactory
from chatmind.models import KnowledgeBase
from chatmind.sink import ConsoleNotifier, InMemoryMessageStore
from chatmind.tools import EmailService, build_registry

SYSTEM_PROMPT = "You are a concise assistant. Use tools when they help, and stop when done."

KNOWLEDGE_BASES = [
    KnowledgeBase(id="kb-packaging", description="Notes on Python packaging and release practice."),
    KnowledgeBase(id="kb-agents", description="Design notes on tool-using LLM agents."),
]

# One direct question, one that needs tools.
PROMPTS = [
    "In one sentence, what is a ReAct agent?",
    "Search for recent writing on LLM agent design patterns, summarize it, "
    "and save the summary to agent_patterns.txt.",
]


def main() -> None:
    display.setup_logging("WARNING")
    config = AgentConfig.from_env(
        system_prompt=SYSTEM_PROMPT,
        allowed_tools=["search", "file_write"],
        allowed_knowledge_bases=[kb.id for kb in KNOWLEDGE_BASES],
    )
    email_service = EmailService()
    factory = AgentFactory(
        registry=build_registry(email_service),
        persistence=InMemoryMessageStore(),
        notifier=ConsoleNotifier(),
        knowledge_bases=KNOWLEDGE_BASES,
    )

    try:
        for index, prompt in enumerate(PROMPTS, start=1):
            runtime = factory.create(config, session_id=f"demo-{index}")
            display.final_result(runtime.chat(prompt))
    finally:
        email_service.shutdown()


if __name__ == "__main__":
    main()
