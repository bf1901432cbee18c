# runtime.py
# Agent runtime: a bounded think/execute (ReAct) loop over one session.
#
# The runtime owns all control flow. The completion service only proposes
# the next assistant turn; tools are run by the dispatcher; persistence and
# delivery go through the message sink.
#
# Control flow per step:
#   think()   → completion call → persist + deliver assistant turn
#   execute() → dispatch tool calls → persist + deliver tool results
#             → replace memory with the paired snapshot → check terminate
#
# All terminal output is delegated to display.py; nothing is formatted here.

import logging
from collections.abc import Iterable

from chatmind import display
from chatmind.completion import CompletionPort
from chatmind.config import AgentConfig
from chatmind.dispatcher import ToolDispatcher
from chatmind.errors import InvalidState, PreconditionFailed
from chatmind.memory import ConversationMemory
from chatmind.models import (
    AgentState,
    KnowledgeBase,
    Message,
    Role,
    RunResult,
)
from chatmind.sink import MessageSink

logger = logging.getLogger(__name__)


DECISION_PROMPT = """\
You are the decision module of an intelligent assistant.
Based on the conversation so far, decide the next action.
If a tool is needed to make progress, call it. When the task is fully \
handled, call the `terminate` tool or reply with your final answer.

Additional information:
- Knowledge bases available to you (id: description):
{knowledge_bases}
- When context is missing, prefer searching the knowledge bases first.\
"""


def _format_knowledge_bases(knowledge_bases: list[KnowledgeBase]) -> str:
    if not knowledge_bases:
        return "  none"
    return "\n".join(f"  - {kb.id}: {kb.description}" for kb in knowledge_bases)


class AgentRuntime:
    """
    State machine driving one session's think/execute loop.

    Without a dispatcher the runtime never offers tools, so every run is a
    single plain completion. Without a sink nothing is persisted or
    delivered.

    Not safe for concurrent use: a second run() while not IDLE fails fast
    with InvalidState, but that check is not a lock.

    Example:
        runtime = AgentRuntime(
            session_id="s-1",
            completion=OpenAICompletion(model="anthropic/claude-3.5-haiku"),
            dispatcher=registry.dispatcher(["send_email"]),
            sink=MessageSink(store, ConsoleNotifier()),
            config=AgentConfig(system_prompt="You are helpful."),
        )
        runtime.append(Message.user("Email bob@example.com a status update."))
        result = runtime.run()
    """

    def __init__(
        self,
        session_id: str,
        completion: CompletionPort,
        dispatcher: ToolDispatcher | None = None,
        sink: MessageSink | None = None,
        config: AgentConfig | None = None,
        knowledge_bases: Iterable[KnowledgeBase] = (),
        history: Iterable[Message] = (),
        quiet: bool = False,
    ) -> None:
        self._session_id = session_id
        self._completion = completion
        self._dispatcher = dispatcher
        self._sink = sink
        self._config = config or AgentConfig()
        self._knowledge_bases = list(knowledge_bases)
        self._quiet = quiet

        self._seed = list(history)
        self._memory = ConversationMemory(self._config.max_messages)
        self._memory.append(session_id, self._seed)
        self._pin_system_prompt()

        self._state = AgentState.IDLE
        self._outbox: list[Message] = []
        self._pending: Message | None = None
        self._last_result: RunResult | None = None
        self._forced_finish = False
        self._terminated = False

        if not quiet:
            display.banner(
                self._config.name,
                session_id,
                dispatcher.tool_names if dispatcher else [],
            )

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def state(self) -> AgentState:
        return self._state

    @property
    def forced_finish(self) -> bool:
        return self._forced_finish

    @property
    def last_result(self) -> RunResult | None:
        """Outcome of the most recent run(), kept across chat() re-arming."""
        return self._last_result

    @property
    def memory(self) -> ConversationMemory:
        return self._memory

    def history(self) -> list[Message]:
        return self._memory.get(self._session_id)

    def append(self, message: Message | Iterable[Message]) -> None:
        self._memory.append(self._session_id, message)

    def decision_instruction(self) -> str:
        return DECISION_PROMPT.format(
            knowledge_bases=_format_knowledge_bases(self._knowledge_bases)
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _show(self, name: str, *args) -> None:
        if not self._quiet:
            getattr(display, name)(*args)

    def _pin_system_prompt(self) -> None:
        if self._config.system_prompt:
            self._memory.append(self._session_id, Message.system(self._config.system_prompt))

    def _record(self, message: Message) -> Message:
        """Persist `message`, queue it, then flush the outbox in production order."""
        if self._sink is not None:
            message = self._sink.persist(self._session_id, message)
        self._outbox.append(message)
        self._flush_outbox()
        return message

    def _flush_outbox(self) -> None:
        if self._sink is not None:
            for message in self._outbox:
                self._sink.notify(self._session_id, message)
        self._outbox.clear()

    # ------------------------------------------------------------------
    # Think / execute
    # ------------------------------------------------------------------

    def think(self) -> Message:
        """
        Ask the completion service for the next assistant turn.

        The turn is persisted and delivered exactly once. A turn without tool
        calls goes straight into memory; a turn with tool calls is held back
        until execute() can append it together with its results.
        Returns the persisted assistant message; `.has_tool_calls` tells the
        caller whether execute() should follow.
        """
        tools = self._dispatcher.descriptors() if self._dispatcher else []
        turn = self._completion.complete(self.history(), self.decision_instruction(), tools)
        if turn is None:
            raise PreconditionFailed("Completion service returned no result.")

        if turn.tool_calls and self._dispatcher is None:
            logger.warning("Ignoring %d tool call(s): no dispatcher configured.", len(turn.tool_calls))
            turn = turn.model_copy(update={"tool_calls": []})

        decision = self._record(turn.to_message())
        self._pending = decision if decision.tool_calls else None

        if decision.tool_calls:
            logger.info(
                "Tool calls: %s",
                ", ".join(f"{c.tool_name}({c.arguments})" for c in decision.tool_calls),
            )
        else:
            logger.info("No tool calls.")
            self._memory.append(self._session_id, decision)

        self._show("assistant_text", decision.content)
        self._show("tool_calls", decision.tool_calls)
        return decision

    def execute(self, decision: Message) -> Message:
        """
        Run the tool calls on `decision` and fold the results into memory.

        Memory is replaced by the dispatcher's snapshot, which ends with the
        assistant message and its aggregate tool-result message, so neither
        is ever stored without the other.
        Only the decision returned by the latest think() is accepted, and only
        once. Returns the persisted tool-result message.
        """
        if self._state is not AgentState.ACTING or self._dispatcher is None:
            raise InvalidState(f"No pending tool decision to execute (state={self._state.value}).")
        if decision.role is not Role.ASSISTANT or not decision.tool_calls:
            raise PreconditionFailed("Decision carries no tool calls.")
        if decision is not self._pending:
            raise InvalidState("Decision is not the pending one from the latest think().")
        self._pending = None

        result = self._dispatcher.dispatch(self.history(), decision)
        tool_message = self._record(result.tool_message)

        self._memory.clear(self._session_id)
        self._memory.append(self._session_id, [*result.history[:-1], tool_message])

        logger.info(
            "Tool results: %s",
            "; ".join(f"{r.tool_name} -> {r.response_data}" for r in tool_message.tool_results),
        )
        self._show("tool_results", tool_message.tool_results)

        if result.terminated:
            self._terminated = True
            self._state = AgentState.FINISHED
            logger.info("Terminate tool called; finishing run.")
        else:
            self._state = AgentState.THINKING
        return tool_message

    def step(self) -> None:
        self._state = AgentState.THINKING
        decision = self.think()
        if decision.tool_calls:
            self._state = AgentState.ACTING
            self.execute(decision)
        else:
            self._state = AgentState.FINISHED

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def run(self) -> RunResult:
        """
        Drive think/execute steps until the model stops, calls `terminate`,
        or `max_steps` is reached.

        Raises InvalidState if the runtime is not IDLE. Any fault inside the
        loop leaves the state at ERROR and propagates unchanged.
        """
        if self._state is not AgentState.IDLE:
            raise InvalidState(f"Agent is not idle (state={self._state.value}).")

        self._state = AgentState.THINKING
        self._last_result = None
        max_steps = self._config.max_steps
        steps = 0
        self._show("run_start", self._session_id, max_steps)

        try:
            while steps < max_steps and self._state is not AgentState.FINISHED:
                steps += 1
                self._show("step_start", steps, max_steps)
                self.step()
        except Exception as exc:
            self._state = AgentState.ERROR
            logger.error("Error running agent for session %s", self._session_id, exc_info=True)
            self._show("run_error", exc)
            raise

        if self._state is not AgentState.FINISHED:
            self._forced_finish = True
            self._state = AgentState.FINISHED
            logger.warning("Max steps (%d) reached, stopping agent.", max_steps)

        result = RunResult(
            state=self._state,
            steps=steps,
            forced_finish=self._forced_finish,
            terminated=self._terminated,
        )
        self._last_result = result
        self._show("budget_exhausted" if result.forced_finish else "finished", result)
        return result

    def reset(self) -> None:
        """Return to a freshly constructed state: the seed history plus the system prompt."""
        self._memory.clear(self._session_id)
        self._memory.append(self._session_id, self._seed)
        self._pin_system_prompt()
        self._outbox.clear()
        self._pending = None
        self._last_result = None
        self._forced_finish = False
        self._terminated = False
        self._state = AgentState.IDLE

    def chat(self, user_input: str) -> str:
        """
        Single conversational turn: record the user message, run the loop,
        and return the latest assistant text.

        After a clean run the runtime is re-armed to IDLE with its memory
        kept, so the next chat() continues the conversation; `last_result`
        still reports how that run ended. An error, including a failure to
        persist the user message, leaves the state at ERROR.
        """
        if user_input is None:
            raise ValueError("user_input must not be None.")
        if self._state is not AgentState.IDLE:
            raise InvalidState(f"Agent is not idle (state={self._state.value}).")

        try:
            user_message = self._record(Message.user(user_input))
        except Exception:
            self._state = AgentState.ERROR
            logger.error("Could not record user message for session %s", self._session_id, exc_info=True)
            raise
        self._memory.append(self._session_id, user_message)
        self.run()
        self._state = AgentState.IDLE
        self._forced_finish = False
        self._terminated = False

        for message in reversed(self.history()):
            if message.role is Role.ASSISTANT:
                return message.content
        return ""
