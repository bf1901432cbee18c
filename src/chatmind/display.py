# display.py
# All terminal output for the agent runtime.
#
# This module owns presentation entirely. runtime.py never formats strings;
# it calls named functions here. Swap this file to change the entire UI.
#
# Colour language:
#   cyan    — run / step boundaries
#   blue    — model decisions
#   magenta — tool calls and results
#   green   — clean finish
#   yellow  — forced finish (step budget)
#   red     — errors

import json
import logging

from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from chatmind.models import RunResult, SinkEvent, ToolCall, ToolResult

console = Console()


def setup_logging(level: str = "INFO") -> None:
    """Route library logging through rich. Call once from an entry point."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: str, max_len: int = 120) -> str:
    if len(value) > max_len:
        return value[:max_len] + "…"
    return value


def _args(call: ToolCall) -> str:
    if isinstance(call.arguments, str):
        return call.arguments
    return json.dumps(call.arguments)


# ---------------------------------------------------------------------------
# Run lifecycle
# ---------------------------------------------------------------------------


def banner(agent_name: str, session_id: str, tool_names: list[str]) -> None:
    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]{agent_name}[/bold cyan]\n"
            f"[dim]Session :[/dim] [white]{session_id}[/white]\n"
            f"[dim]Tools   :[/dim] [white]{', '.join(tool_names) or 'none'}[/white]",
            border_style="cyan",
            padding=(1, 4),
        )
    )


def run_start(session_id: str, max_steps: int) -> None:
    console.print()
    console.print(Rule(f"[cyan]RUN {session_id} — up to {max_steps} step(s)[/cyan]", style="cyan"))


def step_start(step: int, max_steps: int) -> None:
    console.print()
    console.print(f"[bold cyan]  STEP [{step}/{max_steps}][/bold cyan]")


def assistant_text(text: str) -> None:
    if text:
        console.print(f"  [blue]Assistant[/blue]  [white]{_mono(text, 200)}[/white]")


def tool_calls(calls: list[ToolCall]) -> None:
    if not calls:
        console.print("  [blue]ToolCalling[/blue]  [dim]no tool calls[/dim]")
        return

    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="magenta",
        show_header=True,
        header_style="bold magenta",
        padding=(0, 1),
    )
    table.add_column("#", justify="center", width=4)
    table.add_column("Tool", style="bold white", width=16)
    table.add_column("Arguments", style="dim white")

    for index, call in enumerate(calls, start=1):
        table.add_row(str(index), call.tool_name, _mono(_args(call), 80))

    console.print(
        Panel(table, title=_label("TOOL CALLING", "magenta"), border_style="magenta", padding=(0, 1))
    )


def tool_results(results: list[ToolResult]) -> None:
    for result in results:
        console.print(
            f"  [magenta]Result[/magenta]  [bold white]{result.tool_name}[/bold white]"
            f"  [white]{_mono(result.response_data, 140)}[/white]"
        )


def message_delivered(session_id: str, event: SinkEvent) -> None:
    message = event.payload["message"]
    console.print(
        f"  [dim]→ delivered {message.role.value} message "
        f"{event.metadata.get('chat_message_id', '?')} to {session_id}[/dim]"
    )


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


def finished(result: RunResult) -> None:
    reason = "terminate tool called" if result.terminated else "final answer"
    console.print()
    console.print(
        Panel(
            f"[bold green]Finished after {result.steps} step(s).[/bold green]\n[dim]{reason}[/dim]",
            title=_label("FINISHED", "green"),
            border_style="green",
            padding=(0, 2),
        )
    )


def budget_exhausted(result: RunResult) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold yellow]Step budget of {result.steps} exhausted.[/bold yellow]\n"
            "[dim]Run forced to finish with tool calls possibly outstanding.[/dim]",
            title=_label("FORCED FINISH", "yellow"),
            border_style="yellow",
            padding=(0, 2),
        )
    )


def run_error(exc: BaseException) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold white]{type(exc).__name__}: {exc}[/bold white]",
            title=_label("ERROR", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )


def final_result(result: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[white]{result}[/white]",
            title=_label("RESULT", "green"),
            border_style="green",
            padding=(1, 2),
        )
    )
    console.print()
