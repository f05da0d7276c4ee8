# display.py
# All terminal output for the plan/act agent.
#
# This module owns presentation entirely. The engine, gates, and CLI never
# format strings for the console; they call named functions here.
#
# Colour language:
#   cyan     session / routing events
#   blue     plans and model responses
#   yellow   confirmation requests
#   green    success / approved
#   red      failures, halts, destructive warnings
#   magenta  tool calls and their arguments
#
# Anything that came from the model or the user is escaped before it is
# embedded in markup.

import json
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.status import Status
from rich.table import Table
from rich.text import Text

from tool_pilot.models import Mode, Plan, PlanProgress, Step, ToolResult

console = Console()
err_console = Console(stderr=True)

_active_status: Status | None = None


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


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


def banner(
    model: str, working_directory: str, project_type: str | None, mode: Mode, description: str
) -> None:
    console.print()
    console.print(
        Panel.fit(
            "[bold cyan]tool-pilot: plan/act coding assistant[/bold cyan]\n"
            "[dim]Type requests in natural language, 'help' for commands, 'exit' to quit.[/dim]\n\n"
            f"[dim]Model             :[/dim] [white]{escape(model)}[/white]\n"
            f"[dim]Working directory :[/dim] [white]{escape(working_directory)}[/white]\n"
            f"[dim]Project type      :[/dim] [white]{escape(project_type or 'Unknown')}[/white]\n"
            f"[dim]Current mode      :[/dim] [white]{mode.value}[/white]",
            border_style="cyan",
            padding=(1, 4),
        )
    )
    console.print(f"[dim]{escape(description)}[/dim]")


def mode_status(mode: Mode, description: str) -> None:
    console.print(_label("MODE", "cyan"), f"[bold cyan] {mode.value}[/bold cyan]")
    console.print(f"[dim]{escape(description)}[/dim]")


def mode_suggestion(mode: Mode) -> None:
    console.print(f"[dim cyan]  Hint: this request looks like a job for {mode.value} mode (/{mode.value}).[/dim cyan]")


@contextmanager
def thinking() -> Iterator[Status]:
    """Spinner shown while a turn runs. Prompts pause it through status_paused()."""
    global _active_status
    with console.status("[cyan]Thinking…[/cyan]", spinner="dots") as status:
        _active_status = status
        try:
            yield status
        finally:
            _active_status = None


@contextmanager
def status_paused() -> Iterator[None]:
    """Stop the active spinner, if any, so an interactive prompt stays readable."""
    status = _active_status
    if status is None:
        yield
        return
    status.stop()
    try:
        yield
    finally:
        status.start()


# ---------------------------------------------------------------------------
# Confirmation requests
# ---------------------------------------------------------------------------


def tool_request(tool_name: str, preview: dict[str, Any]) -> None:
    console.print()
    lines = [f"[bold white]Tool:[/bold white] [magenta]{escape(tool_name)}[/magenta]", "[bold white]Arguments:[/bold white]"]
    for key, value in preview.items():
        rendered = value if isinstance(value, str) else json.dumps(value)
        lines.append(f"  [dim]{escape(key)}:[/dim] {escape(rendered)}")
    console.print(
        Panel(
            "\n".join(lines),
            title=_label("TOOL EXECUTION REQUEST", "yellow"),
            border_style="yellow",
            padding=(0, 2),
        )
    )


def destructive_warning(operation: str, details: str, path: str | None) -> None:
    console.print()
    body = f"[bold red]Operation:[/bold red] {escape(operation)}\n[bold red]Details:[/bold red] {escape(details)}"
    if path:
        body += f"\n[bold red]File:[/bold red] {escape(path)}"
    body += "\n\n[yellow]This action cannot be undone![/yellow]"
    console.print(
        Panel(body, title=_label("DESTRUCTIVE OPERATION ⚠", "red"), border_style="red", padding=(0, 2))
    )


def plan_steps(title: str, steps: list[Step]) -> None:
    console.print()
    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="blue",
        show_header=True,
        header_style="bold blue",
        padding=(0, 1),
    )
    table.add_column("#", justify="center", width=4)
    table.add_column("Type", style="bold white", width=16)
    table.add_column("Description", style="white")
    table.add_column("Target", style="dim white", width=32)

    for index, step in enumerate(steps, start=1):
        target = step.details.get("path") or step.details.get("command") or ""
        table.add_row(str(index), step.type.value, escape(step.description), escape(_mono(str(target), 30)))

    console.print(
        Panel(
            table,
            title=_label("EXECUTION PLAN", "blue"),
            subtitle=f"[dim]{escape(title)} ({len(steps)} step(s))[/dim]",
            border_style="blue",
            padding=(0, 1),
        )
    )


def tool_results(results: list[ToolResult]) -> None:
    console.print()
    table = Table(box=box.SIMPLE_HEAVY, border_style="dim", show_header=True, header_style="bold dim")
    table.add_column("Step", justify="center", width=6)
    table.add_column("Status", justify="center", width=8)
    table.add_column("Detail", style="dim white")

    for index, result in enumerate(results, start=1):
        if result.success:
            detail = result.output or (json.dumps(result.data, default=str) if result.data is not None else "")
            table.add_row(str(index), "[bold green]✓[/bold green]", escape(_mono(detail, 80)))
        else:
            table.add_row(str(index), "[bold red]✗[/bold red]", escape(_mono(result.error or "", 80)))

    console.print(Panel(table, title="[dim]TOOL EXECUTION RESULTS[/dim]", border_style="dim", padding=(0, 1)))


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------


def plans_table(plans: list[Plan], active_id: str | None) -> None:
    if not plans:
        console.print("[dim]No plans yet.[/dim]")
        return
    table = Table(box=box.SIMPLE_HEAVY, border_style="blue", header_style="bold blue")
    table.add_column("ID", style="dim")
    table.add_column("Title", style="bold white")
    table.add_column("Approved", justify="center")
    table.add_column("Steps", justify="center")
    table.add_column("Active", justify="center")
    for plan in plans:
        done = sum(1 for s in plan.steps if s.completed)
        table.add_row(
            escape(plan.id),
            escape(plan.title),
            "[green]yes[/green]" if plan.approved else "[yellow]no[/yellow]",
            f"{done}/{len(plan.steps)}",
            "[cyan]●[/cyan]" if plan.id == active_id else "",
        )
    console.print(table)


def plan_progress(plan_id: str, progress: PlanProgress) -> None:
    console.print(
        f"[blue]{escape(plan_id)}[/blue]  {progress.completed}/{progress.total} steps "
        f"[bold]({progress.percentage}%)[/bold]"
    )


# ---------------------------------------------------------------------------
# Tables for CLI subcommands
# ---------------------------------------------------------------------------


def tools_table(tools: list[Any]) -> None:
    table = Table(box=box.SIMPLE_HEAVY, border_style="magenta", header_style="bold magenta")
    table.add_column("Tool", style="bold white")
    table.add_column("Description")
    table.add_column("Approval", justify="center")
    for tool in tools:
        table.add_row(escape(tool.name), escape(tool.description), "[yellow]yes[/yellow]" if tool.requires_approval else "no")
    console.print(table)


def config_table(values: dict[str, Any]) -> None:
    table = Table(box=box.SIMPLE, show_header=False)
    table.add_column("Key", style="yellow")
    table.add_column("Value")
    for key, value in values.items():
        table.add_row(escape(key), escape(str(value)))
    console.print(Rule("[blue]Current Configuration[/blue]", style="blue"))
    console.print(table)


def info(message: str) -> None:
    console.print(f"[cyan]{escape(message)}[/cyan]")


def success(message: str) -> None:
    console.print(f"[bold green]✓[/bold green] {escape(message)}")


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


def final_result(result: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[white]{escape(result)}[/white]",
            title=_label("RESPONSE", "green"),
            border_style="green",
            padding=(1, 2),
        )
    )
    console.print()


def halt(reason: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold white]{escape(reason)}[/bold white]",
            title=_label("HALT", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )
    console.print()
