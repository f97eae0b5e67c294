# display.py
# All terminal output for the trace reactor.
#
# This module owns presentation entirely. reactor.py never formats for the
# terminal; it hands PhaseEvents to an observer. ConsoleObserver is the
# observer that renders them here. Swap it to change the entire UI.
#
# Colour language:
#   blue: MBT prefix
#   green: elapsed time / success
#   yellow: tags
#   magenta: invariant phases
#   red: failures and halts

import json
from typing import Any

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from trace_reactor.models import FailureInfo, InvariantKind, Phase, PhaseEvent, RunReport

console = Console()


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


def _json(value: Any) -> str:
    try:
        return json.dumps(value, sort_keys=True, default=str)
    except (TypeError, ValueError):
        return repr(value)


def format_event(event: PhaseEvent) -> Text:
    """`[MBT    3s]    1:transfer   > Executing Step` as styled text."""
    line = Text()
    line.append("[")
    line.append("MBT", style="bright_blue")
    line.append(f" {int(event.elapsed): >4}", style="green")
    line.append("s] ")
    line.append(f"{event.index: >4}:")
    line.append(f"{event.tag: <10}", style="yellow")
    phase_style = "magenta" if event.phase in (Phase.INVARIANT, Phase.INVARIANT_STATE) else "white"
    line.append("> ")
    line.append(event.phase.value, style=phase_style)
    if event.detail and event.phase is not Phase.FAILED:
        line.append(f" ({event.detail})", style="dim")
    return line


# ---------------------------------------------------------------------------
# Observer
# ---------------------------------------------------------------------------


class ConsoleObserver:
    """
    Renders reactor phase events on a rich console.

    Per-phase lines can be silenced with `quiet`; the completion and failure
    panels are always shown.
    """

    def __init__(self, target: Console | None = None, quiet: bool = False) -> None:
        self.console = target or console
        self.quiet = quiet

    def __call__(self, event: PhaseEvent) -> None:
        if event.phase is Phase.FAILED:
            halt(event, self.console)
        elif event.phase is Phase.COMPLETED:
            completed(event, self.console)
        elif not self.quiet:
            self.console.print(format_event(event))


# ---------------------------------------------------------------------------
# Run lifecycle
# ---------------------------------------------------------------------------


def run_started(tag_path: str, states: int, target: Console | None = None) -> None:
    out = target or console
    out.print()
    out.print(Rule(f"[cyan]TRACE REPLAY: {states} state(s)[/cyan]", style="cyan"))
    out.print(_label("MBT", "blue"), f"[cyan] dispatching on [bold white]{escape(tag_path)}[/bold white][/cyan]")


def completed(event: PhaseEvent, target: Console | None = None) -> None:
    out = target or console
    out.print()
    out.print(
        Panel(
            f"[bold green]All invariants held across {event.index + 1} state(s).[/bold green]\n"
            f"[dim]Finished in {event.elapsed:.2f}s.[/dim]",
            title=_label("COMPLETED ✓", "green"),
            border_style="green",
            padding=(0, 2),
        )
    )


def halt(event: PhaseEvent, target: Console | None = None) -> None:
    out = target or console
    out.print()
    out.print(
        Panel(
            f"[bold white]{escape(event.detail)}[/bold white]\n\n"
            f"[dim]index={event.index}  tag={escape(repr(event.tag))}  elapsed={event.elapsed:.2f}s[/dim]",
            title=_label("HALT", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )
    out.print()


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


def failure_panel(failure: FailureInfo) -> Panel:
    lines = [f"[bold red]{failure.error}[/bold red]  [white]{escape(failure.message)}[/white]"]
    if failure.handler is not None and failure.handler != failure.tag:
        lines.append(f"[dim]handler  :[/dim] [yellow]{escape(failure.handler)}[/yellow]")
    if failure.invariant is not None:
        lines.append(f"[dim]invariant:[/dim] [white]{escape(failure.invariant)}[/white]")
    if failure.kind is InvariantKind.STATE:
        lines.append(f"[dim]baseline :[/dim] [yellow]{escape(_mono(_json(failure.baseline)))}[/yellow]")
        lines.append(f"[dim]current  :[/dim] [yellow]{escape(_mono(_json(failure.current)))}[/yellow]")
    return Panel(
        "\n".join(lines),
        title=_label("FAILURE ✗", "red"),
        subtitle=f"[dim]index={failure.index} tag={escape(repr(failure.tag))}[/dim]",
        border_style="red",
        padding=(0, 2),
    )


def run_report(report: RunReport, target: Console | None = None) -> None:
    """Checkpoint summary table, followed by the failure if the run failed."""
    out = target or console
    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="dim",
        show_header=True,
        header_style="bold dim",
        padding=(0, 1),
    )
    table.add_column("Index", justify="right", width=6)
    table.add_column("Tag", style="yellow", width=16)
    table.add_column("Inv", justify="center", width=6)
    table.add_column("State values", style="dim white")

    for checkpoint in report.checkpoints:
        failed_here = report.failure is not None and report.failure.index == checkpoint.index
        held = all(checkpoint.booleans) and not failed_here
        table.add_row(
            str(checkpoint.index),
            escape(checkpoint.tag),
            "[bold green]✓[/bold green]" if held else "[bold red]✗[/bold red]",
            escape(_mono(_json(checkpoint.state_values), 60)),
        )

    status = "[green]completed[/green]" if report.ok else "[red]failed[/red]"
    out.print()
    out.print(
        Panel(
            table,
            title="[dim]RUN SUMMARY[/dim]",
            subtitle=f"{status} [dim]{report.steps_executed}/{max(report.states - 1, 0)} step(s)[/dim]",
            border_style="dim",
            padding=(0, 1),
        )
    )
    if report.failure is not None:
        out.print(failure_panel(report.failure))
