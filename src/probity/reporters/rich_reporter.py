# src/probity/reporters/rich_reporter.py
"""Console rendering of an interrogated Agent with Rich."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

if TYPE_CHECKING:
    from probity.api.agent import Agent

_STATUS_STYLE = {"PASS": "green", "FAIL": "red", "ERROR": "magenta", "INACTIVE": "dim"}
_STATE_STYLE = {"warn": "yellow", "stop": "red", "notify": "cyan"}


def report_success(msg: str, console: Optional[Console] = None) -> None:
    (console or Console()).print(f"[bold green]✅ {msg}[/bold green]")


def report_failure(msg: str, console: Optional[Console] = None) -> None:
    (console or Console()).print(f"[bold red]❌ {msg}[/bold red]")


def build_table(agent: "Agent") -> Table:
    table = Table(title=f"Interrogation of {agent.name}", show_lines=False)
    table.add_column("#", justify="right")
    table.add_column("Kind")
    table.add_column("Columns")
    table.add_column("Brief", overflow="fold")
    table.add_column("Units", justify="right")
    table.add_column("Pass", justify="right")
    table.add_column("Fail", justify="right")
    table.add_column("F fail", justify="right")
    table.add_column("States")
    table.add_column("Status")

    for r in agent.results():
        states = " ".join(
            f"[{_STATE_STYLE[s]}]{s.upper()}[/{_STATE_STYLE[s]}]"
            for s in ("warn", "stop", "notify")
            if s in r.triggered_states
        )
        style = _STATUS_STYLE[r.status]
        status = f"[{style}]{r.status}[/{style}]"
        if r.eval_error:
            status += f" {escape(r.error or '')}"
        table.add_row(
            str(r.step_id),
            r.kind,
            ", ".join(r.columns),
            escape(r.brief),
            f"{r.n_units:,}",
            f"{r.n_pass:,}",
            f"{r.n_fail:,}",
            f"{r.f_fail:.2%}" if r.n_units else "-",
            states,
            status,
        )
    return table


def render_agent(agent: "Agent", console: Optional[Console] = None) -> None:
    """Print the result table followed by a one-line verdict."""
    console = console or Console()
    console.print(build_table(agent))

    summary = agent.summary()
    line = f"{summary['passed']}/{summary['active']} steps passed"
    if summary["stopped_at"] is not None:
        line += f"; halted at step {summary['stopped_at']}"
    if agent.all_passed():
        report_success(line, console)
    else:
        report_failure(line, console)
