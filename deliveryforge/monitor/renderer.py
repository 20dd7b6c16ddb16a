"""Rich terminal renderer for goal sets and execution reports.

Color scheme
------------
- green     : SUCCEEDED
- red       : FAILED
- yellow    : RUNNING
- dim       : PENDING
- magenta   : SKIPPED
"""

from __future__ import annotations

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from deliveryforge.models.goals import ExecutionReport, GoalSet, GoalState
from deliveryforge.models.push import PushDescription


# ---------------------------------------------------------------------------
# State -> Rich style mapping
# ---------------------------------------------------------------------------

_STATE_STYLES: dict[GoalState, str] = {
    GoalState.SUCCEEDED: "bold green",
    GoalState.FAILED: "bold red",
    GoalState.RUNNING: "bold yellow",
    GoalState.PENDING: "dim",
    GoalState.SKIPPED: "magenta",
}

_STATE_LABELS: dict[GoalState, str] = {
    GoalState.SUCCEEDED: "[green]SUCCEEDED[/green]",
    GoalState.FAILED: "[bold red]FAILED[/bold red]",
    GoalState.RUNNING: "[yellow]RUNNING[/yellow]",
    GoalState.PENDING: "[dim]PENDING[/dim]",
    GoalState.SKIPPED: "[magenta]SKIPPED[/magenta]",
}


class GoalRenderer:
    """Renders goal sets and execution reports as Rich panels.

    Parameters
    ----------
    console:
        Rich Console instance.  A new one is created if not provided.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def render_goal_set(self, goal_set: GoalSet, push: PushDescription) -> Panel:
        table = Table(show_header=True, header_style="bold cyan", expand=True)
        table.add_column("#", style="dim", width=4, justify="right")
        table.add_column("Goal", min_width=22)
        table.add_column("Kind", min_width=9)
        table.add_column("Depends on", min_width=18)
        table.add_column("Contributed by", min_width=18)

        for i, goal in enumerate(goal_set.goals):
            table.add_row(
                str(i),
                goal.label,
                goal.kind.value,
                ", ".join(goal.depends_on) or "[dim]-[/dim]",
                goal_set.contributed_by.get(goal.name, ""),
            )

        if goal_set.is_empty:
            body: Table | Text = Text("No goals: no contributor matched this push", style="dim")
        else:
            body = table
        return Panel(
            body,
            title=f"[bold]Goal set for {push.short()}[/bold]",
            subtitle=f"{len(goal_set)} goal(s)",
            border_style="blue",
            padding=(1, 2),
        )

    def render_report(self, report: ExecutionReport) -> Panel:
        table = Table(show_header=True, header_style="bold cyan", expand=True)
        table.add_column("Goal", min_width=22)
        table.add_column("State", min_width=11, justify="center")
        table.add_column("Details", min_width=30)

        for outcome in report.outcomes:
            style = _STATE_STYLES.get(outcome.state, "")
            if outcome.state in (GoalState.FAILED, GoalState.SKIPPED):
                kind = outcome.failure_kind.value if outcome.failure_kind else ""
                details = f"[red]{outcome.reason}[/red]" + (f" [dim]({kind})[/dim]" if kind else "")
            else:
                details = outcome.detail or "[dim]-[/dim]"
            table.add_row(
                f"[{style}]{outcome.name}[/{style}]" if style else outcome.name,
                _STATE_LABELS.get(outcome.state, outcome.state.value),
                details,
            )

        summary = "  |  ".join(
            [
                f"[bold]Succeeded:[/bold] {len(report.succeeded)}",
                f"[bold]Failed:[/bold] {len(report.failed)}",
                f"[bold]Skipped:[/bold] {len(report.skipped)}",
                "[bold red]CANCELLED[/bold red]" if report.cancelled else "",
            ]
        ).rstrip(" |")
        elapsed = (report.finished_at - report.started_at).total_seconds()

        return Panel(
            Group(table, Text(""), Text.from_markup(summary)),
            title=f"[bold]Execution report for {report.push_id}[/bold]",
            subtitle=f"{elapsed:.2f}s",
            border_style="green" if report.all_succeeded else "red",
            padding=(1, 2),
        )

    def print_goal_set(self, goal_set: GoalSet, push: PushDescription) -> None:
        self.console.print(self.render_goal_set(goal_set, push))

    def print_report(self, report: ExecutionReport) -> None:
        self.console.print(self.render_report(report))
