"""Rich-powered console output."""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from trackpilot.models import Application, ProposedUpdate, RunMetrics

_console = Console()

_STATUS_STYLES = {
    "rejected": "bold red",
    "archived": "dim",
    "interview": "bold cyan",
    "pending_decision": "bold yellow",
}

_RULE_LABELS = {
    "autoRejectDays": "Auto-reject after days in column",
    "autoArchiveRejected": "Auto-archive rejected",
    "autoMoveToInterview": "Move to interview when scheduled",
    "inactiveReminder": "Inactive reminder (badge only)",
    "autoMoveToPendingDecision": "Move to pending decision",
    "autoRejectNoResponse": "Auto-reject on no response",
}


def print_banner() -> None:
    """Display the startup banner."""
    _console.print(
        Panel.fit(
            "[bold cyan]TrackPilot[/bold cyan]  —  Application Pipeline Automation",
            border_style="cyan",
        )
    )


def print_transition(app: Application | None, update: ProposedUpdate) -> None:
    """Print one applied transition with the reason the rule gave."""
    style = _STATUS_STYLES.get(update.new_status, "bold green")
    label = app.label if app is not None else update.application_id
    _console.print(
        f"  [{style}]{update.new_status:<18}[/{style}]  {label}  [dim]{update.reason}[/dim]"
    )


def print_preview(counts: dict[str, int]) -> None:
    """Display how many applications currently match each rule."""
    table = Table(title="Rule Preview", show_header=True, header_style="bold magenta")
    table.add_column("Rule", style="cyan")
    table.add_column("Matching", justify="right")
    for name, count in counts.items():
        table.add_row(_RULE_LABELS.get(name, name), str(count))
    _console.print()
    _console.print(table)
    _console.print()


def print_run_report(metrics: RunMetrics) -> None:
    """Display a run summary table."""
    table = Table(title="Automation Run", show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Evaluated", str(metrics.total_evaluated))
    table.add_row("Proposed", str(metrics.total_proposed))
    table.add_row("Applied", str(metrics.total_applied))
    table.add_row("Failed", str(metrics.total_failed))
    table.add_row("Skipped", str(metrics.total_skipped))
    table.add_row("Run ID", metrics.run_id)
    table.add_row("Started", metrics.started_at)
    table.add_row("Ended", metrics.ended_at or "—")

    _console.print()
    _console.print(table)
    for application_id, message in metrics.failures:
        _console.print(f"  [bold red]failed[/bold red]  {application_id}  {message}")
    _console.print()


def print_transitions(rows: list[dict]) -> None:
    """Display the automation transition log."""
    table = Table(title="Automated Transitions", show_header=True, header_style="bold magenta")
    table.add_column("When", style="dim")
    table.add_column("Application", style="cyan")
    table.add_column("Status")
    table.add_column("Reason")
    for row in rows:
        label = " @ ".join(p for p in (row["position"], row["company_name"]) if p)
        style = _STATUS_STYLES.get(row["new_status"], "bold green")
        table.add_row(
            row["changed_at"] or "",
            label or row["application_id"],
            f"[{style}]{row['new_status']}[/{style}]",
            row["reason"] or "",
        )
    _console.print()
    _console.print(table)
    _console.print()
