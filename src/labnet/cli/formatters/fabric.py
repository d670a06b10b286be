"""Formatters for baseline, restore and apply output."""

from rich.panel import Panel
from rich.table import Table

from labnet.models.reports import ApplyReport, ReconciliationReport
from labnet.models.resources import Baseline


def format_baseline_summary(baseline: Baseline) -> Panel:
    lines = [
        f"[bold]Node:[/bold] {baseline.node or '-'}",
        f"[bold]Captured:[/bold] {baseline.captured_at or '-'}",
        "",
    ]
    for kind, count in baseline.summary().items():
        lines.append(f"  {kind:<16} {count}")
    if baseline.read_failures:
        lines.append("")
        lines.append(
            f"[yellow]Not captured:[/yellow] {', '.join(baseline.read_failures)}"
        )
    return Panel("\n".join(lines), title="Baseline", border_style="blue")


def format_restore_report(report: ReconciliationReport) -> Table:
    table = Table(title="Restore to Baseline", show_header=True)
    table.add_column("Collection", style="cyan")
    table.add_column("Kept", justify="right")
    table.add_column("Deleted", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Missing", justify="right", style="yellow")
    table.add_column("Notes")

    for entry in report.collections.values():
        notes = []
        if entry.read_failed:
            notes.append(f"[red]read failed: {entry.read_error}[/red]")
        notes.extend(f"[yellow]{note}[/yellow]" for note in entry.notes)
        for alignment in entry.alignments:
            state = "set" if alignment.applied else f"[red]{alignment.reason}[/red]"
            notes.append(
                f"{alignment.key} {alignment.live}->{alignment.baseline} ({state})"
            )
        table.add_row(
            entry.kind.value,
            str(len(entry.kept)),
            str(len(entry.deleted)),
            str(len(entry.failed)),
            str(len(entry.missing)),
            "; ".join(notes),
        )
    return table


def format_apply_report(report: ApplyReport) -> Table:
    table = Table(title="Apply Desired State", show_header=True)
    table.add_column("Kind", style="cyan")
    table.add_column("Created", justify="right", style="green")
    table.add_column("Present", justify="right")
    table.add_column("Skipped", justify="right", style="yellow")

    for entry in report.kinds.values():
        table.add_row(
            entry.kind.value,
            str(len(entry.created)),
            str(len(entry.present)),
            str(len(entry.skipped)),
        )
    return table
