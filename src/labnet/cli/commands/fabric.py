"""Fabric provisioning and restore commands."""

from typing import Annotated

import typer

from labnet.cli import client
from labnet.cli.formatters.fabric import (
    format_apply_report,
    format_baseline_summary,
    format_restore_report,
)
from labnet.cli.output import (
    console,
    is_structured,
    print_error,
    print_structured,
    print_success,
    print_warning,
)
from labnet.config import config
from labnet.controller.exceptions import ControllerError
from labnet.fabric.exceptions import FabricError
from labnet.fabric.workflow import WorkflowOptions, run
from labnet.models.record import ConfigurationRecord
from labnet.models.reports import ReconciliationReport
from labnet.network.exceptions import NetworkError
from labnet.network.planner import plan_from_record

app = typer.Typer(help="Provision and restore the SDN fabric")

EnvFileOption = Annotated[
    str | None,
    typer.Option("--env-file", "-e", help="Configuration record (default: config)"),
]
StrictOption = Annotated[
    bool,
    typer.Option("--strict", help="Exit 1 if any deletion or alignment failed"),
]


def _record(env_file: str | None) -> ConfigurationRecord:
    try:
        return client.load_record(env_file)
    except FileNotFoundError as e:
        print_error(f"Configuration record not found: {e.filename}")
        raise typer.Exit(1)


def _report_restore(report: ReconciliationReport, strict: bool) -> None:
    if not is_structured():
        console.print(format_restore_report(report))
    if report.has_failures:
        print_warning(
            "Restore finished with failures: "
            f"{report.failed_count} failed deletions, "
            f"{report.read_failed_count} failed reads, "
            f"{report.alignment_failed_count} failed alignments"
        )
        if strict:
            raise typer.Exit(1)


@app.command("apply")
def fabric_apply(
    env_file: EnvFileOption = None,
    restore_only: Annotated[
        bool,
        typer.Option("--restore-only", help="Restore the baseline, create nothing"),
    ] = False,
    strict: StrictOption = False,
):
    """
    Provision the fabric described by the configuration record.

    The first run captures a baseline. Later runs restore it before applying,
    so objects from earlier layouts are cleaned up.
    """
    record = _record(env_file)
    try:
        plan = plan_from_record(record)
    except NetworkError as e:
        print_error(str(e))
        raise typer.Exit(1)

    options = WorkflowOptions(
        interfaces_file=config.SDN_INTERFACES_FILE if config.PERSIST_POOL_ROUTE else "",
        reload_command=config.RELOAD_COMMAND,
        env_file=env_file or config.ENV_FILE,
    )
    engine = client.get_engine(record)
    try:
        with engine.store:
            result = run(engine, plan, restore_only=restore_only, options=options)
    except (FabricError, ControllerError) as e:
        print_error(str(e))
        raise typer.Exit(1)

    if is_structured():
        print_structured(
            {
                "had_baseline": result.had_baseline,
                "captured": result.captured.summary() if result.captured else None,
                "restore": result.restore,
                "apply": result.apply,
                "route_persisted": result.route_persisted,
            }
        )
    elif result.captured is not None:
        console.print(format_baseline_summary(result.captured))

    if result.stopped:
        print_warning("No earlier baseline to restore; captured one for next time")
        return
    if result.restore is not None:
        _report_restore(result.restore, strict and result.apply is None)
    if result.apply is not None:
        if not is_structured():
            console.print(format_apply_report(result.apply))
        print_success(
            f"Fabric applied: {result.apply.created_count} created, "
            f"{result.apply.skipped_count} skipped"
        )
        if strict and result.restore is not None and result.restore.has_failures:
            raise typer.Exit(1)


@app.command("restore")
def fabric_restore(env_file: EnvFileOption = None, strict: StrictOption = False):
    """Delete everything created since the baseline was captured."""
    engine = client.get_engine(_record(env_file))
    try:
        with engine.store:
            report = engine.restore_to_baseline()
    except (FabricError, ControllerError) as e:
        print_error(str(e))
        raise typer.Exit(1)

    if is_structured():
        print_structured(report)
    _report_restore(report, strict)
