"""Baseline commands."""

from typing import Annotated

import typer

from labnet.cli import client
from labnet.cli.formatters.fabric import format_baseline_summary
from labnet.cli.output import (
    console,
    is_structured,
    print_error,
    print_structured,
    print_success,
    print_warning,
)
from labnet.controller.exceptions import ControllerError
from labnet.fabric.exceptions import FabricError

app = typer.Typer(help="Pre-provisioning baseline")


@app.command("status")
def baseline_status():
    """Show whether a baseline has been captured."""
    with client.get_store() as store:
        marker = store.marker()
        if is_structured():
            if marker is None:
                print_structured({"captured": False, "path": store.db_path})
            else:
                print_structured({"captured": True, **marker.to_dict()})
            return
        if marker is None:
            console.print(f"[yellow]No baseline at {store.db_path}[/yellow]")
            return
        console.print(
            f"[green]Baseline captured[/green] at {marker.completed_at} "
            f"on {marker.node or '-'} ({store.db_path})"
        )
        failures = marker.get_read_failures()
        if failures:
            print_warning(f"Collections not captured: {', '.join(failures)}")


@app.command("capture")
def baseline_capture(
    env_file: Annotated[
        str | None, typer.Option("--env-file", "-e", help="Configuration record")
    ] = None,
):
    """Capture the current controller state as the baseline."""
    try:
        record = client.load_record(env_file)
    except FileNotFoundError as e:
        print_error(f"Configuration record not found: {e.filename}")
        raise typer.Exit(1)

    engine = client.get_engine(record)
    try:
        with engine.store:
            baseline = engine.capture_baseline()
    except (FabricError, ControllerError) as e:
        print_error(str(e))
        raise typer.Exit(1)

    if is_structured():
        print_structured(baseline.summary())
        return
    console.print(format_baseline_summary(baseline))
    print_success(f"Baseline saved to {engine.store.db_path}")


@app.command("show")
def baseline_show(
    full: Annotated[
        bool, typer.Option("--full", help="Dump every collection (json/yaml)")
    ] = False,
):
    """Show the captured baseline."""
    try:
        with client.get_store() as store:
            baseline = store.load()
    except FabricError as e:
        print_error(str(e))
        raise typer.Exit(1)

    if is_structured():
        print_structured(baseline if full else baseline.summary())
        return
    console.print(format_baseline_summary(baseline))


@app.command("reset")
def baseline_reset(
    yes: Annotated[
        bool, typer.Option("--yes", "-y", help="Confirm removal of the baseline")
    ] = False,
):
    """Remove the captured baseline so the next run captures a new one."""
    if not yes:
        print_error("Refusing to remove the baseline without --yes")
        raise typer.Exit(1)

    with client.get_store() as store:
        if store.reset():
            print_success(f"Baseline at {store.db_path} removed")
        else:
            console.print(f"[yellow]No baseline at {store.db_path}[/yellow]")
