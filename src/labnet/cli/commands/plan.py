"""Address plan commands."""

from typing import Annotated

import typer

from labnet.cli import client
from labnet.cli.formatters.network import format_address_plan
from labnet.cli.output import console, is_structured, print_error, print_structured
from labnet.network.exceptions import NetworkError
from labnet.network.planner import AddressPlan, plan_from_record

app = typer.Typer(help="Address plan")

EnvFileOption = Annotated[
    str | None,
    typer.Option("--env-file", "-e", help="Configuration record (default: config)"),
]


def _load_plan(env_file: str | None, check_existing: bool = False) -> AddressPlan:
    try:
        record = client.load_record(env_file)
    except FileNotFoundError as e:
        print_error(f"Configuration record not found: {e.filename}")
        raise typer.Exit(1)

    existing = None
    if check_existing:
        existing = client.get_allocator().discover_existing_networks()

    try:
        return plan_from_record(record, existing)
    except NetworkError as e:
        print_error(str(e))
        raise typer.Exit(1)


@app.command("show")
def show_plan(
    env_file: EnvFileOption = None,
    check_existing: Annotated[
        bool,
        typer.Option(
            "--check-existing",
            help="Also reject blocks that overlap networks already in use",
        ),
    ] = False,
):
    """Validate the configuration record and show the address plan."""
    plan = _load_plan(env_file, check_existing)
    if is_structured():
        print_structured(plan.to_env())
        return
    console.print(format_address_plan(plan))


@app.command("render")
def render_plan(env_file: EnvFileOption = None):
    """Print the full derived key set as env lines."""
    plan = _load_plan(env_file)
    for key, value in plan.to_env().items():
        console.out(f"{key}={value}", highlight=False)
