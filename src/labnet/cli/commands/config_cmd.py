"""Config inspection commands."""

import os
from enum import Enum

import typer
from rich.table import Table

from labnet.cli.output import console, is_structured, print_structured
from labnet.config import config

app = typer.Typer(help="Configuration commands")

_SECRET_FIELDS = {"PVE_TOKEN_SECRET"}


def _render(name: str, value) -> str:
    if name in _SECRET_FIELDS and value:
        return "********"
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, list):
        return ":".join(value) if name.endswith("_FILES") else " ".join(value)
    return str(value)


@app.command("show")
def show_config():
    """Show current configuration."""
    values = {name: _render(name, value) for name, value in vars(config).items()}
    if is_structured():
        print_structured(values)
        return

    table = Table(title="Current Configuration", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    table.add_column("Source")
    for name, value in values.items():
        source = "env" if os.environ.get(f"LABNET_{name}") is not None else "default"
        table.add_row(name, value, source)
    console.print(table)


@app.command("env")
def show_env():
    """Print the configuration as LABNET_* variable assignments."""
    for name, value in vars(config).items():
        if name in _SECRET_FIELDS:
            continue
        console.out(f"LABNET_{name}={_render(name, value)}", highlight=False)
