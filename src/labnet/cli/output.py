"""
Console output helpers.

Tables go through rich; structured output (--format json|yaml) goes to stdout
as plain text so it can be piped.
"""

import json
from typing import Any

import yaml
from pydantic import BaseModel
from rich.console import Console

from labnet.config import config
from labnet.models.enums import OutputFormat

console = Console()
err_console = Console(stderr=True)


def print_error(message: str) -> None:
    err_console.print(f"[bold red]Error:[/bold red] {message}")


def print_warning(message: str) -> None:
    err_console.print(f"[yellow]Warning:[/yellow] {message}")


def print_success(message: str) -> None:
    console.print(f"[green]✓[/green] {message}")


def to_plain(data: Any) -> Any:
    """Convert models and nested containers to JSON-compatible values."""
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json")
    if isinstance(data, dict):
        return {str(k): to_plain(v) for k, v in data.items()}
    if isinstance(data, (list, tuple)):
        return [to_plain(v) for v in data]
    return data


def is_structured() -> bool:
    return config.OUTPUT_FORMAT != OutputFormat.TABLE


def print_structured(data: Any) -> None:
    """Print data as JSON or YAML according to the selected output format."""
    plain = to_plain(data)
    if config.OUTPUT_FORMAT == OutputFormat.YAML:
        console.out(yaml.safe_dump(plain, sort_keys=False).rstrip())
    else:
        console.out(json.dumps(plain, indent=2))
