"""
LabNet CLI entry point.

Usage:
    labnet [OPTIONS] COMMAND [ARGS]...

Commands:
    net       Address math and network discovery
    plan      Address plan
    baseline  Pre-provisioning baseline
    fabric    Provision and restore the SDN fabric
    config    Configuration
"""

from typing import Annotated

import typer

from labnet.cli.commands import baseline, config_cmd, fabric, net, plan
from labnet.cli.output import console
from labnet.config import config
from labnet.models.enums import LogLevel, OutputFormat
from labnet.utils.logger import configure_logging

app = typer.Typer(
    name="labnet",
    help="SDN lab network provisioning for Proxmox VE",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Register command groups
app.add_typer(net.app, name="net", help="Address math and network discovery")
app.add_typer(plan.app, name="plan", help="Address plan")
app.add_typer(baseline.app, name="baseline", help="Pre-provisioning baseline")
app.add_typer(fabric.app, name="fabric", help="Provision and restore the SDN fabric")
app.add_typer(config_cmd.app, name="config", help="Configuration")


@app.callback()
def main(
    host: Annotated[
        str | None,
        typer.Option("--host", "-H", help="Controller API host"),
    ] = None,
    port: Annotated[
        int | None,
        typer.Option("--port", "-P", help="Controller API port"),
    ] = None,
    token_id: Annotated[
        str | None,
        typer.Option("--token-id", help="API token id, e.g. root@pam!labnet"),
    ] = None,
    token_secret: Annotated[
        str | None,
        typer.Option(
            "--token-secret", help="API token secret", envvar="LABNET_PVE_TOKEN_SECRET"
        ),
    ] = None,
    node: Annotated[
        str | None,
        typer.Option("--node", "-n", help="Node whose host firewall is managed"),
    ] = None,
    baseline_db: Annotated[
        str | None,
        typer.Option("--db", help="Baseline database path"),
    ] = None,
    env_file: Annotated[
        str | None,
        typer.Option("--env-file", help="Network configuration record"),
    ] = None,
    log_level: Annotated[
        LogLevel | None,
        typer.Option("--log-level", "-l", help="Logging verbosity"),
    ] = None,
    log_file: Annotated[
        str | None,
        typer.Option("--log-file", help="Also write logs to this file"),
    ] = None,
    output_format: Annotated[
        OutputFormat | None,
        typer.Option("--format", "-f", help="Output format: table|json|yaml"),
    ] = None,
):
    """
    LabNet SDN lab network provisioning.

    Plan address space, capture a baseline, provision tenant networks and
    restore the controller to its baseline.
    """
    config.load_env_overrides()

    if host:
        config.PVE_HOST = host
    if port:
        config.PVE_PORT = port
    if token_id:
        config.PVE_TOKEN_ID = token_id
    if token_secret:
        config.PVE_TOKEN_SECRET = token_secret
    if node:
        config.NODE_NAME = node
    if baseline_db:
        config.BASELINE_DB = baseline_db
    if env_file:
        config.ENV_FILE = env_file
    if log_level:
        config.LOG_LEVEL = log_level
    if log_file:
        config.LOG_FILE = log_file
    if output_format:
        config.OUTPUT_FORMAT = output_format

    configure_logging(config.LOG_LEVEL, config.LOG_FILE)


@app.command("version")
def version():
    """Show version information."""
    from labnet import __version__

    console.print(f"LabNet v{__version__}")


def run():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run()
