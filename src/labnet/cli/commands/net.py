"""Address math and network discovery commands."""

from typing import Annotated

import typer

from labnet.cli import client
from labnet.cli.formatters.network import (
    format_allocation_table,
    format_network_list,
    format_pool_split,
    format_proposal,
)
from labnet.cli.output import (
    console,
    is_structured,
    print_error,
    print_structured,
    print_success,
)
from labnet.config import config
from labnet.models.enums import AddressClass
from labnet.models.record import (
    ALLOWED_TENANT_COUNTS,
    DEFAULT_TENANT_COUNT,
    upsert_env_file,
)
from labnet.network.allocator import split_vpn_pool, subdivide
from labnet.network.cidr import address_range
from labnet.network.exceptions import NetworkError
from labnet.network.planner import propose_networks

app = typer.Typer(help="Address math and network discovery")


@app.command("subdivide")
def subdivide_cmd(
    parent: Annotated[str, typer.Argument(help="Parent CIDR, e.g. 172.16.16.0/21")],
    count: Annotated[int, typer.Argument(help="Number of children (power of two)")],
    role: Annotated[str, typer.Option("--role", "-r", help="Key prefix")] = "",
):
    """Split a block into equal children."""
    try:
        plan = subdivide(parent, count, role)
    except NetworkError as e:
        print_error(str(e))
        raise typer.Exit(1)

    if is_structured():
        print_structured(
            {
                "parent": str(plan.parent),
                "children": [
                    {"index": a.index, "key": a.key, "block": str(a.block)}
                    for a in plan
                ],
            }
        )
        return
    console.print(format_allocation_table(plan))


@app.command("split-pool")
def split_pool_cmd(
    pool: Annotated[str, typer.Argument(help="VPN client pool CIDR")],
    tenants: Annotated[int, typer.Argument(help="Number of tenants")],
):
    """Split a VPN client pool into OpenVPN and WireGuard halves."""
    try:
        split = split_vpn_pool(pool, tenants)
    except NetworkError as e:
        print_error(str(e))
        raise typer.Exit(1)

    if is_structured():
        print_structured(
            {
                "pool": str(split.pool),
                "ovpn": str(split.protocol_a),
                "wg": str(split.protocol_b),
                "ovpn_tenants": [str(b) for b in split.per_tenant_a.blocks],
                "wg_tenants": [str(b) for b in split.per_tenant_b.blocks],
            }
        )
        return
    for table in format_pool_split(split):
        console.print(table)


@app.command("discover")
def discover_cmd(
    local_only: Annotated[
        bool,
        typer.Option("--local-only", help="Only scan host files, skip API and kernel"),
    ] = False,
):
    """List networks already in use on this host and its controller."""
    networks = client.get_allocator(local_only).discover_existing_networks()

    if is_structured():
        print_structured(networks.as_strings())
        return
    if not len(networks):
        console.print("[yellow]No networks found.[/yellow]")
        return
    console.print(format_network_list(networks))


@app.command("find")
def find_cmd(
    prefix: Annotated[int, typer.Argument(help="Prefix length of the wanted block")],
    address_class: Annotated[
        AddressClass,
        typer.Option("--class", "-c", help="Private class to search"),
    ] = AddressClass.CLASS_C,
    local_only: Annotated[
        bool,
        typer.Option("--local-only", help="Only scan host files, skip API and kernel"),
    ] = False,
):
    """Find the lowest free block of a given size."""
    try:
        block = client.get_allocator(local_only).find_available_block(
            prefix, address_class
        )
    except NetworkError as e:
        print_error(str(e))
        raise typer.Exit(1)

    if is_structured():
        print_structured({"block": str(block), "range": str(address_range(block))})
        return
    console.print(f"[green]{block}[/green] ({address_range(block)})")


@app.command("propose")
def propose_cmd(
    tenants: Annotated[
        int, typer.Option("--tenants", "-n", help="Number of project networks")
    ] = DEFAULT_TENANT_COUNT,
    write: Annotated[
        bool, typer.Option("--write", "-w", help="Write the proposal to the env file")
    ] = False,
    local_only: Annotated[
        bool,
        typer.Option("--local-only", help="Only scan host files, skip API and kernel"),
    ] = False,
):
    """Propose free blocks for the VPN DMZ, VPN pool and projects."""
    if tenants not in ALLOWED_TENANT_COUNTS:
        allowed = ", ".join(map(str, ALLOWED_TENANT_COUNTS))
        print_error(f"Invalid tenant count {tenants}: must be one of {allowed}")
        raise typer.Exit(1)

    try:
        proposal = propose_networks(client.get_allocator(local_only), tenants)
    except NetworkError as e:
        print_error(str(e))
        raise typer.Exit(1)

    env = proposal.to_env()
    env["NUM_PJ"] = str(tenants)
    if is_structured():
        print_structured(env)
    else:
        console.print(format_proposal(proposal))

    if write:
        upsert_env_file(config.ENV_FILE, env)
        print_success(f"Proposal written to {config.ENV_FILE}")
