"""Formatters for address math and planning output."""

from rich.table import Table

from labnet.network.allocator import AllocationPlan, ExistingNetworkSet, VPNPoolSplit
from labnet.network.cidr import address_range, first_host, last_host
from labnet.network.planner import AddressPlan, NetworkProposal


def format_allocation_table(plan: AllocationPlan, title: str = "") -> Table:
    table = Table(title=title or f"{plan.parent} / {len(plan)}", show_header=True)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Key", style="cyan")
    table.add_column("Block", style="green")
    table.add_column("First host")
    table.add_column("Last host")

    for allocation in plan:
        table.add_row(
            str(allocation.index),
            allocation.key,
            str(allocation.block),
            first_host(allocation.block),
            last_host(allocation.block),
        )
    return table


def format_pool_split(split: VPNPoolSplit) -> list[Table]:
    return [
        format_allocation_table(
            split.per_tenant_a, f"OpenVPN {split.protocol_a} per tenant"
        ),
        format_allocation_table(
            split.per_tenant_b, f"WireGuard {split.protocol_b} per tenant"
        ),
    ]


def format_network_list(networks: ExistingNetworkSet) -> Table:
    table = Table(title=f"Existing Networks ({len(networks)})", show_header=True)
    table.add_column("Network", style="cyan")
    table.add_column("Range")
    table.add_column("Addresses", justify="right")

    for block in networks:
        table.add_row(str(block), str(address_range(block)), str(block.size))
    return table


def format_address_plan(plan: AddressPlan) -> Table:
    table = Table(title="Address Plan", show_header=True)
    table.add_column("Segment", style="cyan")
    table.add_column("Network", style="green")
    table.add_column("Gateway")

    table.add_row("Main LAN", str(plan.site_lan), plan.site_gateway)
    table.add_row("VPN DMZ", str(plan.vpn_dmz), plan.vpn_dmz_gateway)
    table.add_row("VPN pool", str(plan.vpn_pool.pool), plan.vpn_egress or "-")
    table.add_row("  OpenVPN", str(plan.vpn_pool.protocol_a), "")
    table.add_row("  WireGuard", str(plan.vpn_pool.protocol_b), "")
    table.add_row("Projects", str(plan.project_block), "")
    for segment in plan.segments():
        table.add_row(f"  PJ{segment.tag}", str(segment.block), segment.gateway)
    return table


def format_proposal(proposal: NetworkProposal) -> Table:
    table = Table(title="Proposed Networks", show_header=True)
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")
    for key, value in proposal.to_env().items():
        table.add_row(key, value)
    return table
