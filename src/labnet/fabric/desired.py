"""
Desired fabric state derived from an address plan.

Layout:
    zones       vpndmz, devpj01..devpjNN        (simple, pve IPAM)
    vnets       vpndmzvn -> vpndmz, vnetpjNN -> devpjNN
    subnets     DMZ (gateway = first host), each project (gateway = last host)
    ip sets     devpjs, mainlan, vpn_guest_pool, all_private_ip
    host rules  forward isolation, DNS, intra-vnet, disabled ICMP helpers
    route       VPN pool via the VPN appliance's DMZ address

Host rules are listed in creation order. The controller inserts each new
rule at the top, so the isolation DROP created first ends up last.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from labnet.network.cidr import is_private
from labnet.network.planner import AddressPlan

TRANSIT_ZONE = "vpndmz"
TRANSIT_VNET = "vpndmzvn"

IPSET_PROJECTS = "devpjs"
IPSET_SITE_LAN = "mainlan"
IPSET_VPN_POOL = "vpn_guest_pool"
IPSET_ALL_PRIVATE = "all_private_ip"

ALL_PRIVATE_ENTRIES = (
    ("10.0.0.0/8", "Class A private"),
    ("172.16.0.0/12", "Class B private"),
    ("192.168.0.0/16", "Class C private"),
    ("127.0.0.0/8", "Loopback"),
)

# Comments double as lookup keys for enabling the ICMP rules later
ICMP_RULE_COMMENTS = (
    "ICMP_RULE1_PRTN_VPNDMZ_GW",
    "ICMP_RULE2_PRTN_DEVPJS",
    "ICMP_RULE3_MAINLAN_ANY",
)


def project_zone(index: int) -> str:
    return f"devpj{index:02d}"


def project_vnet(index: int) -> str:
    return f"vnetpj{index:02d}"


# =============================================================================
# Specs
# =============================================================================


@dataclass(frozen=True)
class ZoneSpec:
    zone: str
    type: str = "simple"
    ipam: str = "pve"


@dataclass(frozen=True)
class NetworkSpec:
    vnet: str
    zone: str


@dataclass(frozen=True)
class SubnetSpec:
    vnet: str
    cidr: str
    gateway: str


@dataclass(frozen=True)
class IPSetSpec:
    name: str
    comment: str
    entries: tuple[tuple[str, str], ...] = ()


@dataclass(frozen=True)
class RouteSpec:
    destination: str
    via: str
    device: str


@dataclass(frozen=True)
class DesiredState:
    """Everything apply_desired_state() should make exist."""

    zones: tuple[ZoneSpec, ...] = ()
    networks: tuple[NetworkSpec, ...] = ()
    subnets: tuple[SubnetSpec, ...] = ()
    ipsets: tuple[IPSetSpec, ...] = ()
    firewall_rules: tuple[dict, ...] = ()
    firewall_options: dict = field(default_factory=dict)
    host_firewall_options: dict = field(default_factory=dict)
    pool_route: RouteSpec | None = None


# =============================================================================
# Builders
# =============================================================================


def _forward_rule(action: str, source: str, dest: str, comment: str, **extra) -> dict:
    rule = {
        "action": action,
        "type": "forward",
        "source": source,
        "dest": dest,
        "enable": 1,
        "comment": comment,
    }
    rule.update(extra)
    return rule


def _icmp_rule(source: str, dest: str | None, comment: str) -> dict:
    rule = {
        "action": "ACCEPT",
        "type": "in",
        "source": source,
        "proto": "icmp",
        "enable": 0,
        "comment": comment,
    }
    if dest:
        rule["dest"] = dest
    return rule


def build_firewall_rules(plan: AddressPlan) -> list[dict]:
    projects = f"+dc/{IPSET_PROJECTS}"
    rules = [
        _forward_rule(
            "DROP",
            projects,
            f"+dc/{IPSET_ALL_PRIVATE}",
            "Drop devpjs to all private networks",
        )
    ]

    # DNS exceptions only make sense for servers behind the DROP above
    for dns in plan.dns_servers:
        if not is_private(dns):
            continue
        for proto in ("udp", "tcp"):
            rules.append(
                _forward_rule(
                    "ACCEPT",
                    projects,
                    dns,
                    f"Allow DNS {proto.upper()} to {dns}",
                    dport=53,
                    proto=proto,
                )
            )

    for segment in reversed(plan.segments()):
        members = f"+sdn/{project_vnet(segment.index)}-all"
        rules.append(
            _forward_rule(
                "ACCEPT", members, members, f"Allow intra-vnet PJ{segment.tag}"
            )
        )

    rules.append(
        _icmp_rule(
            f"+sdn/{TRANSIT_VNET}-no-gateway",
            f"+sdn/{TRANSIT_VNET}-gateway",
            ICMP_RULE_COMMENTS[0],
        )
    )
    rules.append(
        _icmp_rule(f"+sdn/{TRANSIT_VNET}-no-gateway", projects, ICMP_RULE_COMMENTS[1])
    )
    rules.append(_icmp_rule(f"+dc/{IPSET_SITE_LAN}", None, ICMP_RULE_COMMENTS[2]))
    return rules


def build_desired_state(plan: AddressPlan) -> DesiredState:
    """Translate an address plan into controller objects."""
    segments = plan.segments()

    zones = [ZoneSpec(TRANSIT_ZONE)] + [
        ZoneSpec(project_zone(s.index)) for s in segments
    ]
    networks = [NetworkSpec(TRANSIT_VNET, TRANSIT_ZONE)] + [
        NetworkSpec(project_vnet(s.index), project_zone(s.index)) for s in segments
    ]
    subnets = [SubnetSpec(TRANSIT_VNET, str(plan.vpn_dmz), plan.vpn_dmz_gateway)] + [
        SubnetSpec(project_vnet(s.index), str(s.block), s.gateway) for s in segments
    ]

    ipsets = [
        IPSetSpec(
            IPSET_PROJECTS,
            "All development project networks",
            tuple((str(s.block), f"Project {s.tag} network") for s in segments),
        ),
        IPSetSpec(
            IPSET_SITE_LAN, "Main LAN network", ((str(plan.site_lan), "MainLAN"),)
        ),
        IPSetSpec(
            IPSET_VPN_POOL,
            "VPN client IP pool",
            ((str(plan.vpn_pool.pool), "VPN client pool"),),
        ),
        IPSetSpec(
            IPSET_ALL_PRIVATE,
            "All private IP address ranges (RFC1918 + loopback)",
            ALL_PRIVATE_ENTRIES,
        ),
    ]

    pool_route = None
    if plan.vpn_egress:
        pool_route = RouteSpec(str(plan.vpn_pool.pool), plan.vpn_egress, TRANSIT_VNET)

    return DesiredState(
        zones=tuple(zones),
        networks=tuple(networks),
        subnets=tuple(subnets),
        ipsets=tuple(ipsets),
        firewall_rules=tuple(build_firewall_rules(plan)),
        firewall_options={"enable": 1},
        host_firewall_options={"enable": 1, "nftables": 1},
        pool_route=pool_route,
    )
