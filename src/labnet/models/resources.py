"""
Controller resources as captured in a baseline, and their identities.

Objects are kept in the controller's own JSON shape (plain dicts) so a
baseline round-trips exactly what the API returned. Each kind has an
identity function used to diff live state against the baseline:

    zone          -> zone name
    network       -> vnet name
    subnet        -> subnet id (falls back to cidr)
    ipset         -> set name
    ipset entry   -> cidr
    firewall rule -> canonical JSON of the rule minus NON_IDENTITY_RULE_FIELDS
    route         -> "dest via gw dev if"
"""

import datetime
import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from labnet.controller.base import Route
from labnet.models.enums import ResourceKind

# Fields that change when a rule moves or the ruleset is edited, without
# the rule itself changing
NON_IDENTITY_RULE_FIELDS = frozenset({"pos", "digest"})

# Firewall option keys aligned on restore, with the value assumed when absent
FIREWALL_OPTION_KEYS = ("enable",)
HOST_FIREWALL_OPTION_KEYS = ("enable", "nftables")


# =============================================================================
# Identity Functions
# =============================================================================


def zone_identity(zone: dict) -> str:
    return str(zone.get("zone", ""))


def network_identity(network: dict) -> str:
    return str(network.get("vnet", ""))


def subnet_identity(subnet: dict) -> str:
    return str(subnet.get("subnet") or subnet.get("cidr", ""))


def ipset_identity(ipset: dict) -> str:
    return str(ipset.get("name", ""))


def ipset_entry_identity(entry: dict) -> str:
    return str(entry.get("cidr", ""))


def rule_identity(rule: dict) -> str:
    """
    Position-independent identity of a host firewall rule.

    Two rules with the same identity are interchangeable; rules are compared
    as a multiset since the controller allows exact duplicates.
    """
    stripped = {k: v for k, v in rule.items() if k not in NON_IDENTITY_RULE_FIELDS}
    return json.dumps(stripped, sort_keys=True, separators=(",", ":"), default=str)


def route_identity(route: dict | Route) -> str:
    if isinstance(route, dict):
        route = Route.from_dict(route)
    return str(route)


def option_value(options: dict, key: str, default: int = 0) -> int:
    """Read a 0/1 firewall option, treating a missing value as the default."""
    value = options.get(key)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


# =============================================================================
# Baseline
# =============================================================================


class Baseline(BaseModel):
    """
    Point-in-time copy of every tracked controller and kernel collection.

    Captured once before the first provisioning run and never modified
    afterwards. Collections whose read failed at capture time are stored
    empty and listed in read_failures.
    """

    model_config = ConfigDict(frozen=True)

    node: str = ""
    captured_at: datetime.datetime | None = None

    zones: list[dict[str, Any]] = Field(default_factory=list)
    networks: list[dict[str, Any]] = Field(default_factory=list)
    subnets: dict[str, list[dict[str, Any]]] = Field(
        default_factory=dict, description="Subnets keyed by vnet name"
    )
    ipsets: list[dict[str, Any]] = Field(default_factory=list)
    ipset_entries: dict[str, list[dict[str, Any]]] = Field(
        default_factory=dict, description="Entries keyed by IP set name"
    )
    firewall_options: dict[str, Any] = Field(default_factory=dict)
    host_firewall_options: dict[str, Any] = Field(default_factory=dict)
    firewall_rules: list[dict[str, Any]] = Field(default_factory=list)
    routes: list[dict[str, Any]] = Field(default_factory=list)
    pool_routes: list[dict[str, Any]] = Field(
        default_factory=list, description="Routes whose destination is the VPN pool"
    )

    read_failures: list[str] = Field(default_factory=list)

    def collection(self, kind: ResourceKind) -> Any:
        return getattr(self, kind.value)

    def summary(self) -> dict[str, int]:
        """Object counts per collection, for display."""
        return {
            ResourceKind.ZONE.value: len(self.zones),
            ResourceKind.NETWORK.value: len(self.networks),
            ResourceKind.SUBNET.value: sum(len(v) for v in self.subnets.values()),
            ResourceKind.IPSET.value: len(self.ipsets),
            ResourceKind.IPSET_ENTRY.value: sum(
                len(v) for v in self.ipset_entries.values()
            ),
            ResourceKind.FIREWALL_RULE.value: len(self.firewall_rules),
            ResourceKind.ROUTE.value: len(self.routes),
            ResourceKind.POOL_ROUTE.value: len(self.pool_routes),
        }
