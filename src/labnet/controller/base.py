"""
Contracts for the systems LabNet talks to.

ControllerClient covers the SDN controller (zones, VNets, subnets, firewall
IP sets, options and host rules). RouteClient covers the host's kernel
routing table plus the address and neighbor tables used by discovery.

Collection reads return plain dicts shaped like the controller's JSON. Read
failures raise ControllerReadError / RouteError, write failures raise
ControllerWriteError / RouteError.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class Route:
    """
    One kernel route.

    Attributes:
        destination: CIDR, or "default"
        via: Next-hop gateway, None for directly connected routes
        device: Outgoing interface name, if known
    """

    destination: str
    via: str | None = None
    device: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"destination": self.destination, "via": self.via, "device": self.device}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Route:
        return cls(
            destination=data["destination"],
            via=data.get("via"),
            device=data.get("device"),
        )

    def __str__(self) -> str:
        text = self.destination
        if self.via:
            text += f" via {self.via}"
        if self.device:
            text += f" dev {self.device}"
        return text


class ControllerClient(Protocol):
    """SDN controller operations used by planning and reconciliation."""

    # Reads
    def list_zones(self) -> list[dict]: ...

    def list_networks(self) -> list[dict]: ...

    def list_subnets(self, network: str) -> list[dict]: ...

    def list_ipsets(self) -> list[dict]: ...

    def list_ipset_entries(self, name: str) -> list[dict]: ...

    def list_firewall_rules(self) -> list[dict]: ...

    def get_firewall_options(self) -> dict: ...

    def get_host_firewall_options(self) -> dict: ...

    def list_guests(self) -> list[dict]: ...

    def get_guest_config(self, node: str, kind: str, vmid: int | str) -> dict: ...

    # Creates
    def create_zone(self, zone: str, **params: Any) -> None: ...

    def create_network(self, vnet: str, zone: str, **params: Any) -> None: ...

    def create_subnet(self, network: str, cidr: str, **params: Any) -> None: ...

    def create_ipset(self, name: str, comment: str | None = None) -> None: ...

    def create_ipset_entry(
        self, name: str, cidr: str, comment: str | None = None
    ) -> None: ...

    def create_firewall_rule(self, rule: dict) -> None: ...

    # Deletes
    def delete_zone(self, zone: str) -> None: ...

    def delete_network(self, vnet: str) -> None: ...

    def delete_subnet(self, network: str, subnet: str) -> None: ...

    def delete_ipset(self, name: str) -> None: ...

    def delete_ipset_entry(self, name: str, cidr: str) -> None: ...

    def delete_firewall_rule_at(self, pos: int) -> None: ...

    # Options
    def set_firewall_options(self, **options: Any) -> None: ...

    def set_host_firewall_options(self, **options: Any) -> None: ...

    def apply_pending_changes(self) -> None: ...


class RouteClient(Protocol):
    """Kernel routing table plus the local tables discovery reads."""

    def list_routes(self) -> list[Route]: ...

    def add_route(
        self, destination: str, via: str, device: str | None = None
    ) -> None: ...

    def delete_route(
        self, destination: str, via: str | None = None, device: str | None = None
    ) -> None: ...

    def list_addresses(self) -> list[str]: ...

    def list_neighbors(self) -> list[dict]: ...
