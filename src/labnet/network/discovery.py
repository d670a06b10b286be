"""
Sources of networks already in use on the host and the controller.

Each source returns raw CIDR strings; normalization (network address, dedupe,
subset removal, ordering) happens in normalize_networks(). A source that
cannot read its input logs a warning and returns an empty list, so the
combined result is a lower bound on what is actually in use.

Known blind spots:
- addresses configured inside a stopped guest's OS
- devices that are not in the neighbor cache
"""

from __future__ import annotations

import os
import re
from typing import TYPE_CHECKING, Protocol

from labnet.network.cidr import is_private, validate_ip
from labnet.utils.logger import get_logger

if TYPE_CHECKING:
    from labnet.controller.base import ControllerClient, RouteClient

logger = get_logger(__name__)

_INTERFACES_ADDRESS_RE = re.compile(r"address\s+(\d+\.\d+\.\d+\.\d+/\d+)")
_ANY_CIDR_RE = re.compile(r"(\d+\.\d+\.\d+\.\d+/\d+)")
_GUEST_IP_RE = re.compile(r"ip=(\d+\.\d+\.\d+\.\d+(/\d+)?)")

# Neighbor states that do not prove the address is in use
SKIPPED_NEIGHBOR_STATES = frozenset({"INCOMPLETE", "FAILED"})


class DiscoverySource(Protocol):
    """Anything that can list CIDR strings of networks in use."""

    name: str

    def collect(self) -> list[str]: ...


# =============================================================================
# File-Based Sources
# =============================================================================


def _read_lines(path: str) -> list[str]:
    if not os.path.isfile(path):
        logger.debug(f"Skipping missing file: {path}")
        return []
    try:
        with open(path, encoding="utf-8") as f:
            return f.readlines()
    except OSError as e:
        logger.warning(f"Cannot read {path}: {e}")
        return []


class StaticConfigSource:
    """`address a.b.c.d/p` lines from static interface configuration."""

    name = "static-config"

    def __init__(self, paths: list[str]):
        self.paths = paths

    def collect(self) -> list[str]:
        found = []
        for path in self.paths:
            for line in _read_lines(path):
                match = _INTERFACES_ADDRESS_RE.search(line)
                if match:
                    found.append(match.group(1))
        return found


class SDNConfigFileSource:
    """Any CIDR mentioned in the controller's on-disk SDN definitions."""

    name = "sdn-config"

    def __init__(self, paths: list[str]):
        self.paths = paths

    def collect(self) -> list[str]:
        found = []
        for path in self.paths:
            for line in _read_lines(path):
                match = _ANY_CIDR_RE.search(line)
                if match:
                    found.append(match.group(1))
        return found


# =============================================================================
# Controller Sources
# =============================================================================


class ControllerDefinitionSource:
    """Subnets defined on every SDN network, read through the controller API."""

    name = "sdn-controller"

    def __init__(self, controller: ControllerClient):
        self.controller = controller

    def collect(self) -> list[str]:
        found = []
        for network in self.controller.list_networks():
            vnet = network.get("vnet")
            if not vnet:
                continue
            for subnet in self.controller.list_subnets(vnet):
                cidr = subnet.get("cidr")
                if cidr:
                    found.append(cidr)
        return found


class GuestMetadataSource:
    """
    Static addresses from guest configuration (cloud-init ipconfig, LXC net).

    Only `ip=a.b.c.d[/p]` values are recognized; a bare address counts as /32.
    A guest whose config cannot be read is skipped.
    """

    name = "guest-metadata"

    def __init__(self, controller: ControllerClient):
        self.controller = controller

    def collect(self) -> list[str]:
        found = []
        for guest in self.controller.list_guests():
            node = guest.get("node")
            kind = guest.get("type")
            vmid = guest.get("vmid")
            if not node or kind not in ("qemu", "lxc") or vmid is None:
                continue

            try:
                guest_config = self.controller.get_guest_config(node, kind, vmid)
            except Exception as e:
                logger.warning(f"Cannot read config of {kind}/{vmid} on {node}: {e}")
                continue

            for value in guest_config.values():
                if not isinstance(value, str):
                    continue
                match = _GUEST_IP_RE.search(value)
                if not match:
                    continue
                address = match.group(1)
                found.append(address if match.group(2) else f"{address}/32")
        return found


# =============================================================================
# Kernel Sources
# =============================================================================


class KernelRouteSource:
    """Destinations of the kernel routing table, excluding the default route."""

    name = "kernel-routes"

    def __init__(self, routes: RouteClient):
        self.routes = routes

    def collect(self) -> list[str]:
        return [
            route.destination
            for route in self.routes.list_routes()
            if route.destination not in ("default", "0.0.0.0/0")
        ]


class InterfaceAddressSource:
    """Addresses assigned to local interfaces, with their prefix."""

    name = "interface-addresses"

    def __init__(self, routes: RouteClient):
        self.routes = routes

    def collect(self) -> list[str]:
        return list(self.routes.list_addresses())


class NeighborSource:
    """Reachable private neighbors as /32 entries."""

    name = "neighbors"

    def __init__(self, routes: RouteClient):
        self.routes = routes

    def collect(self) -> list[str]:
        found = []
        for neighbor in self.routes.list_neighbors():
            address = neighbor.get("address", "")
            if neighbor.get("state") in SKIPPED_NEIGHBOR_STATES:
                continue
            if validate_ip(address) and is_private(address):
                found.append(f"{address}/32")
        return found


def default_sources(
    static_files: list[str],
    sdn_files: list[str],
    controller: ControllerClient | None = None,
    routes: RouteClient | None = None,
) -> list[DiscoverySource]:
    """
    Build the discovery chain in its canonical order.

    Controller definitions come from the API when a controller is given and
    from the on-disk SDN files otherwise.
    """
    sources: list[DiscoverySource] = [StaticConfigSource(static_files)]
    if controller is not None:
        sources.append(ControllerDefinitionSource(controller))
    else:
        sources.append(SDNConfigFileSource(sdn_files))
    if routes is not None:
        sources.extend(
            [
                KernelRouteSource(routes),
                InterfaceAddressSource(routes),
                NeighborSource(routes),
            ]
        )
    if controller is not None:
        sources.append(GuestMetadataSource(controller))
    return sources
