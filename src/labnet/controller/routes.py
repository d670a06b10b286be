"""
Kernel routing table access through pyroute2.

IPRouteClient reads and edits the main IPv4 routing table, and exposes the
interface address and neighbor tables for network discovery.
persist_route_in_interfaces() makes the VPN pool return route survive
reboots by adding post-up/pre-down hooks to the transit VNet's stanza in the
SDN interfaces file.
"""

from __future__ import annotations

import os
import socket
import subprocess

from pyroute2.netlink.exceptions import NetlinkError

from labnet.controller.base import Route
from labnet.controller.exceptions import RouteError
from labnet.utils.logger import get_logger

logger = get_logger(__name__)

MAIN_TABLE = 254

# NUD_* neighbor states from linux/neighbour.h
NEIGHBOR_STATES = {
    0x01: "INCOMPLETE",
    0x02: "REACHABLE",
    0x04: "STALE",
    0x08: "DELAY",
    0x10: "PROBE",
    0x20: "FAILED",
    0x40: "NOARP",
    0x80: "PERMANENT",
}


class IPRouteClient:
    """RouteClient on top of a lazily opened pyroute2 IPRoute socket."""

    def __init__(self):
        self._ipr = None

    def _get_ipr(self):
        """Get or create IPRoute instance."""
        if self._ipr is None:
            from pyroute2 import IPRoute

            self._ipr = IPRoute()
        return self._ipr

    def close(self) -> None:
        """Close the IPRoute connection."""
        if self._ipr is not None:
            self._ipr.close()
            self._ipr = None

    def _link_names(self) -> dict[int, str]:
        return {
            link["index"]: link.get_attr("IFLA_IFNAME")
            for link in self._get_ipr().get_links()
        }

    def _link_index(self, name: str) -> int:
        for index, ifname in self._link_names().items():
            if ifname == name:
                return index
        raise RouteError(f"Interface {name} not found")

    # -------------------------------------------------------------------------
    # Routes
    # -------------------------------------------------------------------------

    def list_routes(self) -> list[Route]:
        try:
            ipr = self._get_ipr()
            names = self._link_names()
            raw = list(ipr.get_routes(family=socket.AF_INET, table=MAIN_TABLE))
        except NetlinkError as e:
            raise RouteError(f"Cannot read routing table: {e}")

        routes = []
        for msg in raw:
            dst = msg.get_attr("RTA_DST")
            dst_len = msg["dst_len"]
            destination = f"{dst}/{dst_len}" if dst else "default"
            oif = msg.get_attr("RTA_OIF")
            routes.append(
                Route(
                    destination=destination,
                    via=msg.get_attr("RTA_GATEWAY"),
                    device=names.get(oif) if oif is not None else None,
                )
            )
        return routes

    def add_route(self, destination: str, via: str, device: str | None = None) -> None:
        kwargs = {"dst": destination, "gateway": via}
        if device:
            kwargs["oif"] = self._link_index(device)
        try:
            self._get_ipr().route("add", **kwargs)
        except NetlinkError as e:
            raise RouteError(
                f"Cannot add route {destination} via {via}: {e}", destination
            )
        logger.info(f"Added route {Route(destination, via, device)}")

    def delete_route(
        self, destination: str, via: str | None = None, device: str | None = None
    ) -> None:
        kwargs = {"dst": destination}
        if via:
            kwargs["gateway"] = via
        if device:
            kwargs["oif"] = self._link_index(device)
        try:
            self._get_ipr().route("del", **kwargs)
        except NetlinkError as e:
            raise RouteError(f"Cannot delete route {destination}: {e}", destination)
        logger.info(f"Deleted route {destination}")

    # -------------------------------------------------------------------------
    # Discovery tables
    # -------------------------------------------------------------------------

    def list_addresses(self) -> list[str]:
        try:
            addrs = list(self._get_ipr().get_addr(family=socket.AF_INET))
        except NetlinkError as e:
            raise RouteError(f"Cannot read interface addresses: {e}")
        return [f"{a.get_attr('IFA_ADDRESS')}/{a['prefixlen']}" for a in addrs]

    def list_neighbors(self) -> list[dict]:
        try:
            neighbors = list(self._get_ipr().get_neighbours(family=socket.AF_INET))
        except NetlinkError as e:
            raise RouteError(f"Cannot read neighbor table: {e}")
        return [
            {
                "address": n.get_attr("NDA_DST"),
                "state": NEIGHBOR_STATES.get(n["state"], str(n["state"])),
            }
            for n in neighbors
        ]


# =============================================================================
# Route persistence
# =============================================================================


def _hook_lines(destination: str, via: str, device: str) -> list[str]:
    return [
        f"        post-up ip route add {destination} via {via} dev {device} || true",
        f"        pre-down ip route del {destination} via {via} dev {device} || true",
    ]


def persist_route_in_interfaces(
    path: str,
    destination: str,
    via: str,
    device: str,
    reload_command: list[str] | None = None,
) -> bool:
    """
    Add post-up/pre-down route hooks to an interface stanza.

    The hooks are appended after the last indented line of `iface <device>`.
    Nothing is written when the hook is already present.

    Returns:
        True if the file was changed.

    Raises:
        RouteError: If the file is missing, has no stanza for the device,
            or the reload command fails.
    """
    if not os.path.isfile(path):
        raise RouteError(f"Interfaces file {path} not found", destination)

    with open(path, encoding="utf-8") as f:
        lines = f.read().splitlines()

    marker = f"up ip route add {destination} via {via}"
    if any(marker in line for line in lines):
        logger.info(f"Route persistence already configured in {path}")
        return False

    output: list[str] = []
    in_stanza = False
    inserted = False
    for line in lines:
        if in_stanza and (not line or not line[0].isspace()):
            output.extend(_hook_lines(destination, via, device))
            in_stanza = False
            inserted = True
        if line.split()[:2] == ["iface", device]:
            in_stanza = True
        output.append(line)
    if in_stanza:
        output.extend(_hook_lines(destination, via, device))
        inserted = True

    if not inserted:
        raise RouteError(f"No 'iface {device}' stanza in {path}", destination)

    tmp_path = f"{path}.tmp"
    with open(tmp_path, "w", encoding="utf-8") as f:
        f.write("\n".join(output) + "\n")
    os.replace(tmp_path, path)
    logger.info(f"Added route persistence for {destination} via {via} to {path}")

    if reload_command:
        try:
            subprocess.run(reload_command, check=True, capture_output=True)
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            raise RouteError(f"Failed to reload interfaces: {e}", destination)
    return True
