"""
Clients for the SDN controller and the kernel routing table.

    from labnet.controller import ProxmoxControllerClient, IPRouteClient
"""

from labnet.controller.base import ControllerClient, Route, RouteClient
from labnet.controller.exceptions import (
    ControllerError,
    ControllerReadError,
    ControllerWriteError,
    RouteError,
)
from labnet.controller.proxmox import ProxmoxControllerClient
from labnet.controller.routes import IPRouteClient

__all__ = [
    # Contracts
    "ControllerClient",
    "RouteClient",
    "Route",
    # Implementations
    "ProxmoxControllerClient",
    "IPRouteClient",
    # Exceptions
    "ControllerError",
    "ControllerReadError",
    "ControllerWriteError",
    "RouteError",
]
