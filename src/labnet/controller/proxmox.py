"""
Proxmox VE SDN and firewall client.

Talks to the JSON API under https://<host>:8006/api2/json with an API token.
Every response wraps its payload in {"data": ...}; the helpers below unwrap it.
Writes are form-encoded, the way the API expects them.

Endpoints used:
    /cluster/sdn/zones[/{zone}]
    /cluster/sdn/vnets[/{vnet}]
    /cluster/sdn/vnets/{vnet}/subnets[/{subnet}]
    /cluster/sdn                                (PUT: apply pending changes)
    /cluster/firewall/ipset[/{name}[/{cidr}]]
    /cluster/firewall/options
    /nodes/{node}/firewall/rules[/{pos}]
    /nodes/{node}/firewall/options
    /cluster/resources?type=vm
    /nodes/{node}/{qemu|lxc}/{vmid}/config
"""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx

from labnet.config import LabNetConfig
from labnet.controller.exceptions import ControllerReadError, ControllerWriteError
from labnet.utils.logger import get_logger

logger = get_logger(__name__)


def _encode_params(params: dict[str, Any]) -> dict[str, str]:
    """Drop None values and render booleans as 0/1."""
    encoded = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            value = int(value)
        encoded[key] = str(value)
    return encoded


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict):
        if body.get("errors"):
            return str(body["errors"])
        if body.get("message"):
            return str(body["message"])
    return str(body)


class ProxmoxControllerClient:
    """
    ControllerClient backed by the Proxmox VE REST API.

    Args:
        base_url: API root, e.g. "https://pve01:8006/api2/json"
        node: Node whose host firewall is managed
        headers: Extra headers, normally the API token header
        verify: Verify the server's TLS certificate
        timeout: Per-request timeout in seconds
        transport: Optional httpx transport (used by tests)
    """

    def __init__(
        self,
        base_url: str,
        node: str,
        headers: dict[str, str] | None = None,
        verify: bool = True,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.node = node
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=headers or {},
            verify=verify,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(cls, cfg: LabNetConfig) -> ProxmoxControllerClient:
        return cls(
            base_url=cfg.get_api_url(),
            node=cfg.NODE_NAME,
            headers=cfg.get_auth_header(),
            verify=cfg.PVE_VERIFY_SSL,
            timeout=cfg.REQUEST_TIMEOUT,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> ProxmoxControllerClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Request helpers
    # -------------------------------------------------------------------------

    def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        try:
            response = self._client.get(path, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            detail = _error_detail(e.response)
            logger.error(f"HTTP {status} on GET {path}: {detail}")
            raise ControllerReadError(
                f"HTTP {status}: {detail}", path=path, status_code=status, detail=detail
            )
        except httpx.RequestError as e:
            logger.error(f"Request error on GET {path}: {e}")
            raise ControllerReadError(f"Network error: {e}", path=path)

        return response.json().get("data")

    def _write(self, method: str, path: str, data: dict[str, Any] | None = None) -> Any:
        try:
            if method == "delete":
                response = self._client.delete(path)
            else:
                response = self._client.request(
                    method.upper(), path, data=_encode_params(data or {})
                )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            detail = _error_detail(e.response)
            logger.error(f"HTTP {status} on {method.upper()} {path}: {detail}")
            raise ControllerWriteError(
                f"HTTP {status}: {detail}", path=path, status_code=status, detail=detail
            )
        except httpx.RequestError as e:
            logger.error(f"Request error on {method.upper()} {path}: {e}")
            raise ControllerWriteError(f"Network error: {e}", path=path)

        logger.debug(f"{method.upper()} {path} ok")
        try:
            return response.json().get("data")
        except ValueError:
            return None

    def _list(self, path: str, params: dict[str, Any] | None = None) -> list[dict]:
        return self._get(path, params) or []

    def _node_path(self, suffix: str) -> str:
        return f"/nodes/{quote(self.node, safe='')}{suffix}"

    # -------------------------------------------------------------------------
    # SDN
    # -------------------------------------------------------------------------

    def list_zones(self) -> list[dict]:
        return self._list("/cluster/sdn/zones")

    def list_networks(self) -> list[dict]:
        return self._list("/cluster/sdn/vnets")

    def list_subnets(self, network: str) -> list[dict]:
        return self._list(f"/cluster/sdn/vnets/{quote(network, safe='')}/subnets")

    def create_zone(self, zone: str, **params: Any) -> None:
        self._write("post", "/cluster/sdn/zones", {"zone": zone, **params})

    def create_network(self, vnet: str, zone: str, **params: Any) -> None:
        self._write(
            "post", "/cluster/sdn/vnets", {"vnet": vnet, "zone": zone, **params}
        )

    def create_subnet(self, network: str, cidr: str, **params: Any) -> None:
        params.setdefault("type", "subnet")
        self._write(
            "post",
            f"/cluster/sdn/vnets/{quote(network, safe='')}/subnets",
            {"subnet": cidr, **params},
        )

    def delete_zone(self, zone: str) -> None:
        self._write("delete", f"/cluster/sdn/zones/{quote(zone, safe='')}")

    def delete_network(self, vnet: str) -> None:
        self._write("delete", f"/cluster/sdn/vnets/{quote(vnet, safe='')}")

    def delete_subnet(self, network: str, subnet: str) -> None:
        self._write(
            "delete",
            f"/cluster/sdn/vnets/{quote(network, safe='')}"
            f"/subnets/{quote(subnet, safe='')}",
        )

    def apply_pending_changes(self) -> None:
        self._write("put", "/cluster/sdn")
        logger.info("SDN pending changes applied")

    # -------------------------------------------------------------------------
    # Firewall IP sets
    # -------------------------------------------------------------------------

    def list_ipsets(self) -> list[dict]:
        return self._list("/cluster/firewall/ipset")

    def list_ipset_entries(self, name: str) -> list[dict]:
        return self._list(f"/cluster/firewall/ipset/{quote(name, safe='')}")

    def create_ipset(self, name: str, comment: str | None = None) -> None:
        self._write(
            "post", "/cluster/firewall/ipset", {"name": name, "comment": comment}
        )

    def create_ipset_entry(
        self, name: str, cidr: str, comment: str | None = None
    ) -> None:
        self._write(
            "post",
            f"/cluster/firewall/ipset/{quote(name, safe='')}",
            {"cidr": cidr, "comment": comment},
        )

    def delete_ipset(self, name: str) -> None:
        self._write("delete", f"/cluster/firewall/ipset/{quote(name, safe='')}")

    def delete_ipset_entry(self, name: str, cidr: str) -> None:
        self._write(
            "delete",
            f"/cluster/firewall/ipset/{quote(name, safe='')}/{quote(cidr, safe='')}",
        )

    # -------------------------------------------------------------------------
    # Firewall options and host rules
    # -------------------------------------------------------------------------

    def get_firewall_options(self) -> dict:
        return self._get("/cluster/firewall/options") or {}

    def set_firewall_options(self, **options: Any) -> None:
        self._write("put", "/cluster/firewall/options", options)

    def get_host_firewall_options(self) -> dict:
        return self._get(self._node_path("/firewall/options")) or {}

    def set_host_firewall_options(self, **options: Any) -> None:
        self._write("put", self._node_path("/firewall/options"), options)

    def list_firewall_rules(self) -> list[dict]:
        return self._list(self._node_path("/firewall/rules"))

    def create_firewall_rule(self, rule: dict) -> None:
        self._write("post", self._node_path("/firewall/rules"), dict(rule))

    def delete_firewall_rule_at(self, pos: int) -> None:
        self._write("delete", self._node_path(f"/firewall/rules/{int(pos)}"))

    # -------------------------------------------------------------------------
    # Guests
    # -------------------------------------------------------------------------

    def list_guests(self) -> list[dict]:
        return self._list("/cluster/resources", {"type": "vm"})

    def get_guest_config(self, node: str, kind: str, vmid: int | str) -> dict:
        return self._get(f"/nodes/{quote(node, safe='')}/{kind}/{vmid}/config") or {}
