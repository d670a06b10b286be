"""Shared fixtures: in-memory controller and route table, temporary store."""

from dataclasses import fields

import pytest

from labnet.config import config
from labnet.controller.base import Route
from labnet.controller.exceptions import (
    ControllerReadError,
    ControllerWriteError,
    RouteError,
)
from labnet.fabric.reconciler import ReconciliationEngine
from labnet.fabric.store import BaselineStore
from labnet.models.record import ConfigurationRecord
from labnet.network.planner import plan_from_record

RECORD_VALUES = {
    "ML_CIDR": "192.168.1.0/24",
    "ML_GW": "192.168.1.1",
    "PVE_IP": "192.168.1.5",
    "NUM_PJ": "4",
    "VPNDMZ_CIDR": "192.168.80.0/24",
    "VPN_POOL": "192.168.81.0/24",
    "PJALL_CIDR": "172.16.16.0/21",
    "PT_IG_IP": "192.168.1.10",
    "PT_EG_IP": "192.168.80.2",
}


# =============================================================================
# Fakes
# =============================================================================


class FakeController:
    """
    In-memory stand-in for the SDN controller.

    Mirrors the server-side checks that matter for ordering: a zone with
    vnets, a vnet with subnets and a non-empty ip set cannot be deleted.
    New host firewall rules are inserted at position 0.
    """

    def __init__(self, node: str = "pve01"):
        self.node = node
        self.zones: dict[str, dict] = {}
        self.networks: dict[str, dict] = {}
        self.subnets: dict[str, dict[str, dict]] = {}
        self.ipsets: dict[str, dict] = {}
        self.entries: dict[str, dict[str, dict]] = {}
        self.firewall_options: dict = {}
        self.host_firewall_options: dict = {}
        self.rules: list[dict] = []
        self.applied = 0
        self.fail_reads: set[str] = set()
        self.fail_writes: set[str] = set()

    def _read(self, name: str) -> None:
        if name in self.fail_reads:
            raise ControllerReadError(f"injected failure in {name}", path=name)

    def _write(self, name: str) -> None:
        if name in self.fail_writes:
            raise ControllerWriteError(f"injected failure in {name}", path=name)

    # Reads

    def list_zones(self):
        self._read("list_zones")
        return [dict(z) for z in self.zones.values()]

    def list_networks(self):
        self._read("list_networks")
        return [dict(n) for n in self.networks.values()]

    def list_subnets(self, network):
        self._read("list_subnets")
        return [dict(s) for s in self.subnets.get(network, {}).values()]

    def list_ipsets(self):
        self._read("list_ipsets")
        return [dict(s) for s in self.ipsets.values()]

    def list_ipset_entries(self, name):
        self._read("list_ipset_entries")
        if name not in self.ipsets:
            raise ControllerReadError(f"no such ipset '{name}'", status_code=404)
        return [dict(e) for e in self.entries.get(name, {}).values()]

    def list_firewall_rules(self):
        self._read("list_firewall_rules")
        return [dict(r, pos=i, digest="d1g3st") for i, r in enumerate(self.rules)]

    def get_firewall_options(self):
        self._read("get_firewall_options")
        return dict(self.firewall_options)

    def get_host_firewall_options(self):
        self._read("get_host_firewall_options")
        return dict(self.host_firewall_options)

    def list_guests(self):
        self._read("list_guests")
        return []

    def get_guest_config(self, node, kind, vmid):
        self._read("get_guest_config")
        return {}

    # Creates

    def create_zone(self, zone, **params):
        self._write("create_zone")
        if zone in self.zones:
            raise ControllerWriteError(f"zone '{zone}' already exists")
        self.zones[zone] = {"zone": zone, **params}

    def create_network(self, vnet, zone, **params):
        self._write("create_network")
        if zone not in self.zones:
            raise ControllerWriteError(f"zone '{zone}' does not exist")
        self.networks[vnet] = {"vnet": vnet, "zone": zone, **params}

    def create_subnet(self, network, cidr, **params):
        self._write("create_subnet")
        zone = self.networks[network]["zone"]
        subnet_id = f"{zone}-{cidr.replace('/', '-')}"
        self.subnets.setdefault(network, {})[subnet_id] = {
            "subnet": subnet_id,
            "cidr": cidr,
            "vnet": network,
            **params,
        }

    def create_ipset(self, name, comment=None):
        self._write("create_ipset")
        self.ipsets[name] = {"name": name, "comment": comment}

    def create_ipset_entry(self, name, cidr, comment=None):
        self._write("create_ipset_entry")
        self.entries.setdefault(name, {})[cidr] = {"cidr": cidr, "comment": comment}

    def create_firewall_rule(self, rule):
        self._write("create_firewall_rule")
        self.rules.insert(0, dict(rule))

    # Deletes

    def delete_zone(self, zone):
        self._write("delete_zone")
        if any(n["zone"] == zone for n in self.networks.values()):
            raise ControllerWriteError(f"zone '{zone}' is still in use")
        del self.zones[zone]

    def delete_network(self, vnet):
        self._write("delete_network")
        if self.subnets.get(vnet):
            raise ControllerWriteError(f"vnet '{vnet}' still has subnets")
        del self.networks[vnet]
        self.subnets.pop(vnet, None)

    def delete_subnet(self, network, subnet):
        self._write("delete_subnet")
        del self.subnets[network][subnet]

    def delete_ipset(self, name):
        self._write("delete_ipset")
        if self.entries.get(name):
            raise ControllerWriteError(f"ipset '{name}' is not empty")
        del self.ipsets[name]
        self.entries.pop(name, None)

    def delete_ipset_entry(self, name, cidr):
        self._write("delete_ipset_entry")
        del self.entries[name][cidr]

    def delete_firewall_rule_at(self, pos):
        self._write("delete_firewall_rule_at")
        if not 0 <= pos < len(self.rules):
            raise ControllerWriteError(f"no rule at position {pos}")
        del self.rules[pos]

    # Options

    def set_firewall_options(self, **options):
        self._write("set_firewall_options")
        self.firewall_options.update(options)

    def set_host_firewall_options(self, **options):
        self._write("set_host_firewall_options")
        self.host_firewall_options.update(options)

    def apply_pending_changes(self):
        self._write("apply_pending_changes")
        self.applied += 1


class FakeRouteClient:
    """In-memory kernel main table."""

    def __init__(self, routes=(), addresses=(), neighbors=()):
        self.routes: list[Route] = list(routes)
        self.addresses = list(addresses)
        self.neighbors = list(neighbors)
        self.fail_reads = False
        self.fail_writes = False

    def list_routes(self):
        if self.fail_reads:
            raise RouteError("injected route read failure")
        return list(self.routes)

    def add_route(self, destination, via, device=None):
        if self.fail_writes:
            raise RouteError("injected route write failure", destination)
        self.routes.append(Route(destination, via, device))

    def delete_route(self, destination, via=None, device=None):
        if self.fail_writes:
            raise RouteError("injected route write failure", destination)
        for route in self.routes:
            if route.destination == destination and (via is None or route.via == via):
                self.routes.remove(route)
                return
        raise RouteError("No such process", destination)

    def list_addresses(self):
        return list(self.addresses)

    def list_neighbors(self):
        return list(self.neighbors)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def restore_config():
    """Undo any change a test (or a CLI callback) makes to the global config."""
    saved = {f.name: getattr(config, f.name) for f in fields(config)}
    yield
    for name, value in saved.items():
        setattr(config, name, value)


@pytest.fixture
def controller():
    return FakeController()


@pytest.fixture
def routes():
    return FakeRouteClient(
        routes=[
            Route("default", "192.168.1.1", "vmbr0"),
            Route("192.168.1.0/24", None, "vmbr0"),
        ]
    )


@pytest.fixture
def record():
    return ConfigurationRecord.from_mapping(RECORD_VALUES, source="test")


@pytest.fixture
def plan(record):
    return plan_from_record(record)


@pytest.fixture
def store(tmp_path):
    store = BaselineStore(str(tmp_path / "backup" / "baseline.db"))
    store.open()
    yield store
    store.close()


@pytest.fixture
def engine(controller, routes, store, record):
    return ReconciliationEngine(controller, routes, store, record)


@pytest.fixture
def seeded(controller):
    """Controller holding site objects that predate any provisioning."""
    controller.create_zone("lanzone", type="simple")
    controller.create_network("lanvnet", "lanzone")
    controller.create_subnet("lanvnet", "10.50.0.0/24", gateway="10.50.0.1")
    controller.create_ipset("admins", comment="Admin hosts")
    controller.create_ipset_entry("admins", "192.168.1.20", comment="jump host")
    controller.create_firewall_rule(
        {"type": "in", "action": "ACCEPT", "proto": "tcp", "dport": "22"}
    )
    controller.firewall_options = {"enable": 1}
    controller.host_firewall_options = {"enable": 0}
    return controller
