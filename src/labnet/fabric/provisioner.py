"""
Idempotent creation of the desired fabric state.

Every create is preceded by a fresh live read; objects that already exist are
left alone and reported as present, so running apply twice yields no
duplicates and no errors. What happens when a create fails depends on the
ApplyPolicy: structural objects (zones, VNets, subnets, IP sets) are fatal,
firewall rules, options and the return route are best-effort.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from labnet.controller.base import ControllerClient, RouteClient
from labnet.controller.exceptions import ControllerError, RouteError
from labnet.fabric.desired import DesiredState
from labnet.fabric.exceptions import ProvisioningError
from labnet.models.enums import FailurePolicy, ResourceKind
from labnet.models.reports import ApplyReport, SkippedItem
from labnet.models.resources import (
    ipset_entry_identity,
    ipset_identity,
    network_identity,
    option_value,
    zone_identity,
)
from labnet.utils.logger import get_logger

logger = get_logger(__name__)


def _default_policies() -> dict[ResourceKind, FailurePolicy]:
    return {
        ResourceKind.ZONE: FailurePolicy.FATAL,
        ResourceKind.NETWORK: FailurePolicy.FATAL,
        ResourceKind.SUBNET: FailurePolicy.FATAL,
        ResourceKind.IPSET: FailurePolicy.FATAL,
        ResourceKind.IPSET_ENTRY: FailurePolicy.FATAL,
        ResourceKind.FIREWALL_OPTIONS: FailurePolicy.BEST_EFFORT,
        ResourceKind.HOST_FIREWALL_OPTIONS: FailurePolicy.BEST_EFFORT,
        ResourceKind.FIREWALL_RULE: FailurePolicy.BEST_EFFORT,
        ResourceKind.POOL_ROUTE: FailurePolicy.BEST_EFFORT,
    }


@dataclass
class ApplyPolicy:
    """Failure policy per resource kind; unknown kinds are best-effort."""

    policies: dict[ResourceKind, FailurePolicy] = field(
        default_factory=_default_policies
    )

    def for_kind(self, kind: ResourceKind) -> FailurePolicy:
        return self.policies.get(kind, FailurePolicy.BEST_EFFORT)


def rule_matches(live: dict, desired: dict) -> bool:
    """True if every field of the desired rule has the same value live."""
    return all(str(live.get(k)) == str(v) for k, v in desired.items())


class Provisioner:
    """
    Applies a DesiredState through the controller and route clients.

    Args:
        controller: SDN controller client
        routes: Kernel route client
        policy: Failure policy; defaults to ApplyPolicy()
    """

    def __init__(
        self,
        controller: ControllerClient,
        routes: RouteClient,
        policy: ApplyPolicy | None = None,
    ):
        self.controller = controller
        self.routes = routes
        self.policy = policy or ApplyPolicy()
        self.report = ApplyReport()

    def _ensure(
        self,
        kind: ResourceKind,
        identity: str,
        exists: Callable[[], bool],
        create: Callable[[], None],
    ) -> None:
        entry = self.report.kind(kind)
        try:
            if exists():
                logger.debug(f"{kind.value} '{identity}' already present")
                entry.present.append(identity)
                return
            create()
        except (ControllerError, RouteError) as e:
            if self.policy.for_kind(kind) == FailurePolicy.FATAL:
                logger.error(f"Failed to create {kind.value} '{identity}': {e}")
                raise ProvisioningError(kind.value, identity, str(e)) from e
            logger.warning(f"Skipping {kind.value} '{identity}': {e}")
            entry.skipped.append(SkippedItem(identity=identity, reason=str(e)))
            return

        logger.info(f"Created {kind.value} '{identity}'")
        entry.created.append(identity)

    def _set_options(
        self,
        kind: ResourceKind,
        wanted: dict,
        read: Callable[[], dict],
        write: Callable[..., None],
    ) -> None:
        if not wanted:
            return
        identity = ",".join(f"{k}={v}" for k, v in wanted.items())

        def already_set() -> bool:
            live = read()
            return all(option_value(live, k) == int(v) for k, v in wanted.items())

        self._ensure(kind, identity, already_set, lambda: write(**wanted))

    # -------------------------------------------------------------------------
    # Apply
    # -------------------------------------------------------------------------

    def apply(self, desired: DesiredState) -> ApplyReport:
        c = self.controller

        for zone in desired.zones:
            self._ensure(
                ResourceKind.ZONE,
                zone.zone,
                lambda z=zone: z.zone in {zone_identity(x) for x in c.list_zones()},
                lambda z=zone: c.create_zone(z.zone, type=z.type, ipam=z.ipam),
            )

        for net in desired.networks:
            self._ensure(
                ResourceKind.NETWORK,
                net.vnet,
                lambda n=net: n.vnet
                in {network_identity(x) for x in c.list_networks()},
                lambda n=net: c.create_network(n.vnet, n.zone),
            )

        for subnet in desired.subnets:
            self._ensure(
                ResourceKind.SUBNET,
                f"{subnet.vnet}/{subnet.cidr}",
                lambda s=subnet: s.cidr
                in {x.get("cidr") for x in c.list_subnets(s.vnet)},
                lambda s=subnet: c.create_subnet(s.vnet, s.cidr, gateway=s.gateway),
            )

        if desired.zones or desired.networks or desired.subnets:
            try:
                c.apply_pending_changes()
            except ControllerError as e:
                raise ProvisioningError("sdn", "apply", str(e)) from e

        for ipset in desired.ipsets:
            self._ensure(
                ResourceKind.IPSET,
                ipset.name,
                lambda i=ipset: i.name in {ipset_identity(x) for x in c.list_ipsets()},
                lambda i=ipset: c.create_ipset(i.name, comment=i.comment),
            )
            for cidr, comment in ipset.entries:
                self._ensure(
                    ResourceKind.IPSET_ENTRY,
                    f"{ipset.name}/{cidr}",
                    lambda i=ipset, e=cidr: e
                    in {ipset_entry_identity(x) for x in c.list_ipset_entries(i.name)},
                    lambda i=ipset, e=cidr, m=comment: c.create_ipset_entry(
                        i.name, e, comment=m
                    ),
                )

        self._set_options(
            ResourceKind.FIREWALL_OPTIONS,
            desired.firewall_options,
            c.get_firewall_options,
            c.set_firewall_options,
        )
        self._set_options(
            ResourceKind.HOST_FIREWALL_OPTIONS,
            desired.host_firewall_options,
            c.get_host_firewall_options,
            c.set_host_firewall_options,
        )

        for rule in desired.firewall_rules:
            self._ensure(
                ResourceKind.FIREWALL_RULE,
                rule.get("comment", str(rule)),
                lambda r=rule: any(
                    rule_matches(live, r) for live in c.list_firewall_rules()
                ),
                lambda r=rule: c.create_firewall_rule(r),
            )

        route = desired.pool_route
        if route is not None:
            self._ensure(
                ResourceKind.POOL_ROUTE,
                f"{route.destination} via {route.via}",
                lambda: any(
                    r.destination == route.destination
                    for r in self.routes.list_routes()
                ),
                lambda: self.routes.add_route(
                    route.destination, route.via, route.device
                ),
            )

        logger.info(
            f"Apply finished: {self.report.created_count} created, "
            f"{self.report.skipped_count} skipped"
        )
        return self.report


def apply_desired_state(
    controller: ControllerClient,
    routes: RouteClient,
    desired: DesiredState,
    policy: ApplyPolicy | None = None,
) -> ApplyReport:
    """Create whatever part of the desired state does not exist yet."""
    return Provisioner(controller, routes, policy).apply(desired)
