"""
Baseline capture and restore-to-baseline.

The engine has two states, derived from the baseline store's completion
marker: NO_BASELINE until capture_baseline() succeeds, BASELINE_CAPTURED from
then on. A captured baseline is never overwritten.

restore_to_baseline() deletes everything live that the baseline does not
contain, in structural order:

    1. VPN pool return route      (would vanish with the transit network)
    2. subnets, networks, zones   then apply pending SDN changes
    3. ip set entries, ip sets
    4. host firewall rules        (multiset, highest position first)
    5. kernel routes via a managed address
    6. firewall option alignment  (datacenter enable, host enable/nftables)

Objects only found in the baseline are reported as missing and never
recreated. Failures are recorded in the report and the pass carries on.
"""

from __future__ import annotations

import datetime
import json
from collections import Counter
from collections.abc import Callable
from typing import Any

from labnet.controller.base import ControllerClient, Route, RouteClient
from labnet.controller.exceptions import ControllerError, RouteError
from labnet.fabric.desired import DesiredState
from labnet.fabric.exceptions import BaselineExistsError, BaselineMissingError
from labnet.fabric.provisioner import ApplyPolicy, apply_desired_state
from labnet.fabric.store import BaselineStore
from labnet.models.enums import EngineState, ResourceKind
from labnet.models.record import ConfigurationRecord
from labnet.models.reports import (
    ApplyReport,
    CollectionReport,
    OptionAlignment,
    ReconciliationReport,
)
from labnet.models.resources import (
    FIREWALL_OPTION_KEYS,
    HOST_FIREWALL_OPTION_KEYS,
    Baseline,
    ipset_entry_identity,
    ipset_identity,
    network_identity,
    option_value,
    route_identity,
    rule_identity,
    subnet_identity,
    zone_identity,
)
from labnet.network.cidr import contains
from labnet.network.exceptions import NetworkError
from labnet.utils.logger import get_logger

logger = get_logger(__name__)

READ_ERRORS = (ControllerError, RouteError)
UNCAPTURED_NOTE = "not captured in baseline; restored as empty"


def _diff(
    live: list[dict], baseline: list[dict], identity: Callable[[dict], str]
) -> tuple[list[str], list[str], list[str]]:
    """Split identities into (kept, live-only, baseline-only), live order."""
    wanted = {identity(item) for item in baseline}
    present = [identity(item) for item in live]
    kept = [i for i in present if i in wanted]
    extra = [i for i in present if i not in wanted]
    missing = sorted(wanted - set(present))
    return kept, extra, missing


class ReconciliationEngine:
    """
    Captures a baseline and restores the controller to it.

    Args:
        controller: SDN controller client
        routes: Kernel route client
        store: Durable baseline storage
        record: Network configuration; supplies the VPN pool and the
            managed address space used to scope kernel routes
    """

    def __init__(
        self,
        controller: ControllerClient,
        routes: RouteClient,
        store: BaselineStore,
        record: ConfigurationRecord,
    ):
        self.controller = controller
        self.routes = routes
        self.store = store
        self.record = record

    @property
    def state(self) -> EngineState:
        if self.store.is_complete():
            return EngineState.BASELINE_CAPTURED
        return EngineState.NO_BASELINE

    # -------------------------------------------------------------------------
    # Record-derived scope
    # -------------------------------------------------------------------------

    def _pool_destination(self) -> str | None:
        block = self.record.optional_cidr("VPN_POOL")
        return str(block) if block is not None else None

    def _is_pool_route(self, route: Route) -> bool:
        pool = self._pool_destination()
        return pool is not None and route.destination == pool

    def _is_managed_route(self, route: Route) -> bool:
        if not route.via:
            return False
        try:
            return any(contains(b, route.via) for b in self.record.managed_blocks())
        except NetworkError:
            return False

    def _in_route_scope(self, route: Route) -> bool:
        """Managed routes, minus the pool return route reconciled on its own."""
        return self._is_managed_route(route) and not self._is_pool_route(route)

    # -------------------------------------------------------------------------
    # Live reads
    # -------------------------------------------------------------------------

    def _read_live(self) -> tuple[dict[str, Any], dict[str, str]]:
        """
        Read every tracked collection.

        Returns:
            (collections keyed by ResourceKind value, read errors by kind)
        """
        c = self.controller
        data: dict[str, Any] = {}
        errors: dict[str, str] = {}

        def read(kind: ResourceKind, fn: Callable[[], Any], empty: Any) -> Any:
            try:
                data[kind.value] = fn()
            except READ_ERRORS as e:
                logger.warning(f"Could not read {kind.value}: {e}")
                data[kind.value] = empty
                errors[kind.value] = str(e)
            return data[kind.value]

        read(ResourceKind.ZONE, c.list_zones, [])
        networks = read(ResourceKind.NETWORK, c.list_networks, [])

        subnets: dict[str, list[dict]] = {}
        for vnet in (network_identity(n) for n in networks):
            try:
                subnets[vnet] = c.list_subnets(vnet)
            except READ_ERRORS as e:
                logger.warning(f"Could not read subnets of {vnet}: {e}")
                errors[ResourceKind.SUBNET.value] = str(e)
        if ResourceKind.NETWORK.value in errors:
            errors[ResourceKind.SUBNET.value] = errors[ResourceKind.NETWORK.value]
        data[ResourceKind.SUBNET.value] = subnets

        ipsets = read(ResourceKind.IPSET, c.list_ipsets, [])
        entries: dict[str, list[dict]] = {}
        for name in (ipset_identity(s) for s in ipsets):
            try:
                entries[name] = c.list_ipset_entries(name)
            except READ_ERRORS as e:
                logger.warning(f"Could not read entries of ipset {name}: {e}")
                errors[ResourceKind.IPSET_ENTRY.value] = str(e)
        if ResourceKind.IPSET.value in errors:
            errors[ResourceKind.IPSET_ENTRY.value] = errors[ResourceKind.IPSET.value]
        data[ResourceKind.IPSET_ENTRY.value] = entries

        read(ResourceKind.FIREWALL_OPTIONS, c.get_firewall_options, {})
        read(ResourceKind.HOST_FIREWALL_OPTIONS, c.get_host_firewall_options, {})
        read(ResourceKind.FIREWALL_RULE, c.list_firewall_rules, [])

        routes = read(ResourceKind.ROUTE, self.routes.list_routes, [])
        data[ResourceKind.ROUTE.value] = [r.to_dict() for r in routes]
        data[ResourceKind.POOL_ROUTE.value] = [
            r.to_dict() for r in routes if self._is_pool_route(r)
        ]
        if ResourceKind.ROUTE.value in errors:
            errors[ResourceKind.POOL_ROUTE.value] = errors[ResourceKind.ROUTE.value]

        return data, errors

    def _log_snapshot(self, label: str, data: dict[str, Any]) -> None:
        logger.debug(f"{label}:\n{json.dumps(data, indent=2, default=str)}")

    # -------------------------------------------------------------------------
    # Capture
    # -------------------------------------------------------------------------

    def capture_baseline(self) -> Baseline:
        """
        Snapshot every tracked collection and persist it once.

        Raises:
            BaselineExistsError: If a baseline was already captured.
        """
        if self.state == EngineState.BASELINE_CAPTURED:
            raise BaselineExistsError(self.store.db_path)

        data, errors = self._read_live()
        baseline = Baseline(
            node=getattr(self.controller, "node", ""),
            captured_at=datetime.datetime.now(),
            read_failures=sorted(errors),
            **data,
        )
        self._log_snapshot("Baseline", baseline.model_dump(mode="json"))
        self.store.save(baseline)

        counts = ", ".join(f"{k}={v}" for k, v in baseline.summary().items())
        logger.info(f"Baseline captured ({counts})")
        if errors:
            logger.warning(
                f"Baseline stored with empty collections: {', '.join(sorted(errors))}"
            )
        return baseline

    # -------------------------------------------------------------------------
    # Restore
    # -------------------------------------------------------------------------

    def _note_uncaptured(
        self, baseline: Baseline, kind: ResourceKind, entry: CollectionReport
    ) -> None:
        """
        Flag a collection whose capture read failed.

        It was stored empty and is restored as if nothing existed at capture
        time, so every live object in it is deleted.
        """
        if kind.value not in baseline.read_failures:
            return
        logger.warning(
            f"{kind.value} could not be read at capture time, "
            "restoring it as empty"
        )
        entry.notes.append(UNCAPTURED_NOTE)

    def _read_for(self, entry: CollectionReport, fn: Callable[[], Any]) -> Any:
        try:
            return fn()
        except READ_ERRORS as e:
            logger.error(f"Live read of {entry.kind.value} failed: {e}")
            entry.read_failed = True
            entry.read_error = str(e)
            return None

    def _delete(
        self, entry: CollectionReport, identity: str, fn: Callable[[], None]
    ) -> bool:
        try:
            fn()
        except READ_ERRORS as e:
            logger.error(f"Failed to delete {entry.kind.value} '{identity}': {e}")
            entry.record_failed(identity, str(e))
            return False
        logger.info(f"Deleted {entry.kind.value} '{identity}'")
        entry.record_deleted(identity)
        return True

    def _restore_pool_route(self, baseline: Baseline, report: ReconciliationReport):
        entry = report.collection(ResourceKind.POOL_ROUTE)
        self._note_uncaptured(baseline, ResourceKind.POOL_ROUTE, entry)
        live = self._read_for(entry, self.routes.list_routes)
        if live is None:
            return

        pool_routes = [r.to_dict() for r in live if self._is_pool_route(r)]
        kept, extra, missing = _diff(
            pool_routes, baseline.pool_routes, route_identity
        )
        entry.kept.extend(kept)
        entry.missing.extend(missing)
        for item in pool_routes:
            route = Route.from_dict(item)
            if str(route) in extra:
                self._delete(
                    entry,
                    str(route),
                    lambda r=route: self.routes.delete_route(
                        r.destination, r.via, r.device
                    ),
                )

    def _restore_sdn(self, baseline: Baseline, report: ReconciliationReport):
        c = self.controller
        subnet_entry = report.collection(ResourceKind.SUBNET)
        network_entry = report.collection(ResourceKind.NETWORK)
        zone_entry = report.collection(ResourceKind.ZONE)

        for kind, entry in (
            (ResourceKind.SUBNET, subnet_entry),
            (ResourceKind.NETWORK, network_entry),
            (ResourceKind.ZONE, zone_entry),
        ):
            self._note_uncaptured(baseline, kind, entry)

        live_networks = self._read_for(network_entry, c.list_networks)
        if live_networks is None:
            subnet_entry.read_failed = True
            subnet_entry.read_error = network_entry.read_error
        else:
            live_vnets = [network_identity(n) for n in live_networks]
            for vnet in live_vnets:
                subnets = self._read_for(
                    subnet_entry, lambda v=vnet: c.list_subnets(v)
                )
                if subnets is None:
                    continue
                kept, extra, missing = _diff(
                    subnets, baseline.subnets.get(vnet, []), subnet_identity
                )
                subnet_entry.kept.extend(f"{vnet}/{i}" for i in kept)
                subnet_entry.missing.extend(f"{vnet}/{i}" for i in missing)
                for subnet in extra:
                    self._delete(
                        subnet_entry,
                        f"{vnet}/{subnet}",
                        lambda v=vnet, s=subnet: c.delete_subnet(v, s),
                    )
            for vnet, subnets in baseline.subnets.items():
                if vnet not in live_vnets:
                    subnet_entry.missing.extend(
                        f"{vnet}/{subnet_identity(s)}" for s in subnets
                    )

        if live_networks is not None:
            kept, extra, missing = _diff(
                live_networks, baseline.networks, network_identity
            )
            network_entry.kept.extend(kept)
            network_entry.missing.extend(missing)
            for vnet in extra:
                self._delete(network_entry, vnet, lambda v=vnet: c.delete_network(v))

        live_zones = self._read_for(zone_entry, c.list_zones)
        if live_zones is not None:
            kept, extra, missing = _diff(live_zones, baseline.zones, zone_identity)
            zone_entry.kept.extend(kept)
            zone_entry.missing.extend(missing)
            for zone in extra:
                self._delete(zone_entry, zone, lambda z=zone: c.delete_zone(z))

        if subnet_entry.deleted or network_entry.deleted or zone_entry.deleted:
            try:
                c.apply_pending_changes()
            except READ_ERRORS as e:
                logger.error(f"Failed to apply SDN changes: {e}")
                zone_entry.record_failed("(apply pending changes)", str(e))

    def _restore_ipsets(self, baseline: Baseline, report: ReconciliationReport):
        c = self.controller
        entry_report = report.collection(ResourceKind.IPSET_ENTRY)
        set_report = report.collection(ResourceKind.IPSET)
        self._note_uncaptured(baseline, ResourceKind.IPSET, set_report)
        self._note_uncaptured(baseline, ResourceKind.IPSET_ENTRY, entry_report)

        live_sets = self._read_for(set_report, c.list_ipsets)
        if live_sets is None:
            entry_report.read_failed = True
            entry_report.read_error = set_report.read_error
            return

        kept_sets, extra_sets, missing_sets = _diff(
            live_sets, baseline.ipsets, ipset_identity
        )

        for name in (ipset_identity(s) for s in live_sets):
            in_baseline = name in kept_sets
            live_entries = self._read_for(
                entry_report, lambda n=name: c.list_ipset_entries(n)
            )
            if live_entries is None:
                continue
            base_entries = baseline.ipset_entries.get(name, []) if in_baseline else []
            kept, extra, missing = _diff(
                live_entries, base_entries, ipset_entry_identity
            )
            entry_report.kept.extend(f"{name}/{i}" for i in kept)
            entry_report.missing.extend(f"{name}/{i}" for i in missing)
            for cidr in extra:
                self._delete(
                    entry_report,
                    f"{name}/{cidr}",
                    lambda n=name, e=cidr: c.delete_ipset_entry(n, e),
                )

        set_report.kept.extend(kept_sets)
        set_report.missing.extend(missing_sets)
        for name in extra_sets:
            self._delete(set_report, name, lambda n=name: c.delete_ipset(n))

    def _restore_rules(self, baseline: Baseline, report: ReconciliationReport):
        c = self.controller
        entry = report.collection(ResourceKind.FIREWALL_RULE)
        self._note_uncaptured(baseline, ResourceKind.FIREWALL_RULE, entry)
        live = self._read_for(entry, c.list_firewall_rules)
        if live is None:
            return

        remaining = Counter(rule_identity(r) for r in baseline.firewall_rules)
        doomed: list[tuple[int, str]] = []
        for rule in live:
            identity = rule_identity(rule)
            if remaining[identity] > 0:
                remaining[identity] -= 1
                entry.kept.append(identity)
            else:
                doomed.append((int(rule.get("pos", 0)), identity))
        entry.missing.extend(remaining.elements())

        # Deleting a rule shifts every rule below it up by one
        for pos, identity in sorted(doomed, reverse=True):
            self._delete(entry, identity, lambda p=pos: c.delete_firewall_rule_at(p))

    def _restore_routes(self, baseline: Baseline, report: ReconciliationReport):
        entry = report.collection(ResourceKind.ROUTE)
        self._note_uncaptured(baseline, ResourceKind.ROUTE, entry)
        live = self._read_for(entry, self.routes.list_routes)
        if live is None:
            return

        managed = [r for r in live if self._in_route_scope(r)]
        base_managed = [
            item
            for item in baseline.routes
            if self._in_route_scope(Route.from_dict(item))
        ]
        kept, extra, missing = _diff(
            [r.to_dict() for r in managed], base_managed, route_identity
        )
        entry.kept.extend(kept)
        entry.missing.extend(missing)
        for route in managed:
            if str(route) in extra:
                self._delete(
                    entry,
                    str(route),
                    lambda r=route: self.routes.delete_route(
                        r.destination, r.via, r.device
                    ),
                )

    def _align_options(
        self,
        baseline: Baseline,
        report: ReconciliationReport,
        kind: ResourceKind,
        keys: tuple[str, ...],
        read: Callable[[], dict],
        write: Callable[..., None],
    ) -> None:
        entry = report.collection(kind)
        self._note_uncaptured(baseline, kind, entry)
        live = self._read_for(entry, read)
        if live is None:
            return

        wanted = baseline.collection(kind)
        for key in keys:
            current = option_value(live, key)
            target = option_value(wanted, key)
            if current == target:
                entry.kept.append(key)
                continue
            alignment = OptionAlignment(key=key, live=current, baseline=target)
            try:
                write(**{key: target})
                logger.info(f"{kind.value}: {key} {current} -> {target}")
            except READ_ERRORS as e:
                logger.error(f"Failed to set {kind.value} {key}={target}: {e}")
                alignment.applied = False
                alignment.reason = str(e)
            entry.alignments.append(alignment)

    def restore_to_baseline(self) -> ReconciliationReport:
        """
        Delete every live object the baseline does not contain.

        Raises:
            BaselineMissingError: If no baseline has been captured.
        """
        if self.state == EngineState.NO_BASELINE:
            raise BaselineMissingError(self.store.db_path)

        baseline = self.store.load()
        before, _ = self._read_live()
        self._log_snapshot("Live state before restore", before)
        self._log_snapshot("Baseline", baseline.model_dump(mode="json"))

        report = ReconciliationReport()
        self._restore_pool_route(baseline, report)
        self._restore_sdn(baseline, report)
        self._restore_ipsets(baseline, report)
        self._restore_rules(baseline, report)
        self._restore_routes(baseline, report)
        self._align_options(
            baseline,
            report,
            ResourceKind.FIREWALL_OPTIONS,
            FIREWALL_OPTION_KEYS,
            self.controller.get_firewall_options,
            self.controller.set_firewall_options,
        )
        self._align_options(
            baseline,
            report,
            ResourceKind.HOST_FIREWALL_OPTIONS,
            HOST_FIREWALL_OPTION_KEYS,
            self.controller.get_host_firewall_options,
            self.controller.set_host_firewall_options,
        )

        after, _ = self._read_live()
        self._log_snapshot("Live state after restore", after)

        logger.info(
            f"Restore finished: {report.deleted_count} deleted, "
            f"{report.failed_count} failed, {report.missing_count} missing"
        )
        return report

    # -------------------------------------------------------------------------
    # Apply
    # -------------------------------------------------------------------------

    def apply_desired_state(
        self, desired: DesiredState, policy: ApplyPolicy | None = None
    ) -> ApplyReport:
        return apply_desired_state(self.controller, self.routes, desired, policy)
