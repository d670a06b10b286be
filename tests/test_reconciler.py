"""Tests for baseline capture and restore-to-baseline."""

import pytest

from labnet.controller.base import Route
from labnet.fabric.desired import build_desired_state
from labnet.fabric.exceptions import BaselineExistsError, BaselineMissingError
from labnet.models.enums import EngineState, ResourceKind
from labnet.models.resources import option_value


def live_state(controller, routes):
    """Comparable view of everything restore touches."""
    return {
        "zones": sorted(controller.zones),
        "networks": sorted(controller.networks),
        "subnets": {k: sorted(v) for k, v in controller.subnets.items() if v},
        "ipsets": sorted(controller.ipsets),
        "entries": {k: sorted(v) for k, v in controller.entries.items() if v},
        "rules": list(controller.rules),
        "routes": sorted(str(r) for r in routes.routes),
        "fw": option_value(controller.firewall_options, "enable"),
        "host": (
            option_value(controller.host_firewall_options, "enable"),
            option_value(controller.host_firewall_options, "nftables"),
        ),
    }


# =============================================================================
# Capture
# =============================================================================


class TestCapture:
    def test_state_transition(self, engine, seeded):
        assert engine.state == EngineState.NO_BASELINE
        baseline = engine.capture_baseline()
        assert engine.state == EngineState.BASELINE_CAPTURED
        assert baseline.node == "pve01"
        assert [z["zone"] for z in baseline.zones] == ["lanzone"]
        assert baseline.subnets["lanvnet"][0]["cidr"] == "10.50.0.0/24"
        assert baseline.ipset_entries["admins"][0]["cidr"] == "192.168.1.20"
        assert baseline.firewall_rules[0]["pos"] == 0
        assert baseline.pool_routes == []
        assert baseline.read_failures == []

    def test_second_capture_never_overwrites(self, engine, seeded):
        engine.capture_baseline()
        seeded.create_zone("later")
        with pytest.raises(BaselineExistsError):
            engine.capture_baseline()
        zones = [z["zone"] for z in engine.store.load().zones]
        assert zones == ["lanzone"]

    def test_failed_read_stored_empty(self, engine, seeded):
        seeded.fail_reads.update({"list_firewall_rules", "list_subnets"})
        baseline = engine.capture_baseline()
        assert baseline.firewall_rules == []
        assert baseline.subnets == {}
        assert baseline.read_failures == ["firewall_rules", "subnets"]
        assert engine.store.load().read_failures == ["firewall_rules", "subnets"]

    def test_pool_route_captured(self, engine, seeded, routes):
        routes.routes.append(Route("192.168.81.0/24", "192.168.80.2", "vpndmzvn"))
        baseline = engine.capture_baseline()
        assert baseline.pool_routes == [
            {
                "destination": "192.168.81.0/24",
                "via": "192.168.80.2",
                "device": "vpndmzvn",
            }
        ]


# =============================================================================
# Restore
# =============================================================================


class TestRestore:
    def test_requires_baseline(self, engine):
        with pytest.raises(BaselineMissingError):
            engine.restore_to_baseline()

    def test_converges_after_apply(self, engine, seeded, routes, plan):
        engine.capture_baseline()
        before = live_state(seeded, routes)

        engine.apply_desired_state(build_desired_state(plan))
        assert live_state(seeded, routes) != before

        report = engine.restore_to_baseline()
        assert live_state(seeded, routes) == before
        assert not report.has_failures
        assert report.missing_count == 0
        # 5 zones, 5 vnets, 5 subnets, 4 sets with 10 entries, 10 rules, 1 route
        assert report.deleted_count == 40
        assert seeded.applied == 2

    def test_converges_when_baseline_has_pool_route(
        self, engine, seeded, routes, plan
    ):
        routes.routes.append(Route("192.168.81.0/24", "192.168.80.2", "vpndmzvn"))
        engine.capture_baseline()
        before = live_state(seeded, routes)

        engine.apply_desired_state(build_desired_state(plan))
        report = engine.restore_to_baseline()
        assert live_state(seeded, routes) == before
        assert report.missing_count == 0
        assert report.collection(ResourceKind.POOL_ROUTE).kept == [
            "192.168.81.0/24 via 192.168.80.2 dev vpndmzvn"
        ]
        assert report.collection(ResourceKind.ROUTE).kept == []

    def test_restore_is_repeatable(self, engine, seeded, routes, plan):
        engine.capture_baseline()
        engine.apply_desired_state(build_desired_state(plan))
        engine.restore_to_baseline()
        report = engine.restore_to_baseline()
        assert report.deleted_count == 0
        assert not report.collection(ResourceKind.HOST_FIREWALL_OPTIONS).alignments

    def test_pool_route_removed_first(self, engine, seeded, routes, plan):
        engine.capture_baseline()
        engine.apply_desired_state(build_desired_state(plan))
        report = engine.restore_to_baseline()
        assert list(report.collections)[0] == ResourceKind.POOL_ROUTE.value
        assert report.collection(ResourceKind.POOL_ROUTE).deleted == [
            "192.168.81.0/24 via 192.168.80.2 dev vpndmzvn"
        ]

    def test_missing_objects_reported_not_recreated(self, engine, seeded, routes):
        engine.capture_baseline()
        del seeded.entries["admins"]["192.168.1.20"]
        seeded.rules.clear()

        report = engine.restore_to_baseline()
        assert report.deleted_count == 0
        assert report.collection(ResourceKind.IPSET_ENTRY).missing == [
            "admins/192.168.1.20"
        ]
        assert len(report.collection(ResourceKind.FIREWALL_RULE).missing) == 1
        assert not seeded.rules
        assert not seeded.entries["admins"]

    def test_missing_network_reports_its_subnets(self, engine, seeded):
        engine.capture_baseline()
        seeded.subnets["lanvnet"].clear()
        seeded.delete_network("lanvnet")

        report = engine.restore_to_baseline()
        assert report.collection(ResourceKind.NETWORK).missing == ["lanvnet"]
        assert report.collection(ResourceKind.SUBNET).missing == [
            "lanvnet/lanzone-10.50.0.0-24"
        ]

    def test_duplicate_rules_are_a_multiset(self, engine, seeded):
        ssh = dict(seeded.rules[0])
        seeded.rules.append(dict(ssh))
        engine.capture_baseline()

        seeded.rules.insert(1, dict(ssh))
        report = engine.restore_to_baseline()

        rules = report.collection(ResourceKind.FIREWALL_RULE)
        assert len(rules.deleted) == 1
        assert len(rules.kept) == 2
        assert seeded.rules == [ssh, ssh]

    def test_rules_deleted_highest_position_first(self, engine, seeded):
        engine.capture_baseline()
        for port in ("80", "443", "8006"):
            seeded.rules.append({"type": "in", "action": "ACCEPT", "dport": port})

        report = engine.restore_to_baseline()
        deletions = report.collection(ResourceKind.FIREWALL_RULE).deletions
        assert [d.identity for d in deletions] == [
            '{"action":"ACCEPT","dport":"8006","type":"in"}',
            '{"action":"ACCEPT","dport":"443","type":"in"}',
            '{"action":"ACCEPT","dport":"80","type":"in"}',
        ]
        assert len(seeded.rules) == 1

    def test_deletion_failure_recorded_and_pass_continues(
        self, engine, seeded, routes, plan
    ):
        engine.capture_baseline()
        engine.apply_desired_state(build_desired_state(plan))
        seeded.fail_writes.add("delete_ipset")

        report = engine.restore_to_baseline()
        ipsets = report.collection(ResourceKind.IPSET)
        assert len(ipsets.failed) == 4
        assert "injected" in ipsets.failed[0].reason
        assert report.has_failures
        # Later collections still restored
        assert seeded.rules == [
            {"type": "in", "action": "ACCEPT", "proto": "tcp", "dport": "22"}
        ]
        assert not seeded.entries.get("devpjs")

    def test_live_read_failure_skips_collection(self, engine, seeded, plan):
        engine.capture_baseline()
        engine.apply_desired_state(build_desired_state(plan))
        seeded.fail_reads.add("list_firewall_rules")

        report = engine.restore_to_baseline()
        rules = report.collection(ResourceKind.FIREWALL_RULE)
        assert rules.read_failed
        assert rules.missing == []
        assert report.read_failed_count == 1
        assert rules.deletions == []
        assert not seeded.zones.keys() - {"lanzone"}

    def test_uncaptured_collection_restored_as_empty(self, engine, seeded, plan):
        seeded.fail_reads.add("list_firewall_rules")
        engine.capture_baseline()
        seeded.fail_reads.clear()
        engine.apply_desired_state(build_desired_state(plan))

        report = engine.restore_to_baseline()
        rules = report.collection(ResourceKind.FIREWALL_RULE)
        assert not rules.read_failed
        assert rules.notes == ["not captured in baseline; restored as empty"]
        # The pre-existing ssh rule goes too: nothing was recorded for it
        assert len(rules.deleted) == 11
        assert seeded.rules == []
        assert not report.has_failures

    def test_uncaptured_route_table_restored_as_empty(self, engine, seeded, routes):
        routes.fail_reads = True
        engine.capture_baseline()
        routes.fail_reads = False
        routes.routes.append(Route("10.99.0.0/16", "192.168.80.2", "vpndmzvn"))

        report = engine.restore_to_baseline()
        entry = report.collection(ResourceKind.ROUTE)
        assert entry.deleted == ["10.99.0.0/16 via 192.168.80.2 dev vpndmzvn"]
        assert entry.notes
        assert report.collection(ResourceKind.POOL_ROUTE).notes
        assert report.collection(ResourceKind.ZONE).notes == []

    def test_kernel_routes_scoped_to_managed_space(self, engine, seeded, routes):
        engine.capture_baseline()
        routes.routes.extend(
            [
                Route("10.99.0.0/16", "192.168.80.2", "vpndmzvn"),
                Route("10.98.0.0/16", "192.168.1.254", "vmbr0"),
                Route("172.16.16.0/23", None, "vnetpj01"),
            ]
        )

        report = engine.restore_to_baseline()
        assert report.collection(ResourceKind.ROUTE).deleted == [
            "10.99.0.0/16 via 192.168.80.2 dev vpndmzvn"
        ]
        assert len(routes.routes) == 4

    def test_option_alignment(self, engine, seeded, plan):
        engine.capture_baseline()
        engine.apply_desired_state(build_desired_state(plan))

        report = engine.restore_to_baseline()
        host = report.collection(ResourceKind.HOST_FIREWALL_OPTIONS)
        assert [(a.key, a.live, a.baseline) for a in host.alignments] == [
            ("enable", 1, 0),
            ("nftables", 1, 0),
        ]
        assert seeded.host_firewall_options == {"enable": 0, "nftables": 0}
        assert report.collection(ResourceKind.FIREWALL_OPTIONS).kept == ["enable"]

    def test_alignment_failure_recorded(self, engine, seeded, plan):
        engine.capture_baseline()
        engine.apply_desired_state(build_desired_state(plan))
        seeded.fail_writes.add("set_host_firewall_options")

        report = engine.restore_to_baseline()
        host = report.collection(ResourceKind.HOST_FIREWALL_OPTIONS)
        assert all(not a.applied for a in host.alignments)
        assert report.has_failures
        assert report.alignment_failed_count == 2
        assert report.failed_count == 0

    def test_pool_route_reported_once_when_missing(self, engine, seeded, routes):
        routes.routes.append(Route("192.168.81.0/24", "192.168.80.2", "vpndmzvn"))
        engine.capture_baseline()
        routes.routes.clear()

        report = engine.restore_to_baseline()
        assert report.missing_count == 1
        assert report.collection(ResourceKind.POOL_ROUTE).missing == [
            "192.168.81.0/24 via 192.168.80.2 dev vpndmzvn"
        ]
        assert report.collection(ResourceKind.ROUTE).missing == []

    def test_pool_route_failure_recorded_once(self, engine, seeded, routes, plan):
        engine.capture_baseline()
        engine.apply_desired_state(build_desired_state(plan))
        routes.fail_writes = True

        report = engine.restore_to_baseline()
        assert report.failed_count == 1
        assert len(report.collection(ResourceKind.POOL_ROUTE).failed) == 1
        assert report.collection(ResourceKind.ROUTE).failed == []
        assert report.collection(ResourceKind.ROUTE).kept == []
