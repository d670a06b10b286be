"""Tests for subdivision, VPN pool splitting and free-block search."""

import pytest

from labnet.models.enums import AddressClass, VPNProtocol
from labnet.network.allocator import (
    MAX_CANDIDATES,
    NetworkAllocator,
    normalize_networks,
    split_vpn_pool,
    subdivide,
)
from labnet.network.cidr import overlaps, parse_cidr
from labnet.network.exceptions import (
    ExhaustedError,
    InvalidPrefixError,
    NetworkError,
    NotPowerOfTwoError,
    PrefixOverflowError,
)


class StaticSource:
    def __init__(self, name, entries):
        self.name = name
        self.entries = entries

    def collect(self):
        return list(self.entries)


class BrokenSource:
    name = "broken"

    def collect(self):
        raise OSError("permission denied")


# =============================================================================
# Subdivision
# =============================================================================


class TestSubdivide:
    def test_project_block_into_eight(self):
        plan = subdivide("172.16.16.0/21", 8)
        assert [str(b) for b in plan.blocks] == [
            f"172.16.{16 + i}.0/24" for i in range(8)
        ]
        assert plan.child_prefix == 24

    @pytest.mark.parametrize("count", [1, 2, 4, 16, 64])
    def test_children_tile_parent(self, count):
        parent = parse_cidr("10.8.0.0/16")
        plan = subdivide(parent, count)
        blocks = plan.blocks
        assert len(blocks) == count
        assert blocks[0].first == parent.first
        assert blocks[-1].last == parent.last
        for a, b in zip(blocks, blocks[1:]):
            assert a.last + 1 == b.first

    @pytest.mark.parametrize("count", [0, 3, 6, -2])
    def test_non_power_of_two_rejected(self, count):
        with pytest.raises(NotPowerOfTwoError):
            subdivide("10.0.0.0/24", count)

    def test_prefix_overflow(self):
        with pytest.raises(PrefixOverflowError):
            subdivide("10.0.0.0/30", 8)

    def test_role_and_one_based_index(self):
        plan = subdivide("192.168.81.0/25", 4, "ovpn")
        first = next(iter(plan))
        assert (first.index, first.key) == (1, "ovpn1")
        assert str(plan.block(4)) == "192.168.81.96/27"
        with pytest.raises(IndexError):
            plan.block(5)


class TestSplitPool:
    def test_eight_tenants(self):
        split = split_vpn_pool("192.168.81.0/24", 8)
        assert str(split.protocol_a) == "192.168.81.0/25"
        assert str(split.protocol_b) == "192.168.81.128/25"
        assert len(split.per_tenant_a) == len(split.per_tenant_b) == 8
        assert str(split.per_tenant_a.block(1)) == "192.168.81.0/28"
        assert str(split.per_tenant_b.block(1)) == "192.168.81.128/28"
        assert split.tenant_count == 8

    def test_roles(self):
        split = split_vpn_pool("192.168.81.0/24", 2)
        assert split.for_protocol(VPNProtocol.OPENVPN).allocations[0].key == "ovpn1"
        assert split.for_protocol(VPNProtocol.WIREGUARD).allocations[1].key == "wg2"

    def test_rejects_bad_count(self):
        with pytest.raises(NotPowerOfTwoError):
            split_vpn_pool("192.168.81.0/24", 5)


# =============================================================================
# Existing networks
# =============================================================================


class TestNormalize:
    def test_dedupe_sort_and_drop_subsets(self):
        existing = normalize_networks(
            [
                "192.168.1.5/24",
                "192.168.1.0/24",
                "10.0.0.0/8",
                "10.1.2.0/24",
                "garbage",
                "172.16.0.7/32",
            ]
        )
        assert existing.as_strings() == [
            "10.0.0.0/8",
            "172.16.0.7/32",
            "192.168.1.0/24",
        ]

    def test_conflicts(self):
        existing = normalize_networks(["192.168.80.0/24"])
        assert existing.conflicts_with("192.168.80.128/25")
        assert not existing.conflicts_with("192.168.81.0/24")


class TestAllocator:
    def test_failing_source_is_skipped(self):
        allocator = NetworkAllocator(
            [BrokenSource(), StaticSource("static", ["192.168.0.0/24"])]
        )
        assert allocator.discover_existing_networks().as_strings() == [
            "192.168.0.0/24"
        ]

    def test_find_skips_discovered(self):
        allocator = NetworkAllocator(
            [StaticSource("static", ["192.168.0.0/24", "192.168.1.0/24"])]
        )
        block = allocator.find_available_block(24, AddressClass.CLASS_C)
        assert str(block) == "192.168.2.0/24"

    def test_find_never_overlaps_existing(self):
        taken = ["192.168.0.0/23", "192.168.2.128/25", "192.168.4.10/32"]
        allocator = NetworkAllocator([StaticSource("static", taken)])
        existing = allocator.discover_existing_networks()
        block = allocator.find_available_block(24, "192", existing=existing)
        assert not any(overlaps(block, b) for b in existing)
        assert str(block) == "192.168.3.0/24"

    def test_exclude(self):
        allocator = NetworkAllocator()
        block = allocator.find_available_block(
            21, AddressClass.CLASS_B, exclude=["172.16.0.0/21"]
        )
        assert str(block) == "172.16.8.0/21"

    def test_class_a(self):
        block = NetworkAllocator().find_available_block(16, "10")
        assert str(block) == "10.0.0.0/16"

    def test_prefix_shorter_than_class(self):
        with pytest.raises(InvalidPrefixError):
            NetworkAllocator().find_available_block(12, AddressClass.CLASS_C)

    def test_exhausted(self):
        allocator = NetworkAllocator([StaticSource("static", ["192.168.0.0/16"])])
        with pytest.raises(ExhaustedError) as exc:
            allocator.find_available_block(24, AddressClass.CLASS_C)
        assert exc.value.tried == MAX_CANDIDATES

    def test_search_stays_inside_class(self):
        allocator = NetworkAllocator(
            [StaticSource("static", ["192.168.0.0/17", "192.168.128.0/17"])]
        )
        with pytest.raises(ExhaustedError) as exc:
            allocator.find_available_block(17, AddressClass.CLASS_C)
        assert exc.value.tried == 2

    def test_class_member_and_octet_agree(self):
        allocator = NetworkAllocator(
            [StaticSource("static", ["172.16.0.0/24", "192.168.0.0/24"])]
        )
        for address_class, octet in (
            (AddressClass.CLASS_A, "10"),
            (AddressClass.CLASS_B, "172"),
            (AddressClass.CLASS_C, "192"),
        ):
            assert allocator.find_available_block(
                24, address_class
            ) == allocator.find_available_block(24, octet)
        assert str(allocator.find_available_block(24, AddressClass.CLASS_B)) == (
            "172.16.1.0/24"
        )

    def test_unknown_class(self):
        with pytest.raises(NetworkError, match="Unknown address class"):
            NetworkAllocator().find_available_block(24, "11")
