"""
Address space allocation: subdivision, VPN pool splitting, free-block search.

Subdivision always produces a power-of-two number of equal, contiguous,
ascending children that cover the parent exactly. Indexes are 1-based because
they map directly onto project numbers (PJ01, PJ02, ...) and pool suffixes
(OVPN_POOL1, WG_POOL1, ...).
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from labnet.models.enums import AddressClass, VPNProtocol
from labnet.network.cidr import (
    CIDRBlock,
    as_block,
    is_subset,
    overlaps,
    parse_cidr_lenient,
)
from labnet.network.exceptions import (
    ExhaustedError,
    InvalidCIDRError,
    InvalidPrefixError,
    NetworkError,
    NotPowerOfTwoError,
    PrefixOverflowError,
)
from labnet.utils.logger import format_traceback, get_logger

if TYPE_CHECKING:
    from labnet.network.discovery import DiscoverySource

logger = get_logger(__name__)

# Upper bound on candidates examined by find_available_block
MAX_CANDIDATES = 256

# Search base and class prefix per private class
CLASS_BASES: dict[AddressClass, CIDRBlock] = {
    AddressClass.CLASS_A: CIDRBlock(0x0A000000, 8),
    AddressClass.CLASS_B: CIDRBlock(0xAC100000, 12),
    AddressClass.CLASS_C: CIDRBlock(0xC0A80000, 16),
}


# =============================================================================
# Plans
# =============================================================================


@dataclass(frozen=True)
class Allocation:
    """One child block of a plan."""

    role: str
    index: int
    block: CIDRBlock

    @property
    def key(self) -> str:
        """Flat name such as "ovpn3", or just the index when there is no role."""
        return f"{self.role}{self.index}" if self.role else str(self.index)


@dataclass(frozen=True)
class AllocationPlan:
    """Ordered children carved from a single parent block."""

    parent: CIDRBlock
    allocations: tuple[Allocation, ...]

    def __iter__(self) -> Iterator[Allocation]:
        return iter(self.allocations)

    def __len__(self) -> int:
        return len(self.allocations)

    @property
    def blocks(self) -> list[CIDRBlock]:
        return [a.block for a in self.allocations]

    @property
    def child_prefix(self) -> int:
        return self.allocations[0].block.prefix

    def block(self, index: int) -> CIDRBlock:
        """Return the child with the given 1-based index."""
        if not 1 <= index <= len(self.allocations):
            raise IndexError(
                f"Allocation index {index} out of range 1..{len(self.allocations)}"
            )
        return self.allocations[index - 1].block


@dataclass(frozen=True)
class VPNPoolSplit:
    """
    A VPN client pool split first by protocol, then by tenant.

    Attributes:
        pool: The whole client pool
        protocol_a: Lower half, reserved for OpenVPN
        protocol_b: Upper half, reserved for WireGuard
        per_tenant_a: protocol_a subdivided per tenant
        per_tenant_b: protocol_b subdivided per tenant
    """

    pool: CIDRBlock
    protocol_a: CIDRBlock
    protocol_b: CIDRBlock
    per_tenant_a: AllocationPlan
    per_tenant_b: AllocationPlan

    @property
    def tenant_count(self) -> int:
        return len(self.per_tenant_a)

    def for_protocol(self, protocol: VPNProtocol) -> AllocationPlan:
        if protocol == VPNProtocol.OPENVPN:
            return self.per_tenant_a
        return self.per_tenant_b


def _is_power_of_two(count: int) -> bool:
    return isinstance(count, int) and count > 0 and count & (count - 1) == 0


def subdivide(parent: CIDRBlock | str, count: int, role: str = "") -> AllocationPlan:
    """
    Split a block into count equal children.

    Args:
        parent: Block to split (CIDRBlock or aligned CIDR text)
        count: Number of children, a power of two (1 returns the parent)
        role: Label carried by every child, e.g. "ovpn"

    Raises:
        NotPowerOfTwoError: If count is not a positive power of two.
        PrefixOverflowError: If the children would need a prefix beyond /32.
    """
    parent = as_block(parent)
    if not _is_power_of_two(count):
        raise NotPowerOfTwoError(count)

    bits = count.bit_length() - 1
    new_prefix = parent.prefix + bits
    if new_prefix > 32:
        raise PrefixOverflowError(str(parent), count, new_prefix)

    size = 1 << (32 - new_prefix)
    allocations = tuple(
        Allocation(role, i + 1, CIDRBlock(parent.network + i * size, new_prefix))
        for i in range(count)
    )
    return AllocationPlan(parent, allocations)


def split_vpn_pool(pool: CIDRBlock | str, tenant_count: int) -> VPNPoolSplit:
    """
    Halve a VPN pool by protocol, then split each half per tenant.

    For 192.168.81.0/24 and 8 tenants: OpenVPN gets 192.168.81.0/25 as
    eight /28s starting at 192.168.81.0/28, WireGuard gets 192.168.81.128/25.
    """
    pool = as_block(pool)
    if not _is_power_of_two(tenant_count):
        raise NotPowerOfTwoError(tenant_count)

    halves = subdivide(pool, 2)
    protocol_a, protocol_b = halves.blocks
    return VPNPoolSplit(
        pool=pool,
        protocol_a=protocol_a,
        protocol_b=protocol_b,
        per_tenant_a=subdivide(protocol_a, tenant_count, VPNProtocol.OPENVPN.value),
        per_tenant_b=subdivide(protocol_b, tenant_count, VPNProtocol.WIREGUARD.value),
    )


# =============================================================================
# Existing Networks
# =============================================================================


@dataclass(frozen=True)
class ExistingNetworkSet:
    """Normalized, deduplicated, sorted networks already in use."""

    blocks: tuple[CIDRBlock, ...] = ()

    def __iter__(self) -> Iterator[CIDRBlock]:
        return iter(self.blocks)

    def __len__(self) -> int:
        return len(self.blocks)

    def __contains__(self, block: object) -> bool:
        return block in self.blocks

    def overlapping(self, block: CIDRBlock | str) -> list[CIDRBlock]:
        """All known networks sharing an address with block."""
        block = as_block(block)
        return [b for b in self.blocks if overlaps(b, block)]

    def conflicts_with(self, block: CIDRBlock | str) -> bool:
        return bool(self.overlapping(block))

    def as_strings(self) -> list[str]:
        return [str(b) for b in self.blocks]


def normalize_networks(entries: Iterable[str | CIDRBlock]) -> ExistingNetworkSet:
    """
    Normalize raw CIDR strings into an ExistingNetworkSet.

    Each entry is reduced to its network address, duplicates collapse, and any
    entry that is a strict subset of another entry is dropped. Unparseable
    entries are skipped with a debug log.
    """
    unique: set[CIDRBlock] = set()
    for entry in entries:
        if isinstance(entry, CIDRBlock):
            unique.add(entry)
            continue
        try:
            unique.add(parse_cidr_lenient(entry))
        except InvalidCIDRError as e:
            logger.debug(f"Skipping unparseable network entry: {e}")

    kept = [
        block
        for block in unique
        if not any(
            other.prefix < block.prefix and is_subset(block, other) for other in unique
        )
    ]
    kept.sort()
    return ExistingNetworkSet(tuple(kept))


# =============================================================================
# Allocator
# =============================================================================


class NetworkAllocator:
    """
    Discovers networks in use and searches for free private blocks.

    Args:
        sources: Discovery sources queried in order. A failing source
            contributes nothing.
    """

    def __init__(self, sources: Sequence[DiscoverySource] = ()):
        self.sources = list(sources)

    def discover_existing_networks(self) -> ExistingNetworkSet:
        """Query every source and merge the results."""
        collected: list[str] = []
        for source in self.sources:
            try:
                entries = list(source.collect())
            except Exception as e:
                logger.warning(f"Discovery source '{source.name}' failed: {e}")
                logger.debug(format_traceback(e))
                continue
            logger.debug(f"Discovery source '{source.name}': {len(entries)} entries")
            collected.extend(entries)

        existing = normalize_networks(collected)
        logger.info(f"Discovered {len(existing)} existing networks")
        return existing

    def find_available_block(
        self,
        prefix_len: int,
        address_class: AddressClass | str,
        exclude: Iterable[CIDRBlock | str] = (),
        existing: ExistingNetworkSet | None = None,
    ) -> CIDRBlock:
        """
        Find the lowest aligned block of the given size that is free.

        Candidates start at the class base (10.0.0.0, 172.16.0.0 or
        192.168.0.0) and step by the block size. At most MAX_CANDIDATES are
        examined and the walk never leaves the private class range.

        Args:
            prefix_len: Prefix length of the wanted block
            address_class: AddressClass or its first octet ("10", "172", "192")
            exclude: Extra blocks to avoid, e.g. ones proposed earlier
            existing: Pre-computed networks; discovered when omitted

        Raises:
            NetworkError: If address_class is not one of the private classes.
            InvalidPrefixError: If prefix_len does not fit inside the class.
            ExhaustedError: If no candidate is free.
        """
        try:
            address_class = AddressClass(address_class)
        except ValueError:
            raise NetworkError(
                f"Unknown address class '{address_class}': expected 10, 172 or 192"
            )
        class_block = CLASS_BASES[address_class]

        if not class_block.prefix <= prefix_len <= 32:
            raise InvalidPrefixError(
                prefix_len,
                f"must be between /{class_block.prefix} and /32 "
                f"for class {address_class.value}",
            )

        if existing is None:
            existing = self.discover_existing_networks()
        avoid = list(existing) + [as_block(b) for b in exclude]

        size = 1 << (32 - prefix_len)
        tried = 0
        for i in range(MAX_CANDIDATES):
            network = class_block.network + i * size
            if network + size - 1 > class_block.last:
                break
            tried += 1
            candidate = CIDRBlock(network, prefix_len)
            if any(overlaps(candidate, block) for block in avoid):
                continue
            logger.debug(f"Found available block {candidate} after {tried} candidates")
            return candidate

        raise ExhaustedError(prefix_len, class_block.address, tried)
