"""
Address planning for the lab fabric.

Re-exports the arithmetic and allocation entry points:
    from labnet.network import parse_cidr, subdivide, split_vpn_pool
"""

from labnet.network.allocator import (
    Allocation,
    AllocationPlan,
    ExistingNetworkSet,
    NetworkAllocator,
    VPNPoolSplit,
    normalize_networks,
    split_vpn_pool,
    subdivide,
)
from labnet.network.cidr import (
    AddressRange,
    CIDRBlock,
    address_range,
    broadcast_address,
    contains,
    from_int,
    is_private,
    network_address,
    overlaps,
    parse_cidr,
    to_int,
    validate_ip,
)
from labnet.network.exceptions import (
    ExhaustedError,
    InvalidAddressError,
    InvalidCIDRError,
    InvalidPrefixError,
    NetworkError,
    NotPowerOfTwoError,
    PlanValidationError,
    PrefixOverflowError,
)

__all__ = [
    # Arithmetic
    "CIDRBlock",
    "AddressRange",
    "parse_cidr",
    "to_int",
    "from_int",
    "validate_ip",
    "network_address",
    "broadcast_address",
    "address_range",
    "overlaps",
    "contains",
    "is_private",
    # Allocation
    "Allocation",
    "AllocationPlan",
    "VPNPoolSplit",
    "ExistingNetworkSet",
    "NetworkAllocator",
    "normalize_networks",
    "subdivide",
    "split_vpn_pool",
    # Exceptions
    "NetworkError",
    "InvalidCIDRError",
    "InvalidAddressError",
    "InvalidPrefixError",
    "PrefixOverflowError",
    "NotPowerOfTwoError",
    "ExhaustedError",
    "PlanValidationError",
]
