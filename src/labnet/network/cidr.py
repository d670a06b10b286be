"""
IPv4 CIDR arithmetic.

Everything here works on plain integers under the hood: an address is a
value in 0..2**32-1 and a block is (network, prefix) with no host bits set.

Conventions used by the rest of LabNet:
- Transit (VPN DMZ) gateway is the first host of its block.
- Project gateways are the last host of their block.
- A /32 block's network and broadcast address are the address itself.
"""

from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass

from labnet.network.exceptions import InvalidAddressError, InvalidCIDRError

MAX_ADDRESS = 0xFFFFFFFF

_IP_RE = re.compile(r"^(\d{1,3})\.(\d{1,3})\.(\d{1,3})\.(\d{1,3})$")
_CIDR_RE = re.compile(r"^(\d{1,3}(?:\.\d{1,3}){3})/(\d{1,2})$")

# RFC 1918 blocks as (network, prefix)
_PRIVATE_BLOCKS = (
    (0x0A000000, 8),  # 10.0.0.0/8
    (0xAC100000, 12),  # 172.16.0.0/12
    (0xC0A80000, 16),  # 192.168.0.0/16
)


# =============================================================================
# Types
# =============================================================================


@dataclass(frozen=True, order=True)
class CIDRBlock:
    """
    An aligned IPv4 block.

    Attributes:
        network: Network address as an integer (host bits always clear)
        prefix: Prefix length, 0..32
    """

    network: int
    prefix: int

    def __post_init__(self) -> None:
        if not 0 <= self.prefix <= 32:
            raise InvalidCIDRError(
                f"{self.network}/{self.prefix}", "prefix must be between 0 and 32"
            )
        if not 0 <= self.network <= MAX_ADDRESS:
            raise InvalidCIDRError(
                f"{self.network}/{self.prefix}", "network out of IPv4 range"
            )
        if self.network & ~netmask(self.prefix) & MAX_ADDRESS:
            correct = from_int(self.network & netmask(self.prefix))
            raise InvalidCIDRError(
                f"{from_int(self.network)}/{self.prefix}",
                f"host bits set, network address is {correct}/{self.prefix}",
            )

    @property
    def size(self) -> int:
        """Number of addresses in the block."""
        return 1 << (32 - self.prefix)

    @property
    def first(self) -> int:
        return self.network

    @property
    def last(self) -> int:
        return self.network + self.size - 1

    @property
    def address(self) -> str:
        """Dotted-quad network address."""
        return from_int(self.network)

    def __str__(self) -> str:
        return f"{from_int(self.network)}/{self.prefix}"

    def __repr__(self) -> str:
        return f"CIDRBlock('{self}')"


@dataclass(frozen=True)
class AddressRange:
    """Closed interval of addresses covered by a block."""

    first: int
    last: int

    @property
    def first_address(self) -> str:
        return from_int(self.first)

    @property
    def last_address(self) -> str:
        return from_int(self.last)

    def __str__(self) -> str:
        return f"{self.first_address} - {self.last_address}"


# =============================================================================
# Address Conversion
# =============================================================================


def to_int(address: str) -> int:
    """
    Convert a dotted-quad address to an integer.

    Raises:
        InvalidAddressError: If the text is not four octets in 0..255.
    """
    match = _IP_RE.match(address.strip()) if isinstance(address, str) else None
    if not match:
        raise InvalidAddressError(address)

    value = 0
    for octet in match.groups():
        number = int(octet)
        if number > 255:
            raise InvalidAddressError(address, f"octet {number} exceeds 255")
        value = (value << 8) | number
    return value


def from_int(value: int) -> str:
    """
    Convert an integer to a dotted-quad address.

    Raises:
        InvalidAddressError: If the value is outside 0..2**32-1.
    """
    if not isinstance(value, int) or not 0 <= value <= MAX_ADDRESS:
        raise InvalidAddressError(value, "outside 0..4294967295")
    return str(ipaddress.IPv4Address(value))


def parse_ip(text: str) -> int:
    """Alias of to_int for call sites that read better as parsing."""
    return to_int(text)


def validate_ip(text: str) -> bool:
    """Return True if text is a valid dotted-quad IPv4 address."""
    try:
        to_int(text)
    except InvalidAddressError:
        return False
    return True


def netmask(prefix: int) -> int:
    """Integer netmask for a prefix length."""
    if prefix <= 0:
        return 0
    return (MAX_ADDRESS << (32 - prefix)) & MAX_ADDRESS


# =============================================================================
# Parsing
# =============================================================================


def _split_cidr(text: str) -> tuple[int, int]:
    if not isinstance(text, str):
        raise InvalidCIDRError(str(text), "expected text in a.b.c.d/p form")

    match = _CIDR_RE.match(text.strip())
    if not match:
        raise InvalidCIDRError(text, "expected a.b.c.d/p form")

    try:
        address = to_int(match.group(1))
    except InvalidAddressError as e:
        raise InvalidCIDRError(text, e.reason)

    prefix = int(match.group(2))
    if prefix > 32:
        raise InvalidCIDRError(text, "prefix must be between 0 and 32")
    return address, prefix


def parse_cidr(text: str) -> CIDRBlock:
    """
    Parse aligned CIDR text.

    "192.168.1.0/24" is accepted, "192.168.1.5/24" is rejected because the
    address has host bits set.

    Raises:
        InvalidCIDRError: On malformed or non-aligned input.
    """
    address, prefix = _split_cidr(text)
    if address & ~netmask(prefix) & MAX_ADDRESS:
        correct = from_int(address & netmask(prefix))
        raise InvalidCIDRError(
            text, f"host bits set, network address is {correct}/{prefix}"
        )
    return CIDRBlock(address, prefix)


def parse_cidr_lenient(text: str) -> CIDRBlock:
    """
    Parse CIDR text and normalize it to its network address.

    Used for discovered addresses such as "192.168.1.5/24" taken from an
    interface, which stand for the 192.168.1.0/24 network.
    """
    address, prefix = _split_cidr(text)
    return CIDRBlock(address & netmask(prefix), prefix)


def as_block(value: CIDRBlock | str) -> CIDRBlock:
    """Accept either a CIDRBlock or aligned CIDR text."""
    if isinstance(value, CIDRBlock):
        return value
    return parse_cidr(value)


# =============================================================================
# Block Arithmetic
# =============================================================================


def network_address(block: CIDRBlock | str) -> str:
    return from_int(as_block(block).first)


def broadcast_address(block: CIDRBlock | str) -> str:
    return from_int(as_block(block).last)


def address_range(block: CIDRBlock | str) -> AddressRange:
    block = as_block(block)
    return AddressRange(block.first, block.last)


def first_host(block: CIDRBlock | str) -> str:
    """First usable host (network + 1), or the network itself for /31 and /32."""
    block = as_block(block)
    if block.prefix >= 31:
        return from_int(block.first)
    return from_int(block.first + 1)


def last_host(block: CIDRBlock | str) -> str:
    """Last usable host (broadcast - 1), or the broadcast itself for /31 and /32."""
    block = as_block(block)
    if block.prefix >= 31:
        return from_int(block.last)
    return from_int(block.last - 1)


def overlaps(a: CIDRBlock | str, b: CIDRBlock | str) -> bool:
    """True if the two blocks share at least one address."""
    a = as_block(a)
    b = as_block(b)
    return a.first <= b.last and b.first <= a.last


def contains(block: CIDRBlock | str, address: str | int) -> bool:
    """True if the address lies inside the block (closed interval)."""
    block = as_block(block)
    value = to_int(address) if isinstance(address, str) else address
    return block.first <= value <= block.last


def is_subset(inner: CIDRBlock | str, outer: CIDRBlock | str) -> bool:
    """True if every address of inner lies inside outer."""
    inner = as_block(inner)
    outer = as_block(outer)
    return outer.first <= inner.first and inner.last <= outer.last


def is_private(address: str | int | CIDRBlock) -> bool:
    """
    True if the address (or whole block) lies in 10/8, 172.16/12 or 192.168/16.

    Invalid text is simply not private.
    """
    if isinstance(address, CIDRBlock):
        first, last = address.first, address.last
    else:
        try:
            first = last = to_int(address) if isinstance(address, str) else address
        except InvalidAddressError:
            return False

    for network, prefix in _PRIVATE_BLOCKS:
        end = network + (1 << (32 - prefix)) - 1
        if network <= first and last <= end:
            return True
    return False
