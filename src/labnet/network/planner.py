"""
Address plan derived from a configuration record.

plan_from_record() validates every block and address in the record against
the fabric layout and derives everything the record leaves implicit: the
VPN DMZ gateway, per-project blocks and gateways, and the per-tenant VPN
pool split. propose_networks() suggests free defaults for a fresh install.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from labnet.models.enums import AddressClass
from labnet.models.record import ConfigurationRecord
from labnet.network.allocator import (
    AllocationPlan,
    ExistingNetworkSet,
    NetworkAllocator,
    VPNPoolSplit,
    split_vpn_pool,
    subdivide,
)
from labnet.network.cidr import (
    CIDRBlock,
    contains,
    first_host,
    is_private,
    last_host,
    overlaps,
    parse_cidr,
)
from labnet.network.exceptions import NetworkError, PlanValidationError
from labnet.utils.logger import get_logger

logger = get_logger(__name__)

# Smallest segment that still has a gateway and at least one host
MAX_SEGMENT_PREFIX = 30

# Defaults offered on a fresh install, used when they are free
DEFAULT_VPNDMZ = "192.168.80.0/24"
DEFAULT_VPN_POOL = "192.168.81.0/24"
DEFAULT_PROJECT_BLOCK = "172.16.16.0/21"

# Keys derived by the plan; everything else in the record passes through
_DERIVED_PREFIXES = ("OVPN_POOL", "WG_POOL")


@dataclass(frozen=True)
class ProjectSegment:
    """One tenant's network segment."""

    index: int
    block: CIDRBlock
    gateway: str

    @property
    def tag(self) -> str:
        """Zero-padded project number, e.g. "03"."""
        return f"{self.index:02d}"


@dataclass(frozen=True)
class AddressPlan:
    """Validated address layout of the whole fabric."""

    tenant_count: int
    site_lan: CIDRBlock
    site_gateway: str
    vpn_dmz: CIDRBlock
    vpn_dmz_gateway: str
    vpn_pool: VPNPoolSplit
    project_block: CIDRBlock
    projects: AllocationPlan
    project_gateways: tuple[str, ...]
    vpn_ingress: str | None = None
    vpn_egress: str | None = None
    openvpn_ports: tuple[int, int] | None = None
    wireguard_ports: tuple[int, int] | None = None
    dns_servers: tuple[str, ...] = ()
    passthrough: dict[str, str] = field(default_factory=dict)

    def segments(self) -> list[ProjectSegment]:
        return [
            ProjectSegment(a.index, a.block, gw)
            for a, gw in zip(self.projects, self.project_gateways)
        ]

    def managed_blocks(self) -> list[CIDRBlock]:
        return [self.vpn_pool.pool, self.vpn_dmz, self.project_block]

    def to_env(self) -> dict[str, str]:
        """Flat key set written to the `.env` file."""
        env = dict(self.passthrough)
        env.update(
            {
                "ML_CIDR": str(self.site_lan),
                "ML_GW": self.site_gateway,
                "NUM_PJ": str(self.tenant_count),
                "VPNDMZ_CIDR": str(self.vpn_dmz),
                "VPNDMZ_GW": self.vpn_dmz_gateway,
                "VPN_POOL": str(self.vpn_pool.pool),
                "OVPN_POOL": str(self.vpn_pool.protocol_a),
                "WG_POOL": str(self.vpn_pool.protocol_b),
                "PJALL_CIDR": str(self.project_block),
            }
        )
        for allocation in self.vpn_pool.per_tenant_a:
            env[f"OVPN_POOL{allocation.index}"] = str(allocation.block)
        for allocation in self.vpn_pool.per_tenant_b:
            env[f"WG_POOL{allocation.index}"] = str(allocation.block)
        for segment in self.segments():
            env[f"PJ{segment.tag}_CIDR"] = str(segment.block)
            env[f"PJ{segment.tag}_GW"] = segment.gateway
        if self.vpn_ingress:
            env["PT_IG_IP"] = self.vpn_ingress
        if self.vpn_egress:
            env["PT_EG_IP"] = self.vpn_egress
        if self.dns_servers:
            env["DNS_IP1"] = self.dns_servers[0]
        if len(self.dns_servers) > 1:
            env["DNS_IP2"] = self.dns_servers[1]
        return env


# =============================================================================
# Validation helpers
# =============================================================================


def _require_private(key: str, block: CIDRBlock) -> None:
    if not is_private(block):
        raise PlanValidationError(
            key, str(block), "must lie in 10/8, 172.16/12 or 192.168/16"
        )


def _require_inside(key: str, address: str, block: CIDRBlock, block_key: str) -> None:
    if not contains(block, address):
        raise PlanValidationError(key, address, f"must lie inside {block_key}={block}")


def _check_port_range(
    record: ConfigurationRecord, start_key: str, end_key: str, tenants: int
) -> tuple[int, int] | None:
    if record.get(start_key) is None and record.get(end_key) is None:
        return None
    start, end = record.port_range(start_key, end_key)
    if end - start + 1 != tenants:
        raise PlanValidationError(
            end_key,
            str(end),
            f"range {start}-{end} has {end - start + 1} ports, expected {tenants}",
        )
    return start, end


# =============================================================================
# Planning
# =============================================================================


def plan_from_record(
    record: ConfigurationRecord, existing: ExistingNetworkSet | None = None
) -> AddressPlan:
    """
    Build and validate the address plan for a record.

    Args:
        record: Configuration with at least ML_CIDR, VPNDMZ_CIDR, VPN_POOL
            and PJALL_CIDR
        existing: Networks already in use; fabric blocks must not overlap
            them. Skipped when None.

    Raises:
        PlanValidationError: On any layout violation.
        NetworkError: On subdivision failures.
    """
    tenants = record.tenant_count

    site_lan = record.site_lan
    vpn_dmz = record.vpn_dmz
    pool = record.vpn_pool
    project_block = record.project_block

    fabric = {
        "VPNDMZ_CIDR": vpn_dmz,
        "VPN_POOL": pool,
        "PJALL_CIDR": project_block,
    }
    for key, block in fabric.items():
        _require_private(key, block)

    # Fabric blocks must be disjoint from each other and from the site LAN
    checked = [("ML_CIDR", site_lan)] + list(fabric.items())
    for i, (key_a, block_a) in enumerate(checked):
        for key_b, block_b in checked[i + 1 :]:
            if overlaps(block_a, block_b):
                raise PlanValidationError(
                    key_b, str(block_b), f"overlaps {key_a}={block_a}"
                )

    if existing is not None:
        for key, block in fabric.items():
            clashes = existing.overlapping(block)
            if clashes:
                raise PlanValidationError(
                    key,
                    str(block),
                    f"overlaps existing network {', '.join(map(str, clashes))}",
                )

    if vpn_dmz.prefix > MAX_SEGMENT_PREFIX:
        raise PlanValidationError(
            "VPNDMZ_CIDR",
            str(vpn_dmz),
            f"prefix must be /{MAX_SEGMENT_PREFIX} or shorter",
        )

    site_gateway = record.address("ML_GW")
    _require_inside("ML_GW", site_gateway, site_lan, "ML_CIDR")

    vpn_dmz_gateway = record.optional_address("VPNDMZ_GW") or first_host(vpn_dmz)
    if vpn_dmz_gateway != first_host(vpn_dmz):
        logger.warning(
            f"VPNDMZ_GW={vpn_dmz_gateway} is not the first host of {vpn_dmz}"
        )
    _require_inside("VPNDMZ_GW", vpn_dmz_gateway, vpn_dmz, "VPNDMZ_CIDR")

    try:
        projects = subdivide(project_block, tenants, "pj")
    except NetworkError as e:
        raise PlanValidationError("PJALL_CIDR", str(project_block), str(e))
    if projects.child_prefix > MAX_SEGMENT_PREFIX:
        raise PlanValidationError(
            "PJALL_CIDR",
            str(project_block),
            f"{tenants} projects need /{projects.child_prefix} segments, "
            f"at most /{MAX_SEGMENT_PREFIX} is usable",
        )
    project_gateways = tuple(last_host(block) for block in projects.blocks)

    try:
        pool_split = split_vpn_pool(pool, tenants)
    except NetworkError as e:
        raise PlanValidationError("VPN_POOL", str(pool), str(e))

    pve_ip = record.optional_address("PVE_IP")
    if pve_ip:
        _require_inside("PVE_IP", pve_ip, site_lan, "ML_CIDR")

    vpn_ingress = record.optional_address("PT_IG_IP")
    if vpn_ingress:
        _require_inside("PT_IG_IP", vpn_ingress, site_lan, "ML_CIDR")

    vpn_egress = record.optional_address("PT_EG_IP")
    if vpn_egress:
        _require_inside("PT_EG_IP", vpn_egress, vpn_dmz, "VPNDMZ_CIDR")
        if vpn_egress == vpn_dmz_gateway:
            raise PlanValidationError(
                "PT_EG_IP", vpn_egress, "must differ from VPNDMZ_GW"
            )

    openvpn_ports = _check_port_range(record, "PF_ST_OV", "PF_ED_OV", tenants)
    wireguard_ports = _check_port_range(record, "PF_ST_WG", "PF_ED_WG", tenants)

    dns_servers = [record.optional_address("DNS_IP1") or site_gateway]
    dns2 = record.optional_address("DNS_IP2")
    if dns2:
        dns_servers.append(dns2)

    passthrough = {
        k: v
        for k, v in record.as_dict().items()
        if not k.startswith(_DERIVED_PREFIXES)
        and not (k.startswith("PJ") and k[2:4].isdigit())
    }

    plan = AddressPlan(
        tenant_count=tenants,
        site_lan=site_lan,
        site_gateway=site_gateway,
        vpn_dmz=vpn_dmz,
        vpn_dmz_gateway=vpn_dmz_gateway,
        vpn_pool=pool_split,
        project_block=project_block,
        projects=projects,
        project_gateways=project_gateways,
        vpn_ingress=vpn_ingress,
        vpn_egress=vpn_egress,
        openvpn_ports=openvpn_ports,
        wireguard_ports=wireguard_ports,
        dns_servers=tuple(dns_servers),
        passthrough=passthrough,
    )
    logger.debug(
        f"Planned {tenants} projects in {project_block}, "
        f"DMZ {vpn_dmz} (gw {vpn_dmz_gateway}), pool {pool}"
    )
    return plan


# =============================================================================
# Proposals
# =============================================================================


@dataclass(frozen=True)
class NetworkProposal:
    """Free blocks suggested for a fresh install."""

    vpn_dmz: CIDRBlock
    vpn_pool: CIDRBlock
    project_block: CIDRBlock

    def to_env(self) -> dict[str, str]:
        return {
            "VPNDMZ_CIDR": str(self.vpn_dmz),
            "VPNDMZ_GW": first_host(self.vpn_dmz),
            "VPN_POOL": str(self.vpn_pool),
            "PJALL_CIDR": str(self.project_block),
        }


def _propose(
    allocator: NetworkAllocator,
    existing: ExistingNetworkSet,
    default: str,
    prefix_len: int,
    address_class: AddressClass,
    taken: list[CIDRBlock],
) -> CIDRBlock:
    preferred = parse_cidr(default)
    if not existing.conflicts_with(preferred) and not any(
        overlaps(preferred, t) for t in taken
    ):
        return preferred
    logger.info(f"Default {default} is in use, searching for a free /{prefix_len}")
    return allocator.find_available_block(
        prefix_len, address_class, exclude=taken, existing=existing
    )


def propose_networks(
    allocator: NetworkAllocator,
    tenant_count: int,
    existing: ExistingNetworkSet | None = None,
) -> NetworkProposal:
    """
    Propose VPN DMZ, VPN pool and project block for a fresh install.

    The defaults (192.168.80.0/24, 192.168.81.0/24, 172.16.16.0/21) are used
    when free; otherwise the lowest free block of the same size in the same
    class is taken. Proposals never overlap each other.
    """
    if existing is None:
        existing = allocator.discover_existing_networks()

    # Validates the count before any search
    subdivide(DEFAULT_PROJECT_BLOCK, tenant_count)

    taken: list[CIDRBlock] = []
    vpn_dmz = _propose(
        allocator, existing, DEFAULT_VPNDMZ, 24, AddressClass.CLASS_C, taken
    )
    taken.append(vpn_dmz)
    vpn_pool = _propose(
        allocator, existing, DEFAULT_VPN_POOL, 24, AddressClass.CLASS_C, taken
    )
    taken.append(vpn_pool)
    project_block = _propose(
        allocator, existing, DEFAULT_PROJECT_BLOCK, 21, AddressClass.CLASS_B, taken
    )
    return NetworkProposal(vpn_dmz, vpn_pool, project_block)
