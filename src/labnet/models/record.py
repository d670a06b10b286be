"""
Immutable network configuration record.

The record is the finished, flat KEY=VALUE configuration (normally the
project's `.env` file) that drives planning, provisioning and restore. It is
built once and passed explicitly; nothing in LabNet mutates it. Use
with_values() to derive an updated copy.

Recognized keys:
    ML_CIDR, ML_GW, PVE_IP          Site LAN
    NUM_PJ                          Tenant (project) count: 2, 4, 8 or 16
    VPNDMZ_CIDR, VPNDMZ_GW          VPN transit segment
    VPN_POOL                        VPN client pool
    PJALL_CIDR                      Block carved into per-project segments
    PT_IG_IP, PT_EG_IP              VPN appliance ingress (LAN) / egress (DMZ)
    PF_ST_OV, PF_ED_OV              OpenVPN port range
    PF_ST_WG, PF_ED_WG              WireGuard port range
    DNS_IP1, DNS_IP2                DNS servers reachable from projects

Unknown keys pass through untouched.
"""

from __future__ import annotations

import os
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from labnet.network.cidr import CIDRBlock, parse_cidr, to_int
from labnet.network.exceptions import (
    InvalidAddressError,
    InvalidCIDRError,
    PlanValidationError,
)

# Tenant counts the fabric layout supports
ALLOWED_TENANT_COUNTS = (2, 4, 8, 16)
DEFAULT_TENANT_COUNT = 8


def parse_env_text(text: str) -> dict[str, str]:
    """
    Parse KEY=VALUE lines.

    Blank lines and `#` comments are ignored, an optional `export ` prefix is
    dropped, and one layer of matching single or double quotes is stripped.
    """
    values: dict[str, str] = {}
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].lstrip()
        if "=" not in line:
            continue
        key, _, value = line.partition("=")
        key = key.strip()
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]
        if key:
            values[key] = value
    return values


def upsert_env_file(path: str, updates: Mapping[str, str]) -> None:
    """
    Set keys in an env file in place, appending keys that are not there yet.

    Other lines (comments, unrelated keys) are preserved as-is.
    """
    lines: list[str] = []
    if os.path.isfile(path):
        with open(path, encoding="utf-8") as f:
            lines = f.read().splitlines()

    pending = dict(updates)
    for i, line in enumerate(lines):
        key = line.split("=", 1)[0].strip()
        if "=" in line and key in pending:
            lines[i] = f"{key}={pending.pop(key)}"

    lines.extend(f"{key}={value}" for key, value in pending.items())

    with open(path, "w", encoding="utf-8") as f:
        f.write("\n".join(lines) + "\n")


@dataclass(frozen=True)
class ConfigurationRecord:
    """
    Read-only view over a flat configuration mapping.

    Attributes:
        values: Underlying key/value pairs (a read-only mapping proxy)
        source: Where the record was loaded from, for messages
    """

    values: Mapping[str, str] = field(default_factory=dict)
    source: str = "<memory>"

    def __post_init__(self) -> None:
        frozen = MappingProxyType({str(k): str(v) for k, v in self.values.items()})
        object.__setattr__(self, "values", frozen)

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @classmethod
    def from_mapping(
        cls, values: Mapping[str, object], source: str = "<memory>"
    ) -> ConfigurationRecord:
        return cls({k: str(v) for k, v in values.items() if v is not None}, source)

    @classmethod
    def from_env_file(cls, path: str) -> ConfigurationRecord:
        """
        Load a record from a `.env` file.

        Raises:
            FileNotFoundError: If the file does not exist.
        """
        with open(path, encoding="utf-8") as f:
            return cls(parse_env_text(f.read()), source=path)

    def with_values(self, **updates: object) -> ConfigurationRecord:
        """Return a new record with the given keys replaced or added."""
        merged = dict(self.values)
        merged.update({k: str(v) for k, v in updates.items() if v is not None})
        return ConfigurationRecord(merged, self.source)

    # -------------------------------------------------------------------------
    # Mapping access
    # -------------------------------------------------------------------------

    def __getitem__(self, key: str) -> str:
        return self.values[key]

    def __contains__(self, key: object) -> bool:
        return key in self.values

    def __iter__(self) -> Iterator[str]:
        return iter(self.values)

    def __len__(self) -> int:
        return len(self.values)

    def get(self, key: str, default: str | None = None) -> str | None:
        value = self.values.get(key)
        if value is None or value == "":
            return default
        return value

    def require(self, key: str) -> str:
        value = self.get(key)
        if value is None:
            raise PlanValidationError(key, "", f"missing from {self.source}")
        return value

    def as_dict(self) -> dict[str, str]:
        return dict(self.values)

    # -------------------------------------------------------------------------
    # Typed accessors
    # -------------------------------------------------------------------------

    def cidr(self, key: str) -> CIDRBlock:
        """Required aligned CIDR value."""
        value = self.require(key)
        try:
            return parse_cidr(value)
        except InvalidCIDRError as e:
            raise PlanValidationError(key, value, e.reason)

    def optional_cidr(self, key: str) -> CIDRBlock | None:
        if self.get(key) is None:
            return None
        return self.cidr(key)

    def address(self, key: str) -> str:
        """Required dotted-quad value."""
        value = self.require(key)
        try:
            to_int(value)
        except InvalidAddressError as e:
            raise PlanValidationError(key, value, e.reason)
        return value

    def optional_address(self, key: str) -> str | None:
        if self.get(key) is None:
            return None
        return self.address(key)

    def integer(self, key: str, default: int | None = None) -> int:
        value = self.get(key)
        if value is None:
            if default is None:
                raise PlanValidationError(key, "", f"missing from {self.source}")
            return default
        try:
            return int(value)
        except ValueError:
            raise PlanValidationError(key, value, "not an integer")

    @property
    def tenant_count(self) -> int:
        """NUM_PJ, defaulting to 8; must be one of 2, 4, 8, 16."""
        count = self.integer("NUM_PJ", DEFAULT_TENANT_COUNT)
        if count not in ALLOWED_TENANT_COUNTS:
            raise PlanValidationError(
                "NUM_PJ",
                str(count),
                f"must be one of {', '.join(map(str, ALLOWED_TENANT_COUNTS))}",
            )
        return count

    @property
    def site_lan(self) -> CIDRBlock:
        return self.cidr("ML_CIDR")

    @property
    def vpn_dmz(self) -> CIDRBlock:
        return self.cidr("VPNDMZ_CIDR")

    @property
    def vpn_pool(self) -> CIDRBlock:
        return self.cidr("VPN_POOL")

    @property
    def project_block(self) -> CIDRBlock:
        return self.cidr("PJALL_CIDR")

    def port_range(self, start_key: str, end_key: str) -> tuple[int, int]:
        start = self.integer(start_key)
        end = self.integer(end_key)
        for key, port in ((start_key, start), (end_key, end)):
            if not 1 <= port <= 65535:
                raise PlanValidationError(key, str(port), "port must be 1..65535")
        if end < start:
            raise PlanValidationError(end_key, str(end), f"below {start_key}={start}")
        return start, end

    def managed_blocks(self) -> list[CIDRBlock]:
        """Blocks this record places on the fabric (VPN pool, DMZ, projects)."""
        blocks = []
        for key in ("VPN_POOL", "VPNDMZ_CIDR", "PJALL_CIDR"):
            block = self.optional_cidr(key)
            if block is not None:
                blocks.append(block)
        return blocks
