"""
Enumeration types for LabNet.

Categorization and configuration options shared by the planner, the
reconciliation engine and the CLI.
"""

from enum import Enum


# =============================================================================
# Address Planning Enums
# =============================================================================


class AddressClass(str, Enum):
    """
    Private address class used as the base of a free-block search.

    The value is the first octet an operator types on the command line.
    """

    CLASS_A = "10"  # 10.0.0.0/8
    CLASS_B = "172"  # 172.16.0.0/12
    CLASS_C = "192"  # 192.168.0.0/16


class VPNProtocol(str, Enum):
    """VPN product a client pool half is reserved for."""

    OPENVPN = "ovpn"  # Lower half of the pool
    WIREGUARD = "wg"  # Upper half of the pool


# =============================================================================
# Reconciliation Enums
# =============================================================================


class ResourceKind(str, Enum):
    """
    Controller object kinds tracked by the baseline.

    Order of declaration matches the order collections are captured.
    """

    ZONE = "zones"
    NETWORK = "networks"
    SUBNET = "subnets"
    IPSET = "ipsets"
    IPSET_ENTRY = "ipset_entries"
    FIREWALL_OPTIONS = "firewall_options"
    HOST_FIREWALL_OPTIONS = "host_firewall_options"
    FIREWALL_RULE = "firewall_rules"
    ROUTE = "routes"
    POOL_ROUTE = "pool_routes"


class FailurePolicy(str, Enum):
    """
    What to do when creating an object fails.

    - FATAL: abort the whole apply pass
    - BEST_EFFORT: log, record in the report, carry on
    """

    FATAL = "fatal"
    BEST_EFFORT = "best_effort"


class EngineState(str, Enum):
    """Baseline lifecycle; a baseline is captured exactly once."""

    NO_BASELINE = "no_baseline"
    BASELINE_CAPTURED = "baseline_captured"


class DeletionOutcome(str, Enum):
    """Result of a single deletion during restore."""

    DELETED = "deleted"
    FAILED = "failed"


# =============================================================================
# Output / Logging Enums
# =============================================================================


class LogLevel(str, Enum):
    """Logging verbosity level."""

    FULL = "full"  # Everything including trace output
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"


class OutputFormat(str, Enum):
    """CLI output format."""

    TABLE = "table"
    JSON = "json"
    YAML = "yaml"
