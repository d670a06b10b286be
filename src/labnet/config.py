"""
Runtime configuration for LabNet.

This module defines the configuration dataclass for the CLI and the
reconciliation engine: how to reach the SDN controller, where the baseline
lives, and which host files are scanned during network discovery.

The network layout itself (site LAN, VPN DMZ, project blocks) is not part of
this object. It is loaded into an immutable ConfigurationRecord and passed
explicitly to whoever needs it.

Usage:
    from labnet.config import config

    # Modify configuration before running a command
    config.PVE_HOST = "pve01.lab"
    config.LOG_LEVEL = LogLevel.DEBUG
"""

import os
import shlex
import socket
from dataclasses import dataclass, field
from enum import Enum

from labnet.models.enums import LogLevel, OutputFormat


# =============================================================================
# Configuration Dataclass
# =============================================================================


@dataclass
class LabNetConfig:
    """
    LabNet configuration.

    Attributes:
        PVE_HOST: Controller API host name or address.
        PVE_PORT: Controller API port.
        PVE_TOKEN_ID: API token id, e.g. "root@pam!labnet".
        PVE_TOKEN_SECRET: API token secret.
        NODE_NAME: Node whose host firewall and routes are managed.
        BASELINE_DB: SQLite file holding the captured baseline.
        ENV_FILE: Network configuration record (KEY=VALUE lines).
        LOG_LEVEL: Logging verbosity level.
    """

    # -------------------------------------------------------------------------
    # Controller Configuration
    # -------------------------------------------------------------------------

    PVE_HOST: str = "127.0.0.1"
    PVE_PORT: int = 8006
    PVE_TOKEN_ID: str = ""
    PVE_TOKEN_SECRET: str = ""
    PVE_VERIFY_SSL: bool = False
    NODE_NAME: str = field(default_factory=socket.gethostname)
    REQUEST_TIMEOUT: float = 30.0

    # -------------------------------------------------------------------------
    # Path Configuration
    # -------------------------------------------------------------------------

    BASELINE_DB: str = "sdn_backup/baseline.db"
    ENV_FILE: str = ".env"
    STATIC_INTERFACES_FILES: list[str] = field(
        default_factory=lambda: ["/etc/network/interfaces"]
    )
    SDN_CONFIG_FILES: list[str] = field(
        default_factory=lambda: ["/etc/pve/sdn/vnets.cfg", "/etc/pve/sdn/subnets.cfg"]
    )
    SDN_INTERFACES_FILE: str = "/etc/network/interfaces.d/sdn"

    # -------------------------------------------------------------------------
    # Route Persistence
    # -------------------------------------------------------------------------

    PERSIST_POOL_ROUTE: bool = True
    RELOAD_COMMAND: list[str] = field(default_factory=lambda: ["ifreload", "-a"])

    # -------------------------------------------------------------------------
    # Logging Configuration
    # -------------------------------------------------------------------------

    LOG_LEVEL: LogLevel = LogLevel.INFO
    LOG_FILE: str = ""

    # -------------------------------------------------------------------------
    # Output Configuration
    # -------------------------------------------------------------------------

    OUTPUT_FORMAT: OutputFormat = OutputFormat.TABLE

    # -------------------------------------------------------------------------
    # Helper Methods
    # -------------------------------------------------------------------------

    def get_api_url(self) -> str:
        """Get the controller API base URL."""
        return f"https://{self.PVE_HOST}:{self.PVE_PORT}/api2/json"

    def get_auth_header(self) -> dict[str, str]:
        """Get the API token authorization header, empty when no token is set."""
        if not self.PVE_TOKEN_ID:
            return {}
        return {
            "Authorization": f"PVEAPIToken={self.PVE_TOKEN_ID}={self.PVE_TOKEN_SECRET}"
        }

    def load_env_overrides(self) -> None:
        """Apply LABNET_* environment variables on top of the defaults."""
        for name, current in list(vars(self).items()):
            raw = os.environ.get(f"LABNET_{name}")
            if raw is None:
                continue
            if isinstance(current, bool):
                setattr(self, name, raw.strip().lower() in ("1", "true", "yes", "on"))
            elif isinstance(current, Enum):
                setattr(self, name, type(current)(raw.strip().lower()))
            elif isinstance(current, int):
                setattr(self, name, int(raw))
            elif isinstance(current, float):
                setattr(self, name, float(raw))
            elif isinstance(current, list) and name.endswith("_FILES"):
                setattr(self, name, [p for p in raw.split(":") if p])
            elif isinstance(current, list):
                setattr(self, name, shlex.split(raw))
            else:
                setattr(self, name, raw)


# Global config instance
config = LabNetConfig()
