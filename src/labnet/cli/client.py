"""
Object construction for CLI commands.

Commands build their clients, record and store through these helpers so
the global config (already adjusted by CLI options and LABNET_* variables)
is read in one place. Tests monkeypatch the factories to inject fakes.
"""

from labnet.config import config
from labnet.controller.base import ControllerClient, RouteClient
from labnet.controller.proxmox import ProxmoxControllerClient
from labnet.controller.routes import IPRouteClient
from labnet.fabric.reconciler import ReconciliationEngine
from labnet.fabric.store import BaselineStore
from labnet.models.record import ConfigurationRecord
from labnet.network.allocator import NetworkAllocator
from labnet.network.discovery import default_sources


def get_controller() -> ControllerClient:
    return ProxmoxControllerClient.from_config(config)


def get_route_client() -> RouteClient:
    return IPRouteClient()


def get_store() -> BaselineStore:
    return BaselineStore(config.BASELINE_DB)


def load_record(path: str | None = None) -> ConfigurationRecord:
    """
    Load the network configuration record.

    Raises:
        FileNotFoundError: If the env file does not exist.
    """
    return ConfigurationRecord.from_env_file(path or config.ENV_FILE)


def get_allocator(local_only: bool = False) -> NetworkAllocator:
    """Allocator over the full discovery chain, or host files only."""
    if local_only:
        sources = default_sources(
            config.STATIC_INTERFACES_FILES, config.SDN_CONFIG_FILES
        )
    else:
        sources = default_sources(
            config.STATIC_INTERFACES_FILES,
            config.SDN_CONFIG_FILES,
            controller=get_controller(),
            routes=get_route_client(),
        )
    return NetworkAllocator(sources)


def get_engine(record: ConfigurationRecord) -> ReconciliationEngine:
    return ReconciliationEngine(
        get_controller(), get_route_client(), get_store(), record
    )
