"""
Fabric provisioning and baseline reconciliation.

    from labnet.fabric import BaselineStore, ReconciliationEngine, build_desired_state
"""

from labnet.fabric.desired import DesiredState, build_desired_state
from labnet.fabric.exceptions import (
    BaselineExistsError,
    BaselineMissingError,
    FabricError,
    ProvisioningError,
)
from labnet.fabric.provisioner import ApplyPolicy, Provisioner, apply_desired_state
from labnet.fabric.reconciler import ReconciliationEngine
from labnet.fabric.store import BaselineStore
from labnet.fabric.workflow import WorkflowOptions, WorkflowResult, run

__all__ = [
    # Desired state
    "DesiredState",
    "build_desired_state",
    # Engine
    "ApplyPolicy",
    "Provisioner",
    "apply_desired_state",
    "ReconciliationEngine",
    "BaselineStore",
    # Workflow
    "WorkflowOptions",
    "WorkflowResult",
    "run",
    # Exceptions
    "FabricError",
    "BaselineExistsError",
    "BaselineMissingError",
    "ProvisioningError",
]
