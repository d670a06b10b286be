"""
Provisioning run sequencing.

    no baseline yet   -> capture one first
    restore-only      -> restore if a baseline existed at start, else stop
    normal run        -> restore if a baseline existed at start, then apply

A baseline captured during this run is not restored in the same run: the
live state is the baseline at that point.
"""

from __future__ import annotations

from dataclasses import dataclass

from labnet.controller.exceptions import RouteError
from labnet.controller.routes import persist_route_in_interfaces
from labnet.fabric.desired import ICMP_RULE_COMMENTS, build_desired_state
from labnet.fabric.provisioner import ApplyPolicy
from labnet.fabric.reconciler import ReconciliationEngine
from labnet.models.enums import EngineState
from labnet.models.record import upsert_env_file
from labnet.models.reports import ApplyReport, ReconciliationReport
from labnet.models.resources import Baseline
from labnet.network.planner import AddressPlan
from labnet.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class WorkflowOptions:
    """
    Side effects of a run beyond the controller itself.

    Attributes:
        interfaces_file: SDN interfaces file receiving the return route hooks;
            empty disables route persistence.
        reload_command: Run after the interfaces file changed.
        env_file: .env file that receives the ICMP rule comments; empty skips.
    """

    interfaces_file: str = ""
    reload_command: list[str] | None = None
    env_file: str = ""


@dataclass
class WorkflowResult:
    had_baseline: bool
    captured: Baseline | None = None
    restore: ReconciliationReport | None = None
    apply: ApplyReport | None = None
    route_persisted: bool = False
    stopped: bool = False


def run(
    engine: ReconciliationEngine,
    plan: AddressPlan,
    restore_only: bool = False,
    policy: ApplyPolicy | None = None,
    options: WorkflowOptions | None = None,
) -> WorkflowResult:
    """
    Run one capture / restore / apply sequence.

    Raises:
        ProvisioningError: If a fatal create fails during apply.
    """
    options = options or WorkflowOptions()
    result = WorkflowResult(
        had_baseline=engine.state == EngineState.BASELINE_CAPTURED
    )

    if not result.had_baseline:
        logger.info("No baseline found, capturing current state")
        result.captured = engine.capture_baseline()

    if restore_only:
        if not result.had_baseline:
            logger.warning("Restore requested but no earlier baseline existed")
            result.stopped = True
            return result
        result.restore = engine.restore_to_baseline()
        return result

    if result.had_baseline:
        result.restore = engine.restore_to_baseline()

    desired = build_desired_state(plan)
    result.apply = engine.apply_desired_state(desired, policy)

    route = desired.pool_route
    if route is not None and options.interfaces_file:
        try:
            result.route_persisted = persist_route_in_interfaces(
                options.interfaces_file,
                route.destination,
                route.via,
                route.device,
                reload_command=options.reload_command,
            )
        except RouteError as e:
            logger.warning(f"Return route not persisted: {e}")

    if options.env_file:
        upsert_env_file(
            options.env_file,
            {
                f"ICMP_RULE_COMMENT{i}": comment
                for i, comment in enumerate(ICMP_RULE_COMMENTS, start=1)
            },
        )
        logger.info(f"ICMP rule comments written to {options.env_file}")

    return result
