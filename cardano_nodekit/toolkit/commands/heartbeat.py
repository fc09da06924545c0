"""
Automatic role failover for a producer/standby pair of cardano-node hosts.

Each scheduled run checks whether the parent node answers on its node port
and switches this host's unit file between the standby and block-producer
profiles to match: producer while the parent is down (if the signing
credentials are here), standby while it is up. The parent itself never
changes anything. Nothing is kept in memory between runs.

This does not coordinate with the peer and cannot prevent two producers
during a network partition that leaves each side seeing the other as down.
"""

import logging
from typing import Callable, Optional

from cardano_nodekit.config import ConfigError, FailoverSettings, get_config
from cardano_nodekit.toolkit.core.commands import CommandError
from cardano_nodekit.toolkit.core.decision import Action, decide
from cardano_nodekit.toolkit.core.ip_tools import NodeIdentity, is_parent, resolve_identity, resolve_parent_addresses
from cardano_nodekit.toolkit.core.lock import LockHeldError, RunLock
from cardano_nodekit.toolkit.core.outcome import Outcome, RunResult, report
from cardano_nodekit.toolkit.core.probe import ProbeResult, probe_parent
from cardano_nodekit.toolkit.core.role_state import RoleState, inspect_role_state
from cardano_nodekit.toolkit.core.systemd import ServiceController
from cardano_nodekit.toolkit.core.unit_file import ConfigWriteError, ServiceConfigError, write_unit_file

logger = logging.getLogger(__name__)

IdentityResolver = Callable[[FailoverSettings], NodeIdentity]
Prober = Callable[[FailoverSettings, NodeIdentity], ProbeResult]


def default_identity_resolver(settings: FailoverSettings) -> NodeIdentity:
    return resolve_identity(
        preset_ipv4=settings.external_ipv4,
        preset_ipv6=settings.external_ipv6,
        token=settings.ipinfo_token,
        ipv6_url=settings.external_ipv6_url,
        timeout=settings.lookup_timeout,
    )


def default_prober(settings: FailoverSettings, identity: NodeIdentity) -> ProbeResult:
    return probe_parent(
        settings.parent_address,
        settings.parent_port,
        timeout=settings.probe_timeout,
        attempts=settings.probe_attempts,
        interval=settings.probe_interval,
        own_address_known=identity.external_known,
    )


def _apply_transition(state: RoleState, target, service: ServiceController) -> RunResult:
    """Rewrite the unit for ``target`` and restart the node if it was running."""
    try:
        new_unit = state.unit.with_role(target)
    except ServiceConfigError as e:
        return RunResult(Outcome.CONFIG_ERROR, f"Cannot switch {state.unit_path} to {target}: {e}", state.current_role)

    # Sample before the rewrite: an operator-stopped node stays stopped.
    was_active = service.is_active()

    try:
        write_unit_file(state.unit_path, new_unit.render())
    except ConfigWriteError as e:
        return RunResult(
            Outcome.CONFIG_WRITE_FAILURE,
            f"{e}; still configured as {state.current_role}, service not restarted",
            state.current_role,
        )

    try:
        restarted = service.restart_if_active(was_active)
    except CommandError as e:
        return RunResult(
            Outcome.SERVICE_RESTART_FAILURE,
            f"{state.unit_path} now configured as {target} but {service.service_name} did not come back: {e}",
            target,
        )

    if restarted:
        return RunResult(
            Outcome.TRANSITIONED,
            f"Switched from {state.current_role} to {target} and restarted {service.service_name}",
            target,
        )
    return RunResult(
        Outcome.TRANSITIONED_NOT_RESTARTED,
        f"Switched from {state.current_role} to {target}; {service.service_name} was not running and was left stopped",
        target,
    )


def _run_locked(
    settings: FailoverSettings,
    service: ServiceController,
    identity_resolver: IdentityResolver,
    prober: Prober,
) -> RunResult:
    identity = identity_resolver(settings)
    parent = f"{settings.parent_address}:{settings.parent_port}"

    # Each stage only runs if the previous one left the decision open.
    parent_here = is_parent(identity, resolve_parent_addresses(settings.parent_address))
    probe = None if parent_here else prober(settings, identity)
    state = None
    if probe not in (None, ProbeResult.INDETERMINATE):
        try:
            state = inspect_role_state(settings)
        except ServiceConfigError as e:
            return RunResult(Outcome.CONFIG_ERROR, str(e))

    decision = decide(
        parent_here,
        probe,
        state.current_role if state else None,
        state.credentials_complete if state else None,
    )

    if decision.action == Action.PARENT_NO_OP:
        return RunResult(Outcome.PARENT_NO_OP, f"This host is the parent ({settings.parent_address}); nothing to do")
    if decision.action == Action.HALT_INDETERMINATE:
        return RunResult(
            Outcome.INDETERMINATE_REACHABILITY,
            f"Cannot determine this host's external address, so the probe of {parent} cannot be trusted; "
            f"leaving the role unchanged",
        )
    if decision.action == Action.ALREADY_CORRECT:
        return RunResult(
            Outcome.ALREADY_CORRECT,
            f"Parent {parent} is {probe}; already configured as {state.current_role}",
            state.current_role,
        )
    if decision.action == Action.BLOCKED_NO_CREDENTIALS:
        missing = ", ".join(f"{f.label} ({f.path})" for f in state.credentials.missing)
        return RunResult(
            Outcome.PRECONDITION_BLOCKED,
            f"Parent {parent} is {probe} but this host cannot become a block producer; missing: {missing}",
            state.current_role,
        )

    logger.info(f"Parent {parent} is {probe}; switching from {state.current_role} to {decision.target_role}")
    return _apply_transition(state, decision.target_role, service)


def run_heartbeat(
    settings: FailoverSettings,
    service: Optional[ServiceController] = None,
    identity_resolver: IdentityResolver = default_identity_resolver,
    prober: Prober = default_prober,
) -> RunResult:
    """Run one heartbeat: identity, probe, inspect, decide, apply.

    Overlapping runs never interleave: the whole read-decide-write sequence
    happens under a non-blocking lock, and a run that finds the lock held
    ends immediately.
    """
    service = service or ServiceController(settings.service_name)
    lock = RunLock(settings.lock_file)
    try:
        lock.acquire()
    except LockHeldError as e:
        return RunResult(Outcome.LOCK_HELD, f"{e}; skipping this run")
    except OSError as e:
        return RunResult(Outcome.CONFIG_ERROR, f"Cannot open lock file {settings.lock_file}: {e}")

    try:
        return _run_locked(settings, service, identity_resolver, prober)
    finally:
        lock.release()


def manage_heartbeat(config_path: Optional[str] = None) -> int:
    """
    Main entry point for a scheduled heartbeat run. Returns the process exit code.
    """
    try:
        settings = get_config(custom_path=config_path).get_failover_settings()
    except ConfigError as e:
        return report(RunResult(Outcome.CONFIG_ERROR, str(e)))

    try:
        result = run_heartbeat(settings)
    except Exception as e:
        logger.exception("Unexpected error during heartbeat")
        result = RunResult(Outcome.UNEXPECTED_ERROR, f"{e}. Manual review of the unit file and service is required.")
    return report(result)
