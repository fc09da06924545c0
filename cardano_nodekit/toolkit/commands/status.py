"""Read-only report of everything the failover heartbeat looks at."""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from cardano_nodekit.config import ConfigError, FailoverSettings, get_config
from cardano_nodekit.toolkit.commands.heartbeat import default_identity_resolver, default_prober
from cardano_nodekit.toolkit.core.credentials import CredentialSet, inspect_credentials
from cardano_nodekit.toolkit.core.decision import Decision, decide
from cardano_nodekit.toolkit.core.ip_tools import NodeIdentity, get_ip_info_cached, is_parent, resolve_parent_addresses
from cardano_nodekit.toolkit.core.probe import ProbeResult
from cardano_nodekit.toolkit.core.role_state import inspect_role_state
from cardano_nodekit.toolkit.core.systemd import ServiceController
from cardano_nodekit.toolkit.core.unit_file import Role, ServiceConfigError, find_unit_file

logger = logging.getLogger(__name__)


@dataclass
class StatusReport:
    settings: FailoverSettings
    identity: NodeIdentity
    is_parent: bool
    probe: Optional[ProbeResult]
    unit_path: Optional[Path]
    unit_encoding: Optional[str]
    unit_age: Optional[float]
    unit_mtime: Optional[float]
    role: Optional[Role]
    role_error: Optional[str]
    credentials: CredentialSet
    service_active: bool
    decision: Optional[Decision]
    parent_network: Optional[str] = None


def collect_status(settings: FailoverSettings, probe: bool = True, lookup_parent: bool = False) -> StatusReport:
    """Gather the heartbeat's inputs without taking the lock or changing anything."""
    identity = default_identity_resolver(settings)
    parent_here = is_parent(identity, resolve_parent_addresses(settings.parent_address))
    probe_result = default_prober(settings, identity) if probe and not parent_here else None

    unit_path = unit_encoding = role = role_error = unit_mtime = unit_age = None
    credentials = inspect_credentials(settings.credential_paths)
    try:
        state = inspect_role_state(settings)
        unit_path, unit_encoding, role = state.unit_path, state.unit.encoding, state.current_role
    except ServiceConfigError as e:
        role_error = str(e)
        try:
            unit_path = find_unit_file(settings.unit_paths)
        except ServiceConfigError:
            pass

    if unit_path is not None:
        try:
            unit_mtime = unit_path.stat().st_mtime
            unit_age = time.time() - unit_mtime
        except OSError as e:
            logger.debug(f"Cannot stat {unit_path}: {e}")

    decision = None
    if parent_here:
        decision = decide(True)
    elif probe_result is not None and (role is not None or probe_result == ProbeResult.INDETERMINATE):
        decision = decide(False, probe_result, role, credentials.complete)

    parent_network = None
    if lookup_parent:
        try:
            parent_network = get_ip_info_cached(settings.parent_address, settings.ipinfo_token).get("va_format")
        except RuntimeError as e:
            logger.warning(f"Parent lookup failed: {e}")

    return StatusReport(
        settings=settings,
        identity=identity,
        is_parent=parent_here,
        probe=probe_result,
        unit_path=unit_path,
        unit_encoding=unit_encoding,
        unit_age=unit_age,
        unit_mtime=unit_mtime,
        role=role,
        role_error=role_error,
        credentials=credentials,
        service_active=ServiceController(settings.service_name).is_active(),
        decision=decision,
        parent_network=parent_network,
    )


def show_status(probe: bool = True, lookup_parent: bool = False, config_path: Optional[str] = None) -> bool:
    """Print the failover status. Returns False if the configuration is unusable."""
    from cardano_nodekit.toolkit.display import StatusDisplay

    config = get_config(custom_path=config_path)
    try:
        settings = config.get_failover_settings()
    except ConfigError as e:
        logger.error(f"status: {e}")
        return False

    report = collect_status(settings, probe=probe, lookup_parent=lookup_parent)
    StatusDisplay(timezone=config.get("logging.timezone", "UTC")).render(report)
    return True
