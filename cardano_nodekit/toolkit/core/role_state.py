"""Reads the durable role indicator and the credential files."""

import logging
from dataclasses import dataclass
from pathlib import Path

from cardano_nodekit.config import FailoverSettings
from cardano_nodekit.toolkit.core.credentials import CredentialSet, inspect_credentials
from cardano_nodekit.toolkit.core.unit_file import Role, ServiceUnit, find_unit_file

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoleState:
    unit_path: Path
    unit: ServiceUnit
    current_role: Role
    credentials: CredentialSet

    @property
    def credentials_complete(self) -> bool:
        return self.credentials.complete


def inspect_role_state(settings: FailoverSettings) -> RoleState:
    """Read the current role from the unit file and check the credentials.

    The role comes only from the unit file, never from whether the node
    process happens to be running.

    Raises:
        ServiceConfigError: If the unit file is missing or ambiguous
    """
    unit_path = find_unit_file(settings.unit_paths)
    unit = ServiceUnit.load(unit_path, settings.producer_env_suffix, settings.standby_env_suffix)
    role = unit.role
    credentials = inspect_credentials(settings.credential_paths)
    logger.debug(
        f"Unit {unit_path} ({unit.encoding}) encodes role {role}; "
        f"credentials {'complete' if credentials.complete else 'incomplete'}"
    )
    return RoleState(unit_path, unit, role, credentials)
