"""Presence checks for the block-producer signing credentials."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Tuple

logger = logging.getLogger(__name__)

CREDENTIAL_LABELS = {
    "kes_key": "KES signing key",
    "vrf_key": "VRF signing key",
    "operational_certificate": "Operational certificate",
}


@dataclass(frozen=True)
class CredentialFile:
    name: str
    path: Path
    present: bool

    @property
    def label(self) -> str:
        return CREDENTIAL_LABELS.get(self.name, self.name)


@dataclass(frozen=True)
class CredentialSet:
    files: Tuple[CredentialFile, ...]

    @property
    def complete(self) -> bool:
        return len(self.files) == len(CREDENTIAL_LABELS) and all(f.present for f in self.files)

    @property
    def missing(self) -> Tuple[CredentialFile, ...]:
        return tuple(f for f in self.files if not f.present)


def _is_present(path: Path) -> bool:
    # Contents are never read; a file that exists and is non-empty counts.
    try:
        return path.is_file() and path.stat().st_size > 0
    except OSError as e:
        logger.debug(f"Cannot stat {path}: {e}")
        return False


def inspect_credentials(paths: Dict[str, Path]) -> CredentialSet:
    """Check each credential file for presence.

    Args:
        paths: Mapping of credential name (kes_key, vrf_key, operational_certificate) to path

    Returns:
        CredentialSet describing which files are present
    """
    files = tuple(
        CredentialFile(name, Path(paths[name]), _is_present(Path(paths[name])))
        for name in CREDENTIAL_LABELS
        if name in paths
    )
    for f in files:
        logger.debug(f"{f.label} ({f.path}): {'present' if f.present else 'missing'}")
    return CredentialSet(files)
