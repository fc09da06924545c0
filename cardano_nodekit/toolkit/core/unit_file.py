"""
Structured view of the cardano-node systemd unit and the role it encodes.

The unit is parsed into lines that keep their original text, so a role
change rewrites only the line(s) that carry the role and leaves every
operator edit untouched. Two encodings are understood:

- ``EnvironmentFile=`` in ``[Service]`` pointing at the producer or the
  standby variant of the environment file (told apart by file suffix).
- The legacy toggle: two ``ExecStart=`` lines, one passing the KES key, VRF
  key and operational certificate and one without; the inactive one is
  commented out.
"""

import enum
import logging
import os
import tempfile
from dataclasses import dataclass, replace
from pathlib import Path
from typing import List, Optional, Sequence

logger = logging.getLogger(__name__)

CREDENTIAL_FLAGS = (
    "--shelley-kes-key",
    "--shelley-vrf-key",
    "--shelley-operational-certificate",
)

SERVICE_SECTION = "Service"
COMMENT_CHARS = "#;"


class Role(enum.Enum):
    STANDBY = "standby"
    BLOCK_PRODUCER = "block-producer"

    def __str__(self):
        return self.value


class ServiceConfigError(Exception):
    """The unit file is missing or does not encode exactly one role."""


class ConfigWriteError(Exception):
    """The unit file could not be rewritten."""


@dataclass(frozen=True)
class UnitLine:
    text: str
    section: Optional[str] = None
    key: Optional[str] = None
    value: Optional[str] = None
    commented: bool = False

    @property
    def in_service(self) -> bool:
        return self.section == SERVICE_SECTION


def _parse_line(text: str, section: Optional[str]) -> UnitLine:
    stripped = text.strip()
    if not stripped:
        return UnitLine(text, section)

    commented = stripped[0] in COMMENT_CHARS
    body = stripped.lstrip(COMMENT_CHARS).strip() if commented else stripped
    if "=" not in body:
        return UnitLine(text, section, commented=commented)

    key, value = body.split("=", 1)
    key = key.strip()
    if not key or " " in key:
        # Prose in a comment, not a commented-out directive
        return UnitLine(text, section, commented=commented)
    return UnitLine(text, section, key, value.strip(), commented)


def _has_credentials(command_line: str) -> bool:
    """True if the command passes all three credential flags.

    Raises:
        ServiceConfigError: If the command contains an inline ``#``. systemd passes
            it to the node as an argument, so the intended role cannot be told.
    """
    args = command_line.split()
    if any(arg.startswith("#") for arg in args):
        raise ServiceConfigError(f"ExecStart contains an inline '#', which systemd does not treat as a comment: {command_line!r}")
    return all(flag in args for flag in CREDENTIAL_FLAGS)


class ServiceUnit:
    """A parsed unit file plus the suffix convention for its environment files."""

    def __init__(self, lines: List[UnitLine], producer_suffix: str = ".normal", standby_suffix: str = ".standingby"):
        if not producer_suffix or not standby_suffix or producer_suffix == standby_suffix:
            raise ServiceConfigError("Producer and standby environment-file suffixes must be distinct and non-empty")
        self.lines = lines
        self.producer_suffix = producer_suffix
        self.standby_suffix = standby_suffix

    @classmethod
    def parse(cls, text: str, producer_suffix: str = ".normal", standby_suffix: str = ".standingby") -> "ServiceUnit":
        lines = []
        section = None
        for raw in text.splitlines(keepends=True):
            stripped = raw.strip()
            if stripped.startswith("[") and stripped.endswith("]"):
                section = stripped[1:-1].strip()
                lines.append(UnitLine(raw, section))
                continue
            lines.append(_parse_line(raw, section))
        return cls(lines, producer_suffix, standby_suffix)

    @classmethod
    def load(cls, path: Path, producer_suffix: str = ".normal", standby_suffix: str = ".standingby") -> "ServiceUnit":
        try:
            text = Path(path).read_text()
        except OSError as e:
            raise ServiceConfigError(f"Cannot read unit file {path}: {e}")
        return cls.parse(text, producer_suffix, standby_suffix)

    def render(self) -> str:
        return "".join(line.text for line in self.lines)

    # --- EnvironmentFile encoding ---

    def _env_file_role(self, value: str) -> Optional[Role]:
        path = value.lstrip("-").strip()
        # Longest suffix first, in case one suffix ends with the other
        suffixes = sorted(
            [(self.producer_suffix, Role.BLOCK_PRODUCER), (self.standby_suffix, Role.STANDBY)],
            key=lambda item: len(item[0]),
            reverse=True,
        )
        for suffix, role in suffixes:
            if path.endswith(suffix):
                return role
        return None

    def _env_file_indexes(self) -> List[int]:
        return [
            i for i, line in enumerate(self.lines)
            if line.in_service and not line.commented and line.key == "EnvironmentFile"
            and line.value and self._env_file_role(line.value) is not None
        ]

    # --- legacy ExecStart encoding ---

    def _exec_start_indexes(self, commented: bool) -> List[int]:
        return [
            i for i, line in enumerate(self.lines)
            if line.in_service and line.commented == commented and line.key == "ExecStart" and line.value
        ]

    @property
    def encoding(self) -> str:
        """Which encoding carries the role: 'environment-file' or 'exec-start'."""
        return "environment-file" if self._env_file_indexes() else "exec-start"

    @property
    def role(self) -> Role:
        """The role this unit starts the node in.

        Raises:
            ServiceConfigError: If the unit does not encode exactly one role
        """
        env_indexes = self._env_file_indexes()
        if env_indexes:
            roles = {self._env_file_role(self.lines[i].value) for i in env_indexes}
            if len(roles) != 1:
                raise ServiceConfigError("Unit references both the producer and the standby environment file")
            return roles.pop()

        live = self._exec_start_indexes(commented=False)
        if not live:
            raise ServiceConfigError(
                f"Unit has neither an EnvironmentFile ending in {self.producer_suffix}/{self.standby_suffix} "
                f"nor an active ExecStart line"
            )
        if len(live) > 1:
            raise ServiceConfigError("Unit has more than one active ExecStart line")
        return Role.BLOCK_PRODUCER if _has_credentials(self.lines[live[0]].value) else Role.STANDBY

    def with_role(self, target: Role) -> "ServiceUnit":
        """Return a copy of this unit switched to ``target``; unrelated lines are kept verbatim.

        Raises:
            ServiceConfigError: If the current role is ambiguous or the unit has no way to express ``target``
        """
        current = self.role
        if current == target:
            return self

        lines = list(self.lines)
        if self.encoding == "environment-file":
            old_suffix, new_suffix = (
                (self.standby_suffix, self.producer_suffix) if target == Role.BLOCK_PRODUCER
                else (self.producer_suffix, self.standby_suffix)
            )
            for i in self._env_file_indexes():
                lines[i] = self._swap_suffix(lines[i], old_suffix, new_suffix)
        else:
            live = self._exec_start_indexes(commented=False)[0]
            wants_credentials = target == Role.BLOCK_PRODUCER
            alternates = [
                i for i in self._exec_start_indexes(commented=True)
                if _has_credentials(lines[i].value) == wants_credentials
            ]
            if not alternates:
                raise ServiceConfigError(f"Unit has no commented-out ExecStart line for the {target} role")
            if len(alternates) > 1:
                raise ServiceConfigError(f"Unit has several commented-out ExecStart lines for the {target} role")
            alternate = alternates[0]
            prefix = self._comment_prefix(lines[alternate])
            lines[alternate] = self._uncomment(lines[alternate])
            lines[live] = self._comment(lines[live], prefix)

        return ServiceUnit(lines, self.producer_suffix, self.standby_suffix)

    @staticmethod
    def _swap_suffix(line: UnitLine, old_suffix: str, new_suffix: str) -> UnitLine:
        content = line.text.rstrip()
        trailer = line.text[len(content):]
        if not content.endswith(old_suffix):
            raise ServiceConfigError(f"Cannot rewrite EnvironmentFile line: {content!r}")
        text = content[:-len(old_suffix)] + new_suffix + trailer
        return replace(line, text=text, value=line.value[:-len(old_suffix)] + new_suffix)

    @staticmethod
    def _comment_prefix(line: UnitLine) -> str:
        return line.text[:line.text.index(line.key)]

    @staticmethod
    def _uncomment(line: UnitLine) -> UnitLine:
        return replace(line, text=line.text[line.text.index(line.key):], commented=False)

    @staticmethod
    def _comment(line: UnitLine, prefix: str) -> UnitLine:
        if not prefix.strip():
            prefix = "#"
        return replace(line, text=prefix + line.text.lstrip(), commented=True)


def find_unit_file(candidates: Sequence[Path]) -> Path:
    """Return the first unit file that exists (the /etc copy overrides /lib)."""
    for path in candidates:
        if Path(path).is_file():
            return Path(path)
    searched = ", ".join(str(p) for p in candidates) or "(none configured)"
    raise ServiceConfigError(f"No unit file found; searched: {searched}")


def write_unit_file(path: Path, text: str) -> None:
    """Atomically replace ``path`` with ``text``, keeping its mode and owner.

    Raises:
        ConfigWriteError: If the file cannot be written
    """
    path = Path(path)
    tmp_name = None
    try:
        st = path.stat()
        with tempfile.NamedTemporaryFile("w", dir=path.parent, prefix=f".{path.name}.", delete=False) as tmp:
            tmp_name = tmp.name
            tmp.write(text)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.chmod(tmp_name, st.st_mode & 0o7777)
        if os.geteuid() == 0:
            os.chown(tmp_name, st.st_uid, st.st_gid)
        os.replace(tmp_name, path)
        tmp_name = None
        logger.debug(f"Rewrote {path}")
    except OSError as e:
        raise ConfigWriteError(f"Cannot rewrite {path}: {e}")
    finally:
        if tmp_name and os.path.exists(tmp_name):
            os.unlink(tmp_name)
