"""Thin wrapper around systemctl for the managed node service."""

import logging
from typing import Callable, List, Tuple

from cardano_nodekit.toolkit.core.commands import run_command, CommandError

logger = logging.getLogger(__name__)

Runner = Callable[[List[str]], Tuple[int, str, str]]


class ServiceController:
    """Reload unit definitions and restart the node service through systemd.

    The node process is never signalled directly; everything goes through
    the service manager.
    """

    def __init__(self, service_name: str, runner: Runner = run_command, systemctl: str = "systemctl"):
        self.service_name = service_name
        self.runner = runner
        self.systemctl = systemctl

    def _systemctl(self, *args: str) -> Tuple[int, str, str]:
        return self.runner([self.systemctl, *args])

    def is_active(self) -> bool:
        """Return True if the service is currently active (running or reloading)."""
        try:
            returncode, stdout, _ = self._systemctl("is-active", self.service_name)
        except CommandError as e:
            logger.warning(f"Could not query state of {self.service_name}: {e}")
            return False
        active = returncode == 0
        logger.debug(f"{self.service_name} is-active: {stdout or returncode}")
        return active

    def reload(self) -> None:
        """Have systemd re-read unit definitions.

        Raises:
            CommandError: If daemon-reload fails
        """
        returncode, _, stderr = self._systemctl("daemon-reload")
        if returncode != 0:
            raise CommandError(f"systemctl daemon-reload failed: {stderr}", returncode, "", stderr)
        logger.debug("systemctl daemon-reload done")

    def restart(self) -> None:
        """Restart the service and check that it came back.

        Raises:
            CommandError: If the restart fails or the service is not active afterwards
        """
        returncode, _, stderr = self._systemctl("restart", self.service_name)
        if returncode != 0:
            raise CommandError(
                f"systemctl restart {self.service_name} failed: {stderr}", returncode, "", stderr
            )
        if not self.is_active():
            raise CommandError(f"{self.service_name} is not active after restart", 3, "", "")
        logger.info(f"Restarted {self.service_name}")

    def restart_if_active(self, was_active: bool) -> bool:
        """Reload unit definitions, then restart only if the service was active before.

        Args:
            was_active: Service state sampled before the unit file was rewritten

        Returns:
            True if a restart was performed, False if the service was left stopped

        Raises:
            CommandError: If reloading or restarting fails
        """
        self.reload()
        if not was_active:
            logger.info(f"{self.service_name} was not running; leaving it stopped")
            return False
        self.restart()
        return True
