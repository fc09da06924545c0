"""Terminal states of a heartbeat run, with their exit codes and log severities."""

import enum
import logging
from dataclasses import dataclass
from typing import Optional

from cardano_nodekit.toolkit.core.unit_file import Role

logger = logging.getLogger("cardano_nodekit.heartbeat")


class Outcome(enum.Enum):
    PARENT_NO_OP = "parent-no-op"
    ALREADY_CORRECT = "already-correct"
    LOCK_HELD = "lock-held"
    TRANSITIONED = "transitioned"
    TRANSITIONED_NOT_RESTARTED = "transitioned-not-restarted"
    UNEXPECTED_ERROR = "unexpected-error"
    CONFIG_ERROR = "config-error"
    PRECONDITION_BLOCKED = "precondition-blocked"
    INDETERMINATE_REACHABILITY = "indeterminate-reachability"
    CONFIG_WRITE_FAILURE = "config-write-failure"
    SERVICE_RESTART_FAILURE = "service-restart-failure"

    @property
    def exit_code(self) -> int:
        return _EXIT_CODES[self]

    @property
    def level(self) -> int:
        return _LEVELS[self]

    @property
    def success(self) -> bool:
        return self.exit_code == 0


_EXIT_CODES = {
    Outcome.PARENT_NO_OP: 0,
    Outcome.ALREADY_CORRECT: 0,
    Outcome.LOCK_HELD: 0,
    Outcome.TRANSITIONED: 0,
    Outcome.TRANSITIONED_NOT_RESTARTED: 0,
    Outcome.UNEXPECTED_ERROR: 1,
    Outcome.CONFIG_ERROR: 2,
    Outcome.PRECONDITION_BLOCKED: 3,
    Outcome.INDETERMINATE_REACHABILITY: 4,
    Outcome.CONFIG_WRITE_FAILURE: 5,
    Outcome.SERVICE_RESTART_FAILURE: 6,
}

_LEVELS = {
    Outcome.PARENT_NO_OP: logging.DEBUG,
    Outcome.ALREADY_CORRECT: logging.DEBUG,
    Outcome.LOCK_HELD: logging.DEBUG,
    Outcome.TRANSITIONED: logging.INFO,
    Outcome.TRANSITIONED_NOT_RESTARTED: logging.INFO,
    Outcome.UNEXPECTED_ERROR: logging.CRITICAL,
    Outcome.CONFIG_ERROR: logging.ERROR,
    Outcome.PRECONDITION_BLOCKED: logging.WARNING,
    Outcome.INDETERMINATE_REACHABILITY: logging.CRITICAL,
    Outcome.CONFIG_WRITE_FAILURE: logging.WARNING,
    Outcome.SERVICE_RESTART_FAILURE: logging.CRITICAL,
}


@dataclass(frozen=True)
class RunResult:
    outcome: Outcome
    message: str
    role: Optional[Role] = None

    @property
    def exit_code(self) -> int:
        return self.outcome.exit_code


def report(result: RunResult) -> int:
    """Log the result at its outcome's severity and return the process exit code."""
    logger.log(result.outcome.level, f"heartbeat: {result.outcome.value}. {result.message}")
    return result.exit_code
