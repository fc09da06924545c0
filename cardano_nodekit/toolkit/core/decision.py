"""
The failover decision table.

Pure function of what a heartbeat run observed; it never touches the
filesystem, the network or systemd, so every row can be tested directly.
"""

import enum
from dataclasses import dataclass
from typing import Optional

from cardano_nodekit.toolkit.core.probe import ProbeResult
from cardano_nodekit.toolkit.core.unit_file import Role


class Action(enum.Enum):
    PARENT_NO_OP = "parent-no-op"
    HALT_INDETERMINATE = "halt-indeterminate"
    ALREADY_CORRECT = "already-correct"
    BLOCKED_NO_CREDENTIALS = "blocked-no-credentials"
    TRANSITION = "transition"


@dataclass(frozen=True)
class Decision:
    action: Action
    target_role: Optional[Role] = None

    @property
    def mutates(self) -> bool:
        return self.action == Action.TRANSITION


def decide(
    is_parent: bool,
    probe: Optional[ProbeResult] = None,
    current_role: Optional[Role] = None,
    credentials_complete: Optional[bool] = None,
) -> Decision:
    """Decide the target role for this node.

    Later arguments may be None when an earlier stage already settles the
    outcome (this host is the parent, or reachability is indeterminate).

    Raises:
        ValueError: If an input needed for the decision is missing
    """
    if is_parent:
        return Decision(Action.PARENT_NO_OP)

    if probe is None:
        raise ValueError("A probe result is required when this host is not the parent")
    if probe == ProbeResult.INDETERMINATE:
        return Decision(Action.HALT_INDETERMINATE)

    if current_role is None or credentials_complete is None:
        raise ValueError("Current role and credential state are required to decide")

    if probe == ProbeResult.REACHABLE:
        target = Role.STANDBY
    elif credentials_complete:
        target = Role.BLOCK_PRODUCER
    else:
        # Parent is down but we cannot sign: never become a producer.
        return Decision(Action.BLOCKED_NO_CREDENTIALS, current_role)

    if target == current_role:
        return Decision(Action.ALREADY_CORRECT, target)
    return Decision(Action.TRANSITION, target)
