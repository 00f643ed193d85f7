# propdesk/domain/task_lifecycle.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..errors import InvalidTransitionError, ValidationError

# -----------------------------------------------------------------------------
# Task lifecycle
# -----------------------------------------------------------------------------
#   pending -> in_progress -> completed -> approved
#
#   - forward moves may skip intermediate states, except that `approved` is
#     only reachable from `completed`
#   - approving is a second-party step and needs the tasks:approve capability
#   - moving backwards needs an explicit override and tasks:override
# -----------------------------------------------------------------------------

STATUS_ORDER = ["pending", "in_progress", "completed", "approved"]

APPROVE_CAPABILITY = ("tasks", "approve")
OVERRIDE_CAPABILITY = ("tasks", "override")


def status_rank(status: str) -> int:
    try:
        return STATUS_ORDER.index(status)
    except ValueError:
        raise ValidationError(f"unknown task status {status!r}", entity="Task")


@dataclass(frozen=True)
class Transition:
    current: str
    target: str
    direction: str  # forward|same|backward
    capability: Optional[tuple[str, str]] = None

    @property
    def changes_status(self) -> bool:
        return self.direction != "same"

    @property
    def completes(self) -> bool:
        return self.changes_status and self.target == "completed"


def plan_transition(current: str, target: str, *, override: bool = False, task_id: Optional[int] = None) -> Transition:
    """
    Decide whether `current -> target` is allowed and which capability the
    actor needs for it. Raises InvalidTransitionError for illegal moves; the
    capability itself is checked by the caller against its principal.
    """
    cur = status_rank(current)
    tgt = status_rank(target)

    if tgt == cur:
        return Transition(current, target, "same")

    if tgt > cur:
        if target == "approved" and current != "completed":
            raise InvalidTransitionError(
                f"task can only be approved once completed (currently {current})",
                entity="Task",
                entity_id=task_id,
                current=current,
                target=target,
            )
        cap = APPROVE_CAPABILITY if target == "approved" else None
        return Transition(current, target, "forward", cap)

    if not override:
        raise InvalidTransitionError(
            f"task status cannot move back from {current} to {target} without override",
            entity="Task",
            entity_id=task_id,
            current=current,
            target=target,
        )
    return Transition(current, target, "backward", OVERRIDE_CAPABILITY)
