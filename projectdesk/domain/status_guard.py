from __future__ import annotations

from enum import Enum

from .enums import TaskStatus
from .errors import RequiresConfirmation, StatusLocked, ValidationError


class Transition(Enum):
    NOOP = "noop"
    APPLY = "apply"
    LOCK = "lock"


def coerce_status(value: TaskStatus | str) -> TaskStatus:
    try:
        return TaskStatus(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown task status: {value!r}") from exc


def check_transition(
    current_status: TaskStatus | str,
    current_confirmed: bool,
    requested_status: TaskStatus | str,
    confirm: bool = False,
    task_id: int | None = None,
) -> Transition:
    """Decide what a requested status change does to a task.

    Returns NOOP for a request into the current status, APPLY for a move
    between To-Do and In Progress, LOCK for a confirmed move into Done.
    Raises RequiresConfirmation for an unconfirmed move into Done and
    StatusLocked for any move out of Done. A confirmed request into Done on a
    task that is already Done is StatusLocked too, so only one confirmation
    ever succeeds. A Done record whose confirmation flag is unset is treated
    as locked as well.
    """
    current = coerce_status(current_status)
    requested = coerce_status(requested_status)

    if current == TaskStatus.DONE:
        if requested == TaskStatus.DONE and not confirm:
            return Transition.NOOP
        raise StatusLocked(task_id, requested.value)

    if requested == current:
        return Transition.NOOP

    if requested == TaskStatus.DONE:
        if not confirm:
            raise RequiresConfirmation(task_id, requested.value)
        return Transition.LOCK

    return Transition.APPLY
