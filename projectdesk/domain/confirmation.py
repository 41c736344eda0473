from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from .entities import TaskEntity
from .enums import TaskStatus
from .errors import ValidationError

logger = logging.getLogger(__name__)

CommitStatus = Callable[[int, TaskStatus, bool], TaskEntity]


class ConfirmationState(Enum):
    IDLE = "idle"
    AWAITING = "awaiting_confirmation"


@dataclass(frozen=True)
class PendingConfirmation:
    task_id: int
    task_title: str
    from_status: TaskStatus
    requested_status: TaskStatus


class ConfirmationFlow:
    """Human-in-the-loop step in front of a Done lock-in.

    Nothing is written while a request is pending. ``cancel`` only drops the
    local request; ``confirm`` re-issues the change with ``confirm=True``.
    """

    def __init__(self, commit: CommitStatus) -> None:
        self._commit = commit
        self._pending: PendingConfirmation | None = None

    @property
    def state(self) -> ConfirmationState:
        return ConfirmationState.AWAITING if self._pending else ConfirmationState.IDLE

    @property
    def pending(self) -> PendingConfirmation | None:
        return self._pending

    def request(self, task: TaskEntity, requested_status: TaskStatus = TaskStatus.DONE) -> PendingConfirmation:
        if task.id is None:
            raise ValidationError("Cannot confirm an unsaved task")
        if self._pending is not None:
            raise ValidationError(
                f"Confirmation for task {self._pending.task_id} is still pending"
            )
        self._pending = PendingConfirmation(
            task_id=task.id,
            task_title=task.title,
            from_status=task.status,
            requested_status=TaskStatus(requested_status),
        )
        logger.debug("Awaiting confirmation for task %s -> %s", task.id, requested_status)
        return self._pending

    def cancel(self) -> PendingConfirmation | None:
        pending, self._pending = self._pending, None
        if pending:
            logger.debug("Confirmation for task %s cancelled", pending.task_id)
        return pending

    def confirm(self) -> TaskEntity:
        if self._pending is None:
            raise ValidationError("No confirmation is pending")
        pending, self._pending = self._pending, None
        return self._commit(pending.task_id, pending.requested_status, True)
