from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable

from .confirmation import ConfirmationFlow
from .entities import TaskEntity
from .enums import TaskStatus, priority_rank
from .errors import RequiresConfirmation, TaskNotFound, TaskStatusError, ValidationError
from .status_guard import coerce_status

logger = logging.getLogger(__name__)

BOARD_COLUMNS: tuple[TaskStatus, ...] = (
    TaskStatus.TODO,
    TaskStatus.IN_PROGRESS,
    TaskStatus.DONE,
)

UpdateStatus = Callable[[int, TaskStatus, bool], TaskEntity]


def project_board(tasks: Iterable[TaskEntity]) -> dict[TaskStatus, list[TaskEntity]]:
    """Group tasks into status columns, each ordered High, Medium, Low.

    ``sorted`` is stable, so equal priorities keep their input order.
    """
    columns: dict[TaskStatus, list[TaskEntity]] = {status: [] for status in BOARD_COLUMNS}
    for task in tasks:
        columns.setdefault(TaskStatus(task.status), []).append(task)
    return {
        status: sorted(bucket, key=lambda task: priority_rank(task.priority))
        for status, bucket in columns.items()
    }


@dataclass(frozen=True)
class BoardMove:
    task_id: int
    from_status: TaskStatus
    to_status: TaskStatus


class MoveOutcome(Enum):
    NOOP = "noop"
    APPLIED = "applied"
    REVERTED = "reverted"
    AWAITING_CONFIRMATION = "awaiting_confirmation"


@dataclass(frozen=True)
class MoveResult:
    outcome: MoveOutcome
    move: BoardMove
    task: TaskEntity | None
    error: TaskStatusError | None = None


class BoardState:
    """Task list behind a Kanban view.

    Cards are only relocated after the store accepted the change; a rejected
    or pending move leaves every column as it was.
    """

    def __init__(self, tasks: Iterable[TaskEntity], update_status: UpdateStatus) -> None:
        self._tasks = list(tasks)
        self._update_status = update_status
        self.confirmation = ConfirmationFlow(update_status)

    @property
    def tasks(self) -> list[TaskEntity]:
        return list(self._tasks)

    @property
    def columns(self) -> dict[TaskStatus, list[TaskEntity]]:
        return project_board(self._tasks)

    def replace_tasks(self, tasks: Iterable[TaskEntity]) -> None:
        self._tasks = list(tasks)

    def find(self, task_id: int) -> TaskEntity | None:
        return next((task for task in self._tasks if task.id == task_id), None)

    def move(self, task_id: int, to_status: TaskStatus | str) -> MoveResult:
        task = self.find(task_id)
        if task is None:
            raise TaskNotFound(task_id)
        target = coerce_status(to_status)
        move = BoardMove(task_id=task_id, from_status=task.status, to_status=target)

        if target == task.status:
            return MoveResult(MoveOutcome.NOOP, move, task)

        try:
            updated = self._update_status(task_id, target, False)
        except RequiresConfirmation as exc:
            self.confirmation.request(task, target)
            return MoveResult(MoveOutcome.AWAITING_CONFIRMATION, move, task, exc)
        except TaskStatusError as exc:
            logger.info("Move of task %s to %s rejected: %s", task_id, target.value, exc)
            return MoveResult(MoveOutcome.REVERTED, move, task, exc)

        self._store(updated)
        return MoveResult(MoveOutcome.APPLIED, move, updated)

    def confirm_pending(self) -> MoveResult:
        pending = self.confirmation.pending
        if pending is None:
            raise ValidationError("No confirmation is pending")
        task = self.find(pending.task_id)
        move = BoardMove(pending.task_id, pending.from_status, pending.requested_status)
        try:
            updated = self.confirmation.confirm()
        except TaskStatusError as exc:
            logger.info("Confirmed move of task %s rejected: %s", pending.task_id, exc)
            return MoveResult(MoveOutcome.REVERTED, move, task, exc)

        self._store(updated)
        return MoveResult(MoveOutcome.APPLIED, move, updated)

    def cancel_pending(self) -> None:
        self.confirmation.cancel()

    def _store(self, updated: TaskEntity) -> None:
        self._tasks = [updated if task.id == updated.id else task for task in self._tasks]
