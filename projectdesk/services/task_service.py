from __future__ import annotations

import logging

from projectdesk.domain.board import BoardState, project_board
from projectdesk.domain.completion import compute_completion
from projectdesk.domain.entities import CompletionSnapshot, TaskEntity
from projectdesk.domain.enums import TaskPriority, TaskStatus
from projectdesk.domain.errors import (
    RequiresConfirmation,
    StatusLocked,
    TaskConflict,
    TaskNotFound,
    ValidationError,
)
from projectdesk.domain.filters import TaskFilters
from projectdesk.domain.status_guard import Transition, check_transition, coerce_status
from projectdesk.infra.events import EventBus, ProjectCompletionUpdated, ProjectFullyCompleted
from projectdesk.infra.repository import TaskRepository

logger = logging.getLogger(__name__)

# Reads and compare-and-set attempts before giving up on a busy record.
MAX_STATUS_ATTEMPTS = 3

PROTECTED_FIELDS = ("status_confirmed", "completed_at")
# Set through BudgetService.update_task_budget.
BUDGET_FIELDS = ("total_budget", "currency", "budget_alert_thresholds")


class TaskService:
    def __init__(self, repo: TaskRepository, events: EventBus | None = None) -> None:
        self._repo = repo
        self._events = events if events is not None else EventBus()

    @property
    def events(self) -> EventBus:
        return self._events

    def list_tasks(self, filters: TaskFilters) -> list[TaskEntity]:
        return self._repo.list_tasks(filters)

    def list_project_tasks(self, project_id: int) -> list[TaskEntity]:
        return self._repo.list_project_tasks(project_id)

    def list_subtasks(self, task_id: int) -> list[TaskEntity]:
        return self._repo.list_subtasks(task_id)

    def get_task(self, task_id: int) -> TaskEntity | None:
        return self._repo.get_task(task_id)

    def create_task(self, data: dict) -> TaskEntity:
        normalized = self._normalize_data(data)
        for key in PROTECTED_FIELDS + BUDGET_FIELDS:
            normalized.pop(key, None)

        title = (normalized.get("title") or "").strip()
        if not title:
            raise ValidationError("Task title is required")
        if normalized.get("project_id") is None:
            raise ValidationError("Task must belong to a project")
        normalized["title"] = title

        status = coerce_status(normalized.get("status") or TaskStatus.TODO)
        if status == TaskStatus.DONE:
            raise ValidationError("New tasks cannot start as Done; complete them through confirmation")
        normalized["status"] = status.value
        normalized["priority"] = self._validate_priority(normalized.get("priority"))

        task = self._repo.create_task(normalized)
        logger.info("Created task %s in project %s", task.id, task.project_id)
        self._publish_completion(task.project_id)
        return task

    def create_subtask(self, parent_task_id: int, data: dict) -> TaskEntity:
        parent = self._repo.get_task(parent_task_id)
        if parent is None:
            raise TaskNotFound(parent_task_id)
        if parent.parent_task_id is not None:
            raise ValidationError("Subtasks cannot have subtasks of their own")
        return self.create_task({
            **data,
            "project_id": parent.project_id,
            "parent_task_id": parent.id,
        })

    def update_task(self, task_id: int, data: dict, confirm: bool = False) -> TaskEntity:
        """Update task fields; a ``status`` key goes through the status guard first."""
        normalized = self._normalize_data(data)
        for key in PROTECTED_FIELDS + BUDGET_FIELDS + ("project_id", "parent_task_id"):
            normalized.pop(key, None)
        status = normalized.pop("status", None)

        if "title" in normalized:
            title = (normalized["title"] or "").strip()
            if not title:
                raise ValidationError("Task title is required")
            normalized["title"] = title
        if "priority" in normalized:
            normalized["priority"] = self._validate_priority(normalized["priority"])

        task = None
        if status is not None:
            task = self.update_task_status(task_id, status, confirm=confirm)
        if normalized:
            task = self._repo.update_task(task_id, normalized)
        if task is None:
            task = self._repo.get_task(task_id)
        if task is None:
            raise TaskNotFound(task_id)
        return task

    def update_task_status(
        self,
        task_id: int,
        requested_status: TaskStatus | str,
        confirm: bool = False,
    ) -> TaskEntity:
        """Apply a guarded status change against freshly read state.

        Raises RequiresConfirmation, StatusLocked, TaskNotFound, or
        TaskConflict when the record keeps changing underneath. A request
        that loses its write to a concurrent lock-in gets StatusLocked, even
        when it asked for Done itself.
        """
        requested = coerce_status(requested_status)

        lost_race = False
        for _ in range(MAX_STATUS_ATTEMPTS):
            current = self._repo.get_task(task_id)
            if current is None:
                raise TaskNotFound(task_id, requested.value)
            if lost_race and current.is_locked:
                # Someone else locked it between our read and our write.
                logger.info("Task %s was locked by a concurrent request", task_id)
                raise StatusLocked(task_id, requested.value)

            try:
                transition = check_transition(
                    current.status,
                    current.status_confirmed,
                    requested,
                    confirm=confirm,
                    task_id=task_id,
                )
            except RequiresConfirmation:
                logger.info("Task %s needs confirmation before Done", task_id)
                raise
            except StatusLocked:
                logger.info("Task %s is locked as Done, %s rejected", task_id, requested.value)
                raise

            if transition is Transition.NOOP:
                return current

            updated = self._repo.transition_status(
                task_id,
                current.status.value,
                requested.value,
                lock=transition is Transition.LOCK,
            )
            if updated is not None:
                logger.info(
                    "Task %s moved %s -> %s%s",
                    task_id,
                    current.status.value,
                    updated.status.value,
                    " (locked)" if transition is Transition.LOCK else "",
                )
                self._after_transition(updated, transition)
                return updated

            lost_race = True
            logger.info("Task %s changed while updating status, re-reading", task_id)

        raise TaskConflict(task_id, requested.value)

    def mark_done(self, task_id: int, confirm: bool = False) -> TaskEntity:
        return self.update_task_status(task_id, TaskStatus.DONE, confirm=confirm)

    def delete_task(self, task_id: int) -> None:
        task = self._repo.get_task(task_id)
        if task is None:
            return
        self._repo.delete_task(task_id)
        logger.info("Deleted task %s", task_id)
        self._publish_completion(task.project_id)

    def reorder_tasks(self, task_ids: list[int]) -> None:
        self._repo.reorder_tasks(task_ids)

    def get_stats(self, project_id: int | None = None) -> dict[str, int]:
        return self._repo.get_stats(project_id)

    def get_board(self, project_id: int) -> dict[TaskStatus, list[TaskEntity]]:
        return project_board(self._repo.list_project_tasks(project_id))

    def board_state(self, project_id: int) -> BoardState:
        return BoardState(self._repo.list_project_tasks(project_id), self.update_task_status)

    def compute_completion(self, project_id: int) -> CompletionSnapshot:
        return compute_completion(self._repo.list_project_tasks(project_id))

    def _after_transition(self, task: TaskEntity, transition: Transition) -> None:
        completion = self._publish_completion(task.project_id)
        if transition is Transition.LOCK and completion.is_fully_completed:
            logger.info("Project %s fully completed", task.project_id)
            self._events.publish(ProjectFullyCompleted(task.project_id, completion))

    def _publish_completion(self, project_id: int) -> CompletionSnapshot:
        completion = self.compute_completion(project_id)
        self._events.publish(ProjectCompletionUpdated(project_id, completion))
        return completion

    @staticmethod
    def _validate_priority(priority) -> str:
        if priority is None:
            return TaskPriority.MEDIUM.value
        try:
            return TaskPriority(priority).value
        except ValueError as exc:
            raise ValidationError(f"Unknown priority: {priority!r}") from exc

    def _normalize_data(self, data: dict) -> dict:
        normalized = dict(data)
        for key in ("status", "priority"):
            value = normalized.get(key)
            if isinstance(value, (TaskStatus, TaskPriority)):
                normalized[key] = value.value
        return normalized
