from __future__ import annotations

from typing import Iterable

from .entities import CompletionSnapshot, TaskEntity
from .enums import TaskStatus


def is_completed(task: TaskEntity) -> bool:
    return task.status == TaskStatus.DONE and task.status_confirmed


def compute_completion(tasks: Iterable[TaskEntity]) -> CompletionSnapshot:
    """Roll up project completion from its tasks.

    Only parentless tasks count toward the headline figures; subtasks are
    reported in ``all_tasks_count`` only.
    """
    all_tasks = list(tasks)
    parents = [task for task in all_tasks if task.parent_task_id is None]
    total = len(parents)
    completed = sum(1 for task in parents if is_completed(task))
    percentage = (completed / total) * 100 if total else 0.0
    return CompletionSnapshot(
        total_tasks=total,
        completed_tasks=completed,
        completion_percentage=percentage,
        is_fully_completed=total > 0 and completed == total,
        parent_tasks_count=total,
        all_tasks_count=len(all_tasks),
    )
