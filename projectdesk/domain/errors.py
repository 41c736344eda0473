"""Domain errors.

``RequiresConfirmation`` asks the caller to prompt and retry with
``confirm=True``. ``StatusLocked`` is terminal for the task.
"""
from __future__ import annotations


class ProjectDeskError(Exception):
    """Base class for every error raised by the domain and service layers."""


class ValidationError(ProjectDeskError):
    pass


class ProjectNotFound(ProjectDeskError):
    def __init__(self, project_id: int) -> None:
        super().__init__(f"Project {project_id} not found")
        self.project_id = project_id


class ExpenseNotFound(ProjectDeskError):
    def __init__(self, expense_id: int) -> None:
        super().__init__(f"Expense {expense_id} not found")
        self.expense_id = expense_id


class TaskStatusError(ProjectDeskError):
    """A requested status change was not applied.

    Args:
        task_id: task the request targeted
        requested_status: status the caller asked for
        retryable: whether repeating the request can ever succeed
    """

    def __init__(self, message: str, task_id: int | None, requested_status: str | None, retryable: bool) -> None:
        super().__init__(message)
        self.task_id = task_id
        self.requested_status = requested_status
        self.retryable = retryable


class RequiresConfirmation(TaskStatusError):
    def __init__(self, task_id: int | None, requested_status: str | None = "Done") -> None:
        super().__init__(
            "Confirmation required to mark task as Done",
            task_id,
            requested_status,
            retryable=True,
        )


class StatusLocked(TaskStatusError):
    def __init__(self, task_id: int | None, requested_status: str | None = None) -> None:
        super().__init__(
            "Cannot change status from Done once it has been confirmed",
            task_id,
            requested_status,
            retryable=False,
        )


class TaskNotFound(TaskStatusError):
    def __init__(self, task_id: int | None, requested_status: str | None = None) -> None:
        super().__init__(f"Task {task_id} not found", task_id, requested_status, retryable=False)


class TaskConflict(TaskStatusError):
    """The record kept changing between read and commit."""

    def __init__(self, task_id: int | None, requested_status: str | None = None) -> None:
        super().__init__(
            f"Task {task_id} was modified concurrently, refresh and retry",
            task_id,
            requested_status,
            retryable=True,
        )


class BudgetAllocationError(ValidationError):
    """A task budget does not fit the project's budget or its own expenses."""

    def __init__(self, message: str, limit: float, requested: float) -> None:
        super().__init__(message)
        self.limit = limit
        self.requested = requested
