from __future__ import annotations

import logging
from datetime import datetime

from projectdesk.domain.budget import (
    allocated_task_budget,
    committed_amount,
    crossed_thresholds,
    summarize_budget,
    summarize_expenses,
    summarize_task_budget,
)
from projectdesk.domain.entities import (
    BudgetSummary,
    ExpenseEntity,
    ExpenseSummary,
    ProjectEntity,
    TaskBudgetSummary,
    TaskEntity,
)
from projectdesk.domain.enums import ExpenseCategory, ExpenseStatus
from projectdesk.domain.errors import (
    BudgetAllocationError,
    ExpenseNotFound,
    ProjectNotFound,
    TaskNotFound,
    ValidationError,
)
from projectdesk.infra.events import BudgetThresholdReached, EventBus
from projectdesk.infra.repository import ExpenseRepository, ProjectRepository, TaskRepository

from .project_service import format_thresholds

logger = logging.getLogger(__name__)

# Fields frozen once an expense leaves Pending.
LOCKED_EXPENSE_FIELDS = ("amount", "category", "task_id")


class BudgetService:
    def __init__(
        self,
        project_repo: ProjectRepository,
        expense_repo: ExpenseRepository,
        task_repo: TaskRepository,
        events: EventBus | None = None,
    ) -> None:
        self._projects = project_repo
        self._expenses = expense_repo
        self._tasks = task_repo
        self._events = events if events is not None else EventBus()

    def list_expenses(
        self,
        project_id: int,
        task_id: int | None = None,
        status: ExpenseStatus | str | None = None,
        category: ExpenseCategory | str | None = None,
    ) -> list[ExpenseEntity]:
        return self._expenses.list_expenses(
            project_id,
            task_id=task_id,
            status=str(status) if status else None,
            category=str(category) if category else None,
        )

    def get_expense_summary(self, project_id: int, task_id: int | None = None) -> ExpenseSummary:
        return summarize_expenses(self.list_expenses(project_id, task_id=task_id))

    def get_budget_summary(self, project_id: int) -> BudgetSummary:
        project = self._get_project(project_id)
        return summarize_budget(project, self._expenses.list_expenses(project_id))

    def update_budget(
        self,
        project_id: int,
        total_budget: float | None = None,
        currency: str | None = None,
        thresholds=None,
    ) -> ProjectEntity:
        before = self.get_budget_summary(project_id)
        data: dict = {}
        if total_budget is not None:
            if total_budget < 0:
                raise ValidationError("Budget cannot be negative")
            data["total_budget"] = float(total_budget)
        if currency:
            data["currency"] = currency.upper()
        if thresholds is not None:
            data["budget_alert_thresholds"] = format_thresholds(thresholds)
        project = self._projects.update_project(project_id, data) if data else self._get_project(project_id)
        if project is None:
            raise ProjectNotFound(project_id)
        self._check_thresholds(project_id, before.utilization)
        return project

    def get_task_budget_overview(self, task_id: int) -> TaskBudgetSummary:
        task = self._get_task(task_id)
        return summarize_task_budget(task, self._expenses.list_expenses(task.project_id, task_id=task_id))

    def get_project_tasks_budget(self, project_id: int) -> list[TaskBudgetSummary]:
        """Budget overview of every task in the project, in board order."""
        self._get_project(project_id)
        by_task: dict[int, list[ExpenseEntity]] = {}
        for expense in self._expenses.list_expenses(project_id):
            if expense.task_id is not None:
                by_task.setdefault(expense.task_id, []).append(expense)
        return [
            summarize_task_budget(task, by_task.get(task.id, []))
            for task in self._tasks.list_project_tasks(project_id)
        ]

    def update_task_budget(
        self,
        task_id: int,
        total_budget: float | None = None,
        currency: str | None = None,
        thresholds=None,
    ) -> TaskEntity:
        """Set a task's budget.

        Task budgets of a project with a budget may not add up to more than
        the project budget, and a task budget may not drop below the task's
        committed (non-rejected) expenses.
        """
        task = self._get_task(task_id)
        project = self._get_project(task.project_id)
        before = self.get_task_budget_overview(task_id).budget.utilization
        data: dict = {}
        if total_budget is not None:
            total_budget = float(total_budget)
            if total_budget < 0:
                raise ValidationError("Budget cannot be negative")
            if project.total_budget > 0:
                allocated = allocated_task_budget(
                    self._tasks.list_project_tasks(project.id), exclude_task_id=task_id
                )
                if allocated + total_budget > project.total_budget:
                    raise BudgetAllocationError(
                        "Total task budgets cannot exceed project budget",
                        limit=project.total_budget - allocated,
                        requested=total_budget,
                    )
            committed = committed_amount(self._expenses.list_expenses(project.id, task_id=task_id))
            if total_budget < committed:
                raise BudgetAllocationError(
                    "Cannot set budget lower than current expense total",
                    limit=committed,
                    requested=total_budget,
                )
            data["total_budget"] = total_budget
        if currency:
            data["currency"] = currency.upper()
        elif not task.total_budget:
            data["currency"] = project.currency
        if thresholds is not None:
            data["budget_alert_thresholds"] = format_thresholds(thresholds)

        updated = self._tasks.update_task(task_id, data)
        if updated is None:
            raise TaskNotFound(task_id)
        logger.info("Task %s budget set to %.2f %s", task_id, updated.total_budget, updated.currency)
        self._check_task_thresholds(task_id, before)
        return updated

    def create_expense(self, data: dict) -> ExpenseEntity:
        normalized = self._normalize_data(data)
        project_id = normalized.get("project_id")
        if project_id is None:
            raise ValidationError("Expense must belong to a project")
        project = self._get_project(project_id)
        if not (normalized.get("title") or "").strip():
            raise ValidationError("Expense title is required")
        if normalized.get("amount") is None:
            raise ValidationError("Expense amount is required")
        self._check_task(project_id, normalized.get("task_id"))

        normalized["title"] = normalized["title"].strip()
        normalized.setdefault("currency", project.currency)
        normalized["status"] = ExpenseStatus.PENDING.value

        expense = self._expenses.create_expense(normalized)
        logger.info("Recorded expense %s (%.2f) on project %s", expense.id, expense.amount, project_id)
        return expense

    def update_expense(self, expense_id: int, data: dict) -> ExpenseEntity:
        expense = self._get_expense(expense_id)
        normalized = self._normalize_data(data)
        normalized.pop("status", None)
        if normalized.pop("project_id", expense.project_id) != expense.project_id:
            logger.info("Expense %s cannot move to another project, ignoring project_id", expense_id)
        if expense.status != ExpenseStatus.PENDING:
            dropped = [key for key in LOCKED_EXPENSE_FIELDS if normalized.pop(key, None) is not None]
            if dropped:
                logger.info("Expense %s is %s, ignoring changes to %s", expense_id, expense.status.value, dropped)
        elif "task_id" in normalized:
            self._check_task(expense.project_id, normalized["task_id"])

        before, task_before = self._utilizations(expense)
        updated = self._expenses.update_expense(expense_id, normalized) if normalized else expense
        if updated is None:
            raise ExpenseNotFound(expense_id)
        self._check_thresholds(expense.project_id, before)
        if expense.task_id is not None:
            self._check_task_thresholds(expense.task_id, task_before)
        return updated

    def approve_expense(self, expense_id: int) -> ExpenseEntity:
        return self._set_status(expense_id, ExpenseStatus.APPROVED, {ExpenseStatus.PENDING})

    def reject_expense(self, expense_id: int, reason: str = "") -> ExpenseEntity:
        extra = {"notes": reason.strip()} if reason and reason.strip() else {}
        return self._set_status(expense_id, ExpenseStatus.REJECTED, {ExpenseStatus.PENDING}, extra)

    def mark_paid(self, expense_id: int) -> ExpenseEntity:
        return self._set_status(expense_id, ExpenseStatus.PAID, {ExpenseStatus.APPROVED})

    def delete_expense(self, expense_id: int) -> None:
        expense = self._get_expense(expense_id)
        self._expenses.delete_expense(expense_id)
        logger.info("Deleted expense %s from project %s", expense_id, expense.project_id)

    def _set_status(
        self,
        expense_id: int,
        status: ExpenseStatus,
        allowed_from: set[ExpenseStatus],
        extra: dict | None = None,
    ) -> ExpenseEntity:
        expense = self._get_expense(expense_id)
        if expense.status not in allowed_from:
            raise ValidationError(
                f"Expense {expense_id} is {expense.status.value} and cannot become {status.value}"
            )
        before, task_before = self._utilizations(expense)
        data = {"status": status.value, **(extra or {})}
        if status in (ExpenseStatus.APPROVED, ExpenseStatus.REJECTED):
            data["approved_at"] = datetime.utcnow()
        updated = self._expenses.update_expense(expense_id, data)
        if updated is None:
            raise ExpenseNotFound(expense_id)
        logger.info("Expense %s -> %s", expense_id, status.value)
        self._check_thresholds(expense.project_id, before)
        if expense.task_id is not None:
            self._check_task_thresholds(expense.task_id, task_before)
        return updated

    def _check_thresholds(self, project_id: int, before_utilization: float) -> None:
        project = self._get_project(project_id)
        after = summarize_budget(project, self._expenses.list_expenses(project_id))
        for threshold in crossed_thresholds(
            before_utilization, after.utilization, project.budget_alert_thresholds
        ):
            logger.warning(
                "Project %s reached %.1f%% of its budget (threshold %g%%)",
                project_id,
                after.utilization,
                threshold,
            )
            self._events.publish(
                BudgetThresholdReached(
                    project_id=project_id,
                    threshold=threshold,
                    utilization=after.utilization,
                    spent=after.spent,
                    total_budget=after.total_budget,
                )
            )

    def _check_task_thresholds(self, task_id: int, before_utilization: float | None) -> None:
        task = self._tasks.get_task(task_id)
        if task is None or before_utilization is None:
            return
        after = self.get_task_budget_overview(task_id).budget
        for threshold in crossed_thresholds(
            before_utilization, after.utilization, task.budget_alert_thresholds
        ):
            logger.warning(
                "Task %s reached %.1f%% of its budget (threshold %g%%)",
                task_id,
                after.utilization,
                threshold,
            )
            self._events.publish(
                BudgetThresholdReached(
                    project_id=task.project_id,
                    threshold=threshold,
                    utilization=after.utilization,
                    spent=after.spent,
                    total_budget=after.total_budget,
                    task_id=task_id,
                )
            )

    def _utilizations(self, expense: ExpenseEntity) -> tuple[float, float | None]:
        project_before = self.get_budget_summary(expense.project_id).utilization
        if expense.task_id is None or self._tasks.get_task(expense.task_id) is None:
            return project_before, None
        return project_before, self.get_task_budget_overview(expense.task_id).budget.utilization

    def _get_task(self, task_id: int) -> TaskEntity:
        task = self._tasks.get_task(task_id)
        if task is None:
            raise TaskNotFound(task_id)
        return task

    def _check_task(self, project_id: int, task_id: int | None) -> None:
        if task_id is None:
            return
        task = self._tasks.get_task(task_id)
        if task is None or task.project_id != project_id:
            raise TaskNotFound(task_id)

    def _get_project(self, project_id: int) -> ProjectEntity:
        project = self._projects.get_project(project_id)
        if project is None:
            raise ProjectNotFound(project_id)
        return project

    def _get_expense(self, expense_id: int) -> ExpenseEntity:
        expense = self._expenses.get_expense(expense_id)
        if expense is None:
            raise ExpenseNotFound(expense_id)
        return expense

    def _normalize_data(self, data: dict) -> dict:
        normalized = dict(data)
        if "amount" in normalized and normalized["amount"] is not None:
            amount = float(normalized["amount"])
            if amount < 0:
                raise ValidationError("Expense amount cannot be negative")
            normalized["amount"] = amount
        if "category" in normalized:
            try:
                normalized["category"] = ExpenseCategory(normalized["category"] or ExpenseCategory.OTHER).value
            except ValueError as exc:
                raise ValidationError(f"Unknown expense category: {normalized['category']!r}") from exc
        if "currency" in normalized and normalized["currency"]:
            normalized["currency"] = normalized["currency"].upper()
        return normalized
