from __future__ import annotations

from typing import Iterable

from .entities import (
    BreakdownEntry,
    BudgetSummary,
    ExpenseEntity,
    ExpenseSummary,
    ProjectEntity,
    TaskBudgetSummary,
    TaskEntity,
)
from .enums import ExpenseStatus

SPENT_STATUSES = {ExpenseStatus.APPROVED, ExpenseStatus.PAID}
NEAR_BUDGET_LIMIT = 80.0


def _breakdown(expenses: list[ExpenseEntity], key) -> dict[str, BreakdownEntry]:
    counts: dict[str, int] = {}
    amounts: dict[str, float] = {}
    for expense in expenses:
        name = key(expense)
        counts[name] = counts.get(name, 0) + 1
        amounts[name] = amounts.get(name, 0.0) + expense.amount
    return {name: BreakdownEntry(count=counts[name], amount=amounts[name]) for name in counts}


def summarize_expenses(expenses: Iterable[ExpenseEntity]) -> ExpenseSummary:
    items = list(expenses)
    total = sum(expense.amount for expense in items)
    approved = sum(expense.amount for expense in items if expense.status in SPENT_STATUSES)
    return ExpenseSummary(
        total_expenses=len(items),
        total_amount=total,
        approved_amount=approved,
        pending_amount=total - approved,
        category_breakdown=_breakdown(items, lambda expense: expense.category.value),
        status_breakdown=_breakdown(items, lambda expense: expense.status.value),
    )


def committed_amount(expenses: Iterable[ExpenseEntity]) -> float:
    """Everything not rejected: pending, approved and paid."""
    return sum(expense.amount for expense in expenses if expense.status != ExpenseStatus.REJECTED)


def allocated_task_budget(tasks: Iterable[TaskEntity], exclude_task_id: int | None = None) -> float:
    return sum(task.total_budget for task in tasks if task.id != exclude_task_id)


def budget_utilization(total_budget: float, spent: float) -> float:
    if total_budget <= 0:
        return 0.0
    return spent / total_budget * 100


def _summarize(
    total_budget: float,
    currency: str,
    thresholds: Iterable[float],
    spent: float,
) -> BudgetSummary:
    utilization = budget_utilization(total_budget, spent)
    return BudgetSummary(
        total_budget=total_budget,
        currency=currency,
        spent=spent,
        remaining=max(0.0, total_budget - spent),
        utilization=utilization,
        reached_thresholds=tuple(threshold for threshold in thresholds if utilization >= threshold),
    )


def summarize_budget(project: ProjectEntity, expenses: Iterable[ExpenseEntity]) -> BudgetSummary:
    spent = summarize_expenses(expenses).approved_amount
    return _summarize(project.total_budget, project.currency, project.budget_alert_thresholds, spent)


def summarize_task_budget(task: TaskEntity, expenses: Iterable[ExpenseEntity]) -> TaskBudgetSummary:
    expense_summary = summarize_expenses(expenses)
    budget = _summarize(
        task.total_budget,
        task.currency,
        task.budget_alert_thresholds,
        expense_summary.approved_amount,
    )
    return TaskBudgetSummary(
        task_id=task.id,
        task_title=task.title,
        task_priority=task.priority,
        task_status=task.status,
        budget=budget,
        expenses=expense_summary,
        over_budget=budget.utilization > 100,
        near_budget_limit=NEAR_BUDGET_LIMIT < budget.utilization <= 100,
    )


def crossed_thresholds(before: float, after: float, thresholds: Iterable[float]) -> list[float]:
    """Thresholds that ``after`` reaches and ``before`` did not."""
    return sorted(threshold for threshold in thresholds if before < threshold <= after)
