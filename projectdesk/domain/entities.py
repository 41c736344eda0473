from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional

from .enums import ExpenseCategory, ExpenseStatus, TaskStatus


@dataclass(frozen=True)
class TaskEntity:
    id: int | None
    project_id: int
    title: str
    description: str
    status: TaskStatus
    status_confirmed: bool
    priority: str
    due_date: Optional[date]
    parent_task_id: int | None
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime]
    sort_order: int
    total_budget: float = 0.0
    currency: str = "USD"
    budget_alert_thresholds: tuple[float, ...] = (80.0,)

    @property
    def is_locked(self) -> bool:
        # A Done record is locked even if the confirmation flag never got set.
        return self.status == TaskStatus.DONE

    @property
    def is_subtask(self) -> bool:
        return self.parent_task_id is not None


@dataclass(frozen=True)
class ProjectEntity:
    id: int | None
    name: str
    description: str
    total_budget: float
    currency: str
    budget_alert_thresholds: tuple[float, ...]
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class ExpenseEntity:
    id: int | None
    project_id: int
    task_id: int | None
    title: str
    description: str
    amount: float
    currency: str
    category: ExpenseCategory
    status: ExpenseStatus
    date_incurred: date
    notes: str
    created_at: datetime
    updated_at: datetime
    approved_at: Optional[datetime] = None


@dataclass(frozen=True)
class CompletionSnapshot:
    total_tasks: int
    completed_tasks: int
    completion_percentage: float
    is_fully_completed: bool
    parent_tasks_count: int
    all_tasks_count: int


@dataclass(frozen=True)
class BreakdownEntry:
    count: int
    amount: float


@dataclass(frozen=True)
class ExpenseSummary:
    total_expenses: int
    total_amount: float
    approved_amount: float
    pending_amount: float
    category_breakdown: dict[str, BreakdownEntry] = field(default_factory=dict)
    status_breakdown: dict[str, BreakdownEntry] = field(default_factory=dict)


@dataclass(frozen=True)
class BudgetSummary:
    total_budget: float
    currency: str
    spent: float
    remaining: float
    utilization: float
    reached_thresholds: tuple[float, ...] = field(default=())


@dataclass(frozen=True)
class TaskBudgetSummary:
    task_id: int
    task_title: str
    task_priority: str
    task_status: TaskStatus
    budget: BudgetSummary
    expenses: ExpenseSummary
    over_budget: bool
    near_budget_limit: bool
