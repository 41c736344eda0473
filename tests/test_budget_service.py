from __future__ import annotations

import pytest

from projectdesk.domain.enums import ExpenseStatus
from projectdesk.domain.errors import (
    BudgetAllocationError,
    ExpenseNotFound,
    ProjectNotFound,
    TaskNotFound,
    ValidationError,
)
from projectdesk.infra.events import BudgetThresholdReached, EventBus
from projectdesk.services.budget_service import BudgetService
from projectdesk.services.task_service import TaskService


@pytest.fixture
def alerts() -> list:
    return []


@pytest.fixture
def service(project_repo, expense_repo, task_repo, alerts) -> BudgetService:
    events = EventBus()
    events.subscribe(alerts.append)
    return BudgetService(project_repo, expense_repo, task_repo, events)


def _expense(service, project, amount: float, **data):
    return service.create_expense({"project_id": project.id, "title": "Item", "amount": amount, **data})


def test_new_expenses_start_pending_in_project_currency(service, project) -> None:
    expense = _expense(service, project, 120, status="Paid", category="Travel")

    assert expense.status == ExpenseStatus.PENDING
    assert expense.currency == "USD"
    assert expense.amount == 120.0


@pytest.mark.parametrize(
    "data",
    [
        {"title": "", "amount": 10},
        {"title": "No amount"},
        {"title": "Negative", "amount": -5},
        {"title": "Odd", "amount": 5, "category": "Snacks"},
    ],
)
def test_create_expense_validates(service, project, data: dict) -> None:
    with pytest.raises(ValidationError):
        service.create_expense({"project_id": project.id, **data})


def test_expense_task_must_belong_to_project(service, project, project_repo, task_repo) -> None:
    other = project_repo.create_project({"name": "Other"})
    foreign = task_repo.create_task({"project_id": other.id, "title": "Foreign"})

    with pytest.raises(TaskNotFound):
        _expense(service, project, 10, task_id=foreign.id)
    with pytest.raises(ProjectNotFound):
        service.create_expense({"project_id": 999, "title": "Lost", "amount": 1})


def test_approval_crossing_threshold_publishes_alert(service, project, alerts) -> None:
    expense = _expense(service, project, 850)
    assert alerts == []

    service.approve_expense(expense.id)

    assert len(alerts) == 1
    alert = alerts[0]
    assert isinstance(alert, BudgetThresholdReached)
    assert alert.threshold == 80.0
    assert alert.utilization == pytest.approx(85.0)
    assert service.get_budget_summary(project.id).remaining == pytest.approx(150.0)


def test_thresholds_fire_once_each(service, project, alerts) -> None:
    first = _expense(service, project, 850)
    second = _expense(service, project, 200)
    service.approve_expense(first.id)
    service.approve_expense(second.id)
    service.mark_paid(first.id)

    assert [alert.threshold for alert in alerts] == [80.0, 100.0]


def test_lowering_budget_can_cross_threshold(service, project, alerts) -> None:
    service.approve_expense(_expense(service, project, 500).id)
    assert alerts == []

    service.update_budget(project.id, total_budget=600)

    assert [alert.threshold for alert in alerts] == [80.0]


def test_status_changes_follow_approval_flow(service, project) -> None:
    expense = _expense(service, project, 40)

    with pytest.raises(ValidationError):
        service.mark_paid(expense.id)
    approved = service.approve_expense(expense.id)
    assert approved.approved_at is not None
    with pytest.raises(ValidationError):
        service.reject_expense(expense.id)
    assert service.mark_paid(expense.id).status == ExpenseStatus.PAID

    other = _expense(service, project, 15)
    rejected = service.reject_expense(other.id, reason=" Not in scope ")
    assert rejected.status == ExpenseStatus.REJECTED
    assert rejected.notes == "Not in scope"


def test_approved_expense_keeps_amount(service, project) -> None:
    expense = _expense(service, project, 40)
    service.approve_expense(expense.id)

    updated = service.update_expense(expense.id, {"amount": 4000, "title": "Renamed", "status": "Pending"})

    assert updated.amount == 40.0
    assert updated.title == "Renamed"
    assert updated.status == ExpenseStatus.APPROVED


def test_summary_and_delete(service, project) -> None:
    approved = _expense(service, project, 100)
    service.approve_expense(approved.id)
    pending = _expense(service, project, 30)

    summary = service.get_expense_summary(project.id)
    assert summary.total_expenses == 2
    assert summary.approved_amount == pytest.approx(100.0)
    assert summary.pending_amount == pytest.approx(30.0)

    service.delete_expense(pending.id)
    assert [e.id for e in service.list_expenses(project.id)] == [approved.id]
    with pytest.raises(ExpenseNotFound):
        service.delete_expense(pending.id)


def test_update_budget_settings(service, project) -> None:
    updated = service.update_budget(project.id, total_budget=2500, currency="eur", thresholds=[90, 50])

    assert updated.total_budget == 2500.0
    assert updated.currency == "EUR"
    assert updated.budget_alert_thresholds == (50.0, 90.0)
    with pytest.raises(ValidationError):
        service.update_budget(project.id, total_budget=-1)
    with pytest.raises(ValidationError):
        service.update_budget(project.id, thresholds=[0])


def test_pending_expense_stays_in_its_project(service, project, project_repo, task_repo) -> None:
    other = project_repo.create_project({"name": "Other"})
    foreign = task_repo.create_task({"project_id": other.id, "title": "Foreign"})
    expense = _expense(service, project, 25)

    moved = service.update_expense(expense.id, {"project_id": other.id, "title": "Moved"})

    assert moved.project_id == project.id
    assert moved.title == "Moved"
    assert service.list_expenses(other.id) == []
    with pytest.raises(TaskNotFound):
        service.update_expense(expense.id, {"project_id": other.id, "task_id": foreign.id})


def test_task_budgets_cannot_exceed_project_budget(service, project, task_repo) -> None:
    design = task_repo.create_task({"project_id": project.id, "title": "Design"})
    build = task_repo.create_task({"project_id": project.id, "title": "Build"})
    service.update_task_budget(design.id, total_budget=600)

    with pytest.raises(BudgetAllocationError) as exc_info:
        service.update_task_budget(build.id, total_budget=500)

    assert exc_info.value.limit == pytest.approx(400.0)
    assert service.update_task_budget(build.id, total_budget=400).total_budget == 400.0
    assert service.update_task_budget(design.id, total_budget=600).total_budget == 600.0


def test_task_budget_cannot_drop_below_committed_expenses(service, project, task_repo) -> None:
    task = task_repo.create_task({"project_id": project.id, "title": "Design"})
    service.update_task_budget(task.id, total_budget=300)
    expense = _expense(service, project, 200, task_id=task.id)

    with pytest.raises(BudgetAllocationError):
        service.update_task_budget(task.id, total_budget=150)

    service.reject_expense(expense.id)
    assert service.update_task_budget(task.id, total_budget=150).total_budget == 150.0
    with pytest.raises(ValidationError):
        service.update_task_budget(task.id, total_budget=-1)
    with pytest.raises(TaskNotFound):
        service.update_task_budget(999, total_budget=10)


def test_task_budget_without_project_cap_uses_project_currency(service, project_repo, task_repo) -> None:
    berlin = project_repo.create_project({"name": "Berlin office", "currency": "EUR"})
    task = task_repo.create_task({"project_id": berlin.id, "title": "Furniture"})

    updated = service.update_task_budget(task.id, total_budget=5000, thresholds=[50, 90])

    assert updated.total_budget == 5000.0
    assert updated.currency == "EUR"
    assert updated.budget_alert_thresholds == (50.0, 90.0)


def test_task_budget_overview(service, project, task_repo) -> None:
    task = task_repo.create_task({"project_id": project.id, "title": "Design", "priority": "High"})
    service.update_task_budget(task.id, total_budget=200)
    service.approve_expense(_expense(service, project, 150, task_id=task.id, category="Travel").id)
    _expense(service, project, 30, task_id=task.id, category="Travel")
    _expense(service, project, 999)

    overview = service.get_task_budget_overview(task.id)

    assert overview.task_title == "Design"
    assert overview.task_priority == "High"
    assert overview.budget.spent == pytest.approx(150.0)
    assert overview.budget.remaining == pytest.approx(50.0)
    assert overview.budget.utilization == pytest.approx(75.0)
    assert overview.expenses.total_expenses == 2
    assert overview.expenses.pending_amount == pytest.approx(30.0)
    assert overview.expenses.category_breakdown["Travel"].count == 2
    assert not overview.over_budget
    with pytest.raises(TaskNotFound):
        service.get_task_budget_overview(999)


def test_project_tasks_budget_flags_overspent_tasks(service, project, task_repo) -> None:
    design = task_repo.create_task({"project_id": project.id, "title": "Design"})
    build = task_repo.create_task({"project_id": project.id, "title": "Build"})
    service.update_task_budget(design.id, total_budget=100)
    overspend = _expense(service, project, 100, task_id=design.id)
    service.approve_expense(overspend.id)
    service.approve_expense(_expense(service, project, 20, task_id=design.id).id)

    overviews = service.get_project_tasks_budget(project.id)

    assert [overview.task_id for overview in overviews] == [design.id, build.id]
    assert overviews[0].over_budget
    assert overviews[0].budget.remaining == 0.0
    assert overviews[1].budget.utilization == 0.0
    assert not overviews[1].near_budget_limit
    with pytest.raises(ProjectNotFound):
        service.get_project_tasks_budget(999)


def test_task_threshold_alert_names_the_task(service, project, task_repo, alerts) -> None:
    task = task_repo.create_task({"project_id": project.id, "title": "Design"})
    service.update_task_budget(task.id, total_budget=100)

    service.approve_expense(_expense(service, project, 90, task_id=task.id).id)

    assert len(alerts) == 1
    alert = alerts[0]
    assert alert.task_id == task.id
    assert alert.project_id == project.id
    assert alert.threshold == 80.0
    assert alert.utilization == pytest.approx(90.0)


def test_task_service_leaves_budget_fields_alone(service, project, task_repo) -> None:
    task = task_repo.create_task({"project_id": project.id, "title": "Design"})
    service.update_task_budget(task.id, total_budget=100)

    updated = TaskService(task_repo).update_task(task.id, {"title": "Design v2", "total_budget": 5000})

    assert updated.title == "Design v2"
    assert updated.total_budget == 100.0
