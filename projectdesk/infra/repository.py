from __future__ import annotations

from datetime import date, timedelta
from typing import Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.orm import sessionmaker

from projectdesk.config import parse_thresholds
from projectdesk.domain.entities import ExpenseEntity, ProjectEntity, TaskEntity
from projectdesk.domain.enums import ExpenseCategory, ExpenseStatus, TaskStatus
from projectdesk.domain.filters import TaskFilters

from .db import SessionLocal
from .models import ExpenseModel, ProjectModel, TaskModel, utcnow

STATUS_DONE = TaskStatus.DONE.value


def _to_entity(model: TaskModel) -> TaskEntity:
    return TaskEntity(
        id=model.id,
        project_id=model.project_id,
        title=model.title,
        description=model.description,
        status=TaskStatus(model.status),
        status_confirmed=bool(model.status_confirmed),
        priority=model.priority,
        due_date=model.due_date,
        parent_task_id=model.parent_task_id,
        created_at=model.created_at,
        updated_at=model.updated_at,
        completed_at=model.completed_at,
        sort_order=model.sort_order,
        total_budget=model.total_budget or 0.0,
        currency=model.currency or "USD",
        budget_alert_thresholds=parse_thresholds(model.budget_alert_thresholds or ""),
    )


def _to_project(model: ProjectModel) -> ProjectEntity:
    return ProjectEntity(
        id=model.id,
        name=model.name,
        description=model.description,
        total_budget=model.total_budget,
        currency=model.currency,
        budget_alert_thresholds=parse_thresholds(model.budget_alert_thresholds or ""),
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _to_expense(model: ExpenseModel) -> ExpenseEntity:
    return ExpenseEntity(
        id=model.id,
        project_id=model.project_id,
        task_id=model.task_id,
        title=model.title,
        description=model.description,
        amount=model.amount,
        currency=model.currency,
        category=ExpenseCategory(model.category),
        status=ExpenseStatus(model.status),
        date_incurred=model.date_incurred,
        notes=model.notes,
        created_at=model.created_at,
        updated_at=model.updated_at,
        approved_at=model.approved_at,
    )


def _apply_filters(stmt, filters: TaskFilters) -> object:
    today = date.today()

    if filters.project_id is not None:
        stmt = stmt.where(TaskModel.project_id == filters.project_id)

    if filters.parents_only:
        stmt = stmt.where(TaskModel.parent_task_id.is_(None))

    if filters.filter_key in {status.value for status in TaskStatus}:
        stmt = stmt.where(TaskModel.status == filters.filter_key)
    elif filters.filter_key == "locked":
        stmt = stmt.where(TaskModel.status == STATUS_DONE, TaskModel.status_confirmed.is_(True))
    elif filters.filter_key == "overdue":
        stmt = stmt.where(
            TaskModel.due_date.is_not(None),
            TaskModel.due_date < today,
            TaskModel.status != STATUS_DONE,
        )
    elif filters.filter_key == "upcoming":
        horizon = today + timedelta(days=7)
        stmt = stmt.where(
            TaskModel.due_date.is_not(None),
            TaskModel.due_date.between(today, horizon),
            TaskModel.status != STATUS_DONE,
        )

    if filters.due_on:
        stmt = stmt.where(TaskModel.due_date == filters.due_on)

    if filters.search:
        pattern = f"%{filters.search}%"
        stmt = stmt.where(
            or_(
                TaskModel.title.ilike(pattern),
                TaskModel.description.ilike(pattern),
            )
        )

    return stmt


class TaskRepository:
    def __init__(self, session_factory: sessionmaker = SessionLocal) -> None:
        self._session_factory = session_factory

    def list_tasks(self, filters: TaskFilters) -> list[TaskEntity]:
        with self._session_factory() as session:
            stmt = select(TaskModel)
            stmt = _apply_filters(stmt, filters)
            stmt = stmt.order_by(
                TaskModel.sort_order.asc(),
                TaskModel.due_date.is_(None),
                TaskModel.due_date.asc(),
                TaskModel.created_at.desc(),
                TaskModel.id.asc(),
            )
            return [_to_entity(task) for task in session.scalars(stmt)]

    def list_project_tasks(self, project_id: int) -> list[TaskEntity]:
        with self._session_factory() as session:
            stmt = (
                select(TaskModel)
                .where(TaskModel.project_id == project_id)
                .order_by(TaskModel.sort_order.asc(), TaskModel.id.asc())
            )
            return [_to_entity(task) for task in session.scalars(stmt)]

    def list_subtasks(self, task_id: int) -> list[TaskEntity]:
        with self._session_factory() as session:
            stmt = (
                select(TaskModel)
                .where(TaskModel.parent_task_id == task_id)
                .order_by(TaskModel.sort_order.asc(), TaskModel.id.asc())
            )
            return [_to_entity(task) for task in session.scalars(stmt)]

    def get_task(self, task_id: int) -> Optional[TaskEntity]:
        with self._session_factory() as session:
            task = session.get(TaskModel, task_id)
            return _to_entity(task) if task else None

    def create_task(self, data: dict) -> TaskEntity:
        with self._session_factory() as session:
            if data.get("sort_order") is None:
                status = data.get("status", TaskStatus.TODO.value)
                data["sort_order"] = self._next_sort_order(session, status)
            task = TaskModel(**data)
            session.add(task)
            session.commit()
            session.refresh(task)
            return _to_entity(task)

    def update_task(self, task_id: int, data: dict) -> Optional[TaskEntity]:
        with self._session_factory() as session:
            task = session.get(TaskModel, task_id)
            if not task:
                return None
            for key, value in data.items():
                setattr(task, key, value)
            session.commit()
            session.refresh(task)
            return _to_entity(task)

    def transition_status(
        self,
        task_id: int,
        expected_status: str,
        new_status: str,
        lock: bool = False,
    ) -> Optional[TaskEntity]:
        """Compare-and-set the status of an unlocked task.

        The row is only written while it still holds ``expected_status`` and
        is unconfirmed; ``None`` means another writer got there first.
        """
        now = utcnow()
        values = {"status": new_status, "updated_at": now}
        if lock:
            values["status_confirmed"] = True
            values["completed_at"] = now

        with self._session_factory() as session:
            values["sort_order"] = self._next_sort_order(session, new_status)
            result = session.execute(
                update(TaskModel)
                .where(
                    TaskModel.id == task_id,
                    TaskModel.status == expected_status,
                    TaskModel.status_confirmed.is_(False),
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            session.commit()
            if result.rowcount != 1:
                return None
            task = session.get(TaskModel, task_id)
            return _to_entity(task) if task else None

    def reorder_tasks(self, task_ids: list[int]) -> None:
        if not task_ids:
            return
        with self._session_factory() as session:
            tasks = session.scalars(select(TaskModel).where(TaskModel.id.in_(task_ids))).all()
            order_map = {task_id: index for index, task_id in enumerate(task_ids, start=1)}
            for task in tasks:
                task.sort_order = order_map.get(task.id, task.sort_order)
            session.commit()

    def delete_task(self, task_id: int) -> None:
        with self._session_factory() as session:
            task = session.get(TaskModel, task_id)
            if not task:
                return
            session.execute(delete(TaskModel).where(TaskModel.parent_task_id == task_id))
            session.delete(task)
            session.commit()

    def get_stats(self, project_id: int | None = None) -> dict[str, int]:
        with self._session_factory() as session:
            base = select(func.count()).select_from(TaskModel)
            if project_id is not None:
                base = base.where(TaskModel.project_id == project_id)
            total = session.scalar(base) or 0
            in_progress = session.scalar(
                base.where(TaskModel.status == TaskStatus.IN_PROGRESS.value)
            ) or 0
            done = session.scalar(base.where(TaskModel.status == STATUS_DONE)) or 0
            overdue = session.scalar(
                base.where(
                    TaskModel.due_date.is_not(None),
                    TaskModel.due_date < date.today(),
                    TaskModel.status != STATUS_DONE,
                )
            ) or 0
            return {
                "total": total,
                "in_progress": in_progress,
                "done": done,
                "overdue": overdue,
            }

    @staticmethod
    def _next_sort_order(session, status: str) -> int:
        max_order = session.scalar(
            select(func.max(TaskModel.sort_order)).where(TaskModel.status == status)
        )
        return (max_order or 0) + 1


class ProjectRepository:
    def __init__(self, session_factory: sessionmaker = SessionLocal) -> None:
        self._session_factory = session_factory

    def list_projects(self) -> list[ProjectEntity]:
        with self._session_factory() as session:
            stmt = select(ProjectModel).order_by(ProjectModel.created_at.desc(), ProjectModel.id.desc())
            return [_to_project(project) for project in session.scalars(stmt)]

    def get_project(self, project_id: int) -> Optional[ProjectEntity]:
        with self._session_factory() as session:
            project = session.get(ProjectModel, project_id)
            return _to_project(project) if project else None

    def create_project(self, data: dict) -> ProjectEntity:
        with self._session_factory() as session:
            project = ProjectModel(**data)
            session.add(project)
            session.commit()
            session.refresh(project)
            return _to_project(project)

    def update_project(self, project_id: int, data: dict) -> Optional[ProjectEntity]:
        with self._session_factory() as session:
            project = session.get(ProjectModel, project_id)
            if not project:
                return None
            for key, value in data.items():
                setattr(project, key, value)
            session.commit()
            session.refresh(project)
            return _to_project(project)

    def delete_project(self, project_id: int) -> None:
        with self._session_factory() as session:
            project = session.get(ProjectModel, project_id)
            if not project:
                return
            session.execute(delete(ExpenseModel).where(ExpenseModel.project_id == project_id))
            session.execute(
                delete(TaskModel).where(
                    TaskModel.project_id == project_id,
                    TaskModel.parent_task_id.is_not(None),
                )
            )
            session.execute(delete(TaskModel).where(TaskModel.project_id == project_id))
            session.delete(project)
            session.commit()


class ExpenseRepository:
    def __init__(self, session_factory: sessionmaker = SessionLocal) -> None:
        self._session_factory = session_factory

    def list_expenses(
        self,
        project_id: int,
        task_id: int | None = None,
        status: str | None = None,
        category: str | None = None,
    ) -> list[ExpenseEntity]:
        with self._session_factory() as session:
            stmt = select(ExpenseModel).where(ExpenseModel.project_id == project_id)
            if task_id is not None:
                stmt = stmt.where(ExpenseModel.task_id == task_id)
            if status:
                stmt = stmt.where(ExpenseModel.status == status)
            if category:
                stmt = stmt.where(ExpenseModel.category == category)
            stmt = stmt.order_by(ExpenseModel.created_at.desc(), ExpenseModel.id.desc())
            return [_to_expense(expense) for expense in session.scalars(stmt)]

    def get_expense(self, expense_id: int) -> Optional[ExpenseEntity]:
        with self._session_factory() as session:
            expense = session.get(ExpenseModel, expense_id)
            return _to_expense(expense) if expense else None

    def create_expense(self, data: dict) -> ExpenseEntity:
        with self._session_factory() as session:
            expense = ExpenseModel(**data)
            session.add(expense)
            session.commit()
            session.refresh(expense)
            return _to_expense(expense)

    def update_expense(self, expense_id: int, data: dict) -> Optional[ExpenseEntity]:
        with self._session_factory() as session:
            expense = session.get(ExpenseModel, expense_id)
            if not expense:
                return None
            for key, value in data.items():
                setattr(expense, key, value)
            session.commit()
            session.refresh(expense)
            return _to_expense(expense)

    def delete_expense(self, expense_id: int) -> None:
        with self._session_factory() as session:
            expense = session.get(ExpenseModel, expense_id)
            if not expense:
                return
            session.delete(expense)
            session.commit()
