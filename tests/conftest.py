from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from projectdesk.domain.entities import TaskEntity
from projectdesk.domain.enums import TaskPriority, TaskStatus
from projectdesk.infra import models  # noqa: F401
from projectdesk.infra.db import Base
from projectdesk.infra.repository import ExpenseRepository, ProjectRepository, TaskRepository


def make_task(
    task_id: int,
    status: TaskStatus = TaskStatus.TODO,
    priority: str = TaskPriority.MEDIUM.value,
    confirmed: bool | None = None,
    project_id: int = 1,
    parent_task_id: int | None = None,
    title: str | None = None,
) -> TaskEntity:
    if confirmed is None:
        confirmed = status == TaskStatus.DONE
    now = datetime(2026, 1, 1, 9, 0)
    return TaskEntity(
        id=task_id,
        project_id=project_id,
        title=title or f"Task {task_id}",
        description="",
        status=status,
        status_confirmed=confirmed,
        priority=priority,
        due_date=None,
        parent_task_id=parent_task_id,
        created_at=now,
        updated_at=now,
        completed_at=now if confirmed else None,
        sort_order=task_id,
    )


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False)
    engine.dispose()


@pytest.fixture
def task_repo(session_factory) -> TaskRepository:
    return TaskRepository(session_factory)


@pytest.fixture
def project_repo(session_factory) -> ProjectRepository:
    return ProjectRepository(session_factory)


@pytest.fixture
def expense_repo(session_factory) -> ExpenseRepository:
    return ExpenseRepository(session_factory)


@pytest.fixture
def project(project_repo):
    return project_repo.create_project({
        "name": "Website relaunch",
        "total_budget": 1000.0,
        "currency": "USD",
        "budget_alert_thresholds": "80,100",
    })
