from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Boolean, Column, Date, DateTime, Float, ForeignKey, Integer, String, Text

from .db import Base


def utcnow() -> datetime:
    return datetime.utcnow()


def today() -> date:
    return date.today()


class ProjectModel(Base):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")
    total_budget = Column(Float, nullable=False, default=0.0)
    currency = Column(String(3), nullable=False, default="USD")
    budget_alert_thresholds = Column(String(100), nullable=False, default="80")
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class TaskModel(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    parent_task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=True, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")
    status = Column(String(20), nullable=False, default="To-Do", index=True)
    status_confirmed = Column(Boolean, nullable=False, default=False)
    priority = Column(String(10), nullable=False, default="Medium")
    due_date = Column(Date, nullable=True)
    total_budget = Column(Float, nullable=False, default=0.0)
    currency = Column(String(3), nullable=False, default="USD")
    budget_alert_thresholds = Column(String(100), nullable=False, default="80")
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    completed_at = Column(DateTime, nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)


class ExpenseModel(Base):
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")
    amount = Column(Float, nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    category = Column(String(30), nullable=False, default="Other")
    status = Column(String(20), nullable=False, default="Pending", index=True)
    date_incurred = Column(Date, nullable=False, default=today)
    notes = Column(Text, nullable=False, default="")
    approved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
