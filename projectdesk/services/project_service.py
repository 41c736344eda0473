from __future__ import annotations

import logging

from projectdesk.config import SETTINGS
from projectdesk.domain.completion import compute_completion
from projectdesk.domain.entities import CompletionSnapshot, ProjectEntity
from projectdesk.domain.errors import ProjectNotFound, ValidationError
from projectdesk.infra.repository import ProjectRepository, TaskRepository

logger = logging.getLogger(__name__)


def format_thresholds(thresholds) -> str:
    values = sorted({float(value) for value in thresholds})
    for value in values:
        if value <= 0:
            raise ValidationError("Budget alert thresholds must be positive percentages")
    return ",".join(f"{value:g}" for value in values)


class ProjectService:
    def __init__(self, repo: ProjectRepository, task_repo: TaskRepository) -> None:
        self._repo = repo
        self._task_repo = task_repo

    def list_projects(self) -> list[ProjectEntity]:
        return self._repo.list_projects()

    def get_project(self, project_id: int) -> ProjectEntity:
        project = self._repo.get_project(project_id)
        if project is None:
            raise ProjectNotFound(project_id)
        return project

    def create_project(self, data: dict) -> ProjectEntity:
        normalized = self._normalize_data(data)
        if not normalized.get("name"):
            raise ValidationError("Project name is required")
        normalized.setdefault("currency", SETTINGS.default_currency)
        normalized.setdefault(
            "budget_alert_thresholds", format_thresholds(SETTINGS.budget_alert_thresholds)
        )
        project = self._repo.create_project(normalized)
        logger.info("Created project %s", project.id)
        return project

    def update_project(self, project_id: int, data: dict) -> ProjectEntity:
        normalized = self._normalize_data(data)
        if "name" in normalized and not normalized["name"]:
            raise ValidationError("Project name is required")
        project = self._repo.update_project(project_id, normalized)
        if project is None:
            raise ProjectNotFound(project_id)
        return project

    def delete_project(self, project_id: int) -> None:
        self.get_project(project_id)
        self._repo.delete_project(project_id)
        logger.info("Deleted project %s with its tasks and expenses", project_id)

    def get_project_completion(self, project_id: int) -> CompletionSnapshot:
        self.get_project(project_id)
        return compute_completion(self._task_repo.list_project_tasks(project_id))

    def _normalize_data(self, data: dict) -> dict:
        normalized = dict(data)
        if "name" in normalized:
            normalized["name"] = (normalized["name"] or "").strip()
        if "description" in normalized:
            normalized["description"] = (normalized["description"] or "").strip()
        if "total_budget" in normalized:
            budget = float(normalized["total_budget"] or 0)
            if budget < 0:
                raise ValidationError("Budget cannot be negative")
            normalized["total_budget"] = budget
        if "currency" in normalized:
            normalized["currency"] = (normalized["currency"] or SETTINGS.default_currency).upper()
        thresholds = normalized.get("budget_alert_thresholds")
        if thresholds is not None and not isinstance(thresholds, str):
            normalized["budget_alert_thresholds"] = format_thresholds(thresholds)
        return normalized
