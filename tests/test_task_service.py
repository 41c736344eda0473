from __future__ import annotations

from dataclasses import replace
from datetime import datetime

import pytest

from projectdesk.domain.board import MoveOutcome
from projectdesk.domain.entities import TaskEntity
from projectdesk.domain.enums import TaskStatus
from projectdesk.domain.errors import (
    RequiresConfirmation,
    StatusLocked,
    TaskConflict,
    TaskNotFound,
    ValidationError,
)
from projectdesk.domain.filters import TaskFilters
from projectdesk.infra.events import EventBus, ProjectCompletionUpdated, ProjectFullyCompleted
from projectdesk.services.task_service import MAX_STATUS_ATTEMPTS, TaskService


class FakeRepo:
    def __init__(self) -> None:
        self.tasks: list[TaskEntity] = []
        self._id = 1
        self.transition_calls = 0

    def list_tasks(self, filters: TaskFilters) -> list[TaskEntity]:
        return self.tasks

    def list_project_tasks(self, project_id: int) -> list[TaskEntity]:
        return [t for t in self.tasks if t.project_id == project_id]

    def list_subtasks(self, task_id: int) -> list[TaskEntity]:
        return [t for t in self.tasks if t.parent_task_id == task_id]

    def get_task(self, task_id: int) -> TaskEntity | None:
        return next((t for t in self.tasks if t.id == task_id), None)

    def create_task(self, data: dict) -> TaskEntity:
        task = TaskEntity(
            id=self._id,
            project_id=data["project_id"],
            title=data.get("title", ""),
            description=data.get("description", ""),
            status=TaskStatus(data.get("status", "To-Do")),
            status_confirmed=False,
            priority=data.get("priority", "Medium"),
            due_date=data.get("due_date"),
            parent_task_id=data.get("parent_task_id"),
            created_at=datetime.utcnow(),
            updated_at=datetime.utcnow(),
            completed_at=None,
            sort_order=self._id,
        )
        self.tasks.append(task)
        self._id += 1
        return task

    def update_task(self, task_id: int, data: dict) -> TaskEntity | None:
        task = self.get_task(task_id)
        if not task:
            return None
        updated = replace(task, **data)
        self._store(updated)
        return updated

    def transition_status(
        self, task_id: int, expected_status: str, new_status: str, lock: bool = False
    ) -> TaskEntity | None:
        self.transition_calls += 1
        task = self.get_task(task_id)
        if task is None or task.status.value != expected_status or task.status_confirmed:
            return None
        updated = replace(
            task,
            status=TaskStatus(new_status),
            status_confirmed=lock,
            completed_at=datetime.utcnow() if lock else task.completed_at,
        )
        self._store(updated)
        return updated

    def delete_task(self, task_id: int) -> None:
        self.tasks = [t for t in self.tasks if t.id != task_id and t.parent_task_id != task_id]

    def reorder_tasks(self, task_ids: list[int]) -> None:
        pass

    def get_stats(self, project_id: int | None = None) -> dict[str, int]:
        return {"total": len(self.tasks), "in_progress": 0, "done": 0, "overdue": 0}

    def _store(self, updated: TaskEntity) -> None:
        self.tasks = [updated if t.id == updated.id else t for t in self.tasks]


class InterleavingRepo(FakeRepo):
    """Runs ``before_write`` once, between the service's read and its write."""

    def __init__(self) -> None:
        super().__init__()
        self.before_write = None

    def transition_status(self, task_id, expected_status, new_status, lock=False):
        hook, self.before_write = self.before_write, None
        if hook is not None:
            hook()
        return super().transition_status(task_id, expected_status, new_status, lock)


class StuckRepo(FakeRepo):
    def transition_status(self, task_id, expected_status, new_status, lock=False):
        self.transition_calls += 1
        return None


def _service(repo: FakeRepo | None = None) -> tuple[TaskService, FakeRepo, list]:
    repo = repo or FakeRepo()
    events = EventBus()
    received: list = []
    events.subscribe(received.append)
    return TaskService(repo, events), repo, received


def test_create_task_defaults_to_todo_and_medium() -> None:
    service, _, received = _service()

    task = service.create_task({"project_id": 1, "title": "  Draft plan  "})

    assert task.title == "Draft plan"
    assert task.status == TaskStatus.TODO
    assert task.priority == "Medium"
    assert isinstance(received[-1], ProjectCompletionUpdated)
    assert received[-1].completion.total_tasks == 1


@pytest.mark.parametrize(
    "data",
    [
        {"project_id": 1, "title": ""},
        {"title": "No project"},
        {"project_id": 1, "title": "Done already", "status": "Done"},
        {"project_id": 1, "title": "Odd priority", "priority": "Urgent"},
    ],
)
def test_create_task_rejects_invalid_data(data: dict) -> None:
    service, repo, _ = _service()

    with pytest.raises(ValidationError):
        service.create_task(data)
    assert repo.tasks == []


def test_create_task_ignores_lock_fields() -> None:
    service, _, _ = _service()

    task = service.create_task({"project_id": 1, "title": "Sneaky", "status_confirmed": True})

    assert task.status_confirmed is False


def test_subtasks_are_one_level_deep() -> None:
    service, _, _ = _service()
    parent = service.create_task({"project_id": 1, "title": "Parent"})

    child = service.create_subtask(parent.id, {"title": "Child", "project_id": 99})

    assert child.parent_task_id == parent.id
    assert child.project_id == 1
    with pytest.raises(ValidationError):
        service.create_subtask(child.id, {"title": "Grandchild"})
    with pytest.raises(TaskNotFound):
        service.create_subtask(404, {"title": "Orphan"})


def test_done_requires_confirmation_and_writes_nothing() -> None:
    service, repo, _ = _service()
    task = service.create_task({"project_id": 1, "title": "Review"})

    with pytest.raises(RequiresConfirmation):
        service.update_task_status(task.id, TaskStatus.DONE)

    assert repo.get_task(task.id).status == TaskStatus.TODO
    assert repo.transition_calls == 0


def test_confirmed_done_locks_and_sets_completion_time() -> None:
    service, repo, _ = _service()
    task = service.create_task({"project_id": 1, "title": "Review"})

    done = service.update_task_status(task.id, "Done", confirm=True)

    assert done.status == TaskStatus.DONE
    assert done.status_confirmed is True
    assert done.completed_at is not None
    with pytest.raises(StatusLocked):
        service.update_task_status(task.id, TaskStatus.IN_PROGRESS, confirm=True)
    assert repo.get_task(task.id).status == TaskStatus.DONE


def test_noop_request_does_not_write() -> None:
    service, repo, _ = _service()
    task = service.create_task({"project_id": 1, "title": "Idle"})

    assert service.update_task_status(task.id, TaskStatus.TODO) == task
    assert repo.transition_calls == 0


def test_update_task_routes_status_through_guard() -> None:
    service, repo, _ = _service()
    task = service.create_task({"project_id": 1, "title": "Plan"})

    with pytest.raises(RequiresConfirmation):
        service.update_task(task.id, {"status": "Done", "title": "Renamed"})
    assert repo.get_task(task.id).title == "Plan"

    updated = service.update_task(task.id, {"status": "In Progress", "title": "Renamed"})
    assert updated.status == TaskStatus.IN_PROGRESS
    assert updated.title == "Renamed"


def test_update_task_ignores_ownership_and_lock_fields() -> None:
    service, _, _ = _service()
    task = service.create_task({"project_id": 1, "title": "Plan"})

    updated = service.update_task(
        task.id,
        {"project_id": 2, "parent_task_id": 5, "status_confirmed": True, "description": "Details"},
    )

    assert updated.project_id == 1
    assert updated.parent_task_id is None
    assert updated.status_confirmed is False
    assert updated.description == "Details"


def test_locked_task_still_accepts_field_edits() -> None:
    service, _, _ = _service()
    task = service.create_task({"project_id": 1, "title": "Plan"})
    service.mark_done(task.id, confirm=True)

    updated = service.update_task(task.id, {"description": "Post-mortem notes"})

    assert updated.description == "Post-mortem notes"
    assert updated.status_confirmed is True


def test_missing_task_raises_not_found() -> None:
    service, _, _ = _service()

    with pytest.raises(TaskNotFound):
        service.update_task_status(42, TaskStatus.IN_PROGRESS)
    with pytest.raises(TaskNotFound):
        service.update_task(42, {"title": "Ghost"})


def test_fully_completed_published_once_after_last_lock() -> None:
    service, _, received = _service()
    first = service.create_task({"project_id": 1, "title": "A"})
    second = service.create_task({"project_id": 1, "title": "B"})

    service.mark_done(first.id, confirm=True)
    assert not any(isinstance(event, ProjectFullyCompleted) for event in received)

    service.mark_done(second.id, confirm=True)
    with pytest.raises(StatusLocked):
        service.mark_done(second.id, confirm=True)

    fully = [event for event in received if isinstance(event, ProjectFullyCompleted)]
    assert len(fully) == 1
    assert fully[0].completion.completion_percentage == 100.0


def test_second_confirmation_after_lock_is_rejected() -> None:
    service, repo, received = _service()
    task = service.create_task({"project_id": 1, "title": "Release"})
    other = TaskService(repo, EventBus())

    locked = service.mark_done(task.id, confirm=True)
    published = len(received)
    with pytest.raises(StatusLocked):
        other.mark_done(task.id, confirm=True)

    assert repo.get_task(task.id) == locked
    assert repo.transition_calls == 1
    assert len(received) == published


def test_second_confirmation_is_rejected_by_the_database(task_repo, project) -> None:
    first = TaskService(task_repo)
    second = TaskService(task_repo)
    task = first.create_task({"project_id": project.id, "title": "Release"})

    locked = first.mark_done(task.id, confirm=True)
    with pytest.raises(StatusLocked):
        second.mark_done(task.id, confirm=True)

    stored = task_repo.get_task(task.id)
    assert stored.status_confirmed is True
    assert stored.completed_at == locked.completed_at


def test_competing_confirmations_lock_exactly_once() -> None:
    service, repo, received = _service(InterleavingRepo())
    task = service.create_task({"project_id": 1, "title": "Release"})
    other = TaskService(repo, EventBus())

    winners: list = []
    repo.before_write = lambda: winners.append(other.mark_done(task.id, confirm=True))
    with pytest.raises(StatusLocked):
        service.mark_done(task.id, confirm=True)

    assert len(winners) == 1 and winners[0].status_confirmed is True
    assert repo.transition_calls == 2
    assert repo.get_task(task.id).status_confirmed is True
    assert not any(isinstance(event, ProjectFullyCompleted) for event in received)


def test_stale_move_loses_to_concurrent_lock() -> None:
    service, repo, _ = _service(InterleavingRepo())
    task = service.create_task({"project_id": 1, "title": "Release"})
    other = TaskService(repo, EventBus())

    repo.before_write = lambda: other.mark_done(task.id, confirm=True)
    with pytest.raises(StatusLocked):
        service.update_task_status(task.id, TaskStatus.IN_PROGRESS)

    assert repo.get_task(task.id).status == TaskStatus.DONE


def test_gives_up_after_repeated_conflicts() -> None:
    service, repo, _ = _service(StuckRepo())
    task = service.create_task({"project_id": 1, "title": "Busy"})

    with pytest.raises(TaskConflict) as exc_info:
        service.update_task_status(task.id, TaskStatus.IN_PROGRESS)

    assert exc_info.value.retryable is True
    assert repo.transition_calls == MAX_STATUS_ATTEMPTS


def test_delete_task_publishes_new_completion() -> None:
    service, repo, received = _service()
    done = service.create_task({"project_id": 1, "title": "Done one"})
    open_task = service.create_task({"project_id": 1, "title": "Open one"})
    service.mark_done(done.id, confirm=True)

    service.delete_task(open_task.id)

    assert received[-1].completion.completion_percentage == 100.0
    assert repo.get_task(open_task.id) is None


def test_board_groups_project_tasks() -> None:
    service, _, _ = _service()
    low = service.create_task({"project_id": 1, "title": "Low", "priority": "Low"})
    high = service.create_task({"project_id": 1, "title": "High", "priority": "High"})
    service.create_task({"project_id": 2, "title": "Elsewhere"})

    board = service.get_board(1)

    assert [task.id for task in board[TaskStatus.TODO]] == [high.id, low.id]
    assert service.board_state(1).find(low.id) == low


def test_board_confirmation_recomputes_completion() -> None:
    service, _, received = _service()
    done = service.create_task({"project_id": 1, "title": "Design"})
    service.mark_done(done.id, confirm=True)
    task = service.create_task({"project_id": 1, "title": "Build"})
    board = service.board_state(1)
    received.clear()

    moved = board.move(task.id, TaskStatus.DONE)

    assert moved.outcome is MoveOutcome.AWAITING_CONFIRMATION
    assert [t.id for t in board.columns[TaskStatus.TODO]] == [task.id]
    assert received == []

    confirmed = board.confirm_pending()

    assert confirmed.outcome is MoveOutcome.APPLIED
    assert confirmed.task.is_locked and confirmed.task.status_confirmed
    assert [t.id for t in board.columns[TaskStatus.DONE]] == [done.id, task.id]
    updates = [event for event in received if isinstance(event, ProjectCompletionUpdated)]
    fully = [event for event in received if isinstance(event, ProjectFullyCompleted)]
    assert updates[-1].completion.is_fully_completed is True
    assert updates[-1].completion.completion_percentage == 100.0
    assert [event.project_id for event in fully] == [1]
