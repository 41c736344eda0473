from __future__ import annotations

import pytest

from projectdesk.domain.completion import compute_completion, is_completed
from projectdesk.domain.enums import TaskStatus

from conftest import make_task


def test_empty_project_is_zero_percent() -> None:
    completion = compute_completion([])

    assert completion.total_tasks == 0
    assert completion.completion_percentage == 0.0
    assert completion.is_fully_completed is False


def test_three_of_four_is_seventy_five_percent() -> None:
    tasks = [
        make_task(1, status=TaskStatus.DONE),
        make_task(2, status=TaskStatus.DONE),
        make_task(3, status=TaskStatus.DONE),
        make_task(4, status=TaskStatus.IN_PROGRESS),
    ]

    completion = compute_completion(tasks)

    assert completion.completed_tasks == 3
    assert completion.completion_percentage == pytest.approx(75.0)
    assert completion.is_fully_completed is False


def test_subtasks_do_not_count() -> None:
    tasks = [
        make_task(1, status=TaskStatus.DONE),
        make_task(2, status=TaskStatus.TODO, parent_task_id=1),
        make_task(3, status=TaskStatus.DONE, parent_task_id=1),
    ]

    completion = compute_completion(tasks)

    assert completion.total_tasks == 1
    assert completion.parent_tasks_count == 1
    assert completion.all_tasks_count == 3
    assert completion.is_fully_completed is True
    assert completion.completion_percentage == pytest.approx(100.0)


def test_unconfirmed_done_is_not_completed() -> None:
    task = make_task(1, status=TaskStatus.DONE, confirmed=False)

    assert is_completed(task) is False
    assert compute_completion([task]).completed_tasks == 0


def test_recomputing_gives_the_same_snapshot() -> None:
    tasks = [make_task(1, status=TaskStatus.DONE), make_task(2)]

    assert compute_completion(tasks) == compute_completion(tasks)
