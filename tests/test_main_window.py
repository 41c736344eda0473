from __future__ import annotations

from types import SimpleNamespace

import pytest

from projectdesk.domain.enums import TaskStatus
from projectdesk.domain.errors import RequiresConfirmation

from conftest import make_task

pytest.importorskip("PySide6.QtWidgets", exc_type=ImportError)

from projectdesk.ui import main_window  # noqa: E402


class RecordingMessageBox:
    def __init__(self) -> None:
        self.shown: list[tuple[str, str]] = []

    def warning(self, parent, title, text):
        self.shown.append((title, text))

    def information(self, parent, title, text):
        self.shown.append((title, text))


class AlwaysConfirm:
    @classmethod
    def ask(cls, task_title, parent=None) -> bool:
        return True


def test_storage_error_while_confirming_is_reported(monkeypatch) -> None:
    messages = RecordingMessageBox()
    monkeypatch.setattr(main_window, "QMessageBox", messages)
    monkeypatch.setattr(main_window, "ConfirmDoneDialog", AlwaysConfirm)
    refreshed: list[bool] = []

    def update_task_status(task_id, status, confirm=False):
        if not confirm:
            raise RequiresConfirmation(task_id)
        raise RuntimeError("database is locked")

    window = SimpleNamespace(
        service=SimpleNamespace(
            get_task=lambda task_id: make_task(task_id, status=TaskStatus.IN_PROGRESS),
            update_task_status=update_task_status,
        ),
        refresh_tasks=lambda: refreshed.append(True),
    )
    window._confirm_done = lambda task_id, status: main_window.MainWindow._confirm_done(
        window, task_id, status
    )

    main_window.MainWindow.change_status(window, 3, TaskStatus.DONE.value)

    assert messages.shown == [("Error", "Could not complete the task.\ndatabase is locked")]
    assert refreshed == [True]
