from __future__ import annotations

import logging

from PySide6.QtCore import Qt
from PySide6.QtWidgets import QDialog, QHBoxLayout, QLabel, QListWidgetItem, QMessageBox, QVBoxLayout

from projectdesk.domain.board import BOARD_COLUMNS, BoardState, MoveOutcome, MoveResult
from projectdesk.domain.entities import ProjectEntity
from projectdesk.domain.enums import TaskStatus
from projectdesk.domain.errors import StatusLocked, TaskConflict, TaskNotFound
from projectdesk.services.task_service import TaskService

from .dialogs import ConfirmDoneDialog
from .widgets import KanbanListWidget, TaskItemContainer, TaskItemWidget

logger = logging.getLogger(__name__)


class KanbanDialog(QDialog):
    def __init__(self, service: TaskService, project: ProjectEntity, parent=None):
        super().__init__(parent)
        self.service = service
        self.project_id = project.id
        self.setWindowTitle(f"Kanban: {project.name}")
        self.resize(1100, 700)

        self.board = service.board_state(project.id)

        layout = QHBoxLayout(self)
        layout.setContentsMargins(12, 12, 12, 12)
        layout.setSpacing(12)

        self.columns: dict[TaskStatus, KanbanListWidget] = {}
        self.column_titles: dict[TaskStatus, QLabel] = {}
        for status in BOARD_COLUMNS:
            column = QVBoxLayout()
            label = QLabel(status.value)
            label.setProperty("class", "panel-title")
            list_widget = KanbanListWidget(status, self.on_drop_status, self.on_reorder)
            list_widget.setObjectName("KanbanList")
            column.addWidget(label)
            column.addWidget(list_widget)
            layout.addLayout(column, 1)
            self.columns[status] = list_widget
            self.column_titles[status] = label

        self.render()

    def reload(self) -> None:
        self.board.replace_tasks(self.service.list_project_tasks(self.project_id))
        self.render()

    def render(self) -> None:
        tasks = self.board.tasks
        subtask_counts: dict[int, int] = {}
        for task in tasks:
            if task.parent_task_id is not None:
                subtask_counts[task.parent_task_id] = subtask_counts.get(task.parent_task_id, 0) + 1

        for status, bucket in self.board.columns.items():
            list_widget = self.columns.get(status)
            if list_widget is None:
                continue
            list_widget.clear()
            self.column_titles[status].setText(f"{status.value} ({len(bucket)})")
            for task in bucket:
                item = QListWidgetItem()
                list_widget.addItem(item)
                item.setData(Qt.UserRole, task.id)
                widget = TaskItemContainer(TaskItemWidget(task, subtask_counts.get(task.id, 0)))
                item.setSizeHint(widget.sizeHint())
                list_widget.setItemWidget(item, widget)
            list_widget.sync_item_sizes()

    def on_drop_status(self, task_id: int, status: TaskStatus) -> None:
        try:
            result = self.board.move(task_id, status)
        except TaskNotFound:
            self.reload()
            return
        except Exception as exc:  # noqa: BLE001
            logger.exception("Moving task %s failed", task_id)
            self.render()
            QMessageBox.warning(self, "Error", f"Could not update the task.\n{exc}")
            return

        if result.outcome is MoveOutcome.AWAITING_CONFIRMATION:
            # The card stays in its column until the dialog resolves.
            self.render()
            self._resolve_confirmation()
            return
        self._show_result(result)

    def _resolve_confirmation(self) -> None:
        pending = self.board.confirmation.pending
        if pending is None:
            return
        if not ConfirmDoneDialog.ask(pending.task_title, self):
            self.board.cancel_pending()
            self.render()
            return
        try:
            result = self.board.confirm_pending()
        except Exception as exc:  # noqa: BLE001
            logger.exception("Confirming task %s failed", pending.task_id)
            self.render()
            QMessageBox.warning(self, "Error", f"Could not complete the task.\n{exc}")
            return
        self._show_result(result)

    def _show_result(self, result: MoveResult) -> None:
        self.render()
        if result.outcome is not MoveOutcome.REVERTED:
            return
        if isinstance(result.error, StatusLocked):
            QMessageBox.information(
                self,
                "Status locked",
                "This task has been confirmed as Done and cannot be changed.",
            )
        elif isinstance(result.error, (TaskNotFound, TaskConflict)):
            QMessageBox.warning(self, "Task changed", str(result.error))
            self.reload()

    def on_reorder(self, task_ids: list[int]) -> None:
        self.service.reorder_tasks(task_ids)
        self.reload()
