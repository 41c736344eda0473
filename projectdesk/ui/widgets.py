from __future__ import annotations

from PySide6.QtCore import QMimeData, QSize, Qt
from PySide6.QtGui import QDrag
from PySide6.QtWidgets import (
    QAbstractItemView,
    QHBoxLayout,
    QLabel,
    QListWidget,
    QSizePolicy,
    QVBoxLayout,
    QWidget,
)

from projectdesk.domain.entities import TaskEntity
from projectdesk.domain.enums import TaskPriority, TaskStatus

STATUS_LABELS = {status.value: status.value for status in TaskStatus}

PRIORITY_OPTIONS = [
    ("Low", TaskPriority.LOW.value),
    ("Medium", TaskPriority.MEDIUM.value),
    ("High", TaskPriority.HIGH.value),
]

PRIORITY_COLORS = {
    TaskPriority.LOW.value: "#7CC4A1",
    TaskPriority.MEDIUM.value: "#E0B25B",
    TaskPriority.HIGH.value: "#E57B63",
}

LOCKED_COLOR = "#16A34A"


def task_id_from_mime(mime: QMimeData) -> int | None:
    if not mime.hasText():
        return None
    text = mime.text()
    if not text.startswith("task:"):
        return None
    try:
        return int(text.split(":", 1)[1])
    except ValueError:
        return None


class TaskItemWidget(QWidget):
    def __init__(self, task: TaskEntity, subtask_count: int = 0):
        super().__init__()
        self.task = task

        self.setObjectName("TaskCard")
        self.setAttribute(Qt.WA_StyledBackground, True)
        self.setSizePolicy(QSizePolicy.Expanding, QSizePolicy.Fixed)
        self.setMinimumHeight(64)

        layout = QVBoxLayout(self)
        layout.setContentsMargins(12, 8, 12, 8)
        layout.setSpacing(4)

        title_text = task.title.strip() if task.title else "Untitled"
        title = QLabel(title_text)
        title.setProperty("class", "task-title")
        title.setWordWrap(True)
        title.setMinimumWidth(0)
        title.setSizePolicy(QSizePolicy.Expanding, QSizePolicy.Preferred)

        meta_parts = []
        if task.due_date:
            meta_parts.append(f"Due: {task.due_date.strftime('%d.%m.%Y')}")
        if subtask_count:
            meta_parts.append(f"Subtasks: {subtask_count}")
        if task.is_subtask:
            meta_parts.append("Subtask")
        meta_parts.append(f"Status: {STATUS_LABELS.get(task.status.value, task.status.value)}")

        meta = QLabel(" | ".join(meta_parts))
        meta.setProperty("class", "task-meta")
        meta.setWordWrap(True)
        meta.setMinimumWidth(0)
        meta.setSizePolicy(QSizePolicy.Expanding, QSizePolicy.Preferred)

        priority = QLabel(task.priority or "Unknown")
        priority.setProperty("class", "task-priority")
        priority.setStyleSheet(
            f"background-color: {PRIORITY_COLORS.get(task.priority, '#9CA3AF')};"
        )
        priority.setSizePolicy(QSizePolicy.Fixed, QSizePolicy.Fixed)

        header = QHBoxLayout()
        header.setSpacing(8)
        header.addWidget(title, 1)
        if task.is_locked:
            locked = QLabel("Locked")
            locked.setObjectName("LockedBadge")
            locked.setToolTip("Confirmed as Done, status can no longer change")
            locked.setStyleSheet(f"background-color: {LOCKED_COLOR}; color: #FFFFFF;")
            locked.setSizePolicy(QSizePolicy.Fixed, QSizePolicy.Fixed)
            header.addWidget(locked, 0, Qt.AlignTop)
        header.addWidget(priority, 0, Qt.AlignTop)

        layout.addLayout(header)
        layout.addWidget(meta)

    def set_selected(self, selected: bool) -> None:
        self.setProperty("selected", selected)
        self.style().unpolish(self)
        self.style().polish(self)


class TaskItemContainer(QWidget):
    def __init__(self, task_widget: TaskItemWidget, h_margin: int = 12, parent=None):
        super().__init__(parent)
        self.task_widget = task_widget
        layout = QHBoxLayout(self)
        layout.setContentsMargins(h_margin, 0, h_margin, 0)
        layout.setSpacing(0)
        layout.addWidget(task_widget)

    @property
    def task(self) -> TaskEntity:
        return self.task_widget.task

    def set_selected(self, selected: bool) -> None:
        self.task_widget.set_selected(selected)


class _CardListWidget(QListWidget):
    def __init__(self, parent=None, v_margin: int = 8):
        super().__init__(parent)
        self._h_margin = 12
        self._v_margin = v_margin
        self.setEditTriggers(QAbstractItemView.NoEditTriggers)
        self.setHorizontalScrollBarPolicy(Qt.ScrollBarAlwaysOff)
        self._update_viewport_margins()

    def resizeEvent(self, event) -> None:  # type: ignore[override]
        super().resizeEvent(event)
        self.sync_item_sizes()

    def _update_viewport_margins(self) -> None:
        scrollbar_width = self.verticalScrollBar().width() or self.verticalScrollBar().sizeHint().width()
        right_margin = self._h_margin + (scrollbar_width if self.verticalScrollBar().isVisible() else 0)
        self.setViewportMargins(self._h_margin, self._v_margin, right_margin, self._v_margin)

    def sync_item_sizes(self) -> None:
        self._update_viewport_margins()
        viewport_width = self.viewport().width()
        for index in range(self.count()):
            item = self.item(index)
            widget = self.itemWidget(item)
            if widget:
                widget.setMinimumWidth(viewport_width)
                widget.setMaximumWidth(viewport_width)
                widget.adjustSize()
                hint = widget.sizeHint()
                item.setSizeHint(QSize(viewport_width, hint.height()))
                widget.resize(viewport_width, hint.height())

    def startDrag(self, supportedActions: Qt.DropActions) -> None:  # type: ignore[name-defined]
        item = self.currentItem()
        if not item:
            return
        task_id = item.data(Qt.UserRole)
        if not task_id:
            return
        mime = QMimeData()
        mime.setText(f"task:{task_id}")
        drag = QDrag(self)
        drag.setMimeData(mime)
        drag.exec(Qt.MoveAction)

    def _current_ids(self) -> list[int]:
        ids = [self.item(i).data(Qt.UserRole) for i in range(self.count())]
        return [task_id for task_id in ids if task_id]


class TaskListWidget(_CardListWidget):
    def __init__(self, on_reorder=None, parent=None):
        super().__init__(parent)
        self._on_reorder = on_reorder
        self.setDragEnabled(True)
        self.setAcceptDrops(True)
        self.setDropIndicatorShown(True)
        self.setDragDropMode(QAbstractItemView.InternalMove)

    def dropEvent(self, event) -> None:  # type: ignore[override]
        super().dropEvent(event)
        if self._on_reorder:
            self._on_reorder(self._current_ids())


class KanbanListWidget(_CardListWidget):
    """One board column; a drop from another column reports (task_id, status)."""

    def __init__(self, status: TaskStatus, on_drop_status, on_reorder, parent=None):
        super().__init__(parent, v_margin=10)
        self.status = status
        self._on_drop_status = on_drop_status
        self._on_reorder = on_reorder
        self.setAcceptDrops(True)
        self.setDragEnabled(True)
        self.setDropIndicatorShown(True)
        self.setDragDropMode(QAbstractItemView.InternalMove)

    def dragEnterEvent(self, event) -> None:  # type: ignore[override]
        if task_id_from_mime(event.mimeData()) is not None:
            event.acceptProposedAction()

    def dragMoveEvent(self, event) -> None:  # type: ignore[override]
        if task_id_from_mime(event.mimeData()) is not None:
            event.acceptProposedAction()

    def dropEvent(self, event) -> None:  # type: ignore[override]
        task_id = task_id_from_mime(event.mimeData())
        if task_id is not None and event.source() is not self:
            # The board re-renders from its own state, so Qt must not move the item.
            event.setDropAction(Qt.IgnoreAction)
            event.accept()
            self._on_drop_status(task_id, self.status)
            return

        super().dropEvent(event)
        self._on_reorder(self._current_ids())
