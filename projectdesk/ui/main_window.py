from __future__ import annotations

import logging

from PySide6.QtCore import QDate, Qt
from PySide6.QtGui import QKeySequence, QShortcut
from PySide6.QtWidgets import (
    QComboBox,
    QDateEdit,
    QFrame,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QListWidget,
    QListWidgetItem,
    QMessageBox,
    QProgressBar,
    QPushButton,
    QScrollArea,
    QSizePolicy,
    QSplitter,
    QTextEdit,
    QVBoxLayout,
    QWidget,
)

from projectdesk.domain.confirmation import ConfirmationFlow
from projectdesk.domain.entities import CompletionSnapshot, ProjectEntity, TaskEntity
from projectdesk.domain.enums import TaskStatus
from projectdesk.domain.errors import (
    ProjectDeskError,
    RequiresConfirmation,
    StatusLocked,
    TaskConflict,
    TaskNotFound,
)
from projectdesk.domain.filters import TaskFilters
from projectdesk.infra.events import (
    BudgetThresholdReached,
    EventBus,
    ProjectCompletionUpdated,
    ProjectEvent,
    ProjectFullyCompleted,
)
from projectdesk.infra.repository import ExpenseRepository, ProjectRepository, TaskRepository
from projectdesk.services.budget_service import BudgetService
from projectdesk.services.project_service import ProjectService
from projectdesk.services.task_service import TaskService

from .dialogs import BudgetDialog, ConfirmDoneDialog, ProjectDialog
from .kanban import KanbanDialog
from .theme import DARK, ThemeStore
from .widgets import PRIORITY_OPTIONS, TaskItemContainer, TaskItemWidget, TaskListWidget

logger = logging.getLogger(__name__)

FILTERS = [
    ("All", "all"),
    ("To-Do", TaskStatus.TODO.value),
    ("In Progress", TaskStatus.IN_PROGRESS.value),
    ("Done", TaskStatus.DONE.value),
    ("Locked", "locked"),
    ("Overdue", "overdue"),
    ("Next 7 days", "upcoming"),
]

STATUS_OPTIONS = [(status.value, status.value) for status in TaskStatus]

LOCKED_TEXT = "Status locked - Task confirmed as completed"


class MainWindow(QWidget):
    def __init__(self, theme: ThemeStore):
        super().__init__()
        self.setWindowTitle("ProjectDesk")
        self.resize(1280, 780)

        self.theme = theme
        self.events = EventBus()
        task_repo = TaskRepository()
        project_repo = ProjectRepository()
        self.service = TaskService(task_repo, self.events)
        self.projects = ProjectService(project_repo, task_repo)
        self.budget = BudgetService(project_repo, ExpenseRepository(), task_repo, self.events)

        self._unsubscribe = [
            self.events.subscribe(self.on_project_event),
            self.theme.subscribe(self.on_theme_changed),
        ]

        main_layout = QHBoxLayout(self)
        main_layout.setContentsMargins(12, 12, 12, 12)

        splitter = QSplitter(Qt.Horizontal)
        main_layout.addWidget(splitter)

        splitter.addWidget(self._build_sidebar())
        splitter.addWidget(self._build_center())
        splitter.addWidget(self._build_detail_panel())
        splitter.setStretchFactor(0, 0)
        splitter.setStretchFactor(1, 2)
        splitter.setStretchFactor(2, 2)
        splitter.setSizes([240, 620, 420])
        self.on_theme_changed(self.theme.theme)

        self.current_project_id: int | None = None
        self.current_task_id: int | None = None
        self.current_filter = "all"

        self.refresh_projects()

        QShortcut(QKeySequence("Ctrl+N"), self, self.new_task)
        QShortcut(QKeySequence("Ctrl+S"), self, self.save_task)

    def closeEvent(self, event) -> None:  # type: ignore[override]
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe = []
        super().closeEvent(event)

    def _build_sidebar(self) -> QWidget:
        frame = QFrame()
        frame.setObjectName("Sidebar")
        layout = QVBoxLayout(frame)
        layout.setContentsMargins(12, 12, 12, 12)
        layout.setSpacing(8)

        title = QLabel("Projects")
        title.setProperty("class", "sidebar-title")
        layout.addWidget(title)

        self.project_list = QListWidget()
        self.project_list.setObjectName("ProjectList")
        self.project_list.setSpacing(4)
        self.project_list.currentItemChanged.connect(self.on_project_selected)
        layout.addWidget(self.project_list, 1)

        new_project = QPushButton("New project")
        new_project.clicked.connect(self.new_project)
        edit_project = QPushButton("Edit")
        edit_project.setProperty("variant", "secondary")
        edit_project.clicked.connect(self.edit_project)
        delete_project = QPushButton("Delete")
        delete_project.setProperty("variant", "danger")
        delete_project.clicked.connect(self.delete_project)

        project_actions = QHBoxLayout()
        project_actions.addWidget(edit_project)
        project_actions.addWidget(delete_project)
        layout.addWidget(new_project)
        layout.addLayout(project_actions)

        filter_title = QLabel("Filter")
        filter_title.setProperty("class", "sidebar-title")
        layout.addWidget(filter_title)

        self.filter_combo = QComboBox()
        for label, key in FILTERS:
            self.filter_combo.addItem(label, key)
        self.filter_combo.currentIndexChanged.connect(self.on_filter_change)
        layout.addWidget(self.filter_combo)

        self.theme_button = QPushButton("")
        self.theme_button.setProperty("variant", "ghost")
        self.theme_button.clicked.connect(self.theme.toggle)
        layout.addWidget(self.theme_button)

        return frame

    def _build_center(self) -> QWidget:
        frame = QFrame()
        frame.setObjectName("CenterPanel")
        layout = QVBoxLayout(frame)
        layout.setContentsMargins(12, 12, 12, 12)
        layout.setSpacing(12)

        header = QHBoxLayout()
        self.header_title = QLabel("Tasks")
        self.header_title.setProperty("class", "panel-title")
        self.stats_label = QLabel("")
        self.stats_label.setProperty("class", "stats-badge")
        header.addWidget(self.header_title)
        header.addStretch()
        header.addWidget(self.stats_label)

        self.completion_bar = QProgressBar()
        self.completion_bar.setObjectName("CompletionProgress")
        self.completion_bar.setRange(0, 100)

        action_bar = QFrame()
        action_bar.setObjectName("ActionBar")
        action_layout = QHBoxLayout(action_bar)
        action_layout.setContentsMargins(12, 10, 12, 10)
        action_layout.setSpacing(8)

        self.search_input = QLineEdit()
        self.search_input.setPlaceholderText("Search by title or description")
        self.search_input.setMinimumWidth(220)
        self.search_input.textChanged.connect(self.refresh_tasks)

        add_button = QPushButton("New task")
        add_button.clicked.connect(self.new_task)

        kanban_button = QPushButton("Kanban")
        kanban_button.setProperty("variant", "secondary")
        kanban_button.clicked.connect(self.open_kanban)

        budget_button = QPushButton("Budget")
        budget_button.setProperty("variant", "secondary")
        budget_button.clicked.connect(self.open_budget)

        action_layout.addWidget(self.search_input, 1)
        action_layout.addWidget(add_button)
        action_layout.addWidget(kanban_button)
        action_layout.addWidget(budget_button)

        self.task_list = TaskListWidget(on_reorder=self.on_reorder_tasks)
        self.task_list.setObjectName("TaskList")
        self.task_list.setSpacing(10)
        self.task_list.currentItemChanged.connect(self.on_task_selected)

        layout.addLayout(header)
        layout.addWidget(self.completion_bar)
        layout.addWidget(action_bar)
        layout.addWidget(self.task_list)
        return frame

    def _build_detail_panel(self) -> QWidget:
        frame = QFrame()
        frame.setObjectName("DetailPanel")
        frame_layout = QVBoxLayout(frame)
        frame_layout.setContentsMargins(0, 0, 0, 0)

        scroll = QScrollArea()
        scroll.setWidgetResizable(True)
        scroll.setFrameShape(QFrame.NoFrame)
        scroll.setObjectName("DetailScroll")
        scroll.setHorizontalScrollBarPolicy(Qt.ScrollBarAlwaysOff)

        content = QWidget()
        content_layout = QVBoxLayout(content)
        content_layout.setContentsMargins(12, 12, 12, 12)
        content_layout.setSpacing(8)

        title = QLabel("Details")
        title.setProperty("class", "panel-title")

        self.title_input = QLineEdit()
        self.title_input.setPlaceholderText("Task title")

        self.description_input = QTextEdit()
        self.description_input.setObjectName("DescriptionInput")
        self.description_input.setPlaceholderText("Description")
        self.description_input.setMinimumHeight(120)
        self.description_input.setMaximumHeight(140)

        self.status_combo = QComboBox()
        for label, key in STATUS_OPTIONS:
            self.status_combo.addItem(label, key)

        self.locked_label = QLabel(LOCKED_TEXT)
        self.locked_label.setObjectName("LockedNotice")
        self.locked_label.setVisible(False)

        self.priority_combo = QComboBox()
        for label, value in PRIORITY_OPTIONS:
            self.priority_combo.addItem(label, value)

        self.due_toggle = QPushButton("No due date")
        self.due_toggle.setCheckable(True)
        self.due_toggle.setProperty("variant", "secondary")
        self.due_toggle.setObjectName("DueToggle")
        self.due_toggle.toggled.connect(self.on_due_toggled)

        self.due_input = QDateEdit()
        self.due_input.setCalendarPopup(True)
        self.due_input.setDate(QDate.currentDate())
        self.due_input.setEnabled(False)

        subtasks_label = QLabel("Subtasks")
        subtasks_label.setProperty("class", "section-title")
        self.subtasks_summary = QLabel("0/0")
        self.subtasks_summary.setProperty("class", "stats")
        subtasks_header = QHBoxLayout()
        subtasks_header.addWidget(subtasks_label)
        subtasks_header.addStretch()
        subtasks_header.addWidget(self.subtasks_summary)

        self.subtask_list = QListWidget()
        self.subtask_list.setObjectName("SubtaskList")
        self.subtask_list.setMaximumHeight(140)
        self.subtask_list.itemDoubleClicked.connect(self.on_subtask_open)

        self.subtask_input = QLineEdit()
        self.subtask_input.setPlaceholderText("Add subtask")
        self.subtask_input.returnPressed.connect(self.add_subtask)
        self.subtask_add_button = QPushButton("Add")
        self.subtask_add_button.setProperty("variant", "secondary")
        self.subtask_add_button.clicked.connect(self.add_subtask)
        subtask_row = QHBoxLayout()
        subtask_row.addWidget(self.subtask_input, 1)
        subtask_row.addWidget(self.subtask_add_button)

        self.save_button = QPushButton("Save")
        self.save_button.clicked.connect(self.save_task)

        self.done_button = QPushButton("Mark as Done")
        self.done_button.setProperty("variant", "secondary")
        self.done_button.clicked.connect(self.mark_done)

        self.delete_button = QPushButton("Delete")
        self.delete_button.setProperty("variant", "danger")
        self.delete_button.clicked.connect(self.delete_task)

        content_layout.addWidget(title)
        content_layout.addWidget(self.title_input)
        content_layout.addWidget(self.description_input)
        content_layout.addWidget(QLabel("Status"))
        content_layout.addWidget(self.status_combo)
        content_layout.addWidget(self.locked_label)
        content_layout.addWidget(QLabel("Priority"))
        content_layout.addWidget(self.priority_combo)
        content_layout.addWidget(self.due_toggle)
        content_layout.addWidget(self.due_input)
        content_layout.addSpacing(6)
        content_layout.addLayout(subtasks_header)
        content_layout.addWidget(self.subtask_list)
        content_layout.addLayout(subtask_row)

        actions = QHBoxLayout()
        actions.setSpacing(8)
        self.save_button.setSizePolicy(QSizePolicy.Expanding, QSizePolicy.Fixed)
        self.done_button.setSizePolicy(QSizePolicy.Expanding, QSizePolicy.Fixed)
        actions.addWidget(self.save_button, 1)
        actions.addWidget(self.done_button, 1)
        content_layout.addLayout(actions)
        content_layout.addWidget(self.delete_button)
        content_layout.addStretch()

        scroll.setWidget(content)
        frame_layout.addWidget(scroll)
        return frame

    # projects

    def refresh_projects(self, select_id: int | None = None) -> None:
        select_id = select_id if select_id is not None else self.current_project_id
        projects = self.projects.list_projects()
        self.project_list.blockSignals(True)
        self.project_list.clear()
        selected_row = 0
        for row, project in enumerate(projects):
            item = QListWidgetItem(project.name)
            item.setData(Qt.UserRole, project.id)
            self.project_list.addItem(item)
            if project.id == select_id:
                selected_row = row
        self.project_list.blockSignals(False)

        if projects:
            self.project_list.setCurrentRow(selected_row)
            self.on_project_selected(self.project_list.currentItem())
        else:
            self.current_project_id = None
            self.refresh_tasks()

    def on_project_selected(self, current: QListWidgetItem | None, previous=None) -> None:
        if not current:
            return
        self.current_project_id = current.data(Qt.UserRole)
        self.current_task_id = None
        self.refresh_tasks()

    def _current_project(self) -> ProjectEntity | None:
        if self.current_project_id is None:
            return None
        try:
            return self.projects.get_project(self.current_project_id)
        except ProjectDeskError:
            return None

    def new_project(self) -> None:
        dialog = ProjectDialog(parent=self)
        if dialog.exec() != ProjectDialog.Accepted:
            return
        try:
            project = self.projects.create_project(dialog.form_data())
        except ProjectDeskError as exc:
            QMessageBox.warning(self, "Project", str(exc))
            return
        self.refresh_projects(project.id)

    def edit_project(self) -> None:
        project = self._current_project()
        if project is None:
            return
        dialog = ProjectDialog(project, self)
        if dialog.exec() != ProjectDialog.Accepted:
            return
        self.projects.update_project(project.id, dialog.form_data())
        self.refresh_projects(project.id)

    def delete_project(self) -> None:
        project = self._current_project()
        if project is None:
            return
        confirm = QMessageBox.question(
            self,
            "Confirm",
            f'Delete project "{project.name}" with all its tasks and expenses?',
        )
        if confirm != QMessageBox.Yes:
            return
        self.projects.delete_project(project.id)
        self.current_project_id = None
        self.refresh_projects()

    # tasks

    def refresh_tasks(self) -> None:
        self.task_list.clear()
        if self.current_project_id is None:
            self.header_title.setText("Tasks")
            self.stats_label.setText("")
            self._show_completion(None)
            self.clear_form()
            return

        project = self._current_project()
        self.header_title.setText(project.name if project else "Tasks")

        search = self.search_input.text().strip()
        filters = TaskFilters(
            project_id=self.current_project_id,
            filter_key=self.current_filter,
            search=search or None,
            parents_only=True,
        )
        tasks = self.service.list_tasks(filters)
        all_tasks = self.service.list_project_tasks(self.current_project_id)
        subtask_counts: dict[int, int] = {}
        for task in all_tasks:
            if task.parent_task_id is not None:
                subtask_counts[task.parent_task_id] = subtask_counts.get(task.parent_task_id, 0) + 1

        selected_row = 0
        for row, task in enumerate(tasks):
            item = QListWidgetItem()
            item.setData(Qt.UserRole, task.id)
            widget = TaskItemContainer(TaskItemWidget(task, subtask_counts.get(task.id, 0)))
            self.task_list.addItem(item)
            self.task_list.setItemWidget(item, widget)
            item.setSizeHint(widget.sizeHint())
            if task.id == self.current_task_id:
                selected_row = row

        stats = self.service.get_stats(self.current_project_id)
        self.stats_label.setText(
            f"Total: {stats['total']} • In Progress: {stats['in_progress']} • "
            f"Done: {stats['done']} • Overdue: {stats['overdue']}"
        )
        self._show_completion(self.projects.get_project_completion(self.current_project_id))

        if tasks:
            self.task_list.setCurrentRow(selected_row)
        else:
            self.current_task_id = None
            self.clear_form()
        self.task_list.sync_item_sizes()

    def _show_completion(self, completion: CompletionSnapshot | None) -> None:
        if completion is None:
            self.completion_bar.setValue(0)
            self.completion_bar.setFormat("No project selected")
            return
        self.completion_bar.setValue(int(round(completion.completion_percentage)))
        self.completion_bar.setFormat(
            f"{completion.completion_percentage:.0f}% complete "
            f"({completion.completed_tasks}/{completion.total_tasks} tasks, "
            f"{completion.all_tasks_count} incl. subtasks)"
        )

    def on_filter_change(self, index: int) -> None:
        self.current_filter = self.filter_combo.itemData(index) or "all"
        self.refresh_tasks()

    def on_reorder_tasks(self, task_ids: list[int]) -> None:
        self.service.reorder_tasks(task_ids)
        self.refresh_tasks()

    def on_task_selected(self, current: QListWidgetItem | None, previous: QListWidgetItem | None = None) -> None:
        if previous:
            widget = self.task_list.itemWidget(previous)
            if hasattr(widget, "set_selected"):
                widget.set_selected(False)
        if not current:
            return
        widget = self.task_list.itemWidget(current)
        if hasattr(widget, "set_selected"):
            widget.set_selected(True)
        task = getattr(widget, "task", None)
        if task:
            self.current_task_id = task.id
            self.populate_form(task)

    def on_subtask_open(self, item: QListWidgetItem) -> None:
        task = self.service.get_task(item.data(Qt.UserRole))
        if task:
            self.current_task_id = task.id
            self.populate_form(task)

    def populate_form(self, task: TaskEntity) -> None:
        self.title_input.setText(task.title)
        self.description_input.setPlainText(task.description)

        status_index = self.status_combo.findData(task.status.value)
        if status_index >= 0:
            self.status_combo.setCurrentIndex(status_index)
        self.status_combo.setEnabled(not task.is_locked)
        self.locked_label.setVisible(task.is_locked)

        priority_index = self.priority_combo.findData(task.priority)
        if priority_index >= 0:
            self.priority_combo.setCurrentIndex(priority_index)

        if task.due_date:
            self.due_toggle.setChecked(True)
            self.due_input.setDate(QDate(task.due_date.year, task.due_date.month, task.due_date.day))
        else:
            self.due_toggle.setChecked(False)

        self.done_button.setEnabled(not task.is_locked)
        can_have_subtasks = not task.is_subtask
        self.subtask_input.setEnabled(can_have_subtasks)
        self.subtask_add_button.setEnabled(can_have_subtasks)
        self._render_subtasks(self.service.list_subtasks(task.id) if can_have_subtasks else [])

    def _render_subtasks(self, subtasks: list[TaskEntity]) -> None:
        self.subtask_list.clear()
        for subtask in subtasks:
            marker = "✓" if subtask.is_locked else "•"
            item = QListWidgetItem(f"{marker} {subtask.title} ({subtask.status.value})")
            item.setData(Qt.UserRole, subtask.id)
            self.subtask_list.addItem(item)
        done = sum(1 for subtask in subtasks if subtask.is_locked)
        self.subtasks_summary.setText(f"{done}/{len(subtasks)}")

    def clear_form(self) -> None:
        self.title_input.clear()
        self.description_input.clear()
        self.status_combo.setCurrentIndex(0)
        self.status_combo.setEnabled(True)
        self.locked_label.setVisible(False)
        self.priority_combo.setCurrentIndex(1)
        self.due_toggle.setChecked(False)
        self.due_input.setDate(QDate.currentDate())
        self.done_button.setEnabled(False)
        self.subtask_input.setEnabled(False)
        self.subtask_add_button.setEnabled(False)
        self._render_subtasks([])

    def new_task(self) -> None:
        self.current_task_id = None
        self.clear_form()
        self.title_input.setFocus()

    def on_due_toggled(self, checked: bool) -> None:
        self.due_input.setEnabled(checked)
        self.due_toggle.setText("Due date set" if checked else "No due date")

    def _form_data(self) -> dict:
        return {
            "title": self.title_input.text().strip(),
            "description": self.description_input.toPlainText().strip(),
            "priority": self.priority_combo.currentData(),
            "due_date": self.due_input.date().toPython() if self.due_toggle.isChecked() else None,
        }

    def save_task(self) -> None:
        if self.current_project_id is None:
            QMessageBox.warning(self, "Project required", "Create or select a project first.")
            return
        data = self._form_data()
        if not data["title"]:
            QMessageBox.warning(self, "Title required", "Enter a task title.")
            return
        status = self.status_combo.currentData()

        try:
            if self.current_task_id is None:
                initial = status if status != TaskStatus.DONE.value else TaskStatus.TODO.value
                task = self.service.create_task(
                    {**data, "project_id": self.current_project_id, "status": initial}
                )
                self.current_task_id = task.id
            else:
                self.service.update_task(self.current_task_id, data)
        except ProjectDeskError as exc:
            QMessageBox.warning(self, "Task", str(exc))
            return

        self.change_status(self.current_task_id, status)

    def mark_done(self) -> None:
        if self.current_task_id is None:
            return
        self.change_status(self.current_task_id, TaskStatus.DONE.value)

    def change_status(self, task_id: int, status: str) -> None:
        try:
            self.service.update_task_status(task_id, status)
        except RequiresConfirmation:
            self._confirm_done(task_id, status)
        except StatusLocked:
            QMessageBox.information(
                self, "Status locked", "This task has been confirmed as Done and cannot be changed."
            )
        except (TaskNotFound, TaskConflict) as exc:
            QMessageBox.warning(self, "Task changed", str(exc))
        except Exception as exc:  # noqa: BLE001
            logger.exception("Status update for task %s failed", task_id)
            QMessageBox.warning(self, "Error", f"Could not update the task.\n{exc}")
        self.refresh_tasks()

    def _confirm_done(self, task_id: int, status: str) -> None:
        task = self.service.get_task(task_id)
        if task is None:
            return
        flow = ConfirmationFlow(self.service.update_task_status)
        flow.request(task, TaskStatus(status))
        if not ConfirmDoneDialog.ask(task.title, self):
            flow.cancel()
            return
        try:
            flow.confirm()
        except StatusLocked:
            QMessageBox.information(
                self, "Status locked", "This task has already been confirmed as Done."
            )
        except (TaskNotFound, TaskConflict) as exc:
            QMessageBox.warning(self, "Task changed", str(exc))
        except Exception as exc:  # noqa: BLE001
            logger.exception("Confirming task %s failed", task_id)
            QMessageBox.warning(self, "Error", f"Could not complete the task.\n{exc}")

    def add_subtask(self) -> None:
        title = self.subtask_input.text().strip()
        if not title or self.current_task_id is None:
            return
        try:
            self.service.create_subtask(self.current_task_id, {"title": title})
        except ProjectDeskError as exc:
            QMessageBox.warning(self, "Subtask", str(exc))
            return
        self.subtask_input.clear()
        self.refresh_tasks()

    def delete_task(self) -> None:
        if self.current_task_id is None:
            return
        confirm = QMessageBox.question(self, "Confirm", "Delete this task and its subtasks?")
        if confirm != QMessageBox.Yes:
            return
        self.service.delete_task(self.current_task_id)
        self.current_task_id = None
        self.refresh_tasks()

    def open_kanban(self) -> None:
        project = self._current_project()
        if project is None:
            return
        dialog = KanbanDialog(self.service, project, self)
        dialog.exec()
        self.refresh_tasks()

    def open_budget(self) -> None:
        project = self._current_project()
        if project is None:
            return
        dialog = BudgetDialog(self.budget, project, self)
        dialog.exec()

    # events

    def on_project_event(self, event: ProjectEvent) -> None:
        if isinstance(event, ProjectCompletionUpdated):
            if event.project_id == self.current_project_id:
                self._show_completion(event.completion)
        elif isinstance(event, ProjectFullyCompleted):
            project = self.projects.get_project(event.project_id)
            QMessageBox.information(
                self,
                "Project completed",
                f'All {event.completion.total_tasks} tasks of "{project.name}" are done.',
            )
        elif isinstance(event, BudgetThresholdReached):
            subject = "Project"
            if event.task_id is not None:
                task = self.service.get_task(event.task_id)
                subject = f'Task "{task.title}"' if task else "Task"
            QMessageBox.warning(
                self,
                "Budget alert",
                f"{subject} has reached {event.utilization:.1f}% of its budget "
                f"({event.spent:.2f} / {event.total_budget:.2f}).",
            )

    def on_theme_changed(self, theme: str) -> None:
        self.theme_button.setText("Light theme" if theme == DARK else "Dark theme")
        self.locked_label.setStyleSheet(f"color: {self.theme.colors['locked']};")
