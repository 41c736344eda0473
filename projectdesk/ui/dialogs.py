from __future__ import annotations

from PySide6.QtCore import Qt
from PySide6.QtWidgets import (
    QComboBox,
    QDialog,
    QDoubleSpinBox,
    QFrame,
    QHBoxLayout,
    QHeaderView,
    QLabel,
    QLineEdit,
    QMessageBox,
    QProgressBar,
    QPushButton,
    QTableWidget,
    QTableWidgetItem,
    QTextEdit,
    QVBoxLayout,
)

from projectdesk.domain.entities import ProjectEntity
from projectdesk.domain.enums import ExpenseCategory
from projectdesk.domain.errors import ProjectDeskError
from projectdesk.services.budget_service import BudgetService


class ConfirmDoneDialog(QDialog):
    def __init__(self, task_title: str, parent=None):
        super().__init__(parent)
        self.setWindowTitle("Confirm Task Completion")
        self.setObjectName("ConfirmDoneDialog")
        self.setMinimumWidth(420)

        title = QLabel("Complete Task")
        title.setProperty("class", "panel-title")

        question = QLabel(f'Are you sure you want to mark "{task_title}" as Done?')
        question.setWordWrap(True)

        notice = QFrame()
        notice.setObjectName("ConfirmNotice")
        notice_layout = QVBoxLayout(notice)
        notice_layout.setContentsMargins(12, 10, 12, 10)
        notice_title = QLabel("Important Notice")
        notice_title.setProperty("class", "section-title")
        notice_text = QLabel(
            'Once confirmed, this task cannot be changed back from "Done" status. '
            "This action is permanent."
        )
        notice_text.setWordWrap(True)
        notice_layout.addWidget(notice_title)
        notice_layout.addWidget(notice_text)

        cancel_button = QPushButton("Cancel")
        cancel_button.setProperty("variant", "secondary")
        cancel_button.clicked.connect(self.reject)

        confirm_button = QPushButton("Confirm Complete")
        confirm_button.setProperty("variant", "success")
        confirm_button.clicked.connect(self.accept)

        buttons = QHBoxLayout()
        buttons.addStretch()
        buttons.addWidget(cancel_button)
        buttons.addWidget(confirm_button)

        layout = QVBoxLayout(self)
        layout.setContentsMargins(16, 16, 16, 16)
        layout.setSpacing(12)
        layout.addWidget(title)
        layout.addWidget(question)
        layout.addWidget(notice)
        layout.addLayout(buttons)

    @classmethod
    def ask(cls, task_title: str, parent=None) -> bool:
        return cls(task_title, parent).exec() == QDialog.Accepted


class ProjectDialog(QDialog):
    def __init__(self, project: ProjectEntity | None = None, parent=None):
        super().__init__(parent)
        self.setWindowTitle("Edit project" if project else "New project")
        self.setMinimumWidth(380)

        self.name_input = QLineEdit(project.name if project else "")
        self.name_input.setPlaceholderText("Project name")

        self.description_input = QTextEdit()
        self.description_input.setPlaceholderText("Description")
        self.description_input.setMaximumHeight(120)
        if project:
            self.description_input.setPlainText(project.description)

        save_button = QPushButton("Save")
        save_button.clicked.connect(self._on_save)
        cancel_button = QPushButton("Cancel")
        cancel_button.setProperty("variant", "ghost")
        cancel_button.clicked.connect(self.reject)

        buttons = QHBoxLayout()
        buttons.addStretch()
        buttons.addWidget(cancel_button)
        buttons.addWidget(save_button)

        layout = QVBoxLayout(self)
        layout.addWidget(QLabel("Name"))
        layout.addWidget(self.name_input)
        layout.addWidget(QLabel("Description"))
        layout.addWidget(self.description_input)
        layout.addLayout(buttons)

    def _on_save(self) -> None:
        if not self.name_input.text().strip():
            QMessageBox.warning(self, "Name required", "Enter a project name.")
            return
        self.accept()

    def form_data(self) -> dict:
        return {
            "name": self.name_input.text().strip(),
            "description": self.description_input.toPlainText().strip(),
        }


EXPENSE_HEADERS = ["Title", "Category", "Amount", "Status", "Date"]
TASK_BUDGET_HEADERS = ["Task", "Status", "Budget", "Spent", "Used", "Alert"]


class BudgetDialog(QDialog):
    def __init__(self, service: BudgetService, project: ProjectEntity, parent=None):
        super().__init__(parent)
        self.service = service
        self.project_id = project.id
        self.setWindowTitle(f"Budget: {project.name}")
        self.resize(760, 720)

        self.summary_label = QLabel("")
        self.summary_label.setProperty("class", "stats-badge")

        self.utilization_bar = QProgressBar()
        self.utilization_bar.setRange(0, 100)
        self.utilization_bar.setObjectName("BudgetProgress")

        self.budget_input = QDoubleSpinBox()
        self.budget_input.setRange(0, 1_000_000_000)
        self.budget_input.setDecimals(2)
        self.budget_input.setValue(project.total_budget)

        budget_button = QPushButton("Set budget")
        budget_button.setProperty("variant", "secondary")
        budget_button.clicked.connect(self.save_budget)

        budget_row = QHBoxLayout()
        budget_row.addWidget(QLabel(f"Total budget ({project.currency})"))
        budget_row.addWidget(self.budget_input, 1)
        budget_row.addWidget(budget_button)

        self.table = QTableWidget(0, len(EXPENSE_HEADERS))
        self.table.setObjectName("ExpenseTable")
        self.table.setHorizontalHeaderLabels(EXPENSE_HEADERS)
        self.table.verticalHeader().setVisible(False)
        self.table.setEditTriggers(QTableWidget.NoEditTriggers)
        self.table.setSelectionBehavior(QTableWidget.SelectRows)
        self.table.setSelectionMode(QTableWidget.SingleSelection)
        self.table.setAlternatingRowColors(True)
        header = self.table.horizontalHeader()
        header.setSectionResizeMode(0, QHeaderView.Stretch)
        for col in range(1, len(EXPENSE_HEADERS)):
            header.setSectionResizeMode(col, QHeaderView.ResizeToContents)

        self.title_input = QLineEdit()
        self.title_input.setPlaceholderText("Expense title")
        self.amount_input = QDoubleSpinBox()
        self.amount_input.setRange(0, 1_000_000_000)
        self.amount_input.setDecimals(2)
        self.category_combo = QComboBox()
        for category in ExpenseCategory:
            self.category_combo.addItem(category.value, category.value)
        self.category_combo.setCurrentIndex(self.category_combo.findData(ExpenseCategory.OTHER.value))
        self.task_combo = QComboBox()


        add_button = QPushButton("Add expense")
        add_button.clicked.connect(self.add_expense)

        add_row = QHBoxLayout()
        add_row.addWidget(self.title_input, 2)
        add_row.addWidget(self.amount_input, 1)
        add_row.addWidget(self.category_combo, 1)
        add_row.addWidget(self.task_combo, 1)
        add_row.addWidget(add_button)

        approve_button = QPushButton("Approve")
        approve_button.setProperty("variant", "secondary")
        approve_button.clicked.connect(lambda: self._change_status(self.service.approve_expense))
        reject_button = QPushButton("Reject")
        reject_button.setProperty("variant", "ghost")
        reject_button.clicked.connect(lambda: self._change_status(self.service.reject_expense))
        paid_button = QPushButton("Mark paid")
        paid_button.setProperty("variant", "secondary")
        paid_button.clicked.connect(lambda: self._change_status(self.service.mark_paid))
        delete_button = QPushButton("Delete")
        delete_button.setProperty("variant", "danger")
        delete_button.clicked.connect(self.delete_expense)
        close_button = QPushButton("Close")
        close_button.clicked.connect(self.accept)

        actions = QHBoxLayout()
        actions.addWidget(approve_button)
        actions.addWidget(reject_button)
        actions.addWidget(paid_button)
        actions.addWidget(delete_button)
        actions.addStretch()
        actions.addWidget(close_button)

        self.task_table = QTableWidget(0, len(TASK_BUDGET_HEADERS))
        self.task_table.setObjectName("TaskBudgetTable")
        self.task_table.setHorizontalHeaderLabels(TASK_BUDGET_HEADERS)
        self.task_table.verticalHeader().setVisible(False)
        self.task_table.setEditTriggers(QTableWidget.NoEditTriggers)
        self.task_table.setSelectionBehavior(QTableWidget.SelectRows)
        self.task_table.setSelectionMode(QTableWidget.SingleSelection)
        self.task_table.horizontalHeader().setSectionResizeMode(0, QHeaderView.Stretch)
        self.task_table.itemSelectionChanged.connect(self._on_task_selected)

        self.task_budget_input = QDoubleSpinBox()
        self.task_budget_input.setRange(0, 1_000_000_000)
        self.task_budget_input.setDecimals(2)
        task_budget_button = QPushButton("Set task budget")
        task_budget_button.setProperty("variant", "secondary")
        task_budget_button.clicked.connect(self.save_task_budget)

        task_budget_row = QHBoxLayout()
        task_budget_row.addWidget(QLabel("Selected task budget"))
        task_budget_row.addWidget(self.task_budget_input, 1)
        task_budget_row.addWidget(task_budget_button)

        layout = QVBoxLayout(self)
        layout.addWidget(self.summary_label)
        layout.addWidget(self.utilization_bar)
        layout.addLayout(budget_row)
        layout.addWidget(self.table)
        layout.addLayout(add_row)
        layout.addLayout(actions)
        layout.addWidget(QLabel("Task budgets"))
        layout.addWidget(self.task_table)
        layout.addLayout(task_budget_row)

        self.refresh()

    def refresh(self) -> None:
        expenses = self.service.list_expenses(self.project_id)
        summary = self.service.get_expense_summary(self.project_id)
        budget = self.service.get_budget_summary(self.project_id)

        self.summary_label.setText(
            f"Expenses: {summary.total_expenses} • Total: {summary.total_amount:.2f} • "
            f"Approved: {summary.approved_amount:.2f} • Pending: {summary.pending_amount:.2f} • "
            f"Remaining: {budget.remaining:.2f} {budget.currency}"
        )
        self.utilization_bar.setValue(max(0, min(100, int(budget.utilization))))
        self.utilization_bar.setFormat(f"{budget.utilization:.1f}% of budget used")

        self.table.setRowCount(len(expenses))
        for row, expense in enumerate(expenses):
            values = [
                expense.title,
                expense.category.value,
                f"{expense.amount:.2f} {expense.currency}",
                expense.status.value,
                expense.date_incurred.strftime("%d.%m.%Y") if expense.date_incurred else "",
            ]
            for col, value in enumerate(values):
                item = QTableWidgetItem(value)
                if col == 0:
                    item.setData(Qt.UserRole, expense.id)
                else:
                    item.setTextAlignment(Qt.AlignCenter)
                self.table.setItem(row, col, item)

        self._refresh_tasks()

    def save_budget(self) -> None:
        try:
            self.service.update_budget(self.project_id, total_budget=self.budget_input.value())
        except ProjectDeskError as exc:
            QMessageBox.warning(self, "Budget", str(exc))
            return
        self.refresh()

    def add_expense(self) -> None:
        title = self.title_input.text().strip()
        if not title:
            QMessageBox.warning(self, "Title required", "Enter an expense title.")
            return
        try:
            self.service.create_expense({
                "project_id": self.project_id,
                "title": title,
                "amount": self.amount_input.value(),
                "category": self.category_combo.currentData(),
                "task_id": self.task_combo.currentData(),
            })
        except ProjectDeskError as exc:
            QMessageBox.warning(self, "Expense", str(exc))
            return
        self.title_input.clear()
        self.amount_input.setValue(0)
        self.refresh()

    def delete_expense(self) -> None:
        expense_id = self._selected_expense_id()
        if expense_id is None:
            return
        confirm = QMessageBox.question(self, "Confirm", "Delete this expense?")
        if confirm != QMessageBox.Yes:
            return
        self.service.delete_expense(expense_id)
        self.refresh()

    def _change_status(self, action) -> None:
        expense_id = self._selected_expense_id()
        if expense_id is None:
            return
        try:
            action(expense_id)
        except ProjectDeskError as exc:
            QMessageBox.warning(self, "Expense", str(exc))
        self.refresh()

    def _selected_expense_id(self) -> int | None:
        row = self.table.currentRow()
        if row < 0:
            return None
        item = self.table.item(row, 0)
        return item.data(Qt.UserRole) if item else None

    def save_task_budget(self) -> None:
        task_id = self._selected_task_id()
        if task_id is None:
            QMessageBox.information(self, "Task budget", "Select a task first.")
            return
        try:
            self.service.update_task_budget(task_id, total_budget=self.task_budget_input.value())
        except ProjectDeskError as exc:
            QMessageBox.warning(self, "Task budget", str(exc))
            return
        self.refresh()

    def _refresh_tasks(self) -> None:
        overviews = self.service.get_project_tasks_budget(self.project_id)

        selected = self.task_combo.currentData()
        self.task_combo.blockSignals(True)
        self.task_combo.clear()
        self.task_combo.addItem("No task", None)
        for overview in overviews:
            self.task_combo.addItem(overview.task_title, overview.task_id)
        index = self.task_combo.findData(selected)
        self.task_combo.setCurrentIndex(index if index >= 0 else 0)
        self.task_combo.blockSignals(False)

        self.task_table.setRowCount(len(overviews))
        for row, overview in enumerate(overviews):
            budget = overview.budget
            if overview.over_budget:
                alert = "Over budget"
            elif overview.near_budget_limit:
                alert = "Near limit"
            else:
                alert = ""
            values = [
                overview.task_title,
                overview.task_status.value,
                f"{budget.total_budget:.2f} {budget.currency}",
                f"{budget.spent:.2f}",
                f"{budget.utilization:.1f}%",
                alert,
            ]
            for col, value in enumerate(values):
                item = QTableWidgetItem(value)
                if col == 0:
                    item.setData(Qt.UserRole, overview.task_id)
                    item.setData(Qt.UserRole + 1, budget.total_budget)
                else:
                    item.setTextAlignment(Qt.AlignCenter)
                self.task_table.setItem(row, col, item)

    def _on_task_selected(self) -> None:
        row = self.task_table.currentRow()
        item = self.task_table.item(row, 0) if row >= 0 else None
        if item is not None:
            self.task_budget_input.setValue(item.data(Qt.UserRole + 1) or 0.0)

    def _selected_task_id(self) -> int | None:
        row = self.task_table.currentRow()
        if row < 0:
            return None
        item = self.task_table.item(row, 0)
        return item.data(Qt.UserRole) if item else None
