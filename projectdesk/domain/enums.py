from __future__ import annotations

from enum import StrEnum


class TaskStatus(StrEnum):
    TODO = "To-Do"
    IN_PROGRESS = "In Progress"
    DONE = "Done"


class TaskPriority(StrEnum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


PRIORITY_RANK = {
    TaskPriority.HIGH.value: 0,
    TaskPriority.MEDIUM.value: 1,
    TaskPriority.LOW.value: 2,
}
UNKNOWN_PRIORITY_RANK = len(PRIORITY_RANK)


def priority_rank(priority: str | None) -> int:
    return PRIORITY_RANK.get(str(priority) if priority is not None else "", UNKNOWN_PRIORITY_RANK)


class ExpenseStatus(StrEnum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    PAID = "Paid"


class ExpenseCategory(StrEnum):
    SOFTWARE = "Software/Tools"
    TRAVEL = "Travel"
    MATERIALS = "Materials"
    SERVICES = "Services"
    EQUIPMENT = "Equipment"
    MARKETING = "Marketing"
    TRAINING = "Training"
    OTHER = "Other"
