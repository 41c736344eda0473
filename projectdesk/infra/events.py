"""In-process event fan-out keyed by project.

Delivery is best effort: a subscriber that raises is logged and skipped so
the remaining subscribers still get the event. Subscribers must tolerate
receiving the same snapshot more than once.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Union

from projectdesk.domain.entities import CompletionSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProjectCompletionUpdated:
    project_id: int
    completion: CompletionSnapshot


@dataclass(frozen=True)
class ProjectFullyCompleted:
    project_id: int
    completion: CompletionSnapshot


@dataclass(frozen=True)
class BudgetThresholdReached:
    project_id: int
    threshold: float
    utilization: float
    spent: float
    total_budget: float
    task_id: int | None = None


ProjectEvent = Union[ProjectCompletionUpdated, ProjectFullyCompleted, BudgetThresholdReached]
Handler = Callable[[ProjectEvent], None]

ALL_PROJECTS = None


class EventBus:
    def __init__(self) -> None:
        # project_id (or ALL_PROJECTS) -> handlers in subscription order
        self._subscribers: dict[int | None, list[Handler]] = defaultdict(list)

    def subscribe(self, handler: Handler, project_id: int | None = ALL_PROJECTS) -> Callable[[], None]:
        """Register ``handler``; returns a callable that removes it again."""
        self._subscribers[project_id].append(handler)

        def unsubscribe() -> None:
            self.unsubscribe(handler, project_id)

        return unsubscribe

    def unsubscribe(self, handler: Handler, project_id: int | None = ALL_PROJECTS) -> None:
        handlers = self._subscribers.get(project_id)
        if not handlers:
            return
        if handler in handlers:
            handlers.remove(handler)
        if not handlers:
            del self._subscribers[project_id]

    def publish(self, event: ProjectEvent) -> int:
        """Deliver ``event``; returns how many handlers accepted it."""
        handlers = list(self._subscribers.get(event.project_id, ()))
        if event.project_id is not ALL_PROJECTS:
            handlers.extend(self._subscribers.get(ALL_PROJECTS, ()))

        delivered = 0
        for handler in handlers:
            try:
                handler(event)
            except Exception:  # noqa: BLE001
                logger.exception("Event handler %r failed for %s", handler, type(event).__name__)
                continue
            delivered += 1
        return delivered

    def subscriber_count(self, project_id: int | None = ALL_PROJECTS) -> int:
        return len(self._subscribers.get(project_id, ()))
