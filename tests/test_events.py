from __future__ import annotations

import logging

from projectdesk.domain.completion import compute_completion
from projectdesk.infra.events import ALL_PROJECTS, EventBus, ProjectCompletionUpdated


def _event(project_id: int) -> ProjectCompletionUpdated:
    return ProjectCompletionUpdated(project_id, compute_completion([]))


def test_project_subscribers_only_see_their_project() -> None:
    bus = EventBus()
    first: list = []
    everything: list = []
    bus.subscribe(first.append, project_id=1)
    bus.subscribe(everything.append, project_id=ALL_PROJECTS)

    assert bus.publish(_event(1)) == 2
    assert bus.publish(_event(2)) == 1

    assert [event.project_id for event in first] == [1]
    assert [event.project_id for event in everything] == [1, 2]


def test_failing_handler_does_not_block_others(caplog) -> None:
    bus = EventBus()
    received: list = []

    def broken(event) -> None:
        raise RuntimeError("boom")

    bus.subscribe(broken, project_id=1)
    bus.subscribe(received.append, project_id=1)

    with caplog.at_level(logging.ERROR, logger="projectdesk.infra.events"):
        delivered = bus.publish(_event(1))

    assert delivered == 1
    assert len(received) == 1
    assert "failed" in caplog.text


def test_unsubscribe() -> None:
    bus = EventBus()
    received: list = []
    unsubscribe = bus.subscribe(received.append, project_id=3)
    assert bus.subscriber_count(3) == 1

    unsubscribe()
    unsubscribe()

    assert bus.subscriber_count(3) == 0
    assert bus.publish(_event(3)) == 0
    assert received == []
