from __future__ import annotations

import pytest

from eventbus.domain.bus import EventBus
from eventbus.services.logging import LogKind

from game_events import GameEvent


class RecordingLogger:
    """Logging collaborator that keeps everything it is told."""

    def __init__(self) -> None:
        self.events: list[tuple[LogKind, str, str | None]] = []
        self.failures: list = []

    def log_event(self, kind, event_type_name, listener_type_name=None) -> None:
        self.events.append((kind, event_type_name, listener_type_name))

    def log_failure(self, failure) -> None:
        self.failures.append(failure)

    def kinds(self) -> list[LogKind]:
        return [kind for kind, _, _ in self.events]


@pytest.fixture()
def recorder() -> RecordingLogger:
    return RecordingLogger()


@pytest.fixture()
def bus(recorder):
    """Fresh bus restricted to GameEvent, closed after the test."""
    event_bus = EventBus(base_type=GameEvent, event_logger=recorder)
    yield event_bus
    event_bus.close(drain=False)
