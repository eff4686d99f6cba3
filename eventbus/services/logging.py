"""Logging collaborator for the event bus.

The bus reports subscribe, unsubscribe and publish activity here, plus
listener failures. Records carry the activity kind in ``event_kind`` so a
formatter can show it, e.g. ``%(event_kind)s``.
"""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from eventbus.domain.errors import ListenerFailure

LOG_FORMAT = "%(asctime)s | %(levelname)8s | %(name)s | %(message)s"


class LogKind(StrEnum):
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    PUBLISH = "publish"
    PUBLISH_ASYNC = "publish_async"


class BusLogger(Protocol):
    def log_event(
        self,
        kind: LogKind,
        event_type_name: str,
        listener_type_name: str | None = None,
    ) -> None: ...

    def log_failure(self, failure: ListenerFailure) -> None: ...


class EventLogger:
    """Default collaborator writing to a stdlib logger."""

    def __init__(self, name: str = "eventbus", level: str | None = None) -> None:
        self.logger = logging.getLogger(name)
        if level is not None:
            self.logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    def log_event(
        self,
        kind: LogKind,
        event_type_name: str,
        listener_type_name: str | None = None,
    ) -> None:
        if not self.logger.isEnabledFor(logging.DEBUG):
            return
        extra = {"event_kind": kind.value}
        if listener_type_name is None:
            self.logger.debug("%s: %s", kind.value, event_type_name, extra=extra)
        else:
            self.logger.debug(
                "%s: %s -> %s",
                kind.value,
                event_type_name,
                listener_type_name,
                extra=extra,
            )

    def log_failure(self, failure: ListenerFailure) -> None:
        self.logger.error(
            "%s",
            failure,
            exc_info=failure.__cause__,
            extra={"event_kind": LogKind.PUBLISH.value},
        )

    def enable_debug(self) -> None:
        self.logger.setLevel(logging.DEBUG)

    def disable_debug(self) -> None:
        self.logger.setLevel(logging.INFO)


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging for applications embedding the bus."""

    root = logging.getLogger()
    if root.handlers:
        for handler in list(root.handlers):
            root.removeHandler(handler)
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
