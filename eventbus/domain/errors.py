"""Error types raised by the event bus.

Configuration errors (closed bus, bad gap, bad event type) are raised to the
caller. ``ListenerFailure`` is only ever built and reported, never raised out
of ``EventBus.publish``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from eventbus.domain.models import Subscription


class EventBusError(Exception):
    """Base error for event bus operations."""


class BusClosed(EventBusError):
    """The bus was closed; it no longer accepts subscriptions or events."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"Cannot {operation}: event bus is closed.")


class InvalidGap(EventBusError, ValueError):
    """Relative priorities need a strictly positive gap."""

    def __init__(self, gap: int) -> None:
        self.gap = gap
        super().__init__(f"Priority gap must be > 0, got {gap}.")


class ScopeDisposed(EventBusError):
    """The scope was disposed and cannot be used any more."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Scope '{path}' is disposed.")


class InvalidEventType(EventBusError, TypeError):
    """Event type is not a class, or falls outside the bus's base type."""

    def __init__(self, event_type: Any, base_type: type) -> None:
        self.event_type = event_type
        self.base_type = base_type
        super().__init__(
            f"{event_type!r} is not a subtype of {base_type.__qualname__}."
        )


class InvalidListener(EventBusError, TypeError):
    """Listener must be callable."""

    def __init__(self, listener: Any) -> None:
        self.listener = listener
        super().__init__(f"Listener must be callable, got {type(listener)}.")


class AsyncQueueFull(EventBusError):
    """Bounded async queue rejected an event under the ``drop`` policy."""

    def __init__(self, maxsize: int) -> None:
        self.maxsize = maxsize
        super().__init__(f"Async dispatch queue is full ({maxsize} pending).")


class ListenerFailure(EventBusError):
    """A listener raised while an event was being delivered."""

    def __init__(self, subscription: Subscription, event: Any) -> None:
        self.subscription = subscription
        self.event = event
        super().__init__(
            f"Listener {subscription.listener_name} failed on "
            f"{type(event).__qualname__}."
        )
