"""Typed in-process event bus with priorities, filters, scopes and async delivery."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from typing import Any, Callable, TypeVar

from eventbus.config import BusSettings
from eventbus.domain.errors import (
    BusClosed,
    InvalidEventType,
    InvalidListener,
    ListenerFailure,
)
from eventbus.domain.filters import EventFilter, exact
from eventbus.domain.models import BusState, Listener, Priorities, Priority, Subscription
from eventbus.domain.scope import EventScope, generate_branch_name
from eventbus.repos.memory import SubscriptionRepository
from eventbus.services.logging import BusLogger, EventLogger, LogKind
from eventbus.services.worker import AsyncDispatcher

E = TypeVar("E")

logger = logging.getLogger("eventbus.bus")


def _callable_name(listener: Callable[..., Any]) -> str:
    return getattr(listener, "__qualname__", type(listener).__qualname__)


class EventBus:
    """Publish/subscribe bus for typed events.

    Listeners are called synchronously on the publishing thread, highest
    priority first; equal priorities are served in subscription order.
    ``publish_async`` hands events to a single worker thread that delivers
    them one at a time in submission order.

    A failing listener never stops delivery: its exception is wrapped in
    ``ListenerFailure``, reported to the event logger and dropped.

    Only events that are instances of *base_type* may be published, and only
    subclasses of it may be subscribed to.
    """

    def __init__(
        self,
        base_type: type = object,
        settings: BusSettings | None = None,
        event_logger: BusLogger | None = None,
    ) -> None:
        self.base_type = base_type
        self.settings = settings or BusSettings()
        self._registry = SubscriptionRepository()
        self._event_logger = event_logger or EventLogger(
            self.settings.logger_name, self.settings.log_level
        )
        self._state = BusState.OPEN
        self._state_lock = threading.Lock()
        self._scopes: list[EventScope] = []
        self._scopes_lock = threading.Lock()
        self._worker = AsyncDispatcher(
            self._deliver,
            maxsize=self.settings.async_queue_size,
            overflow=self.settings.async_overflow,
            name=self.settings.worker_name,
            join_timeout=self.settings.close_timeout,
        )

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(
        self,
        event_type: type,
        listener: Listener,
        priority: Priority = Priorities.NORMAL,
        event_filter: EventFilter | None = None,
    ) -> Subscription:
        """Register *listener* for *event_type*; ``exact`` matching by default.

        Subscribing the same pair twice creates two independent entries.
        The returned Subscription can be passed to ``cancel``.
        """
        entry = self._build_subscription(event_type, listener, priority, event_filter)
        self._attach(entry)
        return entry

    def unsubscribe(self, event_type: type, listener: Listener) -> int:
        """Remove every live entry for (*event_type*, *listener*).

        Returns how many were removed; zero is not an error. Entries made
        through a scope are forgotten by that scope too.
        """
        removed = len(
            self._registry.remove_where(
                lambda entry: entry.scope is None and entry.same_target(event_type, listener)
            )
        )
        for entry in self._registry.snapshot():
            if entry.scope is not None and entry.same_target(event_type, listener):
                removed += self._release(entry)
        self._log(LogKind.UNSUBSCRIBE, _callable_name(event_type), _callable_name(listener))
        return removed

    def cancel(self, subscription: Subscription) -> bool:
        """Remove one subscription by identity, wherever it was made."""
        scope = subscription.scope
        if scope is None:
            return self._detach(subscription)
        with scope._lock:
            removed = self._detach(subscription)
            forgotten = scope._forget(subscription)
        return removed or forgotten

    @property
    def subscriptions(self) -> list[Subscription]:
        """Live subscriptions in delivery order."""
        return list(self._registry.snapshot())

    @property
    def subscription_count(self) -> int:
        return len(self._registry)

    def listeners_for(
        self, event_type: type, include_supertypes: bool = True
    ) -> list[Subscription]:
        return self._registry.find(event_type, include_supertypes)

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    def publish(self, event: E) -> E:
        """Deliver *event* to every matching listener and return it unchanged."""
        self._ensure_open("publish")
        self._check_event(event)
        return self._deliver(event)

    def publish_async(self, event: E) -> Future:
        """Queue *event* for the worker thread.

        The returned future resolves to *event* once every listener has run.
        """
        self._ensure_open("publish asynchronously")
        self._check_event(event)
        self._log(LogKind.PUBLISH_ASYNC, type(event).__qualname__)
        return self._worker.submit(event)

    # ------------------------------------------------------------------
    # Scopes
    # ------------------------------------------------------------------

    def branch(self, name: str | None = None) -> EventScope:
        """Create a root scope. Names default to ``branch-<8 hex chars>``."""
        self._ensure_open("create scope")
        scope = EventScope(name or generate_branch_name(), self)
        with self._scopes_lock:
            self._scopes.append(scope)
        return scope

    create_scope = branch

    @property
    def scopes(self) -> list[EventScope]:
        with self._scopes_lock:
            return list(self._scopes)

    def find_scope(self, path: str) -> EventScope | None:
        """Look up a scope by its ``/``-joined path."""
        names = [part for part in path.strip("/").split("/") if part]
        if not names:
            return None
        node = next((s for s in self.scopes if s.name == names[0]), None)
        for name in names[1:]:
            if node is None:
                return None
            node = node.child(name)
        return node

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def state(self) -> BusState:
        return self._state

    @property
    def is_closed(self) -> bool:
        return self._state is BusState.CLOSED

    def close(self, drain: bool = True) -> None:
        """Close the bus and stop the async worker.

        With *drain*, events already queued by ``publish_async`` are still
        delivered; otherwise their futures are cancelled.
        """
        with self._state_lock:
            if self._state is BusState.CLOSED:
                return
            self._state = BusState.CLOSED
        self._worker.close(drain=drain)
        logger.info("Event bus closed (%d subscriptions)", len(self._registry))

    def __enter__(self) -> EventBus:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internal (shared with EventScope)
    # ------------------------------------------------------------------

    def _build_subscription(
        self,
        event_type: type,
        listener: Listener,
        priority: Priority,
        event_filter: EventFilter | None,
        scope: EventScope | None = None,
    ) -> Subscription:
        self._ensure_open("subscribe")
        if not isinstance(event_type, type) or not issubclass(event_type, self.base_type):
            raise InvalidEventType(event_type, self.base_type)
        if not callable(listener):
            raise InvalidListener(listener)
        return Subscription(
            event_type=event_type,
            listener=listener,
            priority=priority,
            event_filter=event_filter or exact(),
            sequence=self._registry.next_sequence(),
            scope=scope,
        )

    def _attach(self, entry: Subscription) -> None:
        if self._registry.insert(entry):
            self._log(LogKind.SUBSCRIBE, entry.event_type.__qualname__, entry.listener_name)

    def _detach(self, entry: Subscription) -> bool:
        removed = self._registry.remove(entry)
        if removed:
            self._log(LogKind.UNSUBSCRIBE, entry.event_type.__qualname__, entry.listener_name)
        return removed

    def _release(self, entry: Subscription) -> bool:
        # under the scope lock so a concurrent reattach cannot revive the entry
        with entry.scope._lock:
            if not self._registry.remove(entry):
                return False
            entry.scope._forget(entry)
        return True

    def _remove_scope(self, scope: EventScope) -> None:
        with self._scopes_lock:
            if scope in self._scopes:
                self._scopes.remove(scope)

    def _ensure_open(self, operation: str) -> None:
        if self._state is BusState.CLOSED:
            raise BusClosed(operation)

    def _check_event(self, event: Any) -> None:
        if not isinstance(event, self.base_type):
            raise InvalidEventType(type(event), self.base_type)

    def _deliver(self, event: E) -> E:
        event_name = type(event).__qualname__
        for entry in self._registry.snapshot():
            try:
                if not entry.matches(event):
                    continue
                self._log(LogKind.PUBLISH, event_name, entry.listener_name)
                entry.listener(event)
            except Exception as exc:
                failure = ListenerFailure(entry, event)
                failure.__cause__ = exc
                self._report(failure)
        return event

    def _log(
        self, kind: LogKind, event_type_name: str, listener_type_name: str | None = None
    ) -> None:
        try:
            self._event_logger.log_event(kind, event_type_name, listener_type_name)
        except Exception:
            logger.exception("Event logger failed on %s", kind.value)

    def _report(self, failure: ListenerFailure) -> None:
        try:
            self._event_logger.log_failure(failure)
        except Exception:
            logger.exception("Event logger failed to report %s", failure)
