"""Scopes (branches): groups of subscriptions detached and reattached together."""

from __future__ import annotations

import threading
import uuid
import weakref
from typing import TYPE_CHECKING, Any, TypeVar

from eventbus.domain.errors import ScopeDisposed
from eventbus.domain.filters import EventFilter
from eventbus.domain.models import Listener, Priorities, Priority, ScopeStatus, Subscription

if TYPE_CHECKING:
    from eventbus.domain.bus import EventBus

E = TypeVar("E")


def generate_branch_name() -> str:
    return "branch-" + uuid.uuid4().hex[:8]


class EventScope:
    """A node in a tree of scopes owned by one EventBus.

    A scope remembers every subscription made through it. ``detach`` pulls
    those subscriptions, and the ones of every descendant, out of the bus
    without forgetting them; ``reattach`` puts this scope's own subscriptions
    back unchanged, with the same priority, filter and tie-break position.
    Reattach does not recurse: children detached along with their parent stay
    detached until reattached themselves.

    The parent is held through a weak reference; only the bus or the parent
    keeps a scope alive.
    """

    def __init__(self, name: str, bus: EventBus, parent: EventScope | None = None) -> None:
        self.name = name
        self._bus = bus
        self._parent_ref = weakref.ref(parent) if parent is not None else None
        self._children: list[EventScope] = []
        self._subscriptions: list[Subscription] = []
        self._status = ScopeStatus.ATTACHED
        self._disposed = False
        # parent locks are always taken before child locks
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Tree
    # ------------------------------------------------------------------

    @property
    def parent(self) -> EventScope | None:
        return self._parent_ref() if self._parent_ref is not None else None

    @property
    def path(self) -> str:
        parts = [self.name]
        node = self.parent
        while node is not None:
            parts.append(node.name)
            node = node.parent
        return "/".join(reversed(parts))

    @property
    def children(self) -> list[EventScope]:
        with self._lock:
            return list(self._children)

    def child(self, name: str) -> EventScope | None:
        with self._lock:
            return next((c for c in self._children if c.name == name), None)

    def branch(self, name: str | None = None) -> EventScope:
        """Create a child scope. Names default to ``branch-<8 hex chars>``."""
        with self._lock:
            self._check_not_disposed()
            self._bus._ensure_open("create scope")
            child = EventScope(name or generate_branch_name(), self._bus, parent=self)
            self._children.append(child)
            if self._status is ScopeStatus.DETACHED:
                child._status = ScopeStatus.DETACHED
        return child

    create_child = branch

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
        """Subscribe through this scope.

        On a detached scope the subscription is recorded but stays out of the
        bus until the scope is reattached.
        """
        with self._lock:
            self._check_not_disposed()
            entry = self._bus._build_subscription(
                event_type, listener, priority, event_filter, scope=self
            )
            self._subscriptions.append(entry)
            if self._status is ScopeStatus.ATTACHED:
                self._bus._attach(entry)
        return entry

    def publish(self, event: E) -> E:
        return self._bus.publish(event)

    @property
    def subscriptions(self) -> tuple[Subscription, ...]:
        with self._lock:
            return tuple(self._subscriptions)

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    @property
    def total_subscription_count(self) -> int:
        return self.subscription_count + sum(
            child.total_subscription_count for child in self.children
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def status(self) -> ScopeStatus:
        return self._status

    @property
    def is_detached(self) -> bool:
        return self._status is ScopeStatus.DETACHED

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def detach(self) -> None:
        """Remove this scope's and all descendants' subscriptions from the bus."""
        with self._lock:
            if self._status is ScopeStatus.DETACHED:
                return
            self._status = ScopeStatus.DETACHED
            for child in self._children:
                child.detach()
            for entry in self._subscriptions:
                self._bus._detach(entry)

    def reattach(self) -> None:
        """Put this scope's own subscriptions back into the bus."""
        with self._lock:
            self._check_not_disposed()
            if self._status is ScopeStatus.ATTACHED:
                return
            self._bus._ensure_open("reattach scope")
            self._status = ScopeStatus.ATTACHED
            for entry in self._subscriptions:
                self._bus._attach(entry)

    def dispose(self) -> None:
        """Detach, dispose all children and drop this scope from the tree."""
        with self._lock:
            if self._disposed:
                return
            self.detach()
            self._disposed = True
            children = list(self._children)
            for child in children:
                child.dispose()
            self._children.clear()
            self._subscriptions.clear()

        parent = self.parent
        if parent is not None:
            parent._remove_child(self)
        else:
            self._bus._remove_scope(self)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _forget(self, entry: Subscription) -> bool:
        with self._lock:
            try:
                self._subscriptions.remove(entry)
            except ValueError:
                return False
        return True

    def _remove_child(self, child: EventScope) -> None:
        with self._lock:
            if child in self._children:
                self._children.remove(child)

    def _check_not_disposed(self) -> None:
        if self._disposed:
            raise ScopeDisposed(self.path)

    def describe(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "path": self.path,
            "status": self._status.value,
            "subscription_count": self.subscription_count,
            "children": [child.describe() for child in self.children],
        }

    def __repr__(self) -> str:
        return f"EventScope({self.path!r}, {self._status.value})"
