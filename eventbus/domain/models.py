"""Domain models for the event bus: priorities, subscriptions, scope status."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Callable

from pydantic import BaseModel, ConfigDict

from eventbus.domain.errors import InvalidGap

if TYPE_CHECKING:
    from eventbus.domain.filters import EventFilter
    from eventbus.domain.scope import EventScope

Listener = Callable[[Any], Any]


class ScopeStatus(StrEnum):
    ATTACHED = "attached"
    DETACHED = "detached"


class BusState(StrEnum):
    OPEN = "open"
    CLOSED = "closed"


# ---------------------------------------------------------------------------
# Priority
# ---------------------------------------------------------------------------


class Priority(BaseModel):
    """Delivery rank of a subscription. Higher weight is delivered first.

    Priorities only order by weight. Two priorities with the same weight are
    neither lower nor higher than each other; the registry breaks the tie by
    subscription order.
    """

    model_config = ConfigDict(frozen=True)

    name: str = "Custom"
    weight: int

    @classmethod
    def of(cls, weight: int, name: str = "Custom") -> Priority:
        return cls(name=name, weight=weight)

    @classmethod
    def before(cls, other: Priority, gap: int = 1) -> Priority:
        """Return a priority delivered ``gap`` steps ahead of *other*."""
        if gap <= 0:
            raise InvalidGap(gap)
        return cls(name=f"Before {other.name}", weight=other.weight + gap)

    @classmethod
    def after(cls, other: Priority, gap: int = 1) -> Priority:
        """Return a priority delivered ``gap`` steps behind *other*."""
        if gap <= 0:
            raise InvalidGap(gap)
        return cls(name=f"After {other.name}", weight=other.weight - gap)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Priority):
            return NotImplemented
        return self.weight < other.weight

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Priority):
            return NotImplemented
        return self.weight <= other.weight

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Priority):
            return NotImplemented
        return self.weight > other.weight

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Priority):
            return NotImplemented
        return self.weight >= other.weight

    def __str__(self) -> str:
        return f"{self.name}({self.weight})"


class Priorities:
    """Named presets, 500 apart so ``before``/``after`` never need renumbering."""

    LOWEST = Priority(name="LOWEST", weight=-1000)
    LOW = Priority(name="LOW", weight=-500)
    NORMAL = Priority(name="NORMAL", weight=0)
    HIGH = Priority(name="HIGH", weight=500)
    HIGHEST = Priority(name="HIGHEST", weight=1000)

    @classmethod
    def values(cls) -> list[Priority]:
        return [cls.HIGHEST, cls.HIGH, cls.NORMAL, cls.LOW, cls.LOWEST]

    @classmethod
    def by_weight(cls, weight: int) -> Priority:
        for priority in cls.values():
            if priority.weight == weight:
                return priority
        raise KeyError(f"No preset priority with weight {weight}")


# ---------------------------------------------------------------------------
# Subscription entry
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False, slots=True)
class Subscription:
    """One registered (type, listener, priority, filter) entry.

    Entries compare by identity. Their position in the registry depends only
    on ``priority`` and ``sequence``; ``event_type`` and ``event_filter``
    decide matching.
    """

    event_type: type
    listener: Listener
    priority: Priority
    event_filter: EventFilter
    sequence: int
    scope: EventScope | None = None

    @property
    def sort_key(self) -> tuple[int, int]:
        return (-self.priority.weight, self.sequence)

    @property
    def listener_name(self) -> str:
        return getattr(self.listener, "__qualname__", type(self.listener).__qualname__)

    def matches(self, event: Any) -> bool:
        return self.event_filter.test(event, self.event_type)

    def same_target(self, event_type: type, listener: Listener) -> bool:
        return self.event_type is event_type and self.listener == listener

    def __repr__(self) -> str:
        scope = f", scope={self.scope.path!r}" if self.scope is not None else ""
        return (
            f"Subscription({self.event_type.__qualname__} -> {self.listener_name}, "
            f"{self.priority}, #{self.sequence}{scope})"
        )
