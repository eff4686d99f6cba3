"""Event filters: decide whether a published value reaches a subscription.

A filter is a pure function of ``(event, declared_type)``. ``exact`` and
``hierarchy`` compare the event's runtime type with the declared type;
``where`` looks at the event's content. Filters combine with ``&``, ``|``
and ``~``, evaluated left to right with short-circuit.
"""

from __future__ import annotations

from typing import Any, Callable

FilterFn = Callable[[Any, type], bool]
Predicate = Callable[[Any], bool]


class EventFilter:
    """Composable predicate over a published event and a declared type."""

    __slots__ = ("_fn", "_label")

    def __init__(self, fn: FilterFn, label: str = "custom") -> None:
        self._fn = fn
        self._label = label

    def test(self, event: Any, expected_type: type) -> bool:
        return bool(self._fn(event, expected_type))

    __call__ = test

    def and_(self, other: EventFilter | Predicate) -> EventFilter:
        right = _coerce(other)

        def both(event: Any, expected_type: type) -> bool:
            return self.test(event, expected_type) and right.test(event, expected_type)

        return EventFilter(both, f"({self._label} & {right._label})")

    def or_(self, other: EventFilter | Predicate) -> EventFilter:
        right = _coerce(other)

        def either(event: Any, expected_type: type) -> bool:
            return self.test(event, expected_type) or right.test(event, expected_type)

        return EventFilter(either, f"({self._label} | {right._label})")

    def negate(self) -> EventFilter:
        def inverted(event: Any, expected_type: type) -> bool:
            return not self.test(event, expected_type)

        return EventFilter(inverted, f"~{self._label}")

    def __and__(self, other: EventFilter | Predicate) -> EventFilter:
        return self.and_(other)

    def __or__(self, other: EventFilter | Predicate) -> EventFilter:
        return self.or_(other)

    def __invert__(self) -> EventFilter:
        return self.negate()

    def __repr__(self) -> str:
        return f"EventFilter<{self._label}>"


def _coerce(other: EventFilter | Predicate) -> EventFilter:
    if isinstance(other, EventFilter):
        return other
    if callable(other):
        return where(other)
    raise TypeError(f"Cannot combine EventFilter with {type(other).__qualname__}")


def is_subtype(runtime_type: type, declared_type: type) -> bool:
    """True if *declared_type* is *runtime_type* or one of its capabilities.

    The runtime type itself is checked first. ``issubclass`` then walks the
    base classes transitively and honours ABC registration and
    runtime-checkable protocols, so any path through the type graph counts.
    """
    if runtime_type is declared_type:
        return True
    try:
        return issubclass(runtime_type, declared_type)
    except TypeError:
        # non-class declared types (subscripted generics, data protocols)
        return False


def _exact(event: Any, expected_type: type) -> bool:
    return type(event) is expected_type


def _hierarchy(event: Any, expected_type: type) -> bool:
    return is_subtype(type(event), expected_type)


_EXACT = EventFilter(_exact, "exact")
_HIERARCHY = EventFilter(_hierarchy, "hierarchy")
_ALWAYS = EventFilter(lambda event, expected_type: True, "always")
_NEVER = EventFilter(lambda event, expected_type: False, "never")


def exact() -> EventFilter:
    """Match only events whose runtime type is the declared type."""
    return _EXACT


def hierarchy() -> EventFilter:
    """Match events of the declared type or any of its subtypes."""
    return _HIERARCHY


def where(predicate: Predicate) -> EventFilter:
    """Match on the event's content; the declared type is ignored."""
    label = getattr(predicate, "__qualname__", "predicate")
    return EventFilter(lambda event, expected_type: predicate(event), label)


def always() -> EventFilter:
    return _ALWAYS


def never() -> EventFilter:
    return _NEVER


def matches(event_filter: EventFilter, declared_type: type, event: Any) -> bool:
    return event_filter.test(event, declared_type)
