"""In-memory subscription store."""

from __future__ import annotations

import bisect
import itertools
from threading import Lock
from typing import Callable, Iterator

from eventbus.domain.filters import is_subtype
from eventbus.domain.models import Subscription


class SubscriptionRepository:
    """Tuple-backed store for Subscription instances, kept in delivery order.

    Delivery order is descending priority weight, then ascending sequence
    number, so among equal priorities the first subscriber is served first.

    Writers serialise on a lock and publish a new tuple; readers take the
    current tuple without locking. A snapshot is therefore consistent but may
    be stale: a publish running while another thread subscribes sees the
    registry either before or after that change, never halfway.
    """

    def __init__(self) -> None:
        self._entries: tuple[Subscription, ...] = ()
        self._keys: list[tuple[int, int]] = []
        self._lock = Lock()
        self._sequence = itertools.count()

    def next_sequence(self) -> int:
        with self._lock:
            return next(self._sequence)

    def insert(self, entry: Subscription) -> bool:
        """Add *entry* at its ordered slot. Returns False if already present."""
        key = entry.sort_key
        with self._lock:
            index = bisect.bisect_left(self._keys, key)
            entries = self._entries
            if index < len(entries) and entries[index] is entry:
                return False
            self._keys.insert(index, key)
            self._entries = entries[:index] + (entry,) + entries[index:]
        return True

    def remove(self, entry: Subscription) -> bool:
        """Remove *entry* by identity. Returns False if it was not present."""
        key = entry.sort_key
        with self._lock:
            index = bisect.bisect_left(self._keys, key)
            entries = self._entries
            if index >= len(entries) or entries[index] is not entry:
                return False
            del self._keys[index]
            self._entries = entries[:index] + entries[index + 1 :]
        return True

    def remove_where(
        self, predicate: Callable[[Subscription], bool]
    ) -> list[Subscription]:
        """Remove every entry matching *predicate* in one step."""
        with self._lock:
            kept: list[Subscription] = []
            removed: list[Subscription] = []
            for entry in self._entries:
                (removed if predicate(entry) else kept).append(entry)
            if removed:
                self._entries = tuple(kept)
                self._keys = [e.sort_key for e in kept]
        return removed

    def snapshot(self) -> tuple[Subscription, ...]:
        return self._entries

    def find(self, event_type: type, include_supertypes: bool = True) -> list[Subscription]:
        """Return live entries that could receive an event of *event_type*.

        With *include_supertypes*, entries declared for any base of
        *event_type* are included; otherwise only entries declared for
        exactly *event_type*. Filters are not evaluated.
        """
        if include_supertypes:
            return [e for e in self._entries if is_subtype(event_type, e.event_type)]
        return [e for e in self._entries if e.event_type is event_type]

    def clear(self) -> list[Subscription]:
        with self._lock:
            removed = list(self._entries)
            self._entries = ()
            self._keys = []
        return removed

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, entry: object) -> bool:
        return any(e is entry for e in self._entries)

    def __iter__(self) -> Iterator[Subscription]:
        return iter(self._entries)
