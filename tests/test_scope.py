"""Tests for scopes: detach, reattach, dispose and the scope tree."""

from __future__ import annotations

import threading

import pytest

from eventbus.domain.errors import BusClosed, ScopeDisposed
from eventbus.domain.filters import hierarchy, where
from eventbus.domain.models import Priorities, Priority, ScopeStatus

from game_events import ALICE, BOB, GameEvent, PlayerJoin, ProcessTransaction


def _join() -> PlayerJoin:
    return PlayerJoin(player=ALICE)


def _config(entries) -> list[tuple]:
    return [(e.event_type, e.listener, e.priority, e.event_filter) for e in entries]


# ---------------------------------------------------------------------------
# Tree and paths
# ---------------------------------------------------------------------------


def test_path_joins_names_from_root(bus):
    game = bus.branch("game")
    lobby = game.branch("lobby")
    chat = lobby.create_child("chat")

    assert game.path == "game"
    assert chat.path == "game/lobby/chat"
    assert chat.parent is lobby
    assert game.parent is None
    assert bus.find_scope("game/lobby/chat") is chat
    assert bus.find_scope("game/missing") is None


def test_generated_branch_names(bus):
    scope = bus.branch()
    child = scope.branch()
    assert scope.name.startswith("branch-")
    assert len(scope.name) == len("branch-") + 8
    assert child.name != scope.name


def test_child_lookup_and_counts(bus):
    root = bus.branch("root")
    child = root.branch("child")
    root.subscribe(PlayerJoin, print)
    child.subscribe(PlayerJoin, print)
    child.subscribe(ProcessTransaction, print)

    assert root.child("child") is child
    assert root.child("nope") is None
    assert root.children == [child]
    assert root.subscription_count == 1
    assert root.total_subscription_count == 3


# ---------------------------------------------------------------------------
# Detach / reattach
# ---------------------------------------------------------------------------


def test_detach_stops_delivery_and_reattach_restores_it(bus):
    received: list = []
    scope = bus.branch("players")
    scope.subscribe(PlayerJoin, received.append)

    bus.publish(_join())
    scope.detach()
    bus.publish(PlayerJoin(player=BOB))
    scope.reattach()
    bus.publish(_join())

    assert [e.player.name for e in received] == ["Alice", "Alice"]
    assert scope.status is ScopeStatus.ATTACHED


def test_detach_reattach_round_trip_preserves_configuration_and_order(bus):
    calls: list[str] = []
    outside_first = bus.subscribe(PlayerJoin, lambda e: calls.append("outside-1"))
    scope = bus.branch("scoped")
    scope.subscribe(PlayerJoin, lambda e: calls.append("scoped-normal"))
    scope.subscribe(
        GameEvent,
        lambda e: calls.append("scoped-high"),
        Priorities.HIGH,
        hierarchy() & where(lambda e: True),
    )
    bus.subscribe(PlayerJoin, lambda e: calls.append("outside-2"))

    before_entries = bus.subscriptions
    before_config = _config(before_entries)
    bus.publish(_join())
    before_calls = list(calls)

    scope.detach()
    assert bus.subscription_count == 2
    scope.reattach()

    calls.clear()
    bus.publish(_join())

    assert _config(bus.subscriptions) == before_config
    assert calls == before_calls
    assert bus.subscriptions[1] is outside_first


def test_detach_is_idempotent(bus, recorder):
    scope = bus.branch()
    scope.subscribe(PlayerJoin, print)
    scope.detach()
    count = len(recorder.events)
    scope.detach()

    assert len(recorder.events) == count
    assert bus.subscription_count == 0


def test_reattach_when_attached_is_noop(bus):
    scope = bus.branch()
    scope.subscribe(PlayerJoin, print)
    scope.reattach()
    assert bus.subscription_count == 1


def test_detach_parent_detaches_all_descendants(bus):
    received: list[str] = []
    root = bus.branch("root")
    child = root.branch("child")
    grandchild = child.branch("grandchild")
    root.subscribe(PlayerJoin, lambda e: received.append("root"))
    child.subscribe(PlayerJoin, lambda e: received.append("child"))
    grandchild.subscribe(PlayerJoin, lambda e: received.append("grandchild"))

    root.detach()
    bus.publish(_join())

    assert received == []
    assert child.is_detached and grandchild.is_detached
    assert bus.subscription_count == 0


def test_detach_child_leaves_parent_attached(bus):
    received: list[str] = []
    root = bus.branch("root")
    child = root.branch("child")
    root.subscribe(PlayerJoin, lambda e: received.append("root"))
    child.subscribe(PlayerJoin, lambda e: received.append("child"))

    child.detach()
    bus.publish(_join())

    assert received == ["root"]
    assert not root.is_detached


def test_reattach_does_not_recurse_into_children(bus):
    received: list[str] = []
    root = bus.branch("root")
    child = root.branch("child")
    root.subscribe(PlayerJoin, lambda e: received.append("root"))
    child.subscribe(PlayerJoin, lambda e: received.append("child"))

    root.detach()
    root.reattach()
    bus.publish(_join())
    assert received == ["root"]
    assert child.is_detached

    child.reattach()
    bus.publish(_join())
    assert received == ["root", "root", "child"]


def test_detach_leaves_identical_outside_subscription(bus):
    received: list = []
    scope = bus.branch()
    scope.subscribe(PlayerJoin, received.append)
    bus.subscribe(PlayerJoin, received.append)

    scope.detach()
    bus.publish(_join())

    assert len(received) == 1


def test_subscribe_through_detached_scope_waits_for_reattach(bus):
    received: list = []
    scope = bus.branch()
    scope.detach()
    entry = scope.subscribe(PlayerJoin, received.append, Priority.of(7))

    bus.publish(_join())
    assert received == []
    assert entry in scope.subscriptions

    scope.reattach()
    bus.publish(_join())
    assert len(received) == 1


def test_child_of_detached_scope_starts_detached(bus):
    received: list = []
    root = bus.branch()
    root.detach()
    child = root.branch()
    child.subscribe(PlayerJoin, received.append)

    bus.publish(_join())
    assert received == []
    assert child.is_detached


def test_scope_publish_goes_through_bus(bus):
    received: list = []
    bus.subscribe(PlayerJoin, received.append)
    scope = bus.branch()
    event = _join()

    assert scope.publish(event) is event
    assert received == [event]


# ---------------------------------------------------------------------------
# Unsubscribe / cancel interplay
# ---------------------------------------------------------------------------


def test_unsubscribe_forgets_scoped_entry(bus):
    received: list = []
    scope = bus.branch()
    scope.subscribe(PlayerJoin, received.append)

    assert bus.unsubscribe(PlayerJoin, received.append) == 1
    assert scope.subscription_count == 0

    scope.detach()
    scope.reattach()
    bus.publish(_join())
    assert received == []


def test_cancel_scoped_subscription_while_detached(bus):
    received: list = []
    scope = bus.branch()
    entry = scope.subscribe(PlayerJoin, received.append)
    scope.detach()

    assert bus.cancel(entry) is True
    scope.reattach()
    bus.publish(_join())
    assert received == []


@pytest.mark.parametrize("release", ["unsubscribe", "cancel"])
def test_release_is_atomic_against_concurrent_toggle(bus, monkeypatch, release):
    received: list = []
    scope = bus.branch("s")
    entry = scope.subscribe(PlayerJoin, received.append)
    forget = scope._forget
    togglers: list[threading.Thread] = []

    def toggle():
        scope.detach()
        scope.reattach()

    def forget_while_toggling(target):
        # another thread detaches and reattaches between removal and forget
        if not togglers:
            togglers.append(threading.Thread(target=toggle))
            togglers[0].start()
            togglers[0].join(0.2)
        return forget(target)

    monkeypatch.setattr(scope, "_forget", forget_while_toggling)
    if release == "unsubscribe":
        assert bus.unsubscribe(PlayerJoin, received.append) == 1
    else:
        assert bus.cancel(entry) is True
    togglers[0].join(5)
    assert not togglers[0].is_alive()

    assert scope.subscriptions == ()
    scope.detach()
    bus.publish(_join())
    assert received == []
    assert bus.subscriptions == []


# ---------------------------------------------------------------------------
# Dispose
# ---------------------------------------------------------------------------


def test_dispose_detaches_and_removes_from_tree(bus):
    received: list = []
    root = bus.branch("root")
    child = root.branch("child")
    grandchild = child.branch("grandchild")
    grandchild.subscribe(PlayerJoin, received.append)

    child.dispose()
    bus.publish(_join())

    assert received == []
    assert child.is_disposed and grandchild.is_disposed
    assert root.children == []
    assert bus.find_scope("root/child") is None


def test_disposed_scope_rejects_use(bus):
    scope = bus.branch("gone")
    scope.dispose()
    scope.dispose()

    assert scope not in bus.scopes
    with pytest.raises(ScopeDisposed):
        scope.branch()
    with pytest.raises(ScopeDisposed):
        scope.subscribe(PlayerJoin, print)
    with pytest.raises(ScopeDisposed):
        scope.reattach()


def test_reattach_after_bus_closed_fails(bus):
    scope = bus.branch()
    scope.subscribe(PlayerJoin, print)
    scope.detach()
    bus.close()

    with pytest.raises(BusClosed):
        scope.reattach()
    assert scope.is_detached


def test_child_branch_after_bus_closed_fails(bus):
    root = bus.branch("root")
    bus.close()

    with pytest.raises(BusClosed):
        root.branch("late")
    assert root.children == []
