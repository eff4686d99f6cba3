"""FastAPI inspection app: view subscriptions and toggle scopes of a running bus."""

from __future__ import annotations

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from eventbus.domain.bus import EventBus
from eventbus.domain.scope import EventScope


class SubscriptionView(BaseModel):
    event_type: str
    listener: str
    priority: str
    weight: int
    sequence: int
    filter: str
    scope: str | None = None


class ScopeView(BaseModel):
    name: str
    path: str
    status: str
    subscription_count: int
    children: list[ScopeView] = []


ScopeView.model_rebuild()


class HealthView(BaseModel):
    status: str
    subscriptions: int
    scopes: int


def create_app(bus: EventBus) -> FastAPI:
    """Build the inspection app for *bus*. No endpoint publishes events."""

    app = FastAPI(title="Event Bus Inspector")

    def _scope_or_404(path: str) -> EventScope:
        scope = bus.find_scope(path)
        if scope is None:
            raise HTTPException(status_code=404, detail="Scope not found")
        return scope

    # ── Routes ────────────────────────────────────────────────────────

    @app.get("/health", response_model=HealthView)
    def health() -> HealthView:
        return HealthView(
            status=bus.state.value,
            subscriptions=bus.subscription_count,
            scopes=len(bus.scopes),
        )

    @app.get("/subscriptions", response_model=list[SubscriptionView])
    def list_subscriptions() -> list[SubscriptionView]:
        """Return live subscriptions in delivery order."""
        return [
            SubscriptionView(
                event_type=entry.event_type.__qualname__,
                listener=entry.listener_name,
                priority=entry.priority.name,
                weight=entry.priority.weight,
                sequence=entry.sequence,
                filter=repr(entry.event_filter),
                scope=entry.scope.path if entry.scope is not None else None,
            )
            for entry in bus.subscriptions
        ]

    @app.get("/scopes", response_model=list[ScopeView])
    def list_scopes() -> list[ScopeView]:
        return [ScopeView.model_validate(scope.describe()) for scope in bus.scopes]

    @app.get("/scopes/{path:path}", response_model=ScopeView)
    def get_scope(path: str) -> ScopeView:
        return ScopeView.model_validate(_scope_or_404(path).describe())

    @app.post("/scopes/{path:path}/detach", response_model=ScopeView)
    def detach_scope(path: str) -> ScopeView:
        """Detach a scope and all of its descendants."""
        scope = _scope_or_404(path)
        scope.detach()
        return ScopeView.model_validate(scope.describe())

    @app.post("/scopes/{path:path}/reattach", response_model=ScopeView)
    def reattach_scope(path: str) -> ScopeView:
        """Reattach a scope (children are left as they are)."""
        scope = _scope_or_404(path)
        if bus.is_closed:
            raise HTTPException(status_code=409, detail="Event bus is closed")
        scope.reattach()
        return ScopeView.model_validate(scope.describe())

    return app
