"""Shared test helpers for the widgetflow test suite."""

import httpx

from widgetflow.config import RuntimeOptions
from widgetflow.model.actions import StateUpdateAction, StateUpdateParams
from widgetflow.model.events import EventDefinition, TriggerSpec
from widgetflow.model.state import RuntimeState
from widgetflow.model.widgets import ContainerProps, Size, Widget
from widgetflow.runtime import ActionEngine, EventDispatcher, create_context


def make_state(app=None, screen=None, widgets=None) -> RuntimeState:
    """Build a RuntimeState.  Assert against ``state.app`` etc., not the inputs."""
    return RuntimeState(app=app or {}, screen=screen or {}, widgets=widgets or {})


def make_ctx(state, **kwargs):
    return create_context(state, **kwargs)


def make_engine(http_client=None, **options) -> ActionEngine:
    return ActionEngine(options=RuntimeOptions(**options), http_client=http_client)


def make_dispatcher(http_client=None, **options) -> EventDispatcher:
    engine = make_engine(http_client=http_client, **options)
    return EventDispatcher(engine)


def set_action(target, value=None, expression=None, id="set"):
    """Shorthand for a ``state_update`` / ``set`` action."""
    return StateUpdateAction(
        id=id,
        params=StateUpdateParams(target=target, operation="set", value=value, expression=expression),
    )


def update_action(target, operation, id="upd", **params):
    return StateUpdateAction(
        id=id,
        params=StateUpdateParams(target=target, operation=operation, **params),
    )


def make_event(event_id, actions, on="on_click", conditions=None, enabled=None, **trigger):
    return EventDefinition(
        id=event_id,
        trigger=TriggerSpec(on=on, **trigger),
        conditions=conditions,
        actions=actions,
        enabled=enabled,
    )


def mock_client(handler) -> httpx.AsyncClient:
    """AsyncClient whose requests are answered by *handler(request)*."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def make_container(cid, width, height, children=(), parent_id=None, **props) -> Widget:
    return Widget(
        id=cid,
        type="container",
        size=Size(width=width, height=height),
        parent_id=parent_id,
        props=ContainerProps(children=list(children), **props),
    )


def make_leaf(wid, width, height, parent_id=None, type="button") -> Widget:
    return Widget(id=wid, type=type, size=Size(width=width, height=height), parent_id=parent_id)
