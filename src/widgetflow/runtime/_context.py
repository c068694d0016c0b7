"""Expression context and state helpers.

The context is a read view: ``app`` and ``screen`` are the runtime
state's own maps, so writes made by the engine are visible to every
later evaluation in the same dispatch.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from widgetflow.model.state import RuntimeState

from ._paths import set_path


@dataclass(frozen=True)
class ExpressionContext:
    """What bindings and formulas can see.

    *extras* holds names added for the duration of a sub-dispatch
    (``response`` and ``error`` inside api_call callbacks, ``payload``
    inside an emitted event).
    """

    app: dict[str, Any]
    screen: dict[str, Any]
    params: dict[str, Any] | None = None
    local: dict[str, Any] | None = None
    instance_id: str | None = None
    extras: Mapping[str, Any] = field(default_factory=dict)

    def as_mapping(self) -> dict[str, Any]:
        scope: dict[str, Any] = {"app": self.app, "screen": self.screen}
        if self.params is not None:
            scope["params"] = self.params
        if self.local is not None:
            scope["local"] = self.local
        scope.update(self.extras)
        return scope

    def with_extras(self, **extras: Any) -> ExpressionContext:
        return replace(self, extras={**self.extras, **extras})


def create_context(
    state: RuntimeState,
    params: dict[str, Any] | None = None,
    local: dict[str, Any] | None = None,
    instance_id: str | None = None,
) -> ExpressionContext:
    """Build a context over *state*.

    With *instance_id* and no explicit *local*, ``local`` is the instance's
    own map in ``state.widgets``.
    """
    if local is None and instance_id is not None:
        local = state.widget_local(instance_id)
    return ExpressionContext(
        app=state.app,
        screen=state.screen,
        params=params,
        local=local,
        instance_id=instance_id,
    )


def merge_state(state: RuntimeState, changes: Mapping[str, Any]) -> RuntimeState:
    """Apply ``{"scope.path": value}`` changes onto *state* in place.

    Only ``app`` and ``screen`` are addressable; other scopes are skipped.
    A non-integer segment landing on a list raises ``PathError``.
    Returns *state* for chaining.
    """
    for target, value in changes.items():
        scope, _, path = target.partition(".")
        if scope == "app":
            root = state.app
        elif scope == "screen":
            root = state.screen
        else:
            continue
        if path:
            set_path(root, path, value)
    return state
