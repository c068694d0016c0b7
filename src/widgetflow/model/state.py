"""State declarations and the live three-scope runtime state."""

from __future__ import annotations

import copy
from enum import Enum
from typing import Any

from pydantic import BaseModel

from .actions import WireModel


class VariableScope(str, Enum):
    LOCAL = "local"
    PARAMS = "params"
    SCREEN = "screen"
    APP = "app"


class VariableType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"


class StateVariable(WireModel):
    """Declares a state slot and its default.

    Distinct from the slot's live value, which lives in ``RuntimeState``.
    """

    id: str
    key: str
    type: VariableType
    value: Any = None
    scope: VariableScope
    description: str | None = None


class RuntimeState(BaseModel):
    """Live values: ``app`` and ``screen`` maps plus one map per widget instance.

    Mutated in place by the action engine.  Scope keys are flat strings;
    values are plain trees of dicts, lists and scalars.
    """

    app: dict[str, Any] = {}
    screen: dict[str, Any] = {}
    widgets: dict[str, dict[str, Any]] = {}

    @classmethod
    def from_variables(
        cls,
        app: list[StateVariable] | None = None,
        screen: list[StateVariable] | None = None,
    ) -> RuntimeState:
        """Seed a fresh state from declared variables (screen load)."""
        state = cls()
        for var in app or []:
            state.app[var.key] = copy.deepcopy(var.value)
        for var in screen or []:
            state.screen[var.key] = copy.deepcopy(var.value)
        return state

    def widget_local(self, instance_id: str) -> dict[str, Any]:
        """Return the local map of a widget instance, creating it if absent."""
        return self.widgets.setdefault(instance_id, {})

    def reset_screen(self) -> None:
        """Discard screen-scoped and widget-local values (screen unload)."""
        self.screen.clear()
        self.widgets.clear()
