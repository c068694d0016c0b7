"""Event definitions: a trigger, guard conditions and an ordered action list."""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import ValidationError

from .actions import Action, WireModel


class EventTrigger(str, Enum):
    ON_CLICK = "on_click"
    ON_LONGPRESS = "on_longpress"
    ON_CHANGE = "on_change"
    ON_LOAD = "on_load"
    ON_INIT = "on_init"
    ON_API_SUCCESS = "on_api_success"
    ON_API_ERROR = "on_api_error"
    CUSTOM_EVENT = "custom_event"


class TriggerSpec(WireModel):
    """When an event fires.

    *name* identifies a ``custom_event``; *element_id* narrows a UI
    trigger to one widget.
    """

    on: EventTrigger
    name: str | None = None
    element_id: str | None = None


class EventDefinition(WireModel):
    """Trigger + guard conditions (AND) + actions run in order."""

    id: str
    trigger: TriggerSpec
    conditions: list[str] | None = None
    actions: list[Action] = []
    enabled: bool | None = None


class EventLogEntry(WireModel):
    id: str
    event_id: str
    trigger: str
    timestamp: float
    result: Literal["success", "error", "cancelled"]
    error: str | None = None


def parse_event(data: Any) -> EventDefinition:
    return EventDefinition.model_validate(data)


def validate_event(data: Any) -> bool:
    try:
        parse_event(data)
    except ValidationError:
        return False
    return True
