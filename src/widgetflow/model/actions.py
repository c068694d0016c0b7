"""Action nodes: the user-authored steps an event runs.

Every action is a tagged variant discriminated by ``type`` and carries a
``params`` record specific to that variant.  Field names are snake_case
in Python and camelCase on the wire (``ifTrue``, ``onSuccess``, ...).
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for models that serialize with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ActionMeta(WireModel):
    name: str | None = None
    description: str | None = None
    enabled: bool | None = None


# ---------------------------------------------------------------------------
# Params
# ---------------------------------------------------------------------------

class NavigationKind(str, Enum):
    NAVIGATE_TO = "navigate_to"
    NAVIGATE_BACK = "navigate_back"
    OPEN_MODAL = "open_modal"


class NavigationParams(WireModel):
    action: NavigationKind
    target: str | None = None
    modal_id: str | None = None


class StateOperation(str, Enum):
    SET = "set"
    INCREMENT = "increment"
    DECREMENT = "decrement"
    PUSH = "push"
    REMOVE_BY_INDEX = "remove_by_index"
    UPDATE_BY_PATH = "update_by_path"


class StateUpdateParams(WireModel):
    """Mutation of one state slot.

    *target* is ``scope.path`` where scope is ``app``, ``screen`` or
    ``local``.  ``set`` prefers *expression* over *value* when both are
    present.
    """

    target: str
    operation: StateOperation
    value: Any = None
    by: int | float | None = None
    expression: str | None = None


class RecalculateParams(WireModel):
    target: str
    formula: str


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"


class ApiCallParams(WireModel):
    method: HttpMethod
    url: str
    headers: dict[str, str] | None = None
    body: Any = None
    on_success: list[Action] | None = None
    on_error: list[Action] | None = None
    map_response: str | None = None


class EmitEventParams(WireModel):
    name: str
    payload: Any = None


class ConditionParams(WireModel):
    condition: str
    if_true: list[Action]
    if_false: list[Action] | None = None


class ToastKind(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class ToastParams(WireModel):
    message: str
    type: ToastKind | None = None
    duration: int | None = None


class WidgetControlParams(WireModel):
    widget_instance_id: str


class EmptyParams(WireModel):
    pass


class BatchParams(WireModel):
    actions: list[Action]
    atomic: bool | None = None


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------

class NavigationAction(WireModel):
    id: str
    type: Literal["navigation"] = "navigation"
    params: NavigationParams
    meta: ActionMeta | None = None


class StateUpdateAction(WireModel):
    id: str
    type: Literal["state_update"] = "state_update"
    params: StateUpdateParams
    meta: ActionMeta | None = None


class RecalculateAction(WireModel):
    id: str
    type: Literal["recalculate"] = "recalculate"
    params: RecalculateParams
    meta: ActionMeta | None = None


class ApiCallAction(WireModel):
    id: str
    type: Literal["api_call"] = "api_call"
    params: ApiCallParams
    meta: ActionMeta | None = None


class EmitEventAction(WireModel):
    id: str
    type: Literal["emit_event"] = "emit_event"
    params: EmitEventParams
    meta: ActionMeta | None = None


class ConditionAction(WireModel):
    id: str
    type: Literal["condition"] = "condition"
    params: ConditionParams
    meta: ActionMeta | None = None


class ToastAction(WireModel):
    id: str
    type: Literal["toast"] = "toast"
    params: ToastParams
    meta: ActionMeta | None = None


class OpenWidgetAction(WireModel):
    id: str
    type: Literal["open_widget"] = "open_widget"
    params: WidgetControlParams
    meta: ActionMeta | None = None


class CloseWidgetAction(WireModel):
    id: str
    type: Literal["close_widget"] = "close_widget"
    params: WidgetControlParams
    meta: ActionMeta | None = None


class StopPropagationAction(WireModel):
    id: str
    type: Literal["stop_propagation"] = "stop_propagation"
    params: EmptyParams = Field(default_factory=EmptyParams)
    meta: ActionMeta | None = None


class BatchAction(WireModel):
    id: str
    type: Literal["batch"] = "batch"
    params: BatchParams
    meta: ActionMeta | None = None


Action = Annotated[
    Union[
        NavigationAction,
        StateUpdateAction,
        RecalculateAction,
        ApiCallAction,
        EmitEventAction,
        ConditionAction,
        ToastAction,
        OpenWidgetAction,
        CloseWidgetAction,
        StopPropagationAction,
        BatchAction,
    ],
    Field(discriminator="type"),
]

ACTION_TYPES = frozenset({
    "navigation",
    "state_update",
    "recalculate",
    "api_call",
    "emit_event",
    "condition",
    "toast",
    "open_widget",
    "close_widget",
    "stop_propagation",
    "batch",
})

# Rebuild models with recursive Action references.
ApiCallParams.model_rebuild()
ConditionParams.model_rebuild()
BatchParams.model_rebuild()
ApiCallAction.model_rebuild()
ConditionAction.model_rebuild()
BatchAction.model_rebuild()

_ACTION_ADAPTER: TypeAdapter[Action] = TypeAdapter(Action)


def parse_action(data: Any) -> Action:
    """Validate a JSON-shaped mapping into an ``Action``.

    Raises ``pydantic.ValidationError`` on malformed input.
    """
    return _ACTION_ADAPTER.validate_python(data)


def validate_action(data: Any) -> bool:
    try:
        parse_action(data)
    except ValidationError:
        return False
    return True
