"""Widget nodes as seen by the layout engine.

Only geometry and container layout properties are modelled; visual
props of leaf widgets pass through untouched in ``props``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import Field, model_validator

from .actions import WireModel


class Position(WireModel):
    x: float = 0
    y: float = 0


class Size(WireModel):
    width: float = 0
    height: float = 0


class Direction(str, Enum):
    ROW = "row"
    COLUMN = "column"


class LayoutMode(str, Enum):
    FLEX = "flex"
    ABSOLUTE = "absolute"


class JustifyContent(str, Enum):
    FLEX_START = "flex-start"
    CENTER = "center"
    FLEX_END = "flex-end"
    SPACE_BETWEEN = "space-between"
    SPACE_AROUND = "space-around"


class AlignItems(str, Enum):
    FLEX_START = "flex-start"
    CENTER = "center"
    FLEX_END = "flex-end"
    STRETCH = "stretch"


class Padding(WireModel):
    """Per-side padding.  A bare number on input applies to all four sides."""

    top: float = 0
    right: float = 0
    bottom: float = 0
    left: float = 0

    @model_validator(mode="before")
    @classmethod
    def _from_number(cls, data: Any) -> Any:
        if isinstance(data, (int, float)) and not isinstance(data, bool):
            return {"top": data, "right": data, "bottom": data, "left": data}
        return data


class ContainerProps(WireModel):
    children: list[str] = []
    direction: Direction = Direction.ROW
    layout: LayoutMode = LayoutMode.FLEX
    justify_content: JustifyContent = JustifyContent.FLEX_START
    align_items: AlignItems = AlignItems.FLEX_START
    gap: float = 0
    padding: Padding = Field(default_factory=Padding)
    wrap: bool = False


class Widget(WireModel):
    """A node of the widget forest.

    Containers (``type == "container"``) carry ``ContainerProps``; every
    other widget keeps its props as a free-form mapping.
    """

    id: str
    type: str
    position: Position = Field(default_factory=Position)
    size: Size = Field(default_factory=Size)
    z_index: int = 0
    parent_id: str | None = None
    props: dict[str, Any] | ContainerProps = Field(default_factory=dict, union_mode="left_to_right")

    @model_validator(mode="after")
    def _container_props(self):
        if self.type == "container" and not isinstance(self.props, ContainerProps):
            self.props = ContainerProps.model_validate(self.props)
        return self

    @property
    def is_container(self) -> bool:
        return isinstance(self.props, ContainerProps)
