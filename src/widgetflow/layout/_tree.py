"""In-memory widget forest that keeps flex containers laid out.

Parent links live on both sides: a child's ``parent_id`` and the
container's ``props.children`` list.  Every mutation keeps the two in
agreement and then reflows the affected subtree from its root down.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from typing import Any

from widgetflow.model.widgets import ContainerProps, Widget

from ._reflow import order_children, reflow

logger = logging.getLogger(__name__)


class WidgetTreeError(Exception):
    """Invalid structural change (unknown id, non-container parent, cycle)."""


class WidgetTree:
    def __init__(self, widgets: Iterable[Widget] = ()) -> None:
        self._widgets: dict[str, Widget] = {}
        for widget in widgets:
            self._widgets[widget.id] = widget

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------

    def get(self, widget_id: str) -> Widget:
        try:
            return self._widgets[widget_id]
        except KeyError:
            raise WidgetTreeError(f"Unknown widget '{widget_id}'") from None

    def __contains__(self, widget_id: object) -> bool:
        return widget_id in self._widgets

    def __iter__(self) -> Iterator[Widget]:
        return iter(self._widgets.values())

    def __len__(self) -> int:
        return len(self._widgets)

    def children_of(self, container_id: str) -> list[Widget]:
        """Attached children in container order."""
        container = self.get(container_id)
        attached = [w for w in self._widgets.values() if w.parent_id == container_id]
        order = container.props.children if isinstance(container.props, ContainerProps) else []
        return order_children(attached, order)

    def roots(self) -> list[Widget]:
        return [w for w in self._widgets.values() if w.parent_id not in self._widgets]

    def _container(self, widget_id: str) -> Widget:
        widget = self.get(widget_id)
        if not isinstance(widget.props, ContainerProps):
            raise WidgetTreeError(f"Widget '{widget_id}' is not a container")
        return widget

    # -----------------------------------------------------------------------
    # Mutations
    # -----------------------------------------------------------------------

    def add(self, widget: Widget, parent_id: str | None = None, index: int | None = None) -> None:
        """Insert *widget*, attaching it to *parent_id* (or its own ``parent_id``)."""
        if widget.id in self._widgets:
            raise WidgetTreeError(f"Duplicate widget id '{widget.id}'")
        target = parent_id if parent_id is not None else widget.parent_id
        if target is not None:
            self._container(target)
        widget.parent_id = None
        self._widgets[widget.id] = widget
        if target is not None:
            self.attach(widget.id, target, index)
        elif widget.is_container:
            self._settle(widget.id)

    def attach(self, child_id: str, parent_id: str, index: int | None = None) -> None:
        """Move *child_id* under container *parent_id* at *index* (default: last)."""
        child = self.get(child_id)
        parent = self._container(parent_id)
        if child_id == parent_id or child_id in self._ancestors(parent_id):
            raise WidgetTreeError(f"Attaching '{child_id}' under '{parent_id}' would create a cycle")

        if child.parent_id is not None:
            self.detach(child_id)

        ids = [cid for cid in parent.props.children if cid != child_id]
        ids.insert(len(ids) if index is None else index, child_id)
        parent.props.children = ids
        child.parent_id = parent_id
        logger.debug("Attached %s to %s at %s", child_id, parent_id, ids.index(child_id))
        self._settle(parent_id)

    def detach(self, child_id: str) -> None:
        """Make *child_id* a root, reflowing the container it left."""
        child = self.get(child_id)
        parent_id = child.parent_id
        child.parent_id = None
        if parent_id is None or parent_id not in self._widgets:
            return
        parent = self._widgets[parent_id]
        if isinstance(parent.props, ContainerProps):
            parent.props.children = [cid for cid in parent.props.children if cid != child_id]
        self._settle(parent_id)

    def remove(self, widget_id: str) -> list[Widget]:
        """Delete *widget_id* and its descendants; returns the removed widgets."""
        widget = self.get(widget_id)
        if widget.parent_id is not None:
            self.detach(widget_id)
        removed = []
        stack = [widget_id]
        while stack:
            current = stack.pop()
            stack.extend(w.id for w in self._widgets.values() if w.parent_id == current)
            removed.append(self._widgets.pop(current))
        return removed

    def update_size(self, widget_id: str, width: float | None = None, height: float | None = None) -> None:
        widget = self.get(widget_id)
        if width is not None:
            widget.size.width = width
        if height is not None:
            widget.size.height = height
        self._settle(widget_id)

    def update_props(self, widget_id: str, **changes: Any) -> None:
        """Replace props fields (snake_case names) and reflow."""
        widget = self.get(widget_id)
        if isinstance(widget.props, ContainerProps):
            if "children" in changes:
                raise WidgetTreeError("Container children change through attach/detach, not update_props")
            merged = {**widget.props.model_dump(), **changes}
            widget.props = ContainerProps.model_validate(merged)
        else:
            widget.props = {**widget.props, **changes}
        self._settle(widget_id)

    # -----------------------------------------------------------------------
    # Reflow
    # -----------------------------------------------------------------------

    def reflow_all(self) -> None:
        """Lay out every container (used after loading a whole widget set)."""
        for root in self.roots():
            self._reflow_down(root.id)

    def _settle(self, widget_id: str) -> None:
        """Reflow the whole tree containing *widget_id*, parents before children."""
        ancestors = self._ancestors(widget_id)
        top = ancestors[-1] if ancestors else widget_id
        self._reflow_down(top)

    def _reflow_down(self, widget_id: str) -> None:
        widget = self._widgets[widget_id]
        if not isinstance(widget.props, ContainerProps):
            return
        children = self.children_of(widget_id)
        reflow(widget, children)
        for child in children:
            self._reflow_down(child.id)

    def _ancestors(self, widget_id: str) -> list[str]:
        """Ancestor ids from nearest parent to root."""
        chain: list[str] = []
        current = self._widgets[widget_id].parent_id
        while current is not None and current in self._widgets and current not in chain:
            chain.append(current)
            current = self._widgets[current].parent_id
        return chain
