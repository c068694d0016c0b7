"""Flex reflow: positions a container's children along a main and cross axis.

Positions are relative to the container's top-left corner.  The function
is a pure projection of (container, children) onto the children's
``position`` and, for ``stretch``, their cross-axis ``size``.
"""

from __future__ import annotations

import math
from collections.abc import Sequence

from widgetflow.model.widgets import (
    AlignItems,
    ContainerProps,
    Direction,
    JustifyContent,
    LayoutMode,
    Widget,
)


def reflow(container: Widget, children: Sequence[Widget]) -> None:
    """Lay out *children* inside *container*, mutating them in place.

    Containers whose layout is not ``flex`` are left alone.  Children are
    walked in the order of ``container.props.children``; any child missing
    from that list goes last, keeping its relative order.
    """
    props = container.props
    if not isinstance(props, ContainerProps) or props.layout != LayoutMode.FLEX:
        return
    if not children:
        return

    row = props.direction == Direction.ROW
    pad = props.padding
    if row:
        main_size, cross_size = container.size.width, container.size.height
        main_start, main_end = pad.left, pad.right
        cross_start, cross_end = pad.top, pad.bottom
    else:
        main_size, cross_size = container.size.height, container.size.width
        main_start, main_end = pad.top, pad.bottom
        cross_start, cross_end = pad.left, pad.right

    ordered = order_children(children, props.children)
    n = len(ordered)
    gap = props.gap

    available_main = main_size - main_start - main_end
    available_cross = cross_size - cross_start - cross_end
    used_main = sum(_main(child, row) for child in ordered) + (n - 1) * gap
    free = max(0.0, available_main - used_main)

    offset, spacing = _justify(props.justify_content, main_start, gap, free, n)

    cursor = offset
    for child in ordered:
        child_main = _main(child, row)

        if props.align_items == AlignItems.STRETCH:
            _set_cross(child, row, _round(max(0.0, available_cross)))
        child_cross = _cross(child, row)

        if props.align_items == AlignItems.CENTER:
            cross_pos = cross_start + (available_cross - child_cross) / 2
        elif props.align_items == AlignItems.FLEX_END:
            cross_pos = cross_size - cross_end - child_cross
        else:
            cross_pos = cross_start

        main_pos = _clamp(cursor, main_start, main_size - main_end - child_main)
        cross_pos = _clamp(cross_pos, cross_start, cross_size - cross_end - child_cross)

        if row:
            child.position.x, child.position.y = _round(main_pos), _round(cross_pos)
        else:
            child.position.x, child.position.y = _round(cross_pos), _round(main_pos)

        cursor += child_main + spacing


def order_children(children: Sequence[Widget], order: Sequence[str]) -> list[Widget]:
    rank = {child_id: i for i, child_id in enumerate(order)}
    return sorted(children, key=lambda w: rank.get(w.id, len(rank)))


def _justify(
    justify: JustifyContent, start: float, gap: float, free: float, n: int,
) -> tuple[float, float]:
    """Starting offset and spacing between consecutive children."""
    if justify == JustifyContent.CENTER:
        return start + free / 2, gap
    if justify == JustifyContent.FLEX_END:
        return start + free, gap
    if justify == JustifyContent.SPACE_BETWEEN:
        if n > 1:
            return start, gap + free / (n - 1)
        # A lone child is centred.
        return start + free / 2, gap
    if justify == JustifyContent.SPACE_AROUND:
        share = free / n
        return start + share / 2, gap + share
    return start, gap


def _main(widget: Widget, row: bool) -> float:
    return widget.size.width if row else widget.size.height


def _cross(widget: Widget, row: bool) -> float:
    return widget.size.height if row else widget.size.width


def _set_cross(widget: Widget, row: bool, value: float) -> None:
    if row:
        widget.size.height = value
    else:
        widget.size.width = value


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(value, high))


def _round(value: float) -> int:
    # Half rounds up, also for negatives (-2.5 -> -2).
    return math.floor(value + 0.5)
