"""widgetflow layout: flex reflow of container children.

Entry point::

    from widgetflow.layout import WidgetTree

    tree = WidgetTree(widgets)
    tree.reflow_all()
    tree.update_size("toolbar", width=480)
"""

from ._reflow import order_children, reflow
from ._tree import WidgetTree, WidgetTreeError

__all__ = ["WidgetTree", "WidgetTreeError", "order_children", "reflow"]
