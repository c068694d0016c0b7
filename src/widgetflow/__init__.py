"""widgetflow: runtime core for a visual widget builder.

Subpackages:

- ``widgetflow.model``: pydantic models for actions, events, state and widgets
- ``widgetflow.runtime``: path resolution, expressions, actions and events
- ``widgetflow.layout``: flex reflow of container children
"""

__version__ = "0.1.0"
