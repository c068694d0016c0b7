"""Declarative data model: actions, events, state and widgets."""
