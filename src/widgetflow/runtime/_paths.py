"""Dotted-path access into nested dict/list trees.

Both helpers are scope-relative: callers pass one scope's map (or an
expression context mapping) as *root*, never the whole runtime state.
"""

from __future__ import annotations

from collections.abc import Mapping, MutableMapping
from typing import Any


class PathError(ValueError):
    """A path segment cannot address the list it lands on."""


def get_path(root: Any, path: str) -> Any:
    """Return the value at *path*, or ``None`` as soon as a segment is missing.

    Lists are traversed by integer segments (``items.0.price``).  Never raises.
    """
    current = root
    for part in path.split("."):
        if isinstance(current, Mapping):
            if part not in current:
                return None
            current = current[part]
        elif isinstance(current, list) and _is_index(part):
            idx = int(part)
            if idx >= len(current):
                return None
            current = current[idx]
        else:
            return None
    return current


def set_path(root: MutableMapping[str, Any], path: str, value: Any) -> None:
    """Assign *value* at *path*, creating intermediate dicts as needed.

    Scalar or missing intermediates are overwritten with ``{}``.  Lists
    are kept: an integer segment past the end pads the list with ``None``,
    any other segment raises ``PathError``.  Mutates *root* in place.
    """
    parts = path.split(".")
    current: Any = root
    for part in parts[:-1]:
        child = _child(current, part)
        if not isinstance(child, (MutableMapping, list)):
            child = {}
            _assign(current, part, child)
        current = child
    _assign(current, parts[-1], value)


def _child(container: Any, segment: str) -> Any:
    if isinstance(container, list):
        idx = _index(segment)
        return container[idx] if idx < len(container) else None
    return container.get(segment)


def _assign(container: Any, segment: str, value: Any) -> None:
    if isinstance(container, list):
        idx = _index(segment)
        if idx >= len(container):
            container.extend([None] * (idx + 1 - len(container)))
        container[idx] = value
    else:
        container[segment] = value


def _index(segment: str) -> int:
    if not _is_index(segment):
        raise PathError(f"List index must be a non-negative integer, got {segment!r}")
    return int(segment)


def _is_index(segment: str) -> bool:
    return segment.isascii() and segment.isdigit()
