"""Response shaping for JSON API payloads.

Values reaching these helpers come from ``json.loads`` and are therefore
acyclic; recursion has no depth limit.
"""

from __future__ import annotations

from typing import Any, Mapping


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


def prune_empty_fields(value: Any) -> Any:
    """Drop mapping fields whose value is None or an empty string.

    Recurses through nested mappings and lists. List order and list items
    themselves are kept; only mapping fields are removed.

    Examples:
        >>> prune_empty_fields({"a": 1, "b": "", "c": None, "d": {"e": "", "f": 2}})
        {'a': 1, 'd': {'f': 2}}
        >>> prune_empty_fields([{"x": None}, 0, ""])
        [{}, 0, '']
    """

    if isinstance(value, Mapping):
        return {
            key: prune_empty_fields(item)
            for key, item in value.items()
            if not _is_empty(item)
        }
    if isinstance(value, list):
        return [prune_empty_fields(item) for item in value]
    return value


def shape_payload(
    value: Any,
    *,
    minify: bool = True,
    remove_empty_fields: bool = True,
) -> Any:
    """Apply the configured shaping to a decoded JSON payload."""

    if not (minify and remove_empty_fields):
        return value
    return prune_empty_fields(value)
