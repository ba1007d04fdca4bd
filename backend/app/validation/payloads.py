"""Helpers for walking parsed JSON payloads."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

ARRAY_MARKER = "[]"


def format_path(parts: Iterable[str | int]) -> str:
    """Render a JSON location as a dotted path; array indices collapse to `[]`."""

    rendered = ""
    for part in parts:
        if isinstance(part, int):
            rendered += ARRAY_MARKER
        elif rendered:
            rendered += f".{part}"
        else:
            rendered = str(part)
    return rendered


def count_null_values(value: Any) -> int:
    """Recursively count JSON nulls in a parsed payload."""

    if value is None:
        return 1
    if isinstance(value, list):
        return sum(count_null_values(item) for item in value)
    if isinstance(value, dict):
        return sum(count_null_values(item) for item in value.values())
    return 0


def flatten_leaf_values(value: Any, prefix: str = "") -> dict[str, Any]:
    """Map every leaf location of a payload to its value.

    Object keys are joined with dots and list positions keep their index
    (`parties[1].name`) so that values from different payloads line up.
    Empty objects and lists are leaves themselves.
    """

    if isinstance(value, dict) and value:
        leaves: dict[str, Any] = {}
        for key, item in value.items():
            child = f"{prefix}.{key}" if prefix else str(key)
            leaves.update(flatten_leaf_values(item, child))
        return leaves
    if isinstance(value, list) and value:
        leaves = {}
        for index, item in enumerate(value):
            leaves.update(flatten_leaf_values(item, f"{prefix}[{index}]"))
        return leaves
    return {prefix: value}
