"""Deep merge used to combine base and per-call request configuration."""

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel

from reqpipe.http.headers import merge_headers


def _as_plain_dict(value: Any) -> dict[str, Any] | None:
    """Return a dict view of mergeable values, or None if not mergeable."""
    if isinstance(value, dict):
        return value
    if isinstance(value, BaseModel):
        return {name: getattr(value, name) for name in type(value).model_fields}
    return None


def deep_merge(target: Mapping[str, Any], source: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively merge ``source`` into a copy of ``target``.

    Keys whose source value is None are skipped. Nested plain dicts and
    pydantic models are merged key by key; everything else is replaced.
    The ``headers`` key merges case-insensitively. Neither input is mutated.

    Args:
        target: Base mapping.
        source: Overriding mapping.

    Returns:
        New merged dictionary.
    """
    result = dict(target)
    for key, value in source.items():
        if value is None:
            continue

        current = result.get(key)
        if key == "headers":
            result[key] = merge_headers(current, value)
            continue

        current_dict = _as_plain_dict(current)
        if isinstance(value, dict) and current_dict is not None:
            result[key] = deep_merge(current_dict, value)
        else:
            result[key] = value
    return result
