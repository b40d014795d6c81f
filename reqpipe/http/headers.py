"""Header helpers that work across header container representations.

Headers may be supplied as a plain mapping, a list of ``(name, value)``
pairs, or an ``httpx.Headers`` instance. Names compare case-insensitively in
all three, and helpers return a new container of the same kind. A value of
None marks a header as unset.
"""

from collections.abc import Mapping, Sequence
from typing import Any

import httpx


HeadersInput = Mapping[str, str | None] | Sequence[tuple[str, str | None]] | httpx.Headers


def _raw_items(headers: HeadersInput) -> list[tuple[str, Any]]:
    if isinstance(headers, httpx.Headers):
        return list(headers.multi_items())
    if isinstance(headers, Mapping):
        return list(headers.items())
    return [(key, value) for key, value in headers]


def header_items(headers: HeadersInput | None) -> list[tuple[str, str]]:
    """Flatten any supported header container into ordered pairs.

    Entries whose value is None are left out.

    Args:
        headers: Header container or None.

    Returns:
        List of ``(name, value)`` pairs in insertion order.
    """
    if headers is None:
        return []
    return [(str(k), str(v)) for k, v in _raw_items(headers) if v is not None]


def has_header(headers: HeadersInput | None, name: str) -> bool:
    """Check if a header is set, ignoring case.

    Args:
        headers: Header container or None.
        name: Header name to look for.

    Returns:
        True if any entry with a value matches the name.
    """
    if headers is None:
        return False
    if isinstance(headers, httpx.Headers):
        return name in headers
    lowered = name.lower()
    return any(key.lower() == lowered for key, _ in header_items(headers))


def with_default_header(
    headers: HeadersInput | None,
    name: str,
    value: str,
) -> HeadersInput:
    """Add a header only when it is not already set.

    The input container is never mutated.

    Args:
        headers: Header container or None.
        name: Header name.
        value: Header value used when the header is absent.

    Returns:
        A container of the same kind as the input (a dict for None).
    """
    if has_header(headers, name):
        return headers if headers is not None else {}

    if headers is None:
        return {name: value}
    if isinstance(headers, httpx.Headers):
        updated = httpx.Headers(headers)
        updated[name] = value
        return updated
    lowered = name.lower()
    if isinstance(headers, Mapping):
        kept = {k: v for k, v in headers.items() if k.lower() != lowered}
        return {**kept, name: value}
    return [*((k, v) for k, v in headers if k.lower() != lowered), (name, value)]


def merge_headers(base: Any, override: Any) -> Any:
    """Merge two header containers with case-insensitive last-write-wins.

    An override entry whose value is None removes that header. Plain
    mappings stay plain mappings; any other combination becomes an
    ``httpx.Headers``.

    Args:
        base: Base header container or None.
        override: Overriding header container or None.

    Returns:
        Merged header container.
    """
    if override is None:
        return base
    if base is None:
        return override

    if isinstance(base, dict) and isinstance(override, dict):
        overridden = {key.lower() for key in override}
        merged = {k: v for k, v in base.items() if k.lower() not in overridden}
        merged.update({k: v for k, v in override.items() if v is not None})
        return merged

    merged_headers = httpx.Headers(header_items(base))
    override_headers = httpx.Headers(header_items(override))
    for key in override_headers:
        merged_headers[key] = override_headers[key]
    for key, value in _raw_items(override):
        if value is None and key in merged_headers:
            del merged_headers[key]
    return merged_headers
