"""Response body parsers.

A parser receives the ``httpx.Response`` of a finished attempt and returns
the value stored under ``ResponseConfig.data``. Parsers may be plain or
async functions and signal failure by raising ``ParseError``.
"""

import json
from collections.abc import Callable
from typing import Any

import httpx

from reqpipe.http.errors import ParseError
from reqpipe.http.models import RequestConfig, ResponseType


ResponseParser = Callable[[httpx.Response], Any]


def parse_json(response: httpx.Response) -> Any:
    """Decode a JSON body. An empty body yields None."""
    text = response.text
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError as exc:
        raise ParseError(
            f"Failed to parse JSON response: {exc}",
            content_type=response.headers.get("content-type"),
        ) from exc


def parse_text(response: httpx.Response) -> str:
    """Decode the body as text."""
    try:
        return response.text
    except (UnicodeDecodeError, LookupError) as exc:
        raise ParseError(
            f"Failed to parse text response: {exc}",
            content_type=response.headers.get("content-type"),
        ) from exc


def parse_bytes(response: httpx.Response) -> bytes:
    """Return the raw body."""
    return response.content


def parse_rest_response(response: httpx.Response) -> Any:
    """Decode a ``{"data": ..., "message": ...}`` envelope.

    Returns the ``data`` member when present, else the whole document.
    """
    document = parse_json(response)
    if isinstance(document, dict) and "data" in document:
        return document["data"]
    return document


def parse_diagnostic(response: httpx.Response) -> Any:
    """Leniently decode an error body: JSON if possible, else text."""
    text = response.text
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return text


_PARSERS: dict[ResponseType, ResponseParser] = {
    ResponseType.JSON: parse_json,
    ResponseType.TEXT: parse_text,
    ResponseType.BYTES: parse_bytes,
    ResponseType.DOCUMENT: parse_text,
}


def get_parser(config: RequestConfig) -> ResponseParser:
    """Pick the parser for a request.

    Args:
        config: Request config.

    Returns:
        ``config.response_parser`` if set, else the parser for
        ``config.response_type``.
    """
    if config.response_parser is not None:
        return config.response_parser
    return _PARSERS[config.response_type]
