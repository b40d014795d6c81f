"""Request body normalization and content-type inference."""

import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

from reqpipe.http.constants import (
    CONTENT_TYPE_JSON,
    CONTENT_TYPE_TEXT,
    CONTENT_TYPE_URLENCODED,
    DEFAULT_FILE_FIELD_NAME,
)
from reqpipe.http.errors import BodySerializationError
from reqpipe.http.models import FormType


@dataclass(frozen=True)
class PreparedBody:
    """Transport-ready body parts.

    Attributes:
        content: Raw payload (bytes or text).
        files: Multipart file parts as ``(field, file)`` pairs.
        form: Multipart plain fields sent alongside ``files``.
        content_type: Content-Type to default to, if any.
    """

    content: bytes | str | None = None
    files: list[tuple[str, Any]] | None = None
    form: dict[str, str] | None = None
    content_type: str | None = None


def is_file_like(value: Any) -> bool:
    """Check if a value can be uploaded as a multipart file part."""
    return hasattr(value, "read") and callable(value.read)


def content_type_for_text(text: str) -> str:
    """Infer a content type for a string body.

    Args:
        text: Body text.

    Returns:
        JSON content type when the text is valid JSON, else plain text.
    """
    try:
        json.loads(text)
    except ValueError:
        return CONTENT_TYPE_TEXT
    return CONTENT_TYPE_JSON


def _file_parts(files: list[Any], field_name: str) -> list[tuple[str, Any]]:
    name = field_name if len(files) == 1 else f"{field_name}[]"
    return [(name, f) for f in files]


def _multipart(body: Mapping[str, Any]) -> PreparedBody:
    files: list[tuple[str, Any]] = []
    form: dict[str, str] = {}
    for key, value in body.items():
        if value is None:
            continue
        if is_file_like(value):
            files.append((key, value))
        elif isinstance(value, list | tuple) and value and all(map(is_file_like, value)):
            files.extend(_file_parts(list(value), key))
        else:
            form[key] = str(value)
    # httpx picks the multipart boundary; no content type here.
    return PreparedBody(files=files or None, form=form or None)


def normalize_body(
    body: Any,
    form_type: FormType | None = None,
    file_field_name: str = DEFAULT_FILE_FIELD_NAME,
) -> PreparedBody:
    """Turn a request body into transport-ready parts.

    - None: nothing to send
    - str: sent as-is, JSON or plain-text content type
    - bytes-like: sent as-is, no content type
    - file-like or list of file-likes: multipart upload under ``file_field_name``
    - mapping: urlencoded or multipart when ``form_type`` says so, else JSON
    - anything else: JSON

    Args:
        body: Body value from the request config.
        form_type: Requested form encoding for mapping bodies.
        file_field_name: Multipart field name for bare file uploads.

    Returns:
        PreparedBody.

    Raises:
        BodySerializationError: If the body cannot be JSON-encoded.
    """
    if body is None:
        return PreparedBody()

    if isinstance(body, str):
        return PreparedBody(content=body, content_type=content_type_for_text(body))

    if isinstance(body, bytes | bytearray | memoryview):
        return PreparedBody(content=bytes(body))

    if is_file_like(body):
        return PreparedBody(files=_file_parts([body], file_field_name))

    if isinstance(body, list | tuple) and body and all(map(is_file_like, body)):
        return PreparedBody(files=_file_parts(list(body), file_field_name))

    if isinstance(body, Mapping):
        if form_type == FormType.URLENCODED:
            pairs = [(k, str(v)) for k, v in body.items() if v is not None]
            return PreparedBody(content=urlencode(pairs), content_type=CONTENT_TYPE_URLENCODED)
        if form_type == FormType.FORM_DATA:
            return _multipart(body)

    try:
        encoded = json.dumps(body)
    except (TypeError, ValueError) as exc:
        msg = f"Failed to serialize request data: {exc}"
        raise BodySerializationError(msg) from exc
    return PreparedBody(content=encoded, content_type=CONTENT_TYPE_JSON)
