"""URL resolution and query parameter application."""

from collections.abc import Mapping
from typing import Any

import httpx

from reqpipe.http.errors import HttpClientError, HttpClientErrorCode
from reqpipe.http.models import RequestConfig


def join_url(base_url: str, path: str) -> str:
    """Join a base URL and a path with exactly one separating slash.

    Args:
        base_url: Base URL, with or without a trailing slash.
        path: Relative path, with or without a leading slash.

    Returns:
        Joined URL string.
    """
    if not path:
        return base_url
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


def resolve_url(config: RequestConfig) -> httpx.URL:
    """Resolve the absolute target URL of a request.

    An absolute ``url`` wins; otherwise ``url`` is joined onto ``base_url``.

    Args:
        config: Request config.

    Returns:
        Absolute URL.

    Raises:
        HttpClientError: BAD_CONFIG_VALUE when no URL is configured,
            INVALID_URL when the URL cannot be parsed or is not absolute.
    """
    url = config.url
    base_url = config.base_url
    if url is None and base_url is None:
        raise HttpClientError(
            "URL is required", HttpClientErrorCode.BAD_CONFIG_VALUE, config
        )

    try:
        if isinstance(url, httpx.URL) and url.is_absolute_url:
            resolved = url
        else:
            target = httpx.URL(str(url)) if url is not None else None
            if target is not None and target.is_absolute_url:
                resolved = target
            elif base_url is not None:
                resolved = httpx.URL(join_url(str(base_url), str(url or "")))
            else:
                resolved = target if target is not None else httpx.URL("")
    except (httpx.InvalidURL, TypeError, ValueError) as exc:
        raise HttpClientError(
            f"Invalid URL: {exc}", HttpClientErrorCode.INVALID_URL, config
        ) from exc

    if not resolved.is_absolute_url or resolved.scheme not in {"http", "https"}:
        raise HttpClientError(
            f"Invalid URL: {resolved} is not an absolute http(s) URL",
            HttpClientErrorCode.INVALID_URL,
            config,
        )
    return resolved


def _stringify(value: Any) -> str:
    if value is True:
        return "true"
    if value is False:
        return "false"
    return str(value)


def search_param_pairs(params: httpx.QueryParams | Mapping[str, Any]) -> list[tuple[str, str]]:
    """Flatten search params into ordered key/value pairs.

    ``QueryParams`` are taken as-is. For mappings, list and tuple values
    expand to repeated keys, None values are dropped and everything else is
    stringified.

    Args:
        params: Query parameter container.

    Returns:
        List of ``(key, value)`` pairs.
    """
    if isinstance(params, httpx.QueryParams):
        return list(params.multi_items())

    pairs: list[tuple[str, str]] = []
    for key, value in params.items():
        if isinstance(value, list | tuple):
            pairs.extend((key, _stringify(item)) for item in value)
        elif value is not None:
            pairs.append((key, _stringify(value)))
    return pairs


def apply_search_params(
    url: httpx.URL,
    params: httpx.QueryParams | Mapping[str, Any] | None,
) -> httpx.URL:
    """Append search params to a URL, keeping any existing query.

    Args:
        url: Resolved URL.
        params: Query parameter container or None.

    Returns:
        URL with the parameters appended.
    """
    if not params:
        return url
    pairs = list(url.params.multi_items()) + search_param_pairs(params)
    return url.copy_with(params=httpx.QueryParams(pairs))
