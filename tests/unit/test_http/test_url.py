"""Unit tests for URL resolution and search params."""

import httpx
import pytest

from reqpipe.http.errors import HttpClientError, HttpClientErrorCode
from reqpipe.http.models import RequestConfig
from reqpipe.http.url import apply_search_params, join_url, resolve_url, search_param_pairs


class TestJoinUrl:
    """Tests for base URL joining."""

    @pytest.mark.parametrize(
        ("base", "path"),
        [
            ("https://api.example.com", "/users"),
            ("https://api.example.com/", "/users"),
            ("https://api.example.com/", "users"),
            ("https://api.example.com", "users"),
        ],
    )
    def test_single_slash(self, base: str, path: str) -> None:
        """Test that exactly one slash separates base and path."""
        assert join_url(base, path) == "https://api.example.com/users"

    def test_empty_path(self) -> None:
        """Test that an empty path leaves the base unchanged."""
        assert join_url("https://api.example.com/v1", "") == "https://api.example.com/v1"


class TestResolveUrl:
    """Tests for resolving the target URL of a config."""

    def test_relative_url_joined_to_base(self) -> None:
        """Test that a relative URL is resolved against base_url."""
        config = RequestConfig(base_url="https://api.example.com/v1", url="/users")

        assert str(resolve_url(config)) == "https://api.example.com/v1/users"

    def test_absolute_url_ignores_base(self) -> None:
        """Test that an absolute URL wins over base_url."""
        config = RequestConfig(base_url="https://api.example.com", url="https://cdn.example.com/a")

        assert str(resolve_url(config)) == "https://cdn.example.com/a"

    def test_base_only(self) -> None:
        """Test that base_url alone is a valid target."""
        config = RequestConfig(base_url="https://api.example.com/health")

        assert str(resolve_url(config)) == "https://api.example.com/health"

    def test_httpx_url_accepted(self) -> None:
        """Test that httpx.URL values are accepted."""
        config = RequestConfig(url=httpx.URL("https://api.example.com/users"))

        assert resolve_url(config).host == "api.example.com"

    def test_missing_url_is_bad_config_value(self) -> None:
        """Test that a config without any URL is rejected."""
        with pytest.raises(HttpClientError) as exc_info:
            resolve_url(RequestConfig())

        assert exc_info.value.code == HttpClientErrorCode.BAD_CONFIG_VALUE

    def test_relative_without_base_is_invalid(self) -> None:
        """Test that a relative URL without base is INVALID_URL."""
        with pytest.raises(HttpClientError) as exc_info:
            resolve_url(RequestConfig(url="users"))

        assert exc_info.value.code == HttpClientErrorCode.INVALID_URL

    def test_non_http_scheme_is_invalid(self) -> None:
        """Test that only http and https URLs are accepted."""
        with pytest.raises(HttpClientError) as exc_info:
            resolve_url(RequestConfig(url="ftp://files.example.com/a"))

        assert exc_info.value.code == HttpClientErrorCode.INVALID_URL


class TestSearchParams:
    """Tests for search param flattening and application."""

    def test_mapping_flattening(self) -> None:
        """Test lists, booleans and None values in mappings."""
        pairs = search_param_pairs({"id": [1, 2], "flag": False, "q": "x y", "none": None})

        assert pairs == [("id", "1"), ("id", "2"), ("flag", "false"), ("q", "x y")]

    def test_query_params_taken_as_is(self) -> None:
        """Test that httpx.QueryParams keep their repeated keys."""
        params = httpx.QueryParams([("a", "1"), ("a", "2")])

        assert search_param_pairs(params) == [("a", "1"), ("a", "2")]

    def test_existing_query_is_kept(self) -> None:
        """Test that params are appended after the existing query."""
        url = apply_search_params(httpx.URL("https://api.example.com/s?page=1"), {"q": "cats"})

        assert url.params.multi_items() == [("page", "1"), ("q", "cats")]

    def test_empty_params_leave_url_untouched(self) -> None:
        """Test that None or empty params return the same URL."""
        url = httpx.URL("https://api.example.com/s")

        assert apply_search_params(url, None) is url
        assert apply_search_params(url, {}) is url
