"""Shared pytest fixtures."""

from collections.abc import Iterator

import pytest

from reqpipe.http.metrics import ClientMetrics


@pytest.fixture(autouse=True)
def reset_client_metrics() -> Iterator[None]:
    """Give every test a fresh metrics singleton."""
    ClientMetrics.reset()
    yield
    ClientMetrics.reset()
