"""Metrics collection for the HTTP request pipeline."""

from dataclasses import dataclass, field
from typing import ClassVar

from reqpipe.http.errors import HttpClientErrorCode


@dataclass
class ClientMetrics:
    """Metrics for HTTP client operations.

    Singleton class that tracks dispatch attempts by status, retries,
    failures by error code and time spent in the transport.
    """

    http_attempts_total: dict[int, int] = field(default_factory=dict)
    http_retry_total: int = 0
    http_failures_total: dict[str, int] = field(default_factory=dict)
    http_duration_ms_total: float = 0.0
    http_attempt_count: int = 0

    _instance: ClassVar["ClientMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "ClientMetrics":
        """Get singleton metrics instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        cls._instance = None

    def record_attempt(self, status_code: int, duration_ms: float) -> None:
        """Record a dispatch attempt that produced a response.

        Args:
            status_code: HTTP status code.
            duration_ms: Time spent in the transport.
        """
        self.http_attempts_total[status_code] = (
            self.http_attempts_total.get(status_code, 0) + 1
        )
        self.http_duration_ms_total += duration_ms
        self.http_attempt_count += 1

    def record_retry(self) -> None:
        """Record a retry attempt."""
        self.http_retry_total += 1

    def record_failure(self, code: HttpClientErrorCode) -> None:
        """Record a failed attempt.

        Args:
            code: Classification of the failure.
        """
        key = code.value
        self.http_failures_total[key] = self.http_failures_total.get(key, 0) + 1

    def to_dict(self) -> dict[str, int | float | dict[str, int] | dict[int, int]]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        return {
            "http_attempts_total": dict(self.http_attempts_total),
            "http_retry_total": self.http_retry_total,
            "http_failures_total": dict(self.http_failures_total),
            "http_duration_ms_total": self.http_duration_ms_total,
            "http_attempt_count": self.http_attempt_count,
        }

    @property
    def avg_duration_ms(self) -> float:
        """Calculate average attempt duration.

        Returns:
            Average duration in milliseconds.
        """
        if self.http_attempt_count == 0:
            return 0.0
        return self.http_duration_ms_total / self.http_attempt_count
