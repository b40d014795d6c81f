"""Interceptor registry and chain execution.

Entries live in an append-only slot list. ``eject`` nulls a slot in place
and ``clear`` drops every slot while the id counter keeps growing, so ids
are never reused. Chain runners read the live collection at every step:
a ``clear()`` or ``eject()`` issued while a request is in flight affects the
entries that request has not reached yet.
"""

import inspect
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

import structlog

from reqpipe.http.errors import HttpClientError, HttpClientErrorCode
from reqpipe.http.models import RequestConfig, ResponseConfig


logger = structlog.get_logger()

T = TypeVar("T")

Fulfilled = Callable[[T], T | Awaitable[T]]
Rejected = Callable[[Exception], Any]
RunWhen = Callable[[T], bool]


@dataclass(frozen=True)
class Interceptor(Generic[T]):
    """One registered stage. Either handler may be missing."""

    on_fulfilled: Fulfilled[T] | None = None
    on_rejected: Rejected | None = None
    run_when: RunWhen[T] | None = None


class InterceptorManager(Generic[T]):
    """Ordered collection of interceptors keyed by stable integer ids."""

    def __init__(self, name: str = "interceptors") -> None:
        """Initialize an empty manager.

        Args:
            name: Label used in log events.
        """
        self._name = name
        self._entries: list[Interceptor[T] | None] = []
        self._first_id = 0

    @property
    def first_id(self) -> int:
        """Get the id of the oldest slot still held."""
        return self._first_id

    @property
    def next_id(self) -> int:
        """Get the id the next ``use()`` call will return."""
        return self._first_id + len(self._entries)

    def use(
        self,
        on_fulfilled: Fulfilled[T] | None = None,
        on_rejected: Rejected | None = None,
        run_when: RunWhen[T] | None = None,
    ) -> int:
        """Append an interceptor.

        Args:
            on_fulfilled: Transform applied on the success path.
            on_rejected: Handler applied on the error path.
            run_when: Predicate gating ``on_fulfilled`` (request side only).

        Returns:
            Stable id usable with ``eject``.
        """
        interceptor_id = self.next_id
        self._entries.append(Interceptor(on_fulfilled, on_rejected, run_when))
        logger.debug(
            "interceptor_registered",
            component="http_client",
            chain=self._name,
            interceptor_id=interceptor_id,
        )
        return interceptor_id

    def eject(self, interceptor_id: int) -> None:
        """Disable an interceptor without shifting other ids.

        Unknown or already ejected ids are ignored.

        Args:
            interceptor_id: Id returned by ``use``.
        """
        index = interceptor_id - self._first_id
        if 0 <= index < len(self._entries):
            self._entries[index] = None

    def clear(self) -> None:
        """Remove every interceptor. Ids keep counting up."""
        self._first_id = self.next_id
        self._entries = []

    def get(self, interceptor_id: int) -> Interceptor[T] | None:
        """Get the live interceptor for an id, or None."""
        index = interceptor_id - self._first_id
        if 0 <= index < len(self._entries):
            return self._entries[index]
        return None

    def live(self, start: int | None = None) -> Iterator[tuple[int, Interceptor[T]]]:
        """Iterate live entries in insertion order, re-reading each step.

        Args:
            start: First id to visit (defaults to the oldest slot).

        Yields:
            ``(id, interceptor)`` pairs.
        """
        current = self._first_id if start is None else start
        while current < self.next_id:
            entry = self.get(current)
            current += 1
            if entry is not None:
                yield current - 1, entry

    def live_reversed(self, floor: int | None = None) -> Iterator[tuple[int, Interceptor[T]]]:
        """Iterate live entries newest first, re-reading each step.

        Args:
            floor: Lowest id to visit (defaults to the oldest slot).

        Yields:
            ``(id, interceptor)`` pairs.
        """
        current = self.next_id - 1
        while current >= max(self._first_id, floor or 0):
            entry = self.get(current)
            current -= 1
            if entry is not None:
                yield current + 1, entry

    def __len__(self) -> int:
        return sum(1 for entry in self._entries if entry is not None)


@dataclass
class Interceptors:
    """The ``client.interceptors`` namespace."""

    request: InterceptorManager[RequestConfig] = field(
        default_factory=lambda: InterceptorManager("request")
    )
    response: InterceptorManager[ResponseConfig] = field(
        default_factory=lambda: InterceptorManager("response")
    )


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _bad_stage_result(stage: str, value: Any, config: RequestConfig | None) -> HttpClientError:
    return HttpClientError(
        f"Unexpected {stage} from interceptor: got {type(value).__name__}",
        HttpClientErrorCode.BAD_CONFIG,
        config,
    )


async def run_request_chain(
    manager: InterceptorManager[RequestConfig],
    config: RequestConfig,
) -> RequestConfig:
    """Run request interceptors left to right.

    A failing stage hands its error to the ``on_rejected`` handlers of the
    entries after it. Such a handler may return a replacement error, return
    a RequestConfig to resume the success path, return None to leave the
    error unchanged, or raise.

    Args:
        manager: Request interceptor collection.
        config: Merged request config.

    Returns:
        The transformed config.

    Raises:
        Exception: The failure no downstream handler recovered from.
    """
    error: Exception | None = None
    for _, entry in manager.live():
        if error is None:
            if entry.on_fulfilled is None:
                continue
            if entry.run_when is not None and not entry.run_when(config):
                continue
            try:
                result = await _resolve(entry.on_fulfilled(config))
            except Exception as exc:  # noqa: BLE001
                error = exc
                continue
            if isinstance(result, RequestConfig):
                config = result
            else:
                error = _bad_stage_result("RequestConfig", result, config)
            continue

        if entry.on_rejected is None:
            continue
        try:
            outcome = await _resolve(entry.on_rejected(error))
        except Exception as exc:  # noqa: BLE001
            error = exc
            continue
        if isinstance(outcome, RequestConfig):
            config = outcome
            error = None
        elif isinstance(outcome, Exception):
            error = outcome

    if error is not None:
        raise error
    return config


async def _recover(
    manager: InterceptorManager[ResponseConfig],
    error: Exception,
    floor: int,
    request_config: RequestConfig | None,
) -> tuple[ResponseConfig, int]:
    """Walk ``on_rejected`` handlers newest first down to ``floor``.

    Returns:
        The recovered response and the id to resume forward iteration at.

    Raises:
        Exception: The final error when nothing recovers.
    """
    for entry_id, entry in manager.live_reversed(floor):
        if entry.on_rejected is None:
            continue
        try:
            outcome = await _resolve(entry.on_rejected(error))
        except Exception as exc:  # noqa: BLE001
            error = exc
            continue
        if outcome is None:
            continue
        if isinstance(outcome, Exception):
            error = outcome
            continue
        if not isinstance(outcome, ResponseConfig):
            error = _bad_stage_result("ResponseConfig", outcome, request_config)
            continue
        logger.debug(
            "response_error_recovered",
            component="http_client",
            interceptor_id=entry_id,
        )
        return outcome, entry_id + 1
    raise error


async def run_response_chain(
    manager: InterceptorManager[ResponseConfig],
    outcome: ResponseConfig | Exception,
    request_config: RequestConfig | None = None,
) -> ResponseConfig:
    """Run response interceptors over a dispatch outcome.

    Success runs ``on_fulfilled`` handlers left to right. An error (from the
    dispatcher or from a fulfilled handler) runs the ``on_rejected`` handlers
    of the entries downstream of it, newest first. A handler that returns a
    ResponseConfig recovers, and the fulfilled handlers registered after it
    run in forward order.

    Args:
        manager: Response interceptor collection.
        outcome: ResponseConfig from the dispatcher, or the raised error.
        request_config: Config used for error context.

    Returns:
        Final ResponseConfig.

    Raises:
        Exception: The error no handler recovered from.
    """
    if isinstance(outcome, Exception):
        response, resume_id = await _recover(
            manager, outcome, manager.first_id, request_config
        )
    else:
        response, resume_id = outcome, manager.first_id

    while True:
        failure: tuple[int, Exception] | None = None
        for entry_id, entry in manager.live(resume_id):
            if entry.on_fulfilled is None:
                continue
            try:
                result = await _resolve(entry.on_fulfilled(response))
                if not isinstance(result, ResponseConfig):
                    raise _bad_stage_result("ResponseConfig", result, request_config)
            except Exception as exc:  # noqa: BLE001
                failure = (entry_id, exc)
                break
            response = result

        if failure is None:
            return response

        failed_id, error = failure
        response, resume_id = await _recover(
            manager, error, failed_id + 1, request_config
        )
