"""Cancellation composer for a single dispatch attempt.

Combines an optional caller signal with an optional timeout into one
effective signal and records which side fired first:

    ARMED -> ABORTED(TIMEOUT | USER)
    ARMED -> COMPLETED

Whichever source fires first wins. The losing source is deregistered inside
the winner's handler, so a late second event can neither abort twice nor
change the recorded reason. Teardown (timer cancelled, listeners removed)
runs exactly once per attempt, on every exit path.
"""

import asyncio
from enum import Enum
from types import TracebackType

import structlog

from reqpipe.http.signal import CancelSignal


logger = structlog.get_logger()


class CancelState(str, Enum):
    """Lifecycle of an attempt's cancellation wiring.

    - ARMED: Attempt in progress, no source has fired
    - ABORTED: A source fired; see AbortReason
    - COMPLETED: Attempt finished without an abort
    """

    ARMED = "ARMED"
    ABORTED = "ABORTED"
    COMPLETED = "COMPLETED"


class AbortReason(str, Enum):
    """Which source caused an abort."""

    TIMEOUT = "TIMEOUT"
    USER = "USER"


# Valid state transitions
_VALID_TRANSITIONS: dict[CancelState, set[CancelState]] = {
    CancelState.ARMED: {CancelState.ABORTED, CancelState.COMPLETED},
    CancelState.ABORTED: set(),  # Terminal state
    CancelState.COMPLETED: set(),  # Terminal state
}


class CancelStateTransitionError(Exception):
    """Raised when an illegal state transition is attempted."""

    def __init__(self, from_state: CancelState, to_state: CancelState) -> None:
        """Initialize the transition error.

        Args:
            from_state: Current state.
            to_state: Attempted target state.
        """
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Illegal cancellation state transition: "
            f"{from_state.value} -> {to_state.value}"
        )


class CancellationComposer:
    """Owns at most one timer and two listener subscriptions for one attempt.

    Wiring by input:
    - no timeout, no caller signal: nothing is armed, ``signal`` is None
    - timeout only: an internal signal fired by a timer
    - caller signal only: the caller signal is used directly
    - both: an internal signal fired by whichever source comes first

    Must be created inside a running event loop. Use as a context manager
    (or call ``complete()``) so teardown always runs.
    """

    def __init__(
        self,
        timeout_ms: float | None = None,
        user_signal: CancelSignal | None = None,
    ) -> None:
        """Arm the composer.

        Args:
            timeout_ms: Timeout in milliseconds; None or <= 0 disables it.
            user_signal: Caller-supplied signal.
        """
        self._state = CancelState.ARMED
        self._reason: AbortReason | None = None
        self._user_signal = user_signal
        self._timeout_ms = timeout_ms if timeout_ms and timeout_ms > 0 else None
        self._timer: asyncio.TimerHandle | None = None
        self._internal: CancelSignal | None = None
        self._signal: CancelSignal | None = None
        self._user_listening = False
        self._internal_listening = False
        self._torn_down = False
        self._log = logger.bind(component="http_client")

        if self._timeout_ms is not None:
            self._internal = CancelSignal()
            self._internal.add_listener(self._on_internal_abort)
            self._internal_listening = True
            loop = asyncio.get_running_loop()
            self._timer = loop.call_later(self._timeout_ms / 1000.0, self._on_timeout)
            self._signal = self._internal
        elif user_signal is not None:
            self._signal = user_signal

        if user_signal is not None:
            if user_signal.aborted:
                self._on_user_abort()
            else:
                user_signal.add_listener(self._on_user_abort)
                self._user_listening = True

    @property
    def state(self) -> CancelState:
        """Get the current state."""
        return self._state

    @property
    def reason(self) -> AbortReason | None:
        """Get the recorded abort reason, or None if not aborted."""
        return self._reason

    @property
    def aborted(self) -> bool:
        """Check if a source fired during this attempt."""
        return self._state == CancelState.ABORTED

    @property
    def signal(self) -> CancelSignal | None:
        """Get the effective signal handed to the transport."""
        return self._signal

    @property
    def has_timer(self) -> bool:
        """Check if a timeout timer was ever armed."""
        return self._internal is not None

    @property
    def is_torn_down(self) -> bool:
        """Check if teardown has run."""
        return self._torn_down

    def can_transition_to(self, target: CancelState) -> bool:
        """Check if a transition to the target state is valid."""
        return target in _VALID_TRANSITIONS.get(self._state, set())

    def _transition_to(self, target: CancelState) -> None:
        if not self.can_transition_to(target):
            raise CancelStateTransitionError(self._state, target)
        old_state = self._state
        self._state = target
        self._log.debug(
            "cancel_state_transition",
            from_state=old_state.value,
            to_state=target.value,
            reason=self._reason.value if self._reason else None,
        )

    def _on_timeout(self) -> None:
        self._timer = None
        if self._internal is not None:
            self._internal.abort(AbortReason.TIMEOUT)

    def _on_internal_abort(self) -> None:
        # Fired by the timer through the internal signal.
        self._internal_listening = False
        if self._state != CancelState.ARMED:
            return
        self._detach_user_listener()
        self._reason = AbortReason.TIMEOUT
        self._transition_to(CancelState.ABORTED)

    def _on_user_abort(self) -> None:
        self._user_listening = False
        if self._state != CancelState.ARMED:
            return
        self._cancel_timer()
        self._detach_internal_listener()
        self._reason = AbortReason.USER
        self._transition_to(CancelState.ABORTED)
        if self._internal is not None:
            self._internal.abort(AbortReason.USER)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _detach_user_listener(self) -> None:
        if self._user_listening and self._user_signal is not None:
            self._user_signal.remove_listener(self._on_user_abort)
        self._user_listening = False

    def _detach_internal_listener(self) -> None:
        if self._internal_listening and self._internal is not None:
            self._internal.remove_listener(self._on_internal_abort)
        self._internal_listening = False

    def complete(self) -> None:
        """Tear down the wiring. Safe to call more than once."""
        if self._torn_down:
            return
        self._torn_down = True
        self._cancel_timer()
        self._detach_user_listener()
        self._detach_internal_listener()
        if self._state == CancelState.ARMED:
            self._transition_to(CancelState.COMPLETED)

    def __enter__(self) -> "CancellationComposer":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.complete()
