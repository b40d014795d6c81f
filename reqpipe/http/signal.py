"""Caller-owned cancellation signal."""

import asyncio
from collections.abc import Callable

import structlog


logger = structlog.get_logger()

AbortListener = Callable[[], None]


class CancelSignal:
    """A one-shot cancellation handle.

    Aborting is synchronous: every registered listener runs inside
    ``abort()`` in registration order, then waiters of ``wait()`` wake up.
    A signal cannot be reset once aborted.
    """

    def __init__(self) -> None:
        self._aborted = False
        self._reason: object | None = None
        self._listeners: list[AbortListener] = []
        self._event = asyncio.Event()

    @property
    def aborted(self) -> bool:
        """Check if the signal has fired."""
        return self._aborted

    @property
    def reason(self) -> object | None:
        """Get the value passed to ``abort()``."""
        return self._reason

    @property
    def listener_count(self) -> int:
        """Get the number of registered listeners."""
        return len(self._listeners)

    def add_listener(self, listener: AbortListener) -> None:
        """Register a callback invoked when the signal fires.

        Args:
            listener: Zero-argument callback.
        """
        self._listeners.append(listener)

    def remove_listener(self, listener: AbortListener) -> None:
        """Deregister a callback. Unknown callbacks are ignored.

        Args:
            listener: Callback previously passed to ``add_listener``.
        """
        if listener in self._listeners:
            self._listeners.remove(listener)

    def abort(self, reason: object | None = None) -> None:
        """Fire the signal. Subsequent calls are no-ops.

        Args:
            reason: Optional value describing why the signal fired.
        """
        if self._aborted:
            return
        self._aborted = True
        self._reason = reason

        listeners = list(self._listeners)
        self._listeners.clear()
        for listener in listeners:
            listener()

        self._event.set()
        logger.debug("signal_aborted", reason=repr(reason), listeners=len(listeners))

    async def wait(self) -> None:
        """Suspend until the signal fires."""
        if self._aborted:
            return
        await self._event.wait()
