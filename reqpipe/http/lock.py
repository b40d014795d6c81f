"""Instance-level gate for pausing new requests."""

import asyncio
from collections import deque

import structlog


logger = structlog.get_logger()


class LockClearedError(Exception):
    """Raised in requests that were waiting when the lock was cleared."""

    def __init__(self) -> None:
        """Initialize the error."""
        super().__init__("Request lock cleared while waiting")


class RequestLock:
    """FIFO gate for top-level requests.

    While locked, ``wait()`` suspends callers in arrival order; ``unlock()``
    releases them in that same order. Requests already past ``wait()`` are
    not affected by locking.
    """

    def __init__(self) -> None:
        self._locked = False
        self._waiters: deque[asyncio.Future[None]] = deque()
        self._log = logger.bind(component="http_client")

    @property
    def locked(self) -> bool:
        """Check if the gate is closed."""
        return self._locked

    @property
    def waiting(self) -> int:
        """Get the number of suspended callers."""
        return sum(1 for waiter in self._waiters if not waiter.done())

    def lock(self) -> None:
        """Close the gate for new requests."""
        self._locked = True
        self._log.debug("client_locked")

    def unlock(self) -> None:
        """Open the gate and release every waiter in arrival order."""
        self._locked = False
        released = 0
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                released += 1
        self._log.debug("client_unlocked", released=released)

    async def wait(self) -> None:
        """Suspend until the gate is open."""
        if not self._locked:
            return
        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter in self._waiters:
                self._waiters.remove(waiter)
            raise

    def clear(self) -> None:
        """Fail every waiting caller with LockClearedError."""
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_exception(LockClearedError())
