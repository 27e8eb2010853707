"""
Connection Readiness Signal

A single-assignment completion used by LiveSession.connect(): open,
error, close and timeout all race to settle it, and only the first one
counts. A cancellable timer fails it if nothing else settles it first.
"""

import asyncio
from typing import Optional

from anywhere.errors import ConnectionFailedError


class ReadySignal:
    """
    Settles exactly once.

    Usage:
        ready = ReadySignal(timeout_s=10.0)
        ...  # transport callbacks call ready.succeed() / ready.fail(exc)
        await ready.wait()
    """

    def __init__(self, timeout_s: float):
        loop = asyncio.get_running_loop()
        self._future: asyncio.Future = loop.create_future()
        self._timeout_s = timeout_s
        self._timer: Optional[asyncio.TimerHandle] = loop.call_later(timeout_s, self._expire)

    @property
    def settled(self) -> bool:
        return self._future.done()

    def succeed(self) -> bool:
        """Mark ready. Returns False if the signal was already settled."""
        if self._future.done():
            return False
        self._cancel_timer()
        self._future.set_result(None)
        return True

    def fail(self, error: BaseException) -> bool:
        """Mark failed. Returns False if the signal was already settled."""
        if self._future.done():
            return False
        self._cancel_timer()
        self._future.set_exception(error)
        return True

    async def wait(self) -> None:
        """
        Wait for the signal.

        Raises:
            ConnectionFailedError: On failure or timeout
        """
        await self._future

    def cancel(self) -> None:
        """Abandon the wait; later settle attempts become no-ops."""
        self.fail(ConnectionFailedError("connection attempt abandoned"))
        # Nobody may await it any more; retrieve to silence "never retrieved"
        if self._future.done() and not self._future.cancelled():
            self._future.exception()

    def _expire(self) -> None:
        self._timer = None
        self.fail(ConnectionFailedError(f"timed out after {self._timeout_s:.1f}s waiting for the stream to open"))

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
