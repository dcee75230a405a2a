"""
One-shot completion latch.

Several concurrent sources race to finish the same operation: a terminal
frame, a timer, a cancel signal, an auth failure, a capacity poller. The latch
is consumed by whichever source settles first; every later settle attempt is a
no-op that returns False, so no source is ever double-invoked.

Example:
    >>> latch = OneShotLatch()
    >>> latch.resolve("first")
    True
    >>> latch.reject(RuntimeError("late"))
    False
    >>> await latch.wait()
    'first'
"""

import asyncio
from collections.abc import Callable
from typing import Any


class OneShotLatch:
    """
    First-wins settlement primitive bound to the running event loop.

    Attributes:
        settled_by: Label of the source that consumed the latch, or None
    """

    def __init__(self) -> None:
        self._future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._callbacks: list[Callable[[], None]] = []
        self.settled_by: str | None = None

    @property
    def settled(self) -> bool:
        return self._future.done()

    def resolve(self, value: Any = None, source: str = "result") -> bool:
        """Settle with a value. Returns False if the latch was already consumed."""
        if self._future.done():
            return False
        self._future.set_result(value)
        self._consume(source)
        return True

    def reject(self, error: BaseException, source: str = "error") -> bool:
        """Settle with an exception. Returns False if the latch was already consumed."""
        if self._future.done():
            return False
        self._future.set_exception(error)
        # Mark retrieved so a latch nobody awaits does not log "never retrieved"
        self._future.exception()
        self._consume(source)
        return True

    def on_settle(self, callback: Callable[[], None]) -> None:
        """
        Register a disarm callback run once the latch is consumed.

        Used to cancel timers and unhook listeners of the losing sources.
        Runs immediately if the latch is already consumed.
        """
        if self._future.done():
            callback()
        else:
            self._callbacks.append(callback)

    async def wait(self) -> Any:
        """Wait for settlement and return the value or raise the error."""
        return await asyncio.shield(self._future)

    def _consume(self, source: str) -> None:
        self.settled_by = source
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()
