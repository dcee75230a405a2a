"""
Caller-driven cancellation of an exchange.

A CancelSignal is created by the caller, handed to send_message(), and fired
from anywhere on the same event loop (another task, a timer, a UI callback).
Firing it settles the pending exchange with the supplied reason.

Example:
    >>> signal = CancelSignal()
    >>> asyncio.get_running_loop().call_later(5, signal.cancel, "user pressed stop")
    >>> await client.send_message("Write a long essay", cancel_signal=signal)
    AbortError: user pressed stop
"""

import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)


class CancelSignal:
    """
    One-shot cancellation flag with listeners.

    Attributes:
        cancelled: True once cancel() has been called
        reason: Reason passed to cancel(), None until then
    """

    def __init__(self) -> None:
        self.cancelled = False
        self.reason: object = None
        self._listeners: list[Callable[[object], None]] = []

    def cancel(self, reason: object = "exchange cancelled") -> None:
        """Fire the signal. Only the first call has an effect."""
        if self.cancelled:
            return

        self.cancelled = True
        self.reason = reason
        logger.debug(f"Cancel signal fired: {reason}")

        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            listener(reason)

    def add_listener(self, listener: Callable[[object], None]) -> Callable[[], None]:
        """
        Register a listener called with the reason when the signal fires.

        Returns:
            Callable: Function removing the listener again
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove
