"""
In-flight correlation state of one exchange attempt.

A PendingExchange is the meeting point of every source that may finish an
exchange: the interceptor delivering frames, the deadline timer, the caller's
cancel signal and the interceptor's status classification. All of them go
through one OneShotLatch, so exactly one settlement wins and the rest are
no-ops.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from webchat_bridge.exceptions import AbortError, ExchangeTimeoutError
from webchat_bridge.network.stream import StreamFrame
from webchat_bridge.utils.latch import OneShotLatch

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]


@dataclass
class ExchangeResult:
    """Final text and ids of a normally resolved exchange."""

    text: str
    message_id: str | None
    conversation_id: str | None


class PendingExchange:
    """
    One live exchange attempt.

    Attributes:
        request_id: Id of the user message submitted by this attempt
        accumulated_text: Cumulative answer text of the latest frame
        message_id: Assistant message id from the latest frame
        conversation_id: Conversation id from the latest frame
        frames_processed: Number of frames applied to the state
        deadline: Monotonic time after which no frame is processed
    """

    def __init__(
        self,
        request_id: str,
        deadline: float,
        clock: Callable[[], float],
        on_progress: ProgressCallback | None = None,
    ):
        self.request_id = request_id
        self.deadline = deadline
        self.on_progress = on_progress
        self.accumulated_text = ""
        self.message_id: str | None = None
        self.conversation_id: str | None = None
        self.frames_processed = 0

        self._clock = clock
        self._latch = OneShotLatch()

    @property
    def settled(self) -> bool:
        return self._latch.settled

    @property
    def settled_by(self) -> str | None:
        return self._latch.settled_by

    def on_settle(self, callback: Callable[[], None]) -> None:
        """Register a disarm callback (timer cancel, listener removal, detach)."""
        self._latch.on_settle(callback)

    def deliver(self, frame: StreamFrame) -> bool:
        """
        Apply one non-terminal frame.

        Returns:
            bool: False if the frame was discarded (already settled or past deadline)
        """
        if self.settled:
            return False

        if self._clock() >= self.deadline:
            self.expire()
            return False

        self.accumulated_text = frame.partial_text
        if frame.message_id:
            self.message_id = frame.message_id
        if frame.conversation_id:
            self.conversation_id = frame.conversation_id
        self.frames_processed += 1

        if self.on_progress is not None:
            try:
                self.on_progress(self.accumulated_text)
            except Exception as e:
                self.fail(e)
                return False

        return True

    def complete(self) -> bool:
        """Settle successfully with the state of the latest frame."""
        if not self.settled and self._clock() >= self.deadline:
            return self.expire()

        return self._latch.resolve(
            ExchangeResult(
                text=self.accumulated_text,
                message_id=self.message_id,
                conversation_id=self.conversation_id,
            ),
            source="terminal",
        )

    def expire(self) -> bool:
        return self._latch.reject(
            ExchangeTimeoutError("timed out waiting for response"), source="timeout"
        )

    def abort(self, reason: object) -> bool:
        """
        Settle with the caller's cancellation reason.

        An exception reason is raised as-is; any other reason is wrapped in AbortError.
        """
        if isinstance(reason, BaseException):
            error = reason
        else:
            error = AbortError(str(reason) if reason else "exchange aborted", reason=reason)
        return self._latch.reject(error, source="abort")

    def fail(self, error: BaseException) -> bool:
        return self._latch.reject(error, source="error")

    async def wait(self) -> ExchangeResult:
        return await self._latch.wait()
