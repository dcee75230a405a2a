"""
Tests for utils.latch, exchange.cancel and exchange.pending modules.

Tests cover:
- OneShotLatch first-wins settlement and disarm callbacks
- CancelSignal one-shot firing and listener removal
- PendingExchange frame application, deadline checks, settlement sources
"""

import asyncio

import pytest
from conftest import StepClock

from webchat_bridge.exceptions import AbortError, ExchangeTimeoutError
from webchat_bridge.exchange.cancel import CancelSignal
from webchat_bridge.exchange.pending import PendingExchange
from webchat_bridge.network.stream import StreamFrame
from webchat_bridge.utils.latch import OneShotLatch


def frame(text, message_id="m-1", conversation_id="c-1"):
    return StreamFrame(message_id=message_id, conversation_id=conversation_id, partial_text=text)


class FixedClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


class TestOneShotLatch:
    """Test suite for OneShotLatch."""

    @pytest.mark.asyncio
    async def test_first_resolve_wins(self):
        """Test later settle attempts are rejected."""
        latch = OneShotLatch()

        assert latch.resolve("first", source="a") is True
        assert latch.resolve("second", source="b") is False
        assert latch.reject(RuntimeError("late"), source="c") is False

        assert await latch.wait() == "first"
        assert latch.settled_by == "a"

    @pytest.mark.asyncio
    async def test_reject_raises_on_wait(self):
        """Test a rejected latch raises its error from wait()."""
        latch = OneShotLatch()
        latch.reject(ValueError("bad"), source="error")

        with pytest.raises(ValueError, match="bad"):
            await latch.wait()

    @pytest.mark.asyncio
    async def test_callbacks_run_once_on_settle(self):
        """Test disarm callbacks run exactly once, at settlement."""
        latch = OneShotLatch()
        calls = []
        latch.on_settle(lambda: calls.append("disarm"))

        latch.resolve(1)
        latch.resolve(2)

        assert calls == ["disarm"]

    @pytest.mark.asyncio
    async def test_callback_after_settle_runs_immediately(self):
        """Test registering on a settled latch runs the callback at once."""
        latch = OneShotLatch()
        latch.resolve(None)
        calls = []

        latch.on_settle(lambda: calls.append("now"))

        assert calls == ["now"]

    @pytest.mark.asyncio
    async def test_cancelled_waiter_leaves_latch_usable(self):
        """Test cancelling one waiter does not cancel the latch."""
        latch = OneShotLatch()
        waiter = asyncio.create_task(latch.wait())
        await asyncio.sleep(0)

        waiter.cancel()
        await asyncio.gather(waiter, return_exceptions=True)

        assert not latch.settled
        latch.resolve("still works")
        assert await latch.wait() == "still works"


class TestCancelSignal:
    """Test suite for CancelSignal."""

    def test_cancel_notifies_listeners(self):
        """Test listeners receive the reason."""
        signal = CancelSignal()
        received = []
        signal.add_listener(received.append)

        signal.cancel("stop")

        assert signal.cancelled
        assert signal.reason == "stop"
        assert received == ["stop"]

    def test_only_first_cancel_counts(self):
        """Test a second cancel() keeps the first reason and notifies nobody."""
        signal = CancelSignal()
        received = []
        signal.add_listener(received.append)

        signal.cancel("first")
        signal.cancel("second")

        assert signal.reason == "first"
        assert received == ["first"]

    def test_removed_listener_not_called(self):
        """Test the remover returned by add_listener() unhooks the listener."""
        signal = CancelSignal()
        received = []
        remove = signal.add_listener(received.append)

        remove()
        remove()
        signal.cancel("stop")

        assert received == []

    def test_default_reason(self):
        """Test cancel() without a reason uses a descriptive default."""
        signal = CancelSignal()

        signal.cancel()

        assert signal.reason == "exchange cancelled"


class TestPendingExchange:
    """Test suite for PendingExchange."""

    @pytest.mark.asyncio
    async def test_deliver_replaces_text(self):
        """Test each frame replaces the cumulative text rather than appending."""
        progress = []
        pending = PendingExchange("req-1", 10.0, FixedClock(), progress.append)

        pending.deliver(frame("Hel"))
        pending.deliver(frame("Hello"))

        assert pending.accumulated_text == "Hello"
        assert pending.frames_processed == 2
        assert progress == ["Hel", "Hello"]

    @pytest.mark.asyncio
    async def test_complete_returns_latest_state(self):
        """Test completion settles with the latest frame's text and ids."""
        pending = PendingExchange("req-1", 10.0, FixedClock())
        pending.deliver(frame("a", message_id="m-1", conversation_id="c-1"))
        pending.deliver(frame("ab", message_id="m-2", conversation_id="c-1"))

        pending.complete()
        result = await pending.wait()

        assert result.text == "ab"
        assert result.message_id == "m-2"
        assert result.conversation_id == "c-1"

    @pytest.mark.asyncio
    async def test_frame_past_deadline_expires(self):
        """Test a frame seen after the deadline settles with ExchangeTimeoutError."""
        progress = []
        clock = FixedClock(now=5.0)
        pending = PendingExchange("req-1", 1.0, clock, progress.append)

        assert pending.deliver(frame("late")) is False

        with pytest.raises(ExchangeTimeoutError, match="timed out waiting for response"):
            await pending.wait()
        assert progress == []
        assert pending.settled_by == "timeout"

    @pytest.mark.asyncio
    async def test_step_clock_deadline(self):
        """Test an advancing clock expires a 1 ms exchange on its first frame."""
        clock = StepClock(step=1.0)
        pending = PendingExchange("req-1", clock() + 0.001, clock)

        pending.deliver(frame("x"))

        assert pending.frames_processed == 0
        with pytest.raises(ExchangeTimeoutError):
            await pending.wait()

    @pytest.mark.asyncio
    async def test_complete_past_deadline_expires(self):
        """Test a terminal frame after the deadline does not resolve successfully."""
        clock = FixedClock(now=0.0)
        pending = PendingExchange("req-1", 1.0, clock)
        pending.deliver(frame("a"))
        clock.now = 2.0

        pending.complete()

        with pytest.raises(ExchangeTimeoutError):
            await pending.wait()

    @pytest.mark.asyncio
    async def test_frames_after_settle_ignored(self):
        """Test nothing is applied once the exchange is settled."""
        pending = PendingExchange("req-1", 10.0, FixedClock())
        pending.abort("stop")

        assert pending.deliver(frame("ignored")) is False
        assert pending.accumulated_text == ""

    @pytest.mark.asyncio
    async def test_abort_with_string_reason(self):
        """Test a non-exception reason is wrapped in AbortError."""
        pending = PendingExchange("req-1", 10.0, FixedClock())

        pending.abort("user pressed stop")

        with pytest.raises(AbortError, match="user pressed stop") as exc_info:
            await pending.wait()
        assert exc_info.value.reason == "user pressed stop"

    @pytest.mark.asyncio
    async def test_abort_with_exception_reason(self):
        """Test an exception reason is raised as-is."""
        pending = PendingExchange("req-1", 10.0, FixedClock())
        reason = KeyError("shutdown")

        pending.abort(reason)

        with pytest.raises(KeyError) as exc_info:
            await pending.wait()
        assert exc_info.value is reason

    @pytest.mark.asyncio
    async def test_abort_without_reason(self):
        """Test an empty reason still yields a descriptive AbortError."""
        pending = PendingExchange("req-1", 10.0, FixedClock())

        pending.abort(None)

        with pytest.raises(AbortError, match="exchange aborted"):
            await pending.wait()

    @pytest.mark.asyncio
    async def test_only_one_settlement(self):
        """Test the first settlement wins over later ones."""
        pending = PendingExchange("req-1", 10.0, FixedClock())
        pending.deliver(frame("done"))

        assert pending.complete() is True
        assert pending.expire() is False
        assert pending.abort("late") is False

        result = await pending.wait()
        assert result.text == "done"
        assert pending.settled_by == "terminal"
