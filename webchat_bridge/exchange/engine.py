"""
Conversation exchange engine for webchat-bridge.

One send_message() call submits a prompt through the page and suspends until
exactly one of these settles the exchange:

- the interceptor delivers the terminal frame (success, thread ids committed)
- the deadline timer fires (ExchangeTimeoutError)
- the caller's cancel signal fires (its reason, or AbortError)
- the conversation endpoint answers with an error status

A 403 triggers one session refresh and a 401 one session reset, each followed
by a single retry of the exchange. A second failure surfaces as-is.

The prompt is submitted with an in-page fetch() so the request carries the
browser's cookies and fingerprint; the interceptor adds the bearer token on
its way out and decodes the streamed answer on its way back.
"""

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from webchat_bridge.config.constants import CONVERSATION_ENDPOINT_URL, MAX_MESSAGE_LENGTH
from webchat_bridge.config.schema import BridgeSettings
from webchat_bridge.exceptions import (
    AbortError,
    AuthError,
    ConcurrencyError,
    ForbiddenError,
    InvalidMessageError,
    ProtocolError,
    SessionNotReadyError,
)
from webchat_bridge.session.manager import SessionManager
from webchat_bridge.utils.logging import log_with_context
from webchat_bridge.utils.time import ms_to_seconds

from .cancel import CancelSignal
from .pending import PendingExchange, ProgressCallback

logger = logging.getLogger(__name__)

# Fire-and-forget: the answer is read by the response hook, not by this script
SUBMIT_SCRIPT = """({ url, body }) => {
  fetch(url, {
    method: "POST",
    headers: { "content-type": "application/json", accept: "text/event-stream" },
    body: JSON.stringify(body),
    credentials: "include",
  }).catch(() => {});
  return true;
}"""


@dataclass
class ChatResponse:
    """
    Result of one completed exchange.

    Attributes:
        conversation_id: Conversation the answer belongs to
        message_id: Id of the assistant message, parent of the next prompt
        response: Final answer text
    """

    conversation_id: str | None
    message_id: str | None
    response: str


class ExchangeEngine:
    """
    Serialized prompt/answer exchanges over one session.

    Attributes:
        session_manager: Session providing the page, tokens and thread
        settings: Bridge settings (model, default timeout)
        clock: Monotonic clock used for frame deadline checks
    """

    def __init__(
        self,
        session_manager: SessionManager,
        settings: BridgeSettings,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.session_manager = session_manager
        self.settings = settings
        self.clock = clock
        self._in_flight = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def send_message(
        self,
        text: str,
        *,
        conversation_id: str | None = None,
        parent_message_id: str | None = None,
        timeout_ms: int | None = None,
        cancel_signal: CancelSignal | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ChatResponse:
        """
        Send one prompt and wait for the complete answer.

        Args:
            text: Prompt text
            conversation_id: Conversation to continue (defaults to the thread's)
            parent_message_id: Message to answer after (defaults to the thread's)
            timeout_ms: Wait bound for one attempt (defaults to settings.timeout_ms)
            cancel_signal: Signal that aborts the exchange when fired
            on_progress: Called with the cumulative text after every frame

        Returns:
            ChatResponse: Final text and ids

        Raises:
            InvalidMessageError: If text is empty or too long
            ConcurrencyError: If another exchange is in flight on this session
            SessionNotReadyError: If the session is not READY
            ExchangeTimeoutError: If the answer did not complete in time
            AbortError: If cancelled with a non-exception reason
            AuthError / ForbiddenError: If recovery, or the retry after it, failed
            ServiceUnavailable: On capacity or 429/5xx responses
            ProtocolError: If the answer stream was unusable
        """
        if not text or text.isspace():
            raise InvalidMessageError("message text cannot be empty")
        if len(text) > MAX_MESSAGE_LENGTH:
            raise InvalidMessageError(
                f"message text exceeds {MAX_MESSAGE_LENGTH} characters: {len(text)}"
            )

        # No await before this point, so the check-and-set cannot interleave
        if self._in_flight:
            raise ConcurrencyError("another exchange is already in flight")
        self._in_flight = True

        timeout_ms = timeout_ms if timeout_ms is not None else self.settings.timeout_ms

        async def attempt() -> ChatResponse:
            return await self._attempt(
                text,
                conversation_id=conversation_id,
                parent_message_id=parent_message_id,
                timeout_ms=timeout_ms,
                cancel_signal=cancel_signal,
                on_progress=on_progress,
            )

        try:
            self.session_manager.require_ready()
            try:
                return await attempt()
            except ForbiddenError as e:
                logger.warning(f"Exchange forbidden ({e}), refreshing session and retrying once")
                await self._recover(e, self.session_manager.refresh_session)
            except SessionNotReadyError:
                raise
            except AuthError as e:
                logger.warning(f"Exchange unauthorized ({e}), resetting session and retrying once")
                await self._recover(e, self.session_manager.reset_session)
            return await attempt()
        finally:
            self._in_flight = False

    async def _recover(
        self,
        error: ForbiddenError | AuthError,
        recovery: Callable[[], Awaitable[None]],
    ) -> None:
        """Run refresh or reset; if it fails, surface the original error class."""
        try:
            await recovery()
        except SessionNotReadyError:
            raise
        except Exception as e:
            logger.error(f"Session recovery failed: {e}")
            raise type(error)(
                f"{error} (session recovery failed: {e})", status_code=error.status_code
            ) from e

    def build_request_body(
        self,
        text: str,
        request_id: str,
        conversation_id: str | None,
        parent_message_id: str | None,
    ) -> dict:
        body = {
            "action": "next",
            "messages": [
                {
                    "id": request_id,
                    "role": "user",
                    "content": {"content_type": "text", "parts": [text]},
                }
            ],
            "model": self.settings.model,
        }
        if conversation_id:
            body["conversation_id"] = conversation_id
        if parent_message_id:
            body["parent_message_id"] = parent_message_id
        return body

    async def _attempt(
        self,
        text: str,
        *,
        conversation_id: str | None,
        parent_message_id: str | None,
        timeout_ms: int,
        cancel_signal: CancelSignal | None,
        on_progress: ProgressCallback | None,
    ) -> ChatResponse:
        manager = self.session_manager
        manager.require_ready()
        await manager.derive_access_token()

        thread = manager.thread
        if conversation_id is None:
            conversation_id = thread.conversation_id
        if parent_message_id is None:
            parent_message_id = thread.parent_message_id

        request_id = str(uuid.uuid4())
        timeout = ms_to_seconds(timeout_ms)
        pending = PendingExchange(
            request_id,
            deadline=self.clock() + timeout,
            clock=self.clock,
            on_progress=on_progress,
        )

        interceptor = manager.interceptor
        interceptor.attach(pending)

        timer = asyncio.get_running_loop().call_later(timeout, pending.expire)
        remove_listener = (
            cancel_signal.add_listener(pending.abort) if cancel_signal is not None else None
        )

        def disarm() -> None:
            timer.cancel()
            if remove_listener is not None:
                remove_listener()
            interceptor.detach(pending)

        pending.on_settle(disarm)

        log_with_context(
            logger,
            logging.INFO,
            "Submitting prompt",
            context={
                "length": len(text),
                "new_conversation": conversation_id is None,
                "timeout_ms": timeout_ms,
            },
            exchange_id=request_id,
        )

        try:
            if cancel_signal is not None and cancel_signal.cancelled:
                pending.abort(cancel_signal.reason)
            else:
                body = self.build_request_body(
                    text, request_id, conversation_id, parent_message_id
                )
                try:
                    await manager.driver.evaluate(
                        SUBMIT_SCRIPT, {"url": CONVERSATION_ENDPOINT_URL, "body": body}
                    )
                except Exception as e:
                    pending.fail(ProtocolError(f"failed to submit prompt: {e}"))

            result = await pending.wait()
        except BaseException as e:
            log_with_context(
                logger,
                logging.WARNING,
                f"Exchange settled without an answer: {type(e).__name__}",
                context={
                    "settled_by": pending.settled_by,
                    "frames": pending.frames_processed,
                },
                exchange_id=request_id,
            )
            raise
        finally:
            if not pending.settled:
                pending.abort(AbortError("exchange abandoned"))

        thread.commit(result.conversation_id, result.message_id)
        log_with_context(
            logger,
            logging.INFO,
            "Exchange completed",
            context={"frames": pending.frames_processed, "length": len(result.text)},
            exchange_id=request_id,
        )
        return ChatResponse(
            conversation_id=result.conversation_id,
            message_id=result.message_id,
            response=result.text,
        )
