"""
Network interception for the conversation endpoint.

The interceptor hooks the page's outgoing requests and incoming responses
once, then binds exchanges to those hooks one at a time:

- Outgoing: requests to the conversation endpoint get the current bearer
  access token; everything else passes unmodified (or is aborted when
  non-essential resource blocking is on).
- Incoming: the conversation endpoint's response is classified by status and
  its body is decoded into frames delivered to the attached PendingExchange.

Only one exchange can be attached at a time, and a response is delivered to it
only when the request it answers carries that exchange's message id. Late
responses to earlier exchanges are discarded. A body reader whose exchange has
been detached or settled stops consuming, and the rest of the stream is
discarded; the browser-level request itself is never aborted.
"""

import json
import logging
from collections.abc import Callable
from urllib.parse import urlsplit

from webchat_bridge.browser.driver import (
    BrowserDriver,
    InterceptedRequest,
    InterceptedResponse,
)
from webchat_bridge.config.constants import (
    BLOCKED_RESOURCE_TYPES,
    CONVERSATION_ENDPOINT_PATH,
)
from webchat_bridge.exceptions import (
    AuthError,
    ConcurrencyError,
    ForbiddenError,
    ProtocolError,
    ServiceUnavailable,
    WebChatBridgeError,
)
from webchat_bridge.exchange.pending import PendingExchange
from webchat_bridge.network.stream import StreamDecoder

logger = logging.getLogger(__name__)


def classify_status(status: int) -> WebChatBridgeError | None:
    """
    Map a conversation endpoint status to the error it settles the exchange with.

    Returns:
        WebChatBridgeError | None: None for 2xx statuses
    """
    if 200 <= status < 300:
        return None
    if status == 401:
        return AuthError("conversation request unauthorized", status_code=401)
    if status == 403:
        return ForbiddenError("conversation request forbidden", status_code=403)
    if status == 429 or status >= 500:
        return ServiceUnavailable(
            f"conversation endpoint unavailable (status={status})", status_code=status
        )
    return ProtocolError(
        f"unexpected conversation endpoint status: {status}", status_code=status
    )


def exchange_request_id(request_body: str | None) -> str | None:
    """
    Extract the prompt message id from a conversation request body.

    Returns:
        str | None: messages[0].id, or None when the body is absent or not a
        conversation request
    """
    if not request_body:
        return None
    try:
        body = json.loads(request_body)
        return body["messages"][0]["id"]
    except (ValueError, KeyError, IndexError, TypeError):
        return None


class NetworkInterceptor:
    """
    Request/response hooks for one page, with per-exchange attach/detach.

    Attributes:
        driver: Page whose traffic is intercepted
        block_resources: Abort image/font/media requests when True
    """

    def __init__(
        self,
        driver: BrowserDriver,
        access_token: Callable[[], str | None],
        block_resources: bool = False,
        endpoint_path: str = CONVERSATION_ENDPOINT_PATH,
    ):
        self.driver = driver
        self.block_resources = block_resources
        self._access_token = access_token
        self._endpoint_path = endpoint_path.rstrip("/")
        self._pending: PendingExchange | None = None
        self._installed = False

    @property
    def pending(self) -> PendingExchange | None:
        return self._pending

    async def install(self) -> None:
        """Register both hooks on the page. Idempotent."""
        if self._installed:
            return
        await self.driver.on_request(self.handle_request)
        await self.driver.on_response(self.handle_response)
        self._installed = True
        logger.debug("Network interceptor installed")

    def attach(self, pending: PendingExchange) -> None:
        """
        Bind an exchange to the response hook.

        Raises:
            ConcurrencyError: If another unsettled exchange is attached
        """
        if self._pending is not None and not self._pending.settled:
            raise ConcurrencyError(
                f"exchange {self._pending.request_id} is still pending on this page"
            )
        self._pending = pending

    def detach(self, pending: PendingExchange | None = None) -> None:
        """Unbind the given exchange (or whichever is attached)."""
        if pending is None or self._pending is pending:
            self._pending = None

    def is_conversation_url(self, url: str) -> bool:
        return urlsplit(url).path.rstrip("/") == self._endpoint_path

    async def handle_request(self, request: InterceptedRequest) -> None:
        if self.is_conversation_url(request.url) and request.method.upper() == "POST":
            token = self._access_token()
            headers = dict(request.headers)
            if token:
                headers["authorization"] = f"Bearer {token}"
            else:
                logger.warning("Conversation request sent without an access token")
            await request.continue_(headers=headers)
            return

        if self.block_resources and request.resource_type in BLOCKED_RESOURCE_TYPES:
            await request.abort()
            return

        await request.continue_()

    async def handle_response(self, response: InterceptedResponse) -> None:
        if not self.is_conversation_url(response.url):
            return

        pending = self._pending
        if pending is None or pending.settled:
            logger.debug("Conversation response with no exchange attached, discarding")
            return

        if exchange_request_id(response.request_body) != pending.request_id:
            logger.debug(
                f"Conversation response does not answer exchange {pending.request_id}, discarding"
            )
            return

        error = classify_status(response.status)
        if error is not None:
            logger.warning(
                f"Conversation endpoint answered status={response.status} "
                f"for exchange {pending.request_id}"
            )
            pending.fail(error)
            return

        decoder = StreamDecoder()
        try:
            async for frame in decoder.frames(response.iter_lines()):
                if self._pending is not pending or pending.settled:
                    logger.debug(
                        f"Exchange {pending.request_id} detached, discarding remaining frames"
                    )
                    return
                if frame.is_terminal:
                    break
                pending.deliver(frame)
        except ProtocolError as e:
            pending.fail(e)
            return
        except Exception as e:
            pending.fail(ProtocolError(f"failed to read conversation stream: {e}"))
            return

        pending.complete()
