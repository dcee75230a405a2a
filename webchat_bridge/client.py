"""
Public client for webchat-bridge.

ChatGPTWebClient wires the collaborators together (browser driver factory,
authentication bridge, token client, capacity guard) and exposes the public
operations. It is an async context manager: the session is initialized on
enter and closed on exit.

Example:
    >>> async with ChatGPTWebClient(email="me@example.com", password="...") as client:
    ...     first = await client.send_message("Hello!")
    ...     second = await client.send_message("Tell me more")
    ...     print(second.response)
"""

import logging
import time
from collections.abc import Callable
from typing import Any

from webchat_bridge.auth.bridge import AuthenticationBridge, BrowserLoginBridge
from webchat_bridge.auth.token_client import TokenClient
from webchat_bridge.browser.launch import launch_playwright_driver
from webchat_bridge.config.loader import load_settings
from webchat_bridge.config.schema import BridgeSettings
from webchat_bridge.exchange.cancel import CancelSignal
from webchat_bridge.exchange.engine import ChatResponse, ExchangeEngine
from webchat_bridge.exchange.pending import ProgressCallback
from webchat_bridge.guard.capacity import CapacityGuard
from webchat_bridge.session.manager import DriverFactory, SessionManager
from webchat_bridge.session.models import SessionState

logger = logging.getLogger(__name__)


class ChatGPTWebClient:
    """
    Browser-backed client for the ChatGPT web app.

    Args:
        settings: Complete settings; when omitted they are loaded from the
            environment with **overrides applied
        bridge: Authentication bridge (default: BrowserLoginBridge)
        token_client: Token endpoint client (default: TokenClient)
        driver_factory: Scoped driver factory (default: launch_playwright_driver)
        clock: Monotonic clock for exchange deadlines
        **overrides: BridgeSettings fields, used when settings is omitted
    """

    def __init__(
        self,
        settings: BridgeSettings | None = None,
        *,
        bridge: AuthenticationBridge | None = None,
        token_client: TokenClient | None = None,
        driver_factory: DriverFactory | None = None,
        clock: Callable[[], float] = time.monotonic,
        **overrides: Any,
    ):
        if settings is None:
            settings = load_settings(overrides)
        elif overrides:
            settings = settings.model_copy(update=overrides)

        self.settings = settings
        self.guard = CapacityGuard(
            poll_interval_ms=settings.capacity_poll_interval_ms,
            retries=settings.capacity_retries,
        )
        self.session_manager = SessionManager(
            settings,
            bridge=bridge or BrowserLoginBridge(self.guard),
            token_client=token_client or TokenClient(),
            driver_factory=driver_factory or launch_playwright_driver,
            guard=self.guard,
        )
        self.engine = ExchangeEngine(self.session_manager, settings, clock=clock)

    @property
    def state(self) -> SessionState:
        return self.session_manager.state

    @property
    def conversation_id(self) -> str | None:
        return self.session_manager.thread.conversation_id

    @property
    def parent_message_id(self) -> str | None:
        return self.session_manager.thread.parent_message_id

    async def __aenter__(self) -> "ChatGPTWebClient":
        await self.init_session()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close_session()

    async def init_session(self) -> None:
        await self.session_manager.init_session()

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
        """Send one prompt and return the complete answer. See ExchangeEngine.send_message."""
        return await self.engine.send_message(
            text,
            conversation_id=conversation_id,
            parent_message_id=parent_message_id,
            timeout_ms=timeout_ms,
            cancel_signal=cancel_signal,
            on_progress=on_progress,
        )

    def reset_thread(self) -> None:
        self.session_manager.reset_thread()

    async def refresh_session(self) -> None:
        await self.session_manager.refresh_session()

    async def reset_session(self) -> None:
        await self.session_manager.reset_session()

    async def get_is_authenticated(self) -> bool:
        return await self.session_manager.get_is_authenticated()

    async def close_session(self) -> None:
        await self.session_manager.close_session()
