"""
Session lifecycle for webchat-bridge.

The SessionManager owns the browser page, the authentication material and the
conversation thread of one client. It drives the state machine

    UNINITIALIZED -> INITIALIZING -> READY
    READY -> REFRESHING -> READY        (on 403)
    READY -> RESETTING -> INITIALIZING  (on 401)
    READY -> CLOSED                     (explicit close, terminal)

The page is acquired through a driver factory (an async context manager) kept
on an AsyncExitStack, so it is released on every exit path: a failed
initialization, a reset, or an explicit close.

Example:
    >>> manager = SessionManager(settings, BrowserLoginBridge(guard), TokenClient(),
    ...                          launch_playwright_driver, guard)
    >>> await manager.init_session()
    >>> manager.state
    <SessionState.READY: 'ready'>
"""

import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager, AsyncExitStack

from webchat_bridge.auth.bridge import (
    AuthenticationBridge,
    ChallengeHooks,
    Credentials,
    cookie_value,
)
from webchat_bridge.auth.token_client import TokenClient
from webchat_bridge.browser.driver import BrowserDriver
from webchat_bridge.config.constants import (
    CLEARANCE_TOKEN_COOKIE,
    LOGIN_URL,
    SESSION_TOKEN_COOKIE,
)
from webchat_bridge.config.schema import BridgeSettings
from webchat_bridge.exceptions import (
    AuthError,
    ServiceUnavailable,
    SessionNotReadyError,
    WebChatBridgeError,
)
from webchat_bridge.guard.capacity import CapacityGuard
from webchat_bridge.network.interceptor import NetworkInterceptor

from .models import ConversationThread, Session, SessionState

logger = logging.getLogger(__name__)

DriverFactory = Callable[[BridgeSettings], AbstractAsyncContextManager[BrowserDriver]]


class SessionManager:
    """
    Owner of one authenticated browser session.

    Attributes:
        settings: Bridge settings
        state: Current lifecycle state
        session: Authentication material, None unless initialized
        thread: Conversation ids chaining consecutive exchanges
        driver: Page of the session, None unless initialized
        interceptor: Network hooks installed on the page
    """

    def __init__(
        self,
        settings: BridgeSettings,
        bridge: AuthenticationBridge,
        token_client: TokenClient,
        driver_factory: DriverFactory,
        guard: CapacityGuard,
    ):
        self.settings = settings
        self.bridge = bridge
        self.token_client = token_client
        self.driver_factory = driver_factory
        self.guard = guard

        self.state = SessionState.UNINITIALIZED
        self.session: Session | None = None
        self.thread = ConversationThread()
        self.driver: BrowserDriver | None = None
        self.interceptor: NetworkInterceptor | None = None
        self._stack: AsyncExitStack | None = None

    @property
    def credentials(self) -> Credentials | None:
        if not self.settings.has_credentials:
            return None
        return Credentials(
            email=self.settings.email,
            password=self.settings.password,
            provider=self.settings.login_provider,
        )

    def require_ready(self) -> None:
        """
        Raises:
            SessionNotReadyError: Unless the session is READY
        """
        if self.state is not SessionState.READY:
            raise SessionNotReadyError(f"session is not ready (state={self.state.value})")

    async def init_session(self) -> None:
        """
        Acquire a page, authenticate and derive the first access token.

        Calling it on a READY session is a no-op.

        Raises:
            SessionNotReadyError: If the session was closed
            AuthError: If no usable session token is obtained, or the token
                endpoint rejects it
            ServiceUnavailable: If the page cannot be reached or stays at capacity
        """
        if self.state is SessionState.READY:
            return
        if self.state not in (SessionState.UNINITIALIZED, SessionState.RESETTING):
            raise SessionNotReadyError(
                f"cannot initialize session in state={self.state.value}"
            )

        self.state = SessionState.INITIALIZING
        logger.info("Initializing session")

        try:
            self._stack = AsyncExitStack()
            try:
                self.driver = await self._stack.enter_async_context(
                    self.driver_factory(self.settings)
                )
            except Exception as e:
                raise ServiceUnavailable(f"failed to start browser: {e}") from e
            await self._goto(LOGIN_URL)

            hooks = ChallengeHooks(captcha_token=self.settings.captcha_token)
            try:
                result = await self.bridge.authenticate(
                    self.driver, self.credentials, hooks
                )
            except WebChatBridgeError:
                raise
            except Exception as e:
                raise AuthError(f"authentication failed: {e}") from e

            session_token = result.session_token or self.settings.session_token
            if not session_token:
                raise AuthError(
                    "no session token: supply credentials or a session_token setting"
                )

            self.session = Session(
                user_agent=result.user_agent,
                session_token=session_token,
                clearance_token=result.clearance_token,
                cookies=result.cookies,
            )
            await self.derive_access_token()

            self.interceptor = NetworkInterceptor(
                self.driver,
                access_token=lambda: self.session.access_token if self.session else None,
                block_resources=self.settings.block_resources,
            )
            try:
                await self.interceptor.install()
            except Exception as e:
                raise ServiceUnavailable(f"failed to hook page traffic: {e}") from e
        except BaseException:
            await self._release()
            self.session = None
            self.state = SessionState.UNINITIALIZED
            logger.error("Session initialization failed, browser released")
            raise

        self.state = SessionState.READY
        logger.info("Session ready")

    async def refresh_session(self) -> None:
        """
        Re-navigate the page and re-derive clearance and access tokens.

        The session token is kept.

        Raises:
            SessionNotReadyError: Unless the session is READY
            ServiceUnavailable: If the page cannot be reloaded or read
            AuthError: If the token endpoint rejects the session token
        """
        self.require_ready()
        self.state = SessionState.REFRESHING
        logger.info("Refreshing session")

        try:
            await self._goto(self.driver.url or LOGIN_URL)

            cookies, user_agent = await self._read_page_state()
            self.session.cookies = cookies
            self.session.clearance_token = (
                cookie_value(cookies, CLEARANCE_TOKEN_COOKIE) or self.session.clearance_token
            )
            self.session.session_token = (
                cookie_value(cookies, SESSION_TOKEN_COOKIE) or self.session.session_token
            )
            self.session.user_agent = user_agent
            self.session.access_token = None
            self.session.expires_at = None

            await self.derive_access_token()
        finally:
            self.state = SessionState.READY

    async def reset_session(self) -> None:
        """
        Discard the session, release the page and initialize from scratch.

        Raises:
            SessionNotReadyError: If the session was closed
        """
        if self.state is SessionState.CLOSED:
            raise SessionNotReadyError("session is closed")

        self.state = SessionState.RESETTING
        logger.info("Resetting session")

        self.session = None
        await self._release()
        await self.init_session()

    async def close_session(self) -> None:
        """Release the page and browser. The manager cannot be used afterwards."""
        if self.state is SessionState.CLOSED:
            return

        try:
            await self._release()
        except Exception as e:
            logger.warning(f"Error while releasing browser: {e}")

        self.session = None
        self.thread.reset()
        self.state = SessionState.CLOSED
        logger.info("Session closed")

    async def get_is_authenticated(self) -> bool:
        """
        Probe the token endpoint once with the current session token.

        Returns:
            bool: True if an access token was granted
        """
        if self.state is not SessionState.READY or self.session is None:
            return False

        try:
            await self.token_client.fetch_access_token(
                self.session.session_token,
                self.session.clearance_token,
                self.session.user_agent,
                retry=False,
            )
        except WebChatBridgeError as e:
            logger.info(f"Authentication probe failed: {e}")
            return False
        return True

    async def derive_access_token(self) -> str:
        """
        Exchange the session token for a fresh access token.

        Returns:
            str: The new access token (also stored on the session)

        Raises:
            SessionNotReadyError: If there is no session
            AuthError: If the token endpoint rejects the session token
        """
        if self.session is None:
            raise SessionNotReadyError("no session to derive an access token from")

        grant = await self.token_client.fetch_access_token(
            self.session.session_token,
            self.session.clearance_token,
            self.session.user_agent,
        )
        self.session.access_token = grant.access_token
        self.session.expires_at = grant.expires_at
        return grant.access_token

    def reset_thread(self) -> None:
        self.thread.reset()
        logger.debug("Conversation thread reset")

    async def _goto(self, url: str) -> None:
        try:
            await self.driver.navigate(url)
        except Exception as e:
            raise ServiceUnavailable(f"failed to load {url}: {e}") from e
        await self.guard.check(self.driver)

    async def _read_page_state(self) -> tuple[dict[str, dict], str]:
        try:
            cookies = await self.driver.cookies()
            user_agent = await self.driver.user_agent()
        except Exception as e:
            raise ServiceUnavailable(f"failed to read page state: {e}") from e
        return {cookie["name"]: cookie for cookie in cookies}, user_agent

    async def _release(self) -> None:
        stack, self._stack = self._stack, None
        self.driver = None
        self.interceptor = None
        if stack is not None:
            await stack.aclose()
