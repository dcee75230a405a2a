"""
Authentication Bridge for webchat-bridge.

The bridge turns a freshly navigated login page into authentication
artifacts: the clearance cookie from the anti-bot edge layer and, when
credentials are supplied, the session cookie of a logged-in user. The session
manager treats it as an opaque collaborator.

Key components:
- AuthenticationBridge: Protocol the session manager depends on
- AuthResult / Credentials / ChallengeHooks: Bridge inputs and outputs
- BrowserLoginBridge: Default bridge driving the login form in the page

Example:
    >>> bridge = BrowserLoginBridge(CapacityGuard())
    >>> result = await bridge.authenticate(
    ...     driver, Credentials("me@example.com", "hunter2"), ChallengeHooks()
    ... )
    >>> result.session_token is not None
    True
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Literal, Protocol

from webchat_bridge.browser.driver import BrowserDriver
from webchat_bridge.config.constants import CLEARANCE_TOKEN_COOKIE, SESSION_TOKEN_COOKIE
from webchat_bridge.guard.capacity import CapacityGuard
from webchat_bridge.utils.time import ms_to_seconds

logger = logging.getLogger(__name__)

LoginProvider = Literal["default", "google", "microsoft"]

PROVIDER_BUTTONS = {
    "google": 'button[data-provider="google"]',
    "microsoft": 'button[data-provider="windowslive"]',
}


@dataclass
class Credentials:
    """Login credentials. The password is NEVER logged."""

    email: str
    password: str = field(repr=False)
    provider: LoginProvider = "default"


@dataclass
class ChallengeHooks:
    """
    Challenge-solving hooks handed to the bridge.

    Attributes:
        captcha_token: Opaque token for an external captcha-solving service
        solve_challenges: Coroutine run whenever the page may show a challenge
    """

    captcha_token: str | None = field(default=None, repr=False)
    solve_challenges: Callable[[BrowserDriver], Awaitable[None]] | None = None


@dataclass
class AuthResult:
    """
    Authentication artifacts captured from the page.

    Attributes:
        user_agent: User agent of the browser that earned the clearance
        clearance_token: Anti-bot clearance cookie value
        session_token: Session cookie value (None when no login took place)
        cookies: All page cookies keyed by name
    """

    user_agent: str
    clearance_token: str | None
    session_token: str | None
    cookies: dict[str, dict] = field(default_factory=dict, repr=False)


class AuthenticationBridge(Protocol):
    """Acquires authentication artifacts from a page already on the login surface."""

    async def authenticate(
        self,
        driver: BrowserDriver,
        credentials: Credentials | None,
        hooks: ChallengeHooks,
    ) -> AuthResult: ...


def cookie_value(cookies: dict[str, dict], name: str) -> str | None:
    cookie = cookies.get(name)
    return cookie.get("value") if cookie else None


class BrowserLoginBridge:
    """
    Default bridge: drives the login form of the chat service.

    Without credentials it waits for the edge layer to set its clearance
    cookie and returns only that. With credentials it clicks through the login
    page for the configured provider, guarding every wait with the capacity
    guard. Form input needs a Playwright page, so logging in requires a
    PlaywrightDriver.

    Attributes:
        guard: Capacity guard used around page waits
        settle_delay_ms: Pause that lets the clearance cookie settle
        typing_delay_ms: Per-keystroke delay when filling the form
    """

    def __init__(
        self,
        guard: CapacityGuard,
        settle_delay_ms: int = 2000,
        typing_delay_ms: int = 10,
    ):
        self.guard = guard
        self.settle_delay_ms = settle_delay_ms
        self.typing_delay_ms = typing_delay_ms

    async def authenticate(
        self,
        driver: BrowserDriver,
        credentials: Credentials | None,
        hooks: ChallengeHooks,
    ) -> AuthResult:
        await self._solve(driver, hooks)

        if credentials is None:
            logger.info("No credentials supplied, collecting clearance only")
            await asyncio.sleep(ms_to_seconds(self.settle_delay_ms))
            await self.guard.check(driver)
        else:
            logger.info(f"Logging in with provider={credentials.provider}")
            await self._login(driver, credentials, hooks)

        cookies = {cookie["name"]: cookie for cookie in await driver.cookies()}
        return AuthResult(
            user_agent=await driver.user_agent(),
            clearance_token=cookie_value(cookies, CLEARANCE_TOKEN_COOKIE),
            session_token=cookie_value(cookies, SESSION_TOKEN_COOKIE),
            cookies=cookies,
        )

    async def _solve(self, driver: BrowserDriver, hooks: ChallengeHooks) -> None:
        if hooks.solve_challenges is not None:
            await hooks.solve_challenges(driver)

    async def _login(
        self,
        driver: BrowserDriver,
        credentials: Credentials,
        hooks: ChallengeHooks,
    ) -> None:
        page = getattr(driver, "page", None)
        if page is None:
            raise TypeError("BrowserLoginBridge needs a PlaywrightDriver to log in")

        await self.guard.wait_for(
            driver, lambda: page.wait_for_selector("#__next .btn-primary")
        )
        await asyncio.sleep(0.5)

        async with page.expect_navigation(wait_until="networkidle"):
            await page.click("#__next .btn-primary")
        await self.guard.check(driver)

        email_input = 'input[type="email"]'
        password_input = 'input[type="password"]'

        if credentials.provider in PROVIDER_BUTTONS:
            await page.click(PROVIDER_BUTTONS[credentials.provider])
            await page.wait_for_selector(email_input)
            await page.type(email_input, credentials.email, delay=self.typing_delay_ms)
            async with page.expect_navigation():
                await page.keyboard.press("Enter")
            await page.wait_for_selector(password_input, state="visible")
            await page.type(
                password_input, credentials.password, delay=self.typing_delay_ms
            )

            async def submit() -> None:
                await page.keyboard.press("Enter")

        else:
            await page.wait_for_selector("#username")
            await page.type("#username", credentials.email)
            await self._solve(driver, hooks)
            await page.click('button[type="submit"]')
            await page.wait_for_selector("#password")
            await page.type("#password", credentials.password, delay=self.typing_delay_ms)

            async def submit() -> None:
                await page.click('button[type="submit"]')

        # Arm the navigation wait before submitting so the event cannot be missed
        navigation = asyncio.ensure_future(
            self.guard.wait_for(driver, lambda: page.wait_for_event("framenavigated"))
        )
        try:
            await submit()
        except BaseException:
            navigation.cancel()
            raise
        await navigation
        await page.wait_for_load_state("networkidle")
        logger.info("Login form submitted")
