"""
Scoped browser acquisition for webchat-bridge.

Launching and configuring the browser process sits outside the bridge core;
these helpers are the default driver factories handed to SessionManager.
Each one is an async context manager so the page and browser are released on
every exit path.

Key components:
- launch_playwright_driver(): Local Chromium launched through Playwright
- steel_driver(): Remote browser session hosted by Steel, attached over CDP
- proxy_settings(): Split "user:pass@host:port" into Playwright proxy settings

Example:
    >>> async with launch_playwright_driver(settings) as driver:
    ...     await driver.navigate(LOGIN_URL)
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from playwright.async_api import async_playwright

try:
    from steel import Steel
except ImportError:
    Steel = None

from webchat_bridge.config.schema import BridgeSettings

from .driver import PlaywrightDriver

logger = logging.getLogger(__name__)

# Chromium switches that keep the anti-bot edge layer from flagging automation
CHROMIUM_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-infobars",
    "--disable-dev-shm-usage",
    "--disable-blink-features=AutomationControlled",
    "--ignore-certificate-errors",
    "--no-first-run",
    "--no-service-autorun",
    "--password-store=basic",
    "--mute-audio",
    "--disable-default-apps",
]


def proxy_settings(proxy_server: str | None) -> dict | None:
    """
    Convert a proxy URL into Playwright proxy settings.

    Args:
        proxy_server: "host:port" or "user:pass@host:port", optionally with scheme

    Returns:
        dict | None: {"server", "username"?, "password"?} or None if no proxy

    Example:
        >>> proxy_settings("bob:secret@10.0.0.1:8080")
        {'server': '10.0.0.1:8080', 'username': 'bob', 'password': 'secret'}
    """
    if not proxy_server:
        return None

    scheme = ""
    rest = proxy_server
    if "://" in rest:
        scheme, rest = rest.split("://", 1)
        scheme = f"{scheme}://"

    if "@" not in rest:
        return {"server": f"{scheme}{rest}"}

    credentials, host = rest.rsplit("@", 1)
    username, _, password = credentials.partition(":")
    return {"server": f"{scheme}{host}", "username": username, "password": password}


@asynccontextmanager
async def launch_playwright_driver(
    settings: BridgeSettings,
) -> AsyncIterator[PlaywrightDriver]:
    """
    Launch Chromium and yield a driver over its first page.

    Args:
        settings: Bridge settings (headless, executable_path, proxy_server, minimize)

    Yields:
        PlaywrightDriver: Driver bound to a fresh page
    """
    args = list(CHROMIUM_ARGS)
    if settings.minimize:
        args.append("--start-minimized")

    async with async_playwright() as p:
        browser = await p.chromium.launch(
            headless=settings.headless,
            executable_path=settings.executable_path,
            proxy=proxy_settings(settings.proxy_server),
            args=args,
            ignore_default_args=["--enable-automation"],
        )
        logger.info(f"Launched Chromium (headless={settings.headless})")

        try:
            context = await browser.new_context(ignore_https_errors=True)
            page = await context.new_page()
            page.set_default_timeout(settings.timeout_ms)
            driver = PlaywrightDriver(page)
            try:
                yield driver
            finally:
                await driver.close()
        finally:
            await browser.close()
            logger.info("Closed Chromium")


@asynccontextmanager
async def steel_driver(
    steel_api_key: str,
    settings: BridgeSettings,
    session_timeout_ms: int = 300_000,
) -> AsyncIterator[PlaywrightDriver]:
    """
    Create a Steel browser session and yield a driver attached over CDP.

    The Steel SDK client is synchronous, so its calls run in a worker thread
    to keep the event loop free.

    Args:
        steel_api_key: Steel API key
        settings: Bridge settings (proxy_server, timeout_ms)
        session_timeout_ms: Maximum lifetime of the remote session

    Yields:
        PlaywrightDriver: Driver bound to the remote session's page

    Raises:
        ImportError: If steel-sdk is not installed
        RuntimeError: If the Steel session exposes no CDP websocket URL
    """
    if Steel is None:
        raise ImportError(
            "Steel SDK is not installed. Install it with: pip install webchat-bridge[steel]"
        )

    steel_client = Steel(steel_api_key=steel_api_key)

    create_params: dict = {"api_timeout": session_timeout_ms}
    if settings.proxy_server:
        create_params["use_proxy"] = {"value": settings.proxy_server}

    session = await asyncio.to_thread(steel_client.sessions.create, **create_params)
    logger.info(f"Created Steel session: {session.id}")

    try:
        ws_url = getattr(session, "websocket_url", None) or getattr(
            session, "cdp_url", None
        )
        if not ws_url:
            raise RuntimeError(f"Steel session {session.id} has no websocket URL")

        async with async_playwright() as p:
            browser = await p.chromium.connect_over_cdp(
                ws_url, timeout=settings.timeout_ms
            )
            context = browser.contexts[0] if browser.contexts else await browser.new_context()
            page = context.pages[0] if context.pages else await context.new_page()
            page.set_default_timeout(settings.timeout_ms)
            driver = PlaywrightDriver(page)
            try:
                yield driver
            finally:
                try:
                    await driver.close()
                finally:
                    await browser.close()

    finally:
        try:
            await asyncio.to_thread(steel_client.sessions.release, session.id)
            logger.info(f"Released Steel session: {session.id}")
        except Exception as e:
            # Release failures must not mask the error that ended the session
            logger.warning(f"Failed to release Steel session {session.id}: {e}")

