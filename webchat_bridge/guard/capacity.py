"""
Capacity guard for page-readiness waits.

When the chat service is overloaded it replaces the page with an
"at capacity" banner instead of the element a wait is looking for, so a plain
wait would hang until its own timeout. The guard races the wait against a
fixed-interval poll for that banner; on detection it reloads the page, waits
one polling interval and retries the wait, up to a bounded budget.

Key components:
- CapacityGuard.check(): Condition-less check right after a navigation
- CapacityGuard.wait_for(): Guarded wait, raced against the banner poll

Example:
    >>> guard = CapacityGuard(poll_interval_ms=3000, retries=10)
    >>> await guard.wait_for(driver, lambda: page.wait_for_selector("#prompt-textarea"))
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from webchat_bridge.browser.driver import BrowserDriver
from webchat_bridge.config.constants import (
    CAPACITY_BANNER_TEXT,
    DEFAULT_CAPACITY_POLL_INTERVAL_MS,
    DEFAULT_CAPACITY_RETRIES,
)
from webchat_bridge.exceptions import ServiceUnavailable
from webchat_bridge.utils.latch import OneShotLatch
from webchat_bridge.utils.time import ms_to_seconds

logger = logging.getLogger(__name__)

CAPACITY_SCRIPT = """(bannerText) => {
  const body = document.body;
  return !!body && body.innerText.toLowerCase().includes(bannerText);
}"""

# Settlement marker for "the poller saw the banner"
_AT_CAPACITY = object()


class CapacityGuard:
    """
    Bounded reload-and-retry around waits on a page.

    Attributes:
        poll_interval_ms: Interval between banner polls, and pause after a reload
        retries: Number of banner detections tolerated before ServiceUnavailable
        banner_text: Case-insensitive text identifying the capacity banner
    """

    def __init__(
        self,
        poll_interval_ms: int = DEFAULT_CAPACITY_POLL_INTERVAL_MS,
        retries: int = DEFAULT_CAPACITY_RETRIES,
        banner_text: str = CAPACITY_BANNER_TEXT,
    ):
        self.poll_interval_ms = poll_interval_ms
        self.retries = retries
        self.banner_text = banner_text.lower()

    @property
    def _interval(self) -> float:
        return ms_to_seconds(self.poll_interval_ms)

    async def is_at_capacity(self, driver: BrowserDriver) -> bool:
        return bool(await driver.evaluate(CAPACITY_SCRIPT, self.banner_text))

    async def check(self, driver: BrowserDriver) -> None:
        """
        Reload while the banner is shown, until it clears or the budget is spent.

        Errors while probing the page (typically a navigation in progress) end
        the check without failing it.

        Raises:
            ServiceUnavailable: If the banner was seen `retries` times
        """
        detections = 0
        while True:
            try:
                at_capacity = await self.is_at_capacity(driver)
            except Exception as e:
                logger.debug(f"Capacity check interrupted, likely by navigation: {e}")
                return

            if not at_capacity:
                return

            detections += 1
            await self._recover(driver, detections)

    async def wait_for(
        self,
        driver: BrowserDriver,
        condition: Callable[[], Awaitable[Any]],
    ) -> Any:
        """
        Run a wait condition raced against the capacity poll.

        Args:
            driver: Page to poll and reload
            condition: Factory producing a fresh wait each attempt

        Returns:
            Whatever the condition's awaitable returns

        Raises:
            ServiceUnavailable: If the banner was seen `retries` times
            Exception: The condition's own error, if it fails first
        """
        detections = 0
        while True:
            outcome = await self._race(driver, condition)
            if outcome is not _AT_CAPACITY:
                return outcome

            detections += 1
            await self._recover(driver, detections)

    async def _recover(self, driver: BrowserDriver, detections: int) -> None:
        if detections >= self.retries:
            logger.error(f"Service still at capacity after {detections} checks")
            raise ServiceUnavailable("ChatGPT is at capacity", status_code=503)

        logger.warning(
            f"Service at capacity (check {detections}/{self.retries}), reloading page"
        )
        try:
            await driver.reload()
        except Exception as e:
            logger.debug(f"Reload after capacity banner failed: {e}")
        await asyncio.sleep(self._interval)

    async def _race(
        self,
        driver: BrowserDriver,
        condition: Callable[[], Awaitable[Any]],
    ) -> Any:
        latch = OneShotLatch()

        async def run_condition() -> None:
            try:
                latch.resolve(await condition(), source="condition")
            except Exception as e:
                latch.reject(e, source="condition")

        async def poll() -> None:
            while not latch.settled:
                await asyncio.sleep(self._interval)
                if latch.settled:
                    return
                try:
                    if await self.is_at_capacity(driver):
                        latch.resolve(_AT_CAPACITY, source="capacity")
                        return
                except Exception as e:
                    # The condition's own outcome decides; probe errors are noise
                    logger.debug(f"Capacity poll failed: {e}")

        tasks = [
            asyncio.create_task(run_condition()),
            asyncio.create_task(poll()),
        ]
        try:
            return await latch.wait()
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
