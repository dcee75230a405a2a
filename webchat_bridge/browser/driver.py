"""
Browser automation driver for webchat-bridge.

The core of the bridge only ever talks to a BrowserDriver: a page it can
navigate, whose network traffic it can observe, and in which it can evaluate
scripts. PlaywrightDriver adapts a Playwright async Page to that protocol.

Key components:
- BrowserDriver: Protocol the session, interceptor, engine and guard depend on
- InterceptedRequest / InterceptedResponse: Views of one network event
- PlaywrightDriver: Adapter over playwright.async_api.Page

Example:
    >>> async with launch_playwright_driver(settings) as driver:
    ...     await driver.navigate("https://chat.openai.com/auth/login")
    ...     cookies = await driver.cookies()
"""

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, Protocol

from playwright.async_api import Page, Request, Response, Route

logger = logging.getLogger(__name__)


class InterceptedRequest(Protocol):
    """An outgoing request paused before it leaves the page."""

    url: str
    method: str
    headers: dict[str, str]
    resource_type: str

    async def continue_(self, headers: dict[str, str] | None = None) -> None: ...

    async def abort(self) -> None: ...


class InterceptedResponse(Protocol):
    """
    An incoming response whose body can be read line by line.

    request_body is the post body of the request it answers, used to tell
    which exchange a conversation response belongs to.
    """

    url: str
    status: int
    request_body: str | None

    def iter_lines(self) -> AsyncIterator[str]: ...


RequestHandler = Callable[[InterceptedRequest], Awaitable[None]]
ResponseHandler = Callable[[InterceptedResponse], Awaitable[None]]


class BrowserDriver(Protocol):
    """
    Primitives the bridge needs from a browser page.

    Implementations:
        PlaywrightDriver: Real browser page (local or remote over CDP)
        tests.conftest.FakeDriver: In-memory page with scripted traffic
    """

    @property
    def url(self) -> str: ...

    async def navigate(self, url: str) -> None: ...

    async def reload(self) -> None: ...

    async def on_request(self, handler: RequestHandler) -> None: ...

    async def on_response(self, handler: ResponseHandler) -> None: ...

    async def evaluate(self, script: str, arg: Any = None) -> Any: ...

    async def cookies(self) -> list[dict]: ...

    async def user_agent(self) -> str: ...

    async def close(self) -> None: ...


class _PlaywrightRequest:
    """InterceptedRequest backed by a Playwright Route."""

    def __init__(self, route: Route):
        self._route = route
        request: Request = route.request
        self.url = request.url
        self.method = request.method
        self.headers = dict(request.headers)
        self.resource_type = request.resource_type

    async def continue_(self, headers: dict[str, str] | None = None) -> None:
        if headers is None:
            await self._route.continue_()
        else:
            await self._route.continue_(headers=headers)

    async def abort(self) -> None:
        await self._route.abort()


class _PlaywrightResponse:
    """
    InterceptedResponse backed by a Playwright Response.

    Playwright hands out the body once the response has finished, so lines
    are produced from the complete body; decoding downstream is still
    line-by-line and in arrival order.
    """

    def __init__(self, response: Response):
        self._response = response
        self.url = response.url
        self.status = response.status
        self.request_body = response.request.post_data

    async def iter_lines(self) -> AsyncIterator[str]:
        body = await self._response.body()
        for line in body.decode("utf-8", errors="replace").splitlines():
            yield line


class PlaywrightDriver:
    """
    BrowserDriver over a Playwright async Page.

    Attributes:
        page: Underlying Playwright page (used by BrowserLoginBridge for form input)
    """

    def __init__(self, page: Page):
        self.page = page

    @property
    def url(self) -> str:
        return self.page.url

    async def navigate(self, url: str) -> None:
        logger.debug(f"Navigating to {url}")
        await self.page.goto(url, wait_until="networkidle")

    async def reload(self) -> None:
        logger.debug(f"Reloading {self.page.url}")
        await self.page.reload(wait_until="networkidle")

    async def on_request(self, handler: RequestHandler) -> None:
        async def route_handler(route: Route) -> None:
            await handler(_PlaywrightRequest(route))

        await self.page.route("**/*", route_handler)

    async def on_response(self, handler: ResponseHandler) -> None:
        async def response_handler(response: Response) -> None:
            await handler(_PlaywrightResponse(response))

        self.page.on("response", response_handler)

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        return await self.page.evaluate(script, arg)

    async def cookies(self) -> list[dict]:
        return [dict(cookie) for cookie in await self.page.context.cookies()]

    async def user_agent(self) -> str:
        return await self.page.evaluate("() => navigator.userAgent")

    async def close(self) -> None:
        if not self.page.is_closed():
            await self.page.close()
