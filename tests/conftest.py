"""
Shared test doubles for webchat-bridge.

FakeDriver stands in for a browser page: it records navigations and reloads,
shows a capacity banner for a configurable number of reloads, and answers
prompts submitted through SUBMIT_SCRIPT by running the registered request and
response hooks with scripted FakeResponses.
"""

import asyncio
import json
from contextlib import asynccontextmanager

import pytest

from webchat_bridge.auth.bridge import AuthResult
from webchat_bridge.auth.token_client import AccessGrant
from webchat_bridge.client import ChatGPTWebClient
from webchat_bridge.config.constants import (
    CLEARANCE_TOKEN_COOKIE,
    CONVERSATION_ENDPOINT_URL,
)
from webchat_bridge.config.schema import BridgeSettings
from webchat_bridge.exchange.engine import SUBMIT_SCRIPT
from webchat_bridge.guard.capacity import CAPACITY_SCRIPT

FAKE_USER_AGENT = "Mozilla/5.0 (X11; Linux x86_64) FakeBrowser/1.0"


def frame_line(text: str, message_id: str = "msg-1", conversation_id: str = "conv-1") -> str:
    """Build one event-stream data line carrying cumulative text."""
    payload = {
        "message": {
            "id": message_id,
            "role": "assistant",
            "content": {"content_type": "text", "parts": [text]},
        },
        "conversation_id": conversation_id,
    }
    return f"data: {json.dumps(payload)}"


DONE_LINE = "data: [DONE]"


class FakeRequest:
    """Intercepted request double recording how it was let through."""

    def __init__(self, url, method="GET", headers=None, resource_type="document"):
        self.url = url
        self.method = method
        self.headers = headers or {}
        self.resource_type = resource_type
        self.continued = False
        self.continued_headers = None
        self.aborted = False

    async def continue_(self, headers=None):
        self.continued = True
        self.continued_headers = headers

    async def abort(self):
        self.aborted = True


class FakeResponse:
    """
    Intercepted response double yielding canned lines.

    request_body defaults to a conversation body for request_id; FakeDriver
    replaces it with the body actually submitted.
    """

    def __init__(
        self, lines=(), status=200, url=CONVERSATION_ENDPOINT_URL, delay=0.0, request_id="req-1"
    ):
        self.url = url
        self.status = status
        self.request_body = json.dumps({"messages": [{"id": request_id}]})
        self.lines = list(lines)
        self.delay = delay

    async def iter_lines(self):
        for line in self.lines:
            yield line


def answer(*texts, message_id="msg-1", conversation_id="conv-1", delay=0.0):
    """FakeResponse streaming each cumulative text, then the sentinel."""
    lines = [frame_line(text, message_id, conversation_id) for text in texts]
    return FakeResponse(lines + [DONE_LINE], delay=delay)


class FakeDriver:
    """
    In-memory BrowserDriver.

    replies is a queue consumed by submitted prompts: a FakeResponse is
    delivered to the response hooks, None means the page never answers.
    """

    def __init__(self, replies=None, capacity_cycles=0):
        self.url = "about:blank"
        self.navigations = []
        self.reloads = 0
        self.capacity_cycles = capacity_cycles
        self.cookie_jar = [{"name": CLEARANCE_TOKEN_COOKIE, "value": "clearance-1"}]
        self.agent = FAKE_USER_AGENT
        self.replies = replies if replies is not None else []
        self.submissions = []
        self.sent_requests = []
        self.request_handlers = []
        self.response_handlers = []
        self.navigation_error = None
        self.evaluate_error = None
        self.reload_error = None
        self.cookies_error = None
        self.closed = False
        self._tasks = []

    async def navigate(self, url):
        if self.navigation_error is not None:
            raise self.navigation_error
        self.url = url
        self.navigations.append(url)

    async def reload(self):
        self.reloads += 1
        if self.capacity_cycles > 0:
            self.capacity_cycles -= 1
        if self.reload_error is not None:
            raise self.reload_error

    async def on_request(self, handler):
        self.request_handlers.append(handler)

    async def on_response(self, handler):
        self.response_handlers.append(handler)

    async def evaluate(self, script, arg=None):
        if self.evaluate_error is not None:
            raise self.evaluate_error
        if script == CAPACITY_SCRIPT:
            return self.capacity_cycles > 0
        if script == SUBMIT_SCRIPT:
            await self._submit(arg["url"], arg["body"])
            return True
        raise AssertionError(f"unexpected script: {script[:40]}")

    async def cookies(self):
        if self.cookies_error is not None:
            raise self.cookies_error
        return list(self.cookie_jar)

    async def user_agent(self):
        return self.agent

    async def close(self):
        self.closed = True

    async def _submit(self, url, body):
        self.submissions.append(body)
        request = FakeRequest(
            url,
            method="POST",
            headers={"content-type": "application/json"},
            resource_type="fetch",
        )
        for handler in self.request_handlers:
            await handler(request)
        self.sent_requests.append(request)

        reply = self.replies.pop(0) if self.replies else None
        if reply is not None:
            reply.request_body = json.dumps(body)
            # Responses arrive as separate events, after the submit returns
            self._tasks.append(asyncio.get_running_loop().create_task(self._respond(reply)))

    async def _respond(self, reply):
        if reply.delay:
            await asyncio.sleep(reply.delay)
        for handler in self.response_handlers:
            await handler(reply)


class FakeDriverFactory:
    """Scoped driver factory sharing one reply queue across all drivers it creates."""

    def __init__(self, capacity_cycles=0, navigation_error=None):
        self.replies = []
        self.navigation_error = navigation_error
        self.drivers = []
        self.released = 0
        self.capacity_cycles = capacity_cycles

    @property
    def driver(self):
        return self.drivers[-1]

    @asynccontextmanager
    async def __call__(self, settings):
        driver = FakeDriver(replies=self.replies, capacity_cycles=self.capacity_cycles)
        driver.navigation_error = self.navigation_error
        self.drivers.append(driver)
        try:
            yield driver
        finally:
            driver.closed = True
            self.released += 1


class FakeBridge:
    """AuthenticationBridge double returning fixed tokens."""

    def __init__(self, session_token="session-1", clearance_token="clearance-1", error=None):
        self.session_token = session_token
        self.clearance_token = clearance_token
        self.error = error
        self.calls = 0
        self.last_credentials = None
        self.last_hooks = None

    async def authenticate(self, driver, credentials, hooks):
        self.calls += 1
        self.last_credentials = credentials
        self.last_hooks = hooks
        if self.error is not None:
            raise self.error
        return AuthResult(
            user_agent=await driver.user_agent(),
            clearance_token=self.clearance_token,
            session_token=self.session_token,
            cookies={},
        )


class FakeTokenClient:
    """TokenClient double handing out access-1, access-2, ... or queued errors."""

    def __init__(self):
        self.calls = []
        self.errors = []
        self.issued = 0

    async def fetch_access_token(
        self, session_token, clearance_token=None, user_agent=None, retry=True
    ):
        self.calls.append(
            {
                "session_token": session_token,
                "clearance_token": clearance_token,
                "user_agent": user_agent,
                "retry": retry,
            }
        )
        if self.errors:
            raise self.errors.pop(0)
        self.issued += 1
        return AccessGrant(access_token=f"access-{self.issued}")


class StepClock:
    """Monotonic clock that advances by a fixed step on every read."""

    def __init__(self, step=1.0):
        self.now = 0.0
        self.step = step

    def __call__(self):
        self.now += self.step
        return self.now


@pytest.fixture
def settings():
    return BridgeSettings(
        timeout_ms=2000,
        capacity_poll_interval_ms=10,
        capacity_retries=3,
    )


@pytest.fixture
def driver_factory():
    return FakeDriverFactory()


@pytest.fixture
def bridge():
    return FakeBridge()


@pytest.fixture
def token_client():
    return FakeTokenClient()


@pytest.fixture
def client(settings, driver_factory, bridge, token_client):
    """Client wired to fakes; call init_session() inside the test."""
    return ChatGPTWebClient(
        settings,
        bridge=bridge,
        token_client=token_client,
        driver_factory=driver_factory,
    )
