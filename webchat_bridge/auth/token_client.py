"""
Access-token client for webchat-bridge.

Exchanges the long-lived session token (a cookie set at login) for the
short-lived bearer access token the conversation endpoint requires. The
exchange is a GET on the token endpoint carrying the session and clearance
cookies plus the browser's user agent, since the clearance cookie is bound to
it.

Key features:
- Async HTTP client (httpx.AsyncClient)
- Retry on transient failures (429, 5xx, network) with exponential backoff
- Fail fast on 401/403 with AuthError
- Security: NEVER logs tokens or cookies

Example:
    >>> client = TokenClient()
    >>> grant = await client.fetch_access_token(session_token, clearance_token, user_agent)
    >>> grant.expires_at
    datetime.datetime(2025, 12, 1, 10, 0, tzinfo=datetime.UTC)
"""

import logging
from dataclasses import dataclass
from datetime import datetime

import httpx

from webchat_bridge.config.constants import (
    CLEARANCE_TOKEN_COOKIE,
    SESSION_TOKEN_COOKIE,
    TOKEN_ENDPOINT_URL,
)
from webchat_bridge.exceptions import AuthError, ProtocolError, ServiceUnavailable
from webchat_bridge.utils.time import parse_timestamp

from .retry_config import NO_RETRY_STATUS_CODES, REQUEST_TIMEOUT, create_retry_decorator

# Suppress HTTPX request logging
httpx_logger = logging.getLogger("httpx")
httpx_logger.setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@dataclass
class AccessGrant:
    """
    Result of one token exchange.

    Attributes:
        access_token: Bearer token for the conversation endpoint (NEVER logged)
        expires_at: Expiry reported by the endpoint, if parseable
    """

    access_token: str
    expires_at: datetime | None = None


class TokenClient:
    """
    Client for the token endpoint.

    Attributes:
        url: Token endpoint URL
        timeout: Per-request timeout in seconds
    """

    def __init__(self, url: str = TOKEN_ENDPOINT_URL, timeout: float = REQUEST_TIMEOUT):
        self.url = url
        self.timeout = timeout

    async def fetch_access_token(
        self,
        session_token: str,
        clearance_token: str | None = None,
        user_agent: str | None = None,
        retry: bool = True,
    ) -> AccessGrant:
        """
        Exchange a session token for an access token.

        Args:
            session_token: Long-lived session cookie value
            clearance_token: Anti-bot clearance cookie value, if any
            user_agent: User agent of the browser that earned the clearance
            retry: Retry transient failures; False issues exactly one request

        Returns:
            AccessGrant: Fresh access token and its expiry

        Raises:
            AuthError: If session_token is empty, on 401/403, or when the endpoint
                returns no access token
            ServiceUnavailable: On 429/5xx or network failure (after retries)
            ProtocolError: If the endpoint answers with something other than JSON
        """
        if not session_token or session_token.isspace():
            raise AuthError("session_token cannot be empty")

        headers = self._build_headers(session_token, clearance_token, user_agent)
        request = self._request_with_retry if retry else self._request

        try:
            response = await request(headers)
        except httpx.HTTPStatusError as e:
            raise ServiceUnavailable(
                f"token endpoint error: status={e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except (httpx.ConnectError, httpx.TimeoutException) as e:
            raise ServiceUnavailable(f"token endpoint unreachable: {e}") from e

        return self._parse_grant(response)

    def _build_headers(
        self,
        session_token: str,
        clearance_token: str | None,
        user_agent: str | None,
    ) -> dict[str, str]:
        cookies = [f"{SESSION_TOKEN_COOKIE}={session_token}"]
        if clearance_token:
            cookies.append(f"{CLEARANCE_TOKEN_COOKIE}={clearance_token}")

        headers = {"Accept": "application/json", "Cookie": "; ".join(cookies)}
        if user_agent:
            headers["User-Agent"] = user_agent
        return headers

    async def _request(self, headers: dict[str, str]) -> httpx.Response:
        # Log request (NEVER log headers, they carry the cookies)
        logger.debug(f"Requesting access token from {self.url}")

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(self.url, headers=headers)

        if response.status_code in NO_RETRY_STATUS_CODES:
            reason = "Unauthorized" if response.status_code == 401 else "Forbidden"
            raise AuthError(
                f"failed to refresh auth token: {reason}",
                status_code=response.status_code,
            )

        if 400 <= response.status_code < 500 and response.status_code != 429:
            raise ProtocolError(
                f"token endpoint rejected request: status={response.status_code}",
                status_code=response.status_code,
            )

        # Raise for retryable errors (429, 5xx), the retry decorator catches these
        response.raise_for_status()
        return response

    @create_retry_decorator()
    async def _request_with_retry(self, headers: dict[str, str]) -> httpx.Response:
        return await self._request(headers)

    def _parse_grant(self, response: httpx.Response) -> AccessGrant:
        try:
            data = response.json()
        except ValueError as e:
            raise ProtocolError(
                f"token endpoint returned non-JSON body (status={response.status_code})"
            ) from e

        access_token = data.get("accessToken") if isinstance(data, dict) else None
        if not access_token:
            raise AuthError("failed to refresh auth token: session token may have expired")

        expires_at = None
        expires = data.get("expires")
        if isinstance(expires, str) and expires:
            try:
                expires_at = parse_timestamp(expires)
            except ValueError:
                logger.warning(f"Ignoring unparseable token expiry: {expires!r}")

        logger.info(f"Obtained access token (expires={expires_at})")
        return AccessGrant(access_token=access_token, expires_at=expires_at)
