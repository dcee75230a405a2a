"""
Custom exceptions for webchat-bridge.

This module provides the hierarchy of exceptions raised across the public
boundary of the bridge. Every failure that reaches a caller is classified into
one of these kinds; browser driver errors, HTTP errors and decoding errors are
wrapped before they leave a public operation.

Exception Hierarchy:
    WebChatBridgeError (base)
    ├── ConfigurationError
    │   └── ConfigValidationError
    ├── AuthError
    │   └── SessionNotReadyError
    ├── ForbiddenError
    ├── ServiceUnavailable
    ├── ExchangeTimeoutError (also a builtin TimeoutError)
    ├── AbortError
    ├── ProtocolError
    └── ConcurrencyError

Usage:
    from webchat_bridge.exceptions import AuthError, ServiceUnavailable

    try:
        await client.init_session()
    except ServiceUnavailable as e:
        logger.error(f"Chat service at capacity (status={e.status_code})")
"""


class WebChatBridgeError(Exception):
    """
    Base exception for all webchat-bridge errors.

    Attributes:
        status_code: HTTP-like status associated with the failure, if any

    Example:
        try:
            response = await client.send_message("Hello")
        except WebChatBridgeError as e:
            logger.error(f"Exchange failed: {e}")
    """

    default_status_code: int | None = None

    def __init__(self, message: str = "", status_code: int | None = None):
        super().__init__(message)
        self.status_code = (
            status_code if status_code is not None else self.default_status_code
        )


# ============================================================================
# Configuration Errors
# ============================================================================


class ConfigurationError(WebChatBridgeError):
    """
    Base class for configuration-related errors.
    """

    pass


class ConfigValidationError(ConfigurationError):
    """
    Settings failed validation.

    Example:
        raise ConfigValidationError("timeout_ms must be positive, got: 0")
    """

    pass


# ============================================================================
# Authentication Errors
# ============================================================================


class AuthError(WebChatBridgeError):
    """
    Credentials are missing, invalid or expired (HTTP 401).

    Raised when the Authentication Bridge yields no usable session token, when
    the token endpoint refuses the session token, or when a 401 observed
    mid-exchange survives its single reset-and-retry.

    Example:
        raise AuthError("failed to refresh auth token: session token may have expired")
    """

    default_status_code = 401


class SessionNotReadyError(AuthError):
    """
    An operation needs a READY session but the session is in another state.

    Raised for operations on an uninitialized or closed session.
    """

    pass


class ForbiddenError(WebChatBridgeError):
    """
    The service refused the request (HTTP 403).

    Usually means the clearance token expired. Triggers refresh_session().
    """

    default_status_code = 403


# ============================================================================
# Service Errors
# ============================================================================


class ServiceUnavailable(WebChatBridgeError):
    """
    The chat service is at capacity and the retry budget is exhausted (HTTP 503).

    Example:
        raise ServiceUnavailable("ChatGPT is at capacity")
    """

    default_status_code = 503


class ProtocolError(WebChatBridgeError):
    """
    The conversation endpoint answered with something that cannot be decoded.

    Raised when a streamed response ends without a single valid frame, when
    its terminal frame is corrupted, or when the endpoint answers with an
    unexpected status.
    """

    pass


# ============================================================================
# Exchange Errors
# ============================================================================


class InvalidMessageError(WebChatBridgeError, ValueError):
    """
    send_message() was given empty or oversized prompt text.

    Subclasses the builtin ValueError so argument checks still catch it.
    """

    default_status_code = 400


class ExchangeTimeoutError(WebChatBridgeError, TimeoutError):
    """
    An exchange did not reach its terminal frame before its deadline.

    Subclasses the builtin TimeoutError so generic timeout handling still
    catches it.
    """

    default_status_code = 504


class AbortError(WebChatBridgeError):
    """
    An exchange was cancelled through its CancelSignal.

    Attributes:
        reason: Caller-supplied cancellation reason
    """

    def __init__(self, message: str = "exchange aborted", reason: object = None):
        super().__init__(message)
        self.reason = reason


class ConcurrencyError(WebChatBridgeError):
    """
    send_message() was called while another exchange is pending on the page.

    Exchanges are never interleaved; the second caller fails immediately.
    """

    default_status_code = 409
