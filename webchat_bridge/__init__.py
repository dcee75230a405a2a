"""
webchat-bridge: drive the ChatGPT web app through a real browser.

The bridge authenticates a browser session, intercepts the conversation
traffic the page generates and reconstructs streamed answers from it.

Public API:
    - ChatGPTWebClient: Client facade (async context manager)
    - ChatResponse: Result of one exchange
    - CancelSignal: Caller-driven cancellation of an exchange
    - BridgeSettings / load_settings: Configuration
    - setup_logging: JSON logging with secret redaction
    - Exceptions: WebChatBridgeError and its subclasses
"""

from webchat_bridge.client import ChatGPTWebClient
from webchat_bridge.config.loader import load_settings
from webchat_bridge.config.schema import BridgeSettings
from webchat_bridge.exceptions import (
    AbortError,
    AuthError,
    ConcurrencyError,
    ConfigValidationError,
    ExchangeTimeoutError,
    ForbiddenError,
    InvalidMessageError,
    ProtocolError,
    ServiceUnavailable,
    SessionNotReadyError,
    WebChatBridgeError,
)
from webchat_bridge.exchange.cancel import CancelSignal
from webchat_bridge.exchange.engine import ChatResponse
from webchat_bridge.utils.logging import setup_logging

__version__ = "0.1.0"

__all__ = [
    "AbortError",
    "AuthError",
    "BridgeSettings",
    "CancelSignal",
    "ChatGPTWebClient",
    "ChatResponse",
    "ConcurrencyError",
    "ConfigValidationError",
    "ExchangeTimeoutError",
    "ForbiddenError",
    "InvalidMessageError",
    "ProtocolError",
    "ServiceUnavailable",
    "SessionNotReadyError",
    "WebChatBridgeError",
    "load_settings",
    "setup_logging",
]
