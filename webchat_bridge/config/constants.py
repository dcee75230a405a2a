"""
Configuration constants for webchat-bridge.

URLs, cookie names and wire-level markers shared across modules.
"""

CHAT_BASE_URL = "https://chat.openai.com"
LOGIN_URL = f"{CHAT_BASE_URL}/auth/login"
CHAT_URL = f"{CHAT_BASE_URL}/chat"

# Exchanges the long-lived session cookie for a short-lived bearer token
TOKEN_ENDPOINT_URL = f"{CHAT_BASE_URL}/api/auth/session"

CONVERSATION_ENDPOINT_PATH = "/backend-api/conversation"
CONVERSATION_ENDPOINT_URL = f"{CHAT_BASE_URL}{CONVERSATION_ENDPOINT_PATH}"

SESSION_TOKEN_COOKIE = "__Secure-next-auth.session-token"
CLEARANCE_TOKEN_COOKIE = "cf_clearance"

DEFAULT_MODEL = "text-davinci-002-render"

# Event-stream framing of the conversation endpoint
DATA_PREFIX = "data:"
TERMINAL_SENTINEL = "[DONE]"

CAPACITY_BANNER_TEXT = "at capacity"

DEFAULT_TIMEOUT_MS = 2 * 60 * 1000
DEFAULT_CAPACITY_POLL_INTERVAL_MS = 3000
DEFAULT_CAPACITY_RETRIES = 10

# Resource types the interceptor may short-circuit when block_resources is on
BLOCKED_RESOURCE_TYPES = frozenset(["image", "font", "media"])

# Upper bound on a single prompt, prevents pasting whole files by accident
MAX_MESSAGE_LENGTH = 100_000
