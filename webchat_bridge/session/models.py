"""
Session state for webchat-bridge.

Data classes describing the authenticated browser session and the
conversation thread that chains consecutive exchanges together.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class SessionState(str, Enum):
    """Lifecycle of a SessionManager."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    REFRESHING = "refreshing"
    RESETTING = "resetting"
    CLOSED = "closed"


@dataclass
class Session:
    """
    Authentication material of a live session.

    Token values are NEVER logged; repr hides them.

    Attributes:
        user_agent: User agent the clearance token is bound to
        session_token: Long-lived session cookie value
        clearance_token: Anti-bot clearance cookie value
        cookies: Cookie map captured from the page, keyed by name
        access_token: Current bearer token, None until derived
        expires_at: Expiry of the access token, if known
    """

    user_agent: str
    session_token: str = field(repr=False)
    clearance_token: str | None = field(default=None, repr=False)
    cookies: dict[str, dict] = field(default_factory=dict, repr=False)
    access_token: str | None = field(default=None, repr=False)
    expires_at: datetime | None = None


@dataclass
class ConversationThread:
    """
    Ids linking the next exchange to the previous one.

    Both ids are None on a fresh thread, so the first request of a thread
    starts a new conversation.
    """

    conversation_id: str | None = None
    parent_message_id: str | None = None

    @property
    def is_empty(self) -> bool:
        return self.conversation_id is None and self.parent_message_id is None

    def commit(self, conversation_id: str | None, message_id: str | None) -> None:
        """Record the ids of a successfully completed exchange."""
        if conversation_id:
            self.conversation_id = conversation_id
        if message_id:
            self.parent_message_id = message_id

    def reset(self) -> None:
        self.conversation_id = None
        self.parent_message_id = None
