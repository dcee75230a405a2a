"""
Configuration schema for webchat-bridge.

This module defines the Pydantic model holding every tunable of the bridge.
All fields are optional; defaults reproduce the behaviour of the web client
the bridge drives.

Models:
    BridgeSettings: Session, exchange, capacity-guard and driver settings
"""

from typing import Literal

from pydantic import BaseModel, Field, field_validator

from .constants import (
    DEFAULT_CAPACITY_POLL_INTERVAL_MS,
    DEFAULT_CAPACITY_RETRIES,
    DEFAULT_MODEL,
    DEFAULT_TIMEOUT_MS,
)


class BridgeSettings(BaseModel):
    """
    Settings for one ChatGPTWebClient.

    Attributes:
        timeout_ms: Upper bound on one exchange wait (default: 2 minutes)
        captcha_token: Opaque token handed to the Authentication Bridge
        proxy_server: Proxy forwarded to the browser driver launcher
        minimize: UI-visibility hint for the browser window
        markdown: Post-processing flag, carried for callers, not applied here
        email: Login e-mail (optional, without it only clearance is obtained)
        password: Login password (NEVER logged)
        login_provider: Which login form the bridge drives
        session_token: Pre-obtained session token used when login is skipped
        model: Model identifier sent with every conversation request
        capacity_poll_interval_ms: Interval between capacity banner polls
        capacity_retries: Reload budget before ServiceUnavailable is raised
        block_resources: Abort image/font/media requests to reduce load
        headless: Launch the browser without a window
        executable_path: Browser executable to launch instead of the bundled one
    """

    timeout_ms: int = DEFAULT_TIMEOUT_MS
    captcha_token: str | None = Field(default=None, repr=False)
    proxy_server: str | None = None
    minimize: bool = False
    markdown: bool = True

    email: str | None = None
    password: str | None = Field(default=None, repr=False)
    login_provider: Literal["default", "google", "microsoft"] = "default"
    session_token: str | None = Field(default=None, repr=False)

    model: str = DEFAULT_MODEL
    capacity_poll_interval_ms: int = DEFAULT_CAPACITY_POLL_INTERVAL_MS
    capacity_retries: int = DEFAULT_CAPACITY_RETRIES
    block_resources: bool = False
    headless: bool = False
    executable_path: str | None = None

    @field_validator("timeout_ms", "capacity_poll_interval_ms")
    @classmethod
    def validate_positive_ms(cls, v: int) -> int:
        """Validate durations are positive."""
        if v <= 0:
            raise ValueError(f"Duration must be positive, got: {v}")
        return v

    @field_validator("capacity_retries")
    @classmethod
    def validate_retries(cls, v: int) -> int:
        """Validate the retry budget allows at least one attempt."""
        if v < 1:
            raise ValueError(f"capacity_retries must be at least 1, got: {v}")
        return v

    @field_validator("model")
    @classmethod
    def validate_model(cls, v: str) -> str:
        """Validate model is non-empty."""
        if not v or v.isspace():
            raise ValueError("model cannot be empty")
        return v

    @property
    def has_credentials(self) -> bool:
        """True when both login e-mail and password are set."""
        return bool(self.email and self.password)
