"""
Settings loader for webchat-bridge.

Builds BridgeSettings from keyword overrides and environment variables, so
credentials and tokens never have to be written into code.

Functions:
    load_settings: Validate overrides merged over environment-provided values
"""

import os
from typing import Any

from pydantic import ValidationError

from webchat_bridge.exceptions import ConfigValidationError

from .schema import BridgeSettings

# Environment variable -> settings field
ENV_VARS = {
    "OPENAI_EMAIL": "email",
    "OPENAI_PASSWORD": "password",
    "SESSION_TOKEN": "session_token",
    "CAPTCHA_TOKEN": "captcha_token",
    "PROXY_SERVER": "proxy_server",
}


def load_settings(
    overrides: dict[str, Any] | None = None,
    environ: dict[str, str] | None = None,
) -> BridgeSettings:
    """
    Load and validate bridge settings.

    Explicit overrides win over environment variables; unset variables leave
    the model defaults in place.

    Args:
        overrides: Field values passed by the caller
        environ: Environment mapping (defaults to os.environ)

    Returns:
        BridgeSettings: Validated settings

    Raises:
        ConfigValidationError: If any value fails validation

    Example:
        >>> settings = load_settings({"timeout_ms": 30_000})
        >>> settings.timeout_ms
        30000
    """
    environ = os.environ if environ is None else environ

    data: dict[str, Any] = {}
    for env_name, field_name in ENV_VARS.items():
        value = environ.get(env_name)
        if value:
            data[field_name] = value

    data.update(overrides or {})

    try:
        return BridgeSettings(**data)
    except ValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigValidationError(f"Invalid bridge settings: {errors}") from e
