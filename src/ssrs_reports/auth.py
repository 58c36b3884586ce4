# SSRS Reports Client
# File: auth.py
# Version: v2

"""HTTP authentication for the report server (NTLM or Basic)."""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx
from httpx_ntlm import HttpNtlmAuth

from .config import ReportServerConfig
from .errors import ConfigurationError


def ntlm_username(config: ReportServerConfig) -> str:
    """Return ``DOMAIN\\user`` when a domain is configured, else the bare user."""
    user = config.username or ""
    if config.domain and "\\" not in user and "@" not in user:
        return f"{config.domain}\\{user}"
    return user


def build_auth(config: ReportServerConfig) -> Optional[httpx.Auth]:
    """Create the httpx auth flow matching ``config.security``.

    NTLM is the default, mirroring how report servers are usually deployed
    on Windows domains. ``none`` returns ``None`` (anonymous access).
    """
    security = config.security
    if security == "none":
        return None

    if not config.username:
        raise ConfigurationError(
            f"Security mode '{security}' requires a user name. "
            "Set REPORTSERVER_USERNAME and REPORTSERVER_PASSWORD."
        )

    password = config.password or ""
    if security == "ntlm":
        return HttpNtlmAuth(ntlm_username(config), password)
    if security == "basic":
        return httpx.BasicAuth(config.username, password)

    raise ConfigurationError(f"Unknown security mode '{security}'.")


def describe_auth(config: ReportServerConfig) -> Dict[str, Any]:
    """Redacted summary of the auth settings (no secrets)."""
    return {
        "security": config.security,
        "username_configured": bool(config.username),
        "password_configured": bool(config.password),
        "domain": config.domain,
        "workstation": config.workstation,
    }
