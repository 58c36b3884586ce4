# SSRS Reports Client
# File: config.py
# Version: v3

"""Configuration loading for the SSRS reports client."""

from __future__ import annotations

from dataclasses import dataclass
import os

from .errors import ConfigurationError

SECURITY_MODES = {"ntlm", "basic", "none"}


def _parse_bool_env(name: str, default: bool = False) -> bool:
    """Parse a boolean-like environment variable.

    Accepts 1/0, true/false, yes/no, on/off (case-insensitive).
    """
    val = os.getenv(name)
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "on"}


def _parse_int_env(
    name: str,
    default: int,
    min_value: int | None = None,
    max_value: int | None = None,
) -> int:
    """Parse an int environment variable with clamping and safe fallback."""
    raw = os.getenv(name)
    if raw is None or not str(raw).strip():
        value = int(default)
    else:
        try:
            value = int(str(raw).strip())
        except ValueError:
            value = int(default)

    if min_value is not None and value < min_value:
        value = min_value
    if max_value is not None and value > max_value:
        value = max_value

    return value


def build_server_url(
    server: str,
    port: int | None = None,
    instance: str | None = None,
    is_https: bool = False,
) -> str:
    """Build ``http(s)://server[:port]/ReportServer[_instance]``."""
    scheme = "https" if is_https else "http"
    url = f"{scheme}://{server}"
    if port:
        url += f":{port}"
    url += "/ReportServer"
    if instance:
        url += f"_{instance}"
    return url


@dataclass
class ReportServerConfig:
    """Connection settings for a report server.

    ``url`` wins over the server/port/instance parts when both are given.
    """

    url: str | None = None
    server: str | None = None
    port: int | None = None
    instance: str | None = None
    is_https: bool = False

    username: str | None = None
    password: str | None = None
    domain: str | None = None
    workstation: str | None = None
    security: str = "ntlm"

    root_folder: str = "/"
    use_rs2012: bool = False

    # Catalog listing cache; never expires on its own.
    cache: bool = False
    cache_on_start: bool = False

    timeout: int = 120
    verify_tls: bool = True
    mock_mode: bool = False

    def __post_init__(self) -> None:
        self.security = (self.security or "ntlm").strip().lower()
        self.root_folder = self.root_folder or "/"

    @property
    def server_url(self) -> str:
        if self.url:
            return self.url.rstrip("/")
        if self.server:
            return build_server_url(self.server, self.port, self.instance, self.is_https)
        raise ConfigurationError(
            "Report server URL is not set. "
            "Set REPORTSERVER_URL or REPORTSERVER_SERVER before connecting."
        )

    def validate(self) -> None:
        if self.security not in SECURITY_MODES:
            raise ConfigurationError(
                f"Unknown security mode '{self.security}'. "
                f"Expected one of: {', '.join(sorted(SECURITY_MODES))}."
            )
        if not self.mock_mode:
            # Raises when neither url nor server is configured.
            _ = self.server_url

    @classmethod
    def from_env(cls) -> "ReportServerConfig":
        """Create configuration from environment variables."""
        port_raw = os.getenv("REPORTSERVER_PORT")
        port = _parse_int_env("REPORTSERVER_PORT", default=0, min_value=0, max_value=65535)

        return cls(
            url=os.getenv("REPORTSERVER_URL"),
            server=os.getenv("REPORTSERVER_SERVER"),
            port=port if port_raw and port else None,
            instance=os.getenv("REPORTSERVER_INSTANCE"),
            is_https=_parse_bool_env("REPORTSERVER_HTTPS", default=False),
            username=os.getenv("REPORTSERVER_USERNAME"),
            password=os.getenv("REPORTSERVER_PASSWORD"),
            domain=os.getenv("REPORTSERVER_DOMAIN"),
            workstation=os.getenv("REPORTSERVER_WORKSTATION"),
            security=os.getenv("REPORTSERVER_SECURITY", "ntlm"),
            root_folder=os.getenv("REPORTSERVER_ROOT_FOLDER", "/"),
            use_rs2012=_parse_bool_env("REPORTSERVER_USE_RS2012", default=False),
            cache=_parse_bool_env("REPORTSERVER_CACHE", default=False),
            cache_on_start=_parse_bool_env("REPORTSERVER_CACHE_ON_START", default=False),
            timeout=_parse_int_env(
                "REPORTSERVER_TIMEOUT", default=120, min_value=1, max_value=3600
            ),
            verify_tls=_parse_bool_env("REPORTSERVER_VERIFY_TLS", default=True),
            mock_mode=_parse_bool_env("REPORTSERVER_MOCK_MODE", default=False),
        )
