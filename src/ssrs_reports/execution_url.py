# SSRS Reports Client
# File: execution_url.py
# Version: v3

"""Report rendering through URL access (no SOAP execution session).

Every call is a plain authenticated GET, so one instance can serve
concurrent renders.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx
from httpx import HTTPStatusError, RequestError

from .auth import build_auth
from .config import ReportServerConfig
from .errors import TransportFault
from .parameters import ParametersInput, encode_uri_component, format_parameters_for_url
from .utils import normalize_format, resolve_report_path

logger = logging.getLogger(__name__)


def build_report_url(
    server_url: str,
    root_folder: Optional[str],
    report_path: str,
    file_type: Optional[str] = None,
    params: ParametersInput = None,
) -> str:
    """``<server>?<path>&rs:Command=Render&rs:Format=<FMT>&name=value...``"""
    path = resolve_report_path(root_folder, report_path)
    query = (
        f"{encode_uri_component(path)}"
        f"&rs:Command=Render&rs:Format={normalize_format(file_type)}"
        f"{format_parameters_for_url(params)}"
    )
    return f"{server_url.rstrip('/')}?{query}"


class ReportExecutionUrl:
    """Renders reports with direct GET requests against the report server."""

    def __init__(
        self,
        config: ReportServerConfig,
        http_options: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.config = config
        self.http_options = dict(http_options or {})
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            options: Dict[str, Any] = {
                "auth": build_auth(self.config),
                "timeout": float(self.config.timeout),
                "verify": self.config.verify_tls,
                "follow_redirects": True,
            }
            options.update(self.http_options)
            self._client = httpx.AsyncClient(**options)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def get_report(
        self,
        report_path: str,
        file_type: Optional[str] = None,
        params: ParametersInput = None,
        **request_options: Any,
    ) -> httpx.Response:
        """Fetch the rendered report; the body is in ``response.content``."""
        url = build_report_url(
            self.config.server_url, self.config.root_folder, report_path, file_type, params
        )
        client = self._get_client()

        try:
            response = await client.get(url, **request_options)
        except RequestError as exc:
            raise TransportFault(
                f"Error calling report server at '{url}': {exc}"
            ) from exc

        try:
            response.raise_for_status()
        except HTTPStatusError as exc:
            status = response.status_code
            body_preview = response.text[:500]
            raise TransportFault(
                f"Failed to render '{report_path}' from '{url}' (HTTP {status}). "
                f"Response snippet: {body_preview}",
                fault_code=str(status),
            ) from exc

        logger.info("Fetched '%s' via URL access (%d bytes)", report_path, len(response.content))
        return response
