# SSRS Reports Client
# File: tools/tasks.py
# Version: v5
#
# NOTE: This module is the single place where report server operations are
# exposed as MCP tools.  The MCP transport simply calls
# `register_tools(server)` to wire these up.

from __future__ import annotations

import base64
import os
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional
from urllib.parse import urlparse

from ..auth import describe_auth
from ..config import ReportServerConfig
from ..errors import ConfigurationError
from ..execution_url import build_report_url
from ..manager import ReportManager
from ..mock import MockReportServer, MockReportServerChannel
from ..models import CatalogItem, ManifestEntry, ReportParameter
from ..soap import catalog_endpoint, execution_endpoint
from ..sync import UploadOptions


# ---------------------------------------------------------------------------
# Internal helpers (env flags, mock server, client factory)
# ---------------------------------------------------------------------------


def _env_flag(name: str, default: bool = False) -> bool:
    """Parse a boolean-like environment variable.

    Accepts 1/0, true/false, yes/no, on/off (case-insensitive).
    """
    val = os.getenv(name)
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "on"}


def _make_error(
    code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Small, LLM-friendly error shape used by diagnostics."""
    err: Dict[str, Any] = {"code": code, "message": message}
    if details:
        err["details"] = details
    return err


# Text formats are returned inline; everything else as base64.
_TEXT_MIME_PREFIXES = ("text/", "application/xml", "application/json")

_MOCK_URL = "mock://reportserver"
_MOCK_SERVER: MockReportServer | None = None


def _mock_server() -> MockReportServer:
    """Process-wide mock server so uploads survive between tool calls.

    Only reached in mock mode. Each tool call still builds its own
    ReportManager and channels; real servers never share module state.
    """
    global _MOCK_SERVER
    if _MOCK_SERVER is None:
        _MOCK_SERVER = MockReportServer.with_demo_catalog()
    return _MOCK_SERVER


def _make_client(cfg: Optional[ReportServerConfig] = None) -> ReportManager:
    """Create a ReportManager from environment variables.

    If REPORTSERVER_MOCK_MODE is truthy, both channels are backed by an
    in-process mock server instead of real SOAP endpoints.

    Note: Callers should prefer invoking this with *no arguments* so tests
    can monkeypatch it with a no-arg lambda.
    """
    cfg = cfg or ReportServerConfig.from_env()

    if cfg.mock_mode or _env_flag("REPORTSERVER_MOCK_MODE", False):
        server = _mock_server()
        return ReportManager(
            cfg,
            service_channel=MockReportServerChannel(server, catalog_endpoint(_MOCK_URL, cfg.use_rs2012)),
            execution_channel=MockReportServerChannel(server, execution_endpoint(_MOCK_URL)),
        )

    return ReportManager(cfg)


@asynccontextmanager
async def _connected() -> AsyncIterator[ReportManager]:
    manager = _make_client()
    await manager.start()
    try:
        yield manager
    finally:
        await manager.close()


def _item_dict(item: CatalogItem) -> Dict[str, Any]:
    return {
        "name": item.name,
        "path": item.path,
        "type": item.type_name,
        "hidden": item.hidden,
        "description": item.description,
    }


def _parameter_dict(param: ReportParameter) -> Dict[str, Any]:
    return {
        "name": param.name,
        "type": param.type_name,
        "value": param.value,
        "nullable": param.nullable,
        "allow_blank": param.allow_blank,
        "valid_values": param.valid_values,
        "prompt": param.prompt,
    }


def _entry_dict(entry: ManifestEntry, include_definition: bool) -> Dict[str, Any]:
    out: Dict[str, Any] = {"name": entry.name, "path": entry.path}
    if entry.definition is not None:
        out["size"] = len(entry.definition)
        if include_definition:
            definition = entry.definition
            if isinstance(definition, (bytes, bytearray)):
                definition = bytes(definition).decode("utf-8", errors="replace")
            out["definition"] = definition
    return out


# ---------------------------------------------------------------------------
# Core async tasks (library-style)
# ---------------------------------------------------------------------------


async def ping() -> Dict[str, Any]:
    async with _connected() as manager:
        items = await manager.service.list_children(manager.config.root_folder)
    return {"ok": True, "root_folder": manager.config.root_folder, "root_items": len(items)}


async def list_children(path: Optional[str] = None, recursive: bool = False) -> Dict[str, Any]:
    async with _connected() as manager:
        path = path or manager.config.root_folder
        items = await manager.service.list_children(path, recursive)
    return {"path": path, "recursive": recursive, "items": [_item_dict(i) for i in items]}


async def list_reports(path: Optional[str] = None, force_refresh: bool = False) -> Dict[str, Any]:
    async with _connected() as manager:
        path = path or manager.config.root_folder
        items = await manager.get_report_list(path, force_refresh)
        cache_stats = manager.cache.stats() if manager.cache is not None else None
    return {
        "path": path,
        "reports": [_item_dict(i) for i in items if i.type_name in ("Report", "ReportItem")],
        "cache": cache_stats,
    }


async def get_report_parameters(path: str, for_rendering: bool = True) -> Dict[str, Any]:
    async with _connected() as manager:
        params = await manager.service.get_item_parameters(path, for_rendering)
    return {"path": path, "parameters": [_parameter_dict(p) for p in params]}


async def render_report(
    path: str,
    file_type: str = "PDF",
    params: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    started = time.time()
    async with _connected() as manager:
        rendered = await manager.get_report(path, file_type, params)

    out: Dict[str, Any] = {
        "path": path,
        "format": file_type,
        "extension": rendered.extension,
        "mime_type": rendered.mime_type,
        "size": len(rendered.result),
        "stream_ids": rendered.stream_ids,
        "meta": {"elapsed_ms": int((time.time() - started) * 1000)},
    }
    mime_type = rendered.mime_type or ""
    if mime_type.startswith(_TEXT_MIME_PREFIXES):
        out["text"] = rendered.result.decode(rendered.encoding or "utf-8", errors="replace")
    else:
        out["content_base64"] = base64.b64encode(rendered.result).decode("ascii")
    return out


async def report_url(
    path: str,
    file_type: str = "PDF",
    params: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    cfg = ReportServerConfig.from_env()
    return {
        "path": path,
        "url": build_report_url(cfg.server_url, cfg.root_folder, path, file_type, params),
    }


async def report_builder_url(path: Optional[str] = None) -> Dict[str, Any]:
    manager = _make_client()
    return {"path": path or "/", "url": manager.report_builder_url(path)}


async def list_rendering_extensions() -> Dict[str, Any]:
    async with _connected() as manager:
        extensions = await manager.execution.list_rendering_extensions()
    return {"extensions": extensions}


async def download(paths: List[str], include_definitions: bool = False) -> Dict[str, Any]:
    async with _connected() as manager:
        manifest = await manager.download(paths)
    return {
        "paths": paths,
        "folders": [_entry_dict(e, False) for e in manifest.folders],
        "data_sources": [_entry_dict(e, include_definitions) for e in manifest.data_sources],
        "reports": [_entry_dict(e, include_definitions) for e in manifest.reports],
        "other": [_entry_dict(e, include_definitions) for e in manifest.other],
    }


async def upload_files(
    local_path: str,
    remote_path: str,
    overwrite: bool = False,
    delete_existing_items: bool = False,
    keep_data_source: bool = False,
    fix_data_source_reference: bool = False,
    exclude: Optional[List[str]] = None,
) -> Dict[str, Any]:
    options = UploadOptions(
        overwrite=overwrite,
        delete_existing_items=delete_existing_items,
        keep_data_source=keep_data_source,
        fix_data_source_reference=fix_data_source_reference,
        exclude=list(exclude or []),
    )
    async with _connected() as manager:
        warnings = await manager.upload_files(local_path, remote_path, options)
    return {
        "ok": not warnings,
        "remote_path": remote_path,
        "warnings": [str(w) for w in warnings],
    }


async def fix_data_source_reference(
    report_path: str,
    data_source_path: Optional[str] = None,
) -> Dict[str, Any]:
    async with _connected() as manager:
        warnings = await manager.fix_data_source_reference(report_path, data_source_path)
    return {"ok": not warnings, "warnings": [str(w) for w in warnings]}


async def list_jobs() -> Dict[str, Any]:
    async with _connected() as manager:
        jobs = await manager.service.list_jobs()
    return {
        "jobs": [
            {
                "job_id": _field(j, "JobID"),
                "name": _field(j, "Name"),
                "path": _field(j, "Path"),
                "status": _field(j, "Status"),
            }
            for j in jobs
        ]
    }


async def cancel_job(job_id: str) -> Dict[str, Any]:
    async with _connected() as manager:
        cancelled = await manager.service.cancel_job(job_id)
    return {"job_id": job_id, "cancelled": bool(cancelled)}


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------


def _collect_server_info() -> Dict[str, Any]:
    """Redacted snapshot of the report server configuration from env."""
    cfg = ReportServerConfig.from_env()

    try:
        server_url: Optional[str] = cfg.server_url
    except ConfigurationError:
        server_url = None

    host = urlparse(server_url).hostname if server_url else None

    return {
        "server_url": server_url,
        "host": host,
        "catalog_endpoint": catalog_endpoint(server_url, cfg.use_rs2012) if server_url else None,
        "root_folder": cfg.root_folder,
        "mock_mode": bool(cfg.mock_mode or _env_flag("REPORTSERVER_MOCK_MODE", False)),
        "verify_tls": bool(cfg.verify_tls),
        "timeout": cfg.timeout,
        "auth": describe_auth(cfg),
        "cache_config": {"enabled": cfg.cache, "on_start": cfg.cache_on_start},
    }


async def get_server_info() -> Dict[str, Any]:
    return _collect_server_info()


async def diagnostics() -> Dict[str, Any]:
    started = time.time()
    config_info = _collect_server_info()

    checks: List[Dict[str, Any]] = []
    overall_ok = True

    # Client init + connect
    t0 = time.time()
    try:
        manager = _make_client()
        await manager.start()
        checks.append(
            {"name": "connect", "ok": True, "error": None, "elapsed_ms": int((time.time() - t0) * 1000)}
        )
    except Exception as exc:  # noqa: BLE001
        checks.append(
            {
                "name": "connect",
                "ok": False,
                "error": _make_error("CONFIG_ERROR", str(exc)),
                "elapsed_ms": int((time.time() - t0) * 1000),
            }
        )
        return {
            "ok": False,
            "mock_mode": config_info["mock_mode"],
            "config": config_info,
            "checks": checks,
            "meta": {"elapsed_ms": int((time.time() - started) * 1000)},
        }

    try:
        # List root folder
        t0 = time.time()
        try:
            items = await manager.service.list_children(manager.config.root_folder)
            checks.append(
                {
                    "name": "list_children",
                    "ok": True,
                    "count": len(items),
                    "error": None,
                    "elapsed_ms": int((time.time() - t0) * 1000),
                }
            )
        except Exception as exc:  # noqa: BLE001
            overall_ok = False
            checks.append(
                {
                    "name": "list_children",
                    "ok": False,
                    "error": _make_error("BACKEND_ERROR", str(exc)),
                    "elapsed_ms": int((time.time() - t0) * 1000),
                }
            )

        # Rendering extensions (execution service)
        t0 = time.time()
        try:
            extensions = await manager.execution.list_rendering_extensions()
            checks.append(
                {
                    "name": "list_rendering_extensions",
                    "ok": True,
                    "count": len(extensions),
                    "error": None,
                    "elapsed_ms": int((time.time() - t0) * 1000),
                }
            )
        except Exception as exc:  # noqa: BLE001
            overall_ok = False
            checks.append(
                {
                    "name": "list_rendering_extensions",
                    "ok": False,
                    "error": _make_error("BACKEND_ERROR", str(exc)),
                    "elapsed_ms": int((time.time() - t0) * 1000),
                }
            )
    finally:
        await manager.close()

    return {
        "ok": overall_ok,
        "mock_mode": config_info["mock_mode"],
        "config": config_info,
        "checks": checks,
        "meta": {"elapsed_ms": int((time.time() - started) * 1000)},
    }


# ---------------------------------------------------------------------------
# MCP tool registration
# ---------------------------------------------------------------------------


def register_tools(server: Any) -> None:
    """Register MCP tools on an MCP Server-like instance."""
    if server is None or not hasattr(server, "tool"):
        raise ValueError(
            "register_tools(server) expects an MCP Server-like object that exposes a .tool() decorator."
        )

    @server.tool(name="ssrs_ping", description="Basic health check: connect and list the root folder.")
    async def mcp_ping() -> Dict[str, Any]:
        return await ping()

    @server.tool(name="ssrs_list_children", description="List catalog items (folders, reports, data sources) below a path.")
    async def mcp_list_children(path: Optional[str] = None, recursive: bool = False) -> Dict[str, Any]:
        return await list_children(path=path, recursive=recursive)

    @server.tool(name="ssrs_list_reports", description="List visible reports below a folder (uses the catalog cache when enabled).")
    async def mcp_list_reports(path: Optional[str] = None, force_refresh: bool = False) -> Dict[str, Any]:
        return await list_reports(path=path, force_refresh=force_refresh)

    @server.tool(name="ssrs_get_report_parameters", description="Describe the parameters of a report.")
    async def mcp_get_report_parameters(path: str, for_rendering: bool = True) -> Dict[str, Any]:
        return await get_report_parameters(path=path, for_rendering=for_rendering)

    @server.tool(
        name="ssrs_render_report",
        description="Render a report (PDF, EXCEL, WORD, CSV, HTML5, ...) with optional parameters.",
    )
    async def mcp_render_report(
        path: str,
        file_type: str = "PDF",
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        return await render_report(path=path, file_type=file_type, params=params)

    @server.tool(name="ssrs_report_url", description="Build the URL-access render link for a report.")
    async def mcp_report_url(
        path: str,
        file_type: str = "PDF",
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        return await report_url(path=path, file_type=file_type, params=params)

    @server.tool(name="ssrs_report_builder_url", description="Report Builder launch URL for a report path.")
    async def mcp_report_builder_url(path: Optional[str] = None) -> Dict[str, Any]:
        return await report_builder_url(path=path)

    @server.tool(name="ssrs_list_rendering_extensions", description="List rendering formats offered by the server.")
    async def mcp_list_rendering_extensions() -> Dict[str, Any]:
        return await list_rendering_extensions()

    @server.tool(name="ssrs_download", description="Download folders, data sources and reports below one or more paths.")
    async def mcp_download(paths: List[str], include_definitions: bool = False) -> Dict[str, Any]:
        return await download(paths=paths, include_definitions=include_definitions)

    @server.tool(name="ssrs_upload_files", description="Upload a local report project directory to a server folder.")
    async def mcp_upload_files(
        local_path: str,
        remote_path: str,
        overwrite: bool = False,
        delete_existing_items: bool = False,
        keep_data_source: bool = False,
        fix_data_source_reference: bool = False,
        exclude: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        return await upload_files(
            local_path=local_path,
            remote_path=remote_path,
            overwrite=overwrite,
            delete_existing_items=delete_existing_items,
            keep_data_source=keep_data_source,
            fix_data_source_reference=fix_data_source_reference,
            exclude=exclude,
        )

    @server.tool(
        name="ssrs_fix_data_source_reference",
        description="Repoint report data sources at shared data sources found below a folder.",
    )
    async def mcp_fix_data_source_reference(
        report_path: str,
        data_source_path: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await fix_data_source_reference(report_path=report_path, data_source_path=data_source_path)

    @server.tool(name="ssrs_list_jobs", description="List running report server jobs.")
    async def mcp_list_jobs() -> Dict[str, Any]:
        return await list_jobs()

    @server.tool(name="ssrs_cancel_job", description="Cancel a running report server job.")
    async def mcp_cancel_job(job_id: str) -> Dict[str, Any]:
        return await cancel_job(job_id=job_id)

    @server.tool(name="ssrs_diagnostics", description="Connectivity and configuration diagnostics (secrets redacted).")
    async def mcp_diagnostics() -> Dict[str, Any]:
        return await diagnostics()

    @server.tool(name="ssrs_get_server_info", description="Redacted report server configuration.")
    async def mcp_get_server_info() -> Dict[str, Any]:
        return await get_server_info()
