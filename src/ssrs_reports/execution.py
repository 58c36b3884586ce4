# SSRS Reports Client
# File: execution.py
# Version: v8

"""Report execution over the ReportExecution2005 SOAP service.

Rendering a report is a three-step protocol on one execution:

1. ``LoadReport`` creates the execution and returns its ``ExecutionID``.
2. ``SetExecutionParameters`` runs with an ``ExecutionHeader`` carrying
   that id.
3. ``Render`` (and, for HTML5, ``RenderStream``) runs with the *same*
   header object re-attached.

The server correlates steps 2 and 3 by the header alone, and the header
lives in the channel's shared slot. :class:`ExecutionSession` therefore
holds a per-channel lock for the whole sequence and always clears the slot
on exit, whether the render succeeded or failed.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import re
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .config import ReportServerConfig
from .errors import TransportFault
from .models import ParameterValue, RenderResult
from .parameters import ParametersInput, format_parameters, to_soap_values
from .soap import SoapChannel, SoapHeader, execution_endpoint, execution_header, response_field
from .utils import get_field, normalize_format, resolve_report_path, unwrap_array

logger = logging.getLogger(__name__)

HTML_FRAGMENT_FORMAT = "HTML5"
IMAGE_DEVICE_INFO = "<DeviceInfo><HTMLFragment>true</HTMLFragment></DeviceInfo>"
DEFAULT_IMAGE_MIME_TYPE = "image/png"


class ExecutionState(str, Enum):
    IDLE = "IDLE"
    LOADED = "LOADED"
    PARAMETERIZED = "PARAMETERIZED"
    RENDERED = "RENDERED"
    FAILED = "FAILED"


def _as_bytes(value: Any) -> bytes:
    if value is None:
        return b""
    if isinstance(value, str):
        return base64.b64decode(value)
    return bytes(value)


class ExecutionSession:
    """One load -> set parameters -> render sequence.

    Use as ``async with``: entering takes the channel lock, leaving clears
    the channel's headers and releases the lock.
    """

    def __init__(self, channel: SoapChannel, lock: asyncio.Lock) -> None:
        self.channel = channel
        self._lock = lock
        self.state = ExecutionState.IDLE
        self.execution_id: Optional[str] = None
        self.header: Optional[SoapHeader] = None
        self.started_at: Optional[datetime] = None

    async def __aenter__(self) -> "ExecutionSession":
        await self._lock.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        try:
            self.channel.clear_headers()
            if exc_type is not None:
                self.state = ExecutionState.FAILED
        finally:
            self._lock.release()
        return False

    def _expect(self, state: ExecutionState, step: str) -> None:
        if self.state is not state:
            raise RuntimeError(
                f"Cannot {step} while execution is {self.state.value}; "
                f"expected {state.value}."
            )

    def _attach(self) -> None:
        self.channel.clear_headers()
        self.channel.attach_header(self.header)

    async def load(self, report_path: str) -> str:
        self._expect(ExecutionState.IDLE, "load a report")

        response = await self.channel.call("LoadReport", Report=report_path)
        info = response_field(response, "executionInfo") or response
        execution_id = get_field(info, "ExecutionID")
        if not execution_id:
            raise TransportFault(
                f"LoadReport for '{report_path}' did not return an ExecutionID.",
                operation="LoadReport",
            )

        self.execution_id = str(execution_id)
        self.header = execution_header(self.execution_id)
        self.started_at = datetime.now()
        self.state = ExecutionState.LOADED
        logger.debug(
            "Loaded '%s' as execution %s at %s",
            report_path,
            self.execution_id,
            self.started_at.isoformat(),
        )
        return self.execution_id

    async def set_parameters(self, values: List[ParameterValue]) -> None:
        self._expect(ExecutionState.LOADED, "set parameters")

        self._attach()
        await self.channel.call(
            "SetExecutionParameters",
            Parameters={"ParameterValue": to_soap_values(values)},
        )
        self.state = ExecutionState.PARAMETERIZED

    async def render(self, file_type: str) -> RenderResult:
        self._expect(ExecutionState.PARAMETERIZED, "render")

        # Same header object: the server bound the execution to it.
        self._attach()
        response = await self.channel.call("Render", Format=file_type)

        stream_ids = unwrap_array(response_field(response, "StreamIds"), "string")
        warnings = unwrap_array(response_field(response, "Warnings"), "Warning")
        result = RenderResult(
            result=_as_bytes(response_field(response, "Result")),
            extension=get_field(response, "Extension"),
            mime_type=get_field(response, "MimeType"),
            encoding=get_field(response, "Encoding"),
            stream_ids=[str(s) for s in stream_ids],
            warnings=warnings,
            raw=response,
        )
        self.state = ExecutionState.RENDERED
        return result

    async def render_stream(self, file_type: str, stream_id: str, device_info: str) -> Any:
        self._expect(ExecutionState.RENDERED, "render a stream")
        return await self.channel.call(
            "RenderStream", Format=file_type, StreamID=stream_id, DeviceInfo=device_info
        )


class ReportExecution:
    """Executes and renders reports through one execution channel.

    ``get_report`` calls on one instance are serialized; for parallel
    renders create one instance (and so one channel) per task, or use
    :class:`~ssrs_reports.execution_url.ReportExecutionUrl`.
    """

    def __init__(
        self,
        config: ReportServerConfig,
        channel: Optional[SoapChannel] = None,
    ) -> None:
        self.config = config
        self.channel = channel or SoapChannel(config, execution_endpoint(config.server_url))
        self._lock = asyncio.Lock()

    @property
    def root_folder(self) -> str:
        return self.config.root_folder

    async def start(self) -> SoapChannel:
        await self.channel.connect()
        return self.channel

    async def close(self) -> None:
        await self.channel.close()

    def session(self) -> ExecutionSession:
        return ExecutionSession(self.channel, self._lock)

    async def list_rendering_extensions(self) -> List[Dict[str, Any]]:
        response = await self.channel.call("ListRenderingExtensions")
        extensions = unwrap_array(response_field(response, "Extensions"), "Extension")
        return [
            {
                "name": get_field(ext, "Name"),
                "localized_name": get_field(ext, "LocalizedName"),
                "visible": get_field(ext, "Visible"),
                "type": get_field(ext, "ExtensionType"),
            }
            for ext in extensions
        ]

    async def get_report(
        self,
        report_path: str,
        file_type: Optional[str] = None,
        params: ParametersInput = None,
        strict: bool = False,
    ) -> RenderResult:
        """Render ``report_path`` in ``file_type`` (default PDF)."""
        path = resolve_report_path(self.root_folder, report_path)
        fmt = normalize_format(file_type)
        # Validates parameters before anything is sent to the server.
        values = format_parameters(params, strict=strict)

        async with self.session() as session:
            await session.load(path)
            await session.set_parameters(values)
            rendered = await session.render(fmt)
            if fmt == HTML_FRAGMENT_FORMAT:
                await self._inline_images(session, rendered)

        logger.info(
            "Rendered '%s' as %s (%d bytes, execution %s)",
            path,
            fmt,
            len(rendered.result),
            session.execution_id,
        )
        return rendered

    async def _inline_images(self, session: ExecutionSession, rendered: RenderResult) -> None:
        """Replace ``ImageID=<stream>`` image sources with data URIs."""
        images: Dict[str, str] = {}
        for stream_id in rendered.stream_ids:
            response = await session.render_stream(
                HTML_FRAGMENT_FORMAT, stream_id, IMAGE_DEVICE_INFO
            )
            data = _as_bytes(response_field(response, "Result"))
            mime_type = get_field(response, "MimeType") or DEFAULT_IMAGE_MIME_TYPE
            encoded = base64.b64encode(data).decode("ascii")
            images[stream_id] = f"data:{mime_type};base64,{encoded}"

        html = rendered.result.decode("utf-8")
        for stream_id, data_uri in images.items():
            pattern = re.compile(r'src="[^"]*ImageID=' + re.escape(stream_id) + '"')
            replacement = f'src="{data_uri}"'
            html = pattern.sub(lambda _m, r=replacement: r, html)

        rendered.result = html.encode("utf-8")
