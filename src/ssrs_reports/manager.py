# SSRS Reports Client
# File: manager.py
# Version: v7

"""High-level facade over one report server.

``ReportManager`` owns the catalog service, the execution engine (SOAP and
URL access), the sync engine, the reference resolver and an optional
catalog cache. There is no module-level state: create one manager per
server and call :meth:`ReportManager.start` before use.

Example::

    manager = ReportManager(ReportServerConfig.from_env())
    await manager.start()
    try:
        pdf = await manager.get_report("/Sales/Summary", "pdf", {"Year": 2024})
    finally:
        await manager.close()
"""

from __future__ import annotations

import logging
import os
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Union

import httpx

from .cache import CatalogCache
from .config import ReportServerConfig
from .execution import ReportExecution
from .execution_url import ReportExecutionUrl
from .manifest import read_files
from .models import CatalogItem, FileManifest, PartialFailureWarning, RenderResult
from .parameters import ParametersInput
from .references import ReferenceResolver
from .service import ReportService
from .soap import SoapChannel
from .sync import CatalogSync, UploadOptions
from .utils import get_field, split_path

logger = logging.getLogger(__name__)

CUSTOM_MARKER = "_custom_"
COPY_TIMESTAMP_FORMAT = "%d%m%yT%H%M"
REPORT_BUILDER_PATH = "/ReportBuilder/ReportBuilder_3_0_0_0.application?ReportPath="


def copy_name(report_name: str, now: Optional[datetime] = None) -> str:
    """Name for a report copy: ``<name>_custom_<DDMMYYTHHmm>``.

    A name that already carries the marker gets its timestamp replaced.
    """
    stamp = (now or datetime.now()).strftime(COPY_TIMESTAMP_FORMAT)
    if CUSTOM_MARKER in report_name:
        return report_name[: report_name.rfind("_") + 1] + stamp
    return f"{report_name}{CUSTOM_MARKER}{stamp}"


class ReportManager:
    """Everything a caller needs to browse, render, upload and download."""

    def __init__(
        self,
        config: ReportServerConfig,
        service_channel: Optional[SoapChannel] = None,
        execution_channel: Optional[SoapChannel] = None,
        cache: Optional[bool] = None,
    ) -> None:
        self.config = config
        self.service = ReportService(config, service_channel)
        self.execution = ReportExecution(config, execution_channel)
        self.execution_url = ReportExecutionUrl(config)
        self.resolver = ReferenceResolver(self.service)
        self.sync = CatalogSync(self.service, self.resolver)

        use_cache = config.cache if cache is None else bool(cache)
        self.cache: Optional[CatalogCache] = CatalogCache() if use_cache else None

    @property
    def is_cacheable(self) -> bool:
        return self.cache is not None

    async def start(self) -> "ReportManager":
        """Connect both SOAP channels; optionally warm the cache."""
        await self.service.start()
        await self.execution.start()
        logger.info(
            "Report manager connected (%s, %s)",
            self.service.channel.endpoint,
            self.execution.channel.endpoint,
        )

        if self.cache is not None and self.config.cache_on_start:
            await self.cache_report_list()
        return self

    async def close(self) -> None:
        await self.service.close()
        await self.execution.close()
        await self.execution_url.close()

    async def __aenter__(self) -> "ReportManager":
        return await self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def server_url(self) -> str:
        return self.config.server_url

    def report_builder_url(self, report_path: Optional[str] = None) -> str:
        return f"{self.server_url}{REPORT_BUILDER_PATH}{report_path or '/'}"

    # ------------------------------------------------------------------
    # Catalog listing & cache
    # ------------------------------------------------------------------

    def clear_cache(self) -> None:
        if self.cache is not None:
            self.cache.clear()

    async def get_report_list(
        self, report_path: Optional[str] = None, force_refresh: bool = False
    ) -> List[CatalogItem]:
        """Reports below ``report_path`` (cached listing when caching is on)."""
        report_path = report_path or self.config.root_folder
        if self.cache is None:
            return await self.service.list_children(report_path)

        if force_refresh or report_path not in self.cache:
            await self.cache_report_list(report_path)
        return self.cache.get(report_path) or []

    async def cache_report_list(
        self, report_path: Optional[str] = None, keep_hidden: bool = False
    ) -> None:
        """Cache one recursive listing, bucketed by folder.

        The listing itself is cached under ``report_path``; each sub folder
        opens a new bucket keyed ``/<folder name>``. Data sources are skipped.
        Hidden reports are dropped unless ``keep_hidden`` is set.
        """
        if self.cache is None:
            self.cache = CatalogCache()

        report_path = report_path or self.config.root_folder
        items = await self.service.list_children(report_path, True)
        if not items:
            return

        bucket = report_path
        self.cache.set(bucket, [])

        for item in items:
            if item.type_name == "DataSource":
                continue
            if item.type_name == "Folder":
                bucket = item.path[item.path.rfind("/"):]
                self.cache.set(bucket, [])
            elif item.type_name in ("Report", "ReportItem"):
                if keep_hidden or await self._is_visible(item):
                    self.cache.add(bucket, item)

        logger.debug("Cached catalog below '%s': %s", report_path, self.cache.stats())

    async def _is_visible(self, item: CatalogItem) -> bool:
        properties = await self.service.get_properties(item.path, [{"Name": "Hidden"}])
        # The server sends the property as text; only the exact "False" counts.
        return bool(properties) and get_field(properties[0], "Value") == "False"

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    async def get_report(
        self,
        report_path: str,
        file_type: Optional[str] = None,
        params: ParametersInput = None,
        strict: bool = False,
    ) -> RenderResult:
        return await self.execution.get_report(report_path, file_type, params, strict)

    async def get_report_by_url(
        self,
        report_path: str,
        file_type: Optional[str] = None,
        params: ParametersInput = None,
        **request_options: Any,
    ) -> httpx.Response:
        return await self.execution_url.get_report(report_path, file_type, params, **request_options)

    # ------------------------------------------------------------------
    # Copy / upload / download
    # ------------------------------------------------------------------

    async def create_report_copy(
        self,
        report_path: str,
        name: Optional[str] = None,
        parent: Optional[str] = None,
        overwrite: bool = False,
        description: Optional[str] = None,
        hidden: bool = False,
    ) -> Any:
        """Copy a report next to itself (or into ``parent``)."""
        folder, report_name = split_path(report_path)

        definition = await self.service.get_item_definition(report_path)
        created = await self.service.create_report(
            name or copy_name(report_name),
            parent or folder,
            overwrite,
            definition,
            description,
            hidden,
        )

        if self.cache is not None:
            self.clear_cache()
            await self.cache_report_list()
        return created

    def read_files(
        self,
        file_path: Union[str, os.PathLike],
        exclude: Optional[Iterable[str]] = None,
        no_definitions: bool = False,
    ) -> FileManifest:
        return read_files(file_path, exclude, no_definitions)

    async def download(self, report_path: Union[str, Iterable[str]]) -> FileManifest:
        return await self.sync.download(report_path)

    async def upload(
        self,
        report_path: str,
        files: FileManifest,
        options: Optional[UploadOptions] = None,
    ) -> List[PartialFailureWarning]:
        try:
            return await self.sync.upload(report_path, files, options)
        finally:
            self.clear_cache()

    async def upload_files(
        self,
        file_path: Union[str, os.PathLike],
        report_path: str,
        options: Optional[UploadOptions] = None,
    ) -> List[PartialFailureWarning]:
        try:
            return await self.sync.upload_files(file_path, report_path, options)
        finally:
            self.clear_cache()

    async def create_data_source(
        self,
        parent: str,
        overwrite: bool,
        auth: Optional[Dict[str, Any]],
        definition: Any,
        name: Optional[str] = None,
    ) -> str:
        try:
            return await self.sync.create_data_source(parent, overwrite, auth or {}, definition, name)
        finally:
            self.clear_cache()

    async def create_folder(self, name: str, parent: str) -> Any:
        try:
            return await self.service.create_folder(name, parent)
        finally:
            self.clear_cache()

    async def create_report(
        self,
        name: str,
        parent: str,
        overwrite: bool,
        definition: Union[str, bytes],
        description: Optional[str] = None,
        hidden: bool = False,
        encoded: bool = False,
    ) -> Any:
        try:
            return await self.service.create_report(
                name, parent, overwrite, definition, description, hidden, encoded
            )
        finally:
            self.clear_cache()

    async def create_resource(
        self,
        name: str,
        parent: str,
        contents: Union[str, bytes],
        overwrite: bool = False,
        mime_type: Optional[str] = None,
    ) -> Any:
        try:
            return await self.service.create_resource(name, parent, contents, overwrite, mime_type)
        finally:
            self.clear_cache()

    async def fix_data_source_reference(
        self,
        report_path: str,
        data_source_path: Optional[str] = None,
        progress: Any = None,
    ) -> List[PartialFailureWarning]:
        return await self.resolver.fix_data_source_reference(report_path, data_source_path, progress)
