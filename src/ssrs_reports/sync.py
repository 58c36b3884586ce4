# SSRS Reports Client
# File: sync.py
# Version: v6

"""Upload and download of catalog subtrees.

``upload`` recreates a FileManifest below a remote folder in dependency
order (folders, data sources, reports, then reference fixing). Each item is
attempted independently: failures become :class:`PartialFailureWarning`
entries and the run carries on. ``download`` does the reverse and builds a
FileManifest from one or more remote folders.
"""

from __future__ import annotations

import logging
import os
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from .datasource import build_data_source_definition, data_source_name, parse_rds
from .models import FileManifest, ManifestEntry, PartialFailureWarning
from .manifest import load_definition, read_files
from .progress import ProgressLog
from .references import DATA_SOURCE_EXTENSION, ReferenceResolver
from .service import ReportService
from .utils import join_path, new_path, split_path, strip_extension

logger = logging.getLogger(__name__)


@dataclass
class UploadOptions:
    """Knobs for :meth:`CatalogSync.upload`."""

    overwrite: bool = False
    delete_existing_items: bool = False
    keep_data_source: bool = False
    fix_data_source_reference: bool = False

    # Per data source name: auth / connection overrides (UserName,
    # Password, ConnectString, WindowsCredentials, Prompt).
    data_source_options: Dict[str, Mapping[str, Any]] = field(default_factory=dict)

    # upload_files only.
    exclude: List[str] = field(default_factory=list)
    include: Optional[FileManifest] = None

    # Progress sink, see ProgressLog.
    logger: Any = None


class _UploadRun:
    """Bookkeeping for one upload: counter, progress and warnings."""

    def __init__(self, total: int, log: ProgressLog) -> None:
        self.total = total
        self.count = 0
        self.log = log
        self.warnings: List[PartialFailureWarning] = []

    def step(self, message: str) -> None:
        self.count += 1
        self.log.info(f"[{self.count}/{self.total}] {message}")

    def record(self, action: str, path: Optional[str], exc: BaseException) -> None:
        self.log.warning(str(exc))
        self.warnings.append(
            PartialFailureWarning(action=action, path=path, message=str(exc), error=exc)
        )


def _under(path: str, folders: Iterable[str]) -> bool:
    return any(path.startswith(folder.rstrip("/") + "/") for folder in folders)


class CatalogSync:
    """Pushes local report projects to the server and pulls them back."""

    def __init__(
        self,
        service: ReportService,
        resolver: Optional[ReferenceResolver] = None,
    ) -> None:
        self.service = service
        self.resolver = resolver or ReferenceResolver(service)

    # ------------------------------------------------------------------
    # Download
    # ------------------------------------------------------------------

    async def download(self, paths: Union[str, Iterable[str]]) -> FileManifest:
        """Fetch every item below ``paths`` (with definitions) into a manifest."""
        queue = deque([paths] if isinstance(paths, str) else list(paths))
        manifest = FileManifest()

        while queue:
            path = queue.popleft()
            for item in await self.service.list_children(path, True):
                entry = ManifestEntry(name=item.name, path=item.path)
                if item.type_name != "Folder":
                    entry.definition = await self.service.get_item_definition(item.path)
                manifest.bucket_for(item.type_name).append(entry)

        logger.info(
            "Downloaded %d folders, %d data sources, %d reports, %d other items",
            len(manifest.folders),
            len(manifest.data_sources),
            len(manifest.reports),
            len(manifest.other),
        )
        return manifest

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    async def upload_files(
        self,
        local_path: Union[str, os.PathLike],
        remote_path: str,
        options: Optional[UploadOptions] = None,
    ) -> List[PartialFailureWarning]:
        """Read a local directory and upload it below ``remote_path``."""
        options = options or UploadOptions()
        manifest = read_files(local_path, options.exclude)

        if options.include is not None:
            manifest.folders.extend(options.include.folders)
            manifest.data_sources.extend(options.include.data_sources)
            manifest.reports.extend(options.include.reports)

        return await self.upload(remote_path, manifest, options)

    async def upload(
        self,
        remote_path: str,
        manifest: FileManifest,
        options: Optional[UploadOptions] = None,
    ) -> List[PartialFailureWarning]:
        """Recreate ``manifest`` below ``remote_path``; returns the warnings."""
        options = options or UploadOptions()
        log = ProgressLog(options.logger, logger)
        run = _UploadRun(
            total=1 + len(manifest.folders) + len(manifest.data_sources) + len(manifest.reports),
            log=log,
        )

        await self._ensure_root(remote_path, run)
        if options.delete_existing_items:
            await self._delete_existing(remote_path, options.keep_data_source, run)

        root = remote_path[1:] if remote_path.startswith("/") else remote_path

        for folder in manifest.folders:
            parent = new_path(folder.path, root, True)
            try:
                run.step(f"Create folder: {join_path(parent, folder.name)}")
                await self.service.create_folder(folder.name, parent)
            except Exception as exc:  # noqa: BLE001
                run.record("create folder", join_path(parent, folder.name), exc)

        reference_map = await self._create_data_sources(root, manifest, options, run)
        uploaded_reports = await self._create_reports(root, manifest, options, run)

        if options.fix_data_source_reference and (
            manifest.data_sources or options.data_source_options
        ):
            log.info("Set datasource references...")
            if reference_map:
                run.warnings.extend(
                    await self.resolver.set_references(uploaded_reports, reference_map, "", log)
                )

        logger.info(
            "Upload to '%s' finished with %d warning(s)", remote_path, len(run.warnings)
        )
        return run.warnings

    async def _ensure_root(self, remote_path: str, run: _UploadRun) -> None:
        run.step(f"Check report folder '{remote_path}'...")
        try:
            await self.service.list_children(remote_path)
            return
        except Exception:  # noqa: BLE001
            logger.debug("Folder '%s' not listable; creating it", remote_path, exc_info=True)

        parent, leaf = split_path(remote_path)
        try:
            run.log.info(f"Create root folder '{remote_path}'.")
            await self.service.create_folder(leaf, parent)
        except Exception as exc:  # noqa: BLE001
            run.record("create root folder", remote_path, exc)

    async def _delete_existing(self, remote_path: str, keep_data_source: bool, run: _UploadRun) -> None:
        run.log.info(
            "Delete existing items" + (", keep DataSources" if keep_data_source else "") + " ..."
        )
        try:
            items = await self.service.list_children(remote_path, True)
        except Exception as exc:  # noqa: BLE001
            run.record("list existing items", remote_path, exc)
            return

        deleted_folders: List[str] = []
        for item in items:
            if keep_data_source and item.type_name == "DataSource":
                continue
            # Gone together with a folder deleted earlier in this pass.
            if not keep_data_source and _under(item.path, deleted_folders):
                continue
            try:
                await self.service.delete_item(item.path)
                if item.type_name == "Folder":
                    deleted_folders.append(item.path)
            except Exception as exc:  # noqa: BLE001
                run.record("delete item", item.path, exc)

    async def _create_data_sources(
        self,
        root: str,
        manifest: FileManifest,
        options: UploadOptions,
        run: _UploadRun,
    ) -> Dict[str, str]:
        """Create data sources; returns ``{name: remote path}`` of those created."""
        created: Dict[str, str] = {}

        if manifest.data_sources:
            for ds in manifest.data_sources:
                parent = new_path(ds.path, root, True)
                try:
                    run.step(f"Create datasource: {join_path(parent, ds.name)}")
                    overwrite = ds.overwrite if ds.overwrite is not None else options.overwrite
                    created[ds.name] = await self.create_data_source(
                        parent,
                        overwrite,
                        options.data_source_options.get(ds.name) or {},
                        load_definition(ds),
                        ds.name,
                    )
                except Exception as exc:  # noqa: BLE001
                    run.record("create datasource", join_path(parent, ds.name), exc)
        elif options.data_source_options:
            parent = "/" + root
            for name, ds_options in options.data_source_options.items():
                path = join_path(parent, name)
                try:
                    run.log.info(f"Create additional datasource: {path}")
                    definition = build_data_source_definition(parse_rds(ds_options), ds_options)
                    await self.service.create_data_source(name, parent, True, definition)
                    created[name] = path
                except Exception as exc:  # noqa: BLE001
                    run.record("create datasource", path, exc)

        return created

    async def _create_reports(
        self,
        root: str,
        manifest: FileManifest,
        options: UploadOptions,
        run: _UploadRun,
    ) -> List[str]:
        uploaded: List[str] = []
        for report in manifest.reports:
            parent = new_path(report.path, root, True)
            path = join_path(parent, report.name)
            try:
                run.step(f"Create report: {path}")
                overwrite = report.overwrite if report.overwrite is not None else options.overwrite
                await self.service.create_report(
                    report.name,
                    parent,
                    overwrite,
                    load_definition(report),
                    encoded=report.encoded,
                )
                uploaded.append(path)
            except Exception as exc:  # noqa: BLE001
                run.record("create report", path, exc)
        return uploaded

    async def create_data_source(
        self,
        parent: str,
        overwrite: bool,
        auth: Mapping[str, Any],
        definition: Any,
        fallback_name: Optional[str] = None,
    ) -> str:
        """Create one data source from ``.rds`` content; returns its path."""
        rds = parse_rds(definition)
        name = data_source_name(rds, fallback_name)
        ds_definition = build_data_source_definition(rds, auth)
        await self.service.create_data_source(name, parent, overwrite, ds_definition)
        return strip_extension(join_path(parent, name), DATA_SOURCE_EXTENSION)
