# SSRS Reports Client
# File: references.py
# Version: v4

"""Repoint report data source bindings at shared data sources."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from .models import ItemReference, PartialFailureWarning
from .progress import ProgressLog
from .service import ReportService
from .utils import get_field, strip_extension

logger = logging.getLogger(__name__)

REPORT_EXTENSION = ".rdl"
DATA_SOURCE_EXTENSION = ".rds"
DATA_SOURCE_REFERENCE_TYPE = "DataSource"


def _item_path(item: Any) -> str:
    if isinstance(item, str):
        return item
    return str(get_field(item, "path", "Path", default=""))


class ReferenceResolver:
    """Rewrites data source references of reports from a name -> path map."""

    def __init__(self, service: ReportService) -> None:
        self.service = service

    async def set_references(
        self,
        reports: Sequence[Any],
        reference_map: Dict[str, str],
        prefix: str = "",
        progress: Any = None,
    ) -> List[PartialFailureWarning]:
        """Update every report whose data sources appear in ``reference_map``.

        ``reports`` may be catalog items, manifest entries or plain paths.
        Failures are collected per report; the loop never stops early.
        """
        log = ProgressLog.wrap(progress, logger)
        warnings: List[PartialFailureWarning] = []
        total = len(reports)

        for index, report in enumerate(reports, start=1):
            path: Optional[str] = None
            try:
                path = prefix + strip_extension(_item_path(report), REPORT_EXTENSION)
                log.info(f"[{index}/{total}] Set '{path}' datasource references.")
                message = await self.set_data_source_reference(path, reference_map)
                if message:
                    log.info(message)
            except Exception as exc:  # noqa: BLE001
                log.warning(str(exc))
                warnings.append(
                    PartialFailureWarning(
                        action="set datasource references",
                        path=path,
                        message=str(exc),
                        error=exc,
                    )
                )

        return warnings

    async def set_data_source_reference(
        self, path: str, reference_map: Dict[str, str]
    ) -> Optional[str]:
        """Push matching references for one report.

        Returns an informational message when the report has data sources
        but none of them is in ``reference_map``.
        """
        current = await self.service.get_item_references(path, DATA_SOURCE_REFERENCE_TYPE)
        if not current:
            return None

        refs = [
            ItemReference(
                name=ref.name,
                reference=strip_extension(reference_map[ref.name], DATA_SOURCE_EXTENSION),
            )
            for ref in current
            if ref.name in reference_map
        ]
        if not refs:
            return f"No compatible datasources found for {path}"

        await self.service.set_item_references(path, refs)
        return None

    async def set_data_sources(self, path: str, reference_map: Dict[str, str]) -> bool:
        """Same matching as :meth:`set_data_source_reference`, via SetItemDataSources."""
        current = await self.service.get_item_references(path, DATA_SOURCE_REFERENCE_TYPE)
        bindings = [
            {
                "Name": ref.name,
                "Item": {
                    "Reference": strip_extension(reference_map[ref.name], DATA_SOURCE_EXTENSION)
                },
            }
            for ref in current
            if ref.name in reference_map
        ]
        if not bindings:
            return False

        await self.service.set_item_data_sources(path, bindings)
        return True

    async def fix_data_source_reference(
        self,
        report_path: str,
        data_source_path: Optional[str] = None,
        progress: Any = None,
    ) -> List[PartialFailureWarning]:
        """Repair references of every report below ``report_path``.

        Data sources are looked up below ``data_source_path`` when given,
        otherwise next to the reports.
        """
        log = ProgressLog.wrap(progress, logger)

        items = await self.service.list_children(report_path, True)
        reports = [i for i in items if i.type_name == "Report"]

        if data_source_path and data_source_path != report_path:
            candidates = await self.service.list_children(data_source_path, True)
        else:
            candidates = items
        data_sources = [i for i in candidates if i.type_name == "DataSource"]

        if not data_sources:
            log.warning("No dataSources found!")
            return []

        reference_map = {ds.name: ds.path for ds in data_sources}
        return await self.set_references(reports, reference_map, "", log)
