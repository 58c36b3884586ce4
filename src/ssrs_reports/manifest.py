# SSRS Reports Client
# File: manifest.py
# Version: v2

"""Read a local report project directory into a FileManifest."""

from __future__ import annotations

import logging
import os
from typing import Iterable, Optional, Union

from .errors import ValidationError
from .models import FileManifest, ManifestEntry

logger = logging.getLogger(__name__)

REPORT_EXTENSION = ".rdl"
DATA_SOURCE_EXTENSION = ".rds"


def read_files(
    root: Union[str, os.PathLike],
    exclude: Optional[Iterable[str]] = None,
    no_definitions: bool = False,
) -> FileManifest:
    """Walk ``root`` recursively and classify what is found.

    ``exclude`` may hold entry names (``"bin"``), relative directory paths
    (``"/obj/Debug"``) or file extensions (``".rptproj"``). With
    ``no_definitions`` file contents are not read; each entry records the
    walk root in ``file_path`` so the content can be loaded later.
    """
    root = os.fspath(root)
    if not os.path.isdir(root):
        raise ValidationError(f"'{root}' is not a directory.")

    manifest = FileManifest()
    _read(root, "", manifest, set(exclude or ()), no_definitions)
    logger.debug(
        "Read %s: %d folders, %d data sources, %d reports, %d other",
        root,
        len(manifest.folders),
        len(manifest.data_sources),
        len(manifest.reports),
        len(manifest.other),
    )
    return manifest


def _read(root: str, relative: str, manifest: FileManifest, exclude: set, no_definitions: bool) -> None:
    for entry_name in sorted(os.listdir(root + relative)):
        path = f"{relative}/{entry_name}"
        if entry_name in exclude:
            continue

        full_path = root + path
        if os.path.isdir(full_path):
            if path in exclude:
                continue
            manifest.folders.append(ManifestEntry(name=entry_name, path=path))
            _read(root, path, manifest, exclude, no_definitions)
            continue

        name, ext = os.path.splitext(entry_name)
        if ext in exclude:
            continue

        entry = ManifestEntry(name=name, path=path)
        if no_definitions:
            entry.file_path = root
        else:
            entry.definition = _read_text(full_path)

        ext_lower = ext.lower()
        if ext_lower == DATA_SOURCE_EXTENSION:
            manifest.data_sources.append(entry)
        elif ext_lower == REPORT_EXTENSION:
            manifest.reports.append(entry)
        else:
            manifest.other.append(entry)


def _read_text(full_path: str) -> str:
    with open(full_path, "r", encoding="utf-8-sig") as fh:
        return fh.read()


def load_definition(entry: ManifestEntry) -> Union[str, bytes]:
    """Return the entry's definition, reading it from disk in lazy mode."""
    if entry.definition is None:
        if entry.file_path is None:
            raise ValidationError(f"No definition or file path for '{entry.path}'.")
        entry.definition = _read_text(entry.file_path + entry.path)
    return entry.definition
