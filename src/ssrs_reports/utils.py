# SSRS Reports Client
# File: utils.py
# Version: v4

"""Small helpers shared by the service, execution and sync modules."""

from __future__ import annotations

import base64
import re
from typing import Any, List, Optional, Tuple, Union

FORMAT_ALIASES = {
    "EXCELOPENXML": "EXCELOPENXML",
    "EXCEL": "EXCELOPENXML",
    "XLS": "EXCELOPENXML",
    "XLSX": "EXCELOPENXML",
    "WORDOPENXML": "WORDOPENXML",
    "WORD": "WORDOPENXML",
    "DOC": "WORDOPENXML",
    "DOCX": "WORDOPENXML",
}

DEFAULT_FORMAT = "PDF"


def get_field(obj: Any, *names: str, default: Any = None) -> Any:
    """Read the first present field from a dict or a zeep object."""
    if obj is None:
        return default

    for name in names:
        if isinstance(obj, dict):
            value = obj.get(name)
        else:
            try:
                value = obj[name]
            except (KeyError, TypeError, IndexError, AttributeError):
                value = getattr(obj, name, None)
        if value is not None:
            return value

    return default


def unwrap_array(value: Any, item_name: str) -> List[Any]:
    """Flatten a SOAP ``ArrayOfX`` wrapper into a plain list.

    zeep hands back ``{item_name: [...]}`` objects (or ``None`` for an empty
    array); dict payloads from the mock server follow the same shape.
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)

    inner = get_field(value, item_name)
    if inner is None:
        if isinstance(value, dict):
            return [] if item_name in value else [value]
        if hasattr(value, item_name):
            return []
        return [value]
    if isinstance(inner, (list, tuple)):
        return list(inner)
    return [inner]


def resolve_report_path(root_folder: Optional[str], report_path: str) -> str:
    """Prefix ``report_path`` with the root folder unless already rooted there."""
    if root_folder and not report_path.startswith(root_folder):
        return root_folder.rstrip("/") + "/" + report_path.lstrip("/")
    return report_path


def normalize_format(file_type: Optional[str]) -> str:
    """Map friendly format names onto rendering extension names."""
    if not file_type:
        return DEFAULT_FORMAT
    upper = file_type.upper()
    return FORMAT_ALIASES.get(upper, upper)


def new_path(path: str, new_root: Optional[str] = None, remove_name: bool = False) -> str:
    """Re-root a manifest path under ``new_root``.

    ``new_path("/a/b.rdl", "Reports", True)`` -> ``"/Reports/a"``.
    """
    parts = path.split("/")
    if parts and parts[0] in ("", "."):
        parts.pop(0)
    if not parts:
        return "/" + (new_root or "")
    if new_root:
        parts.insert(0, new_root)
    if remove_name:
        parts.pop()
    return "/" + "/".join(parts)


def split_path(path: str) -> Tuple[str, str]:
    """Split ``/a/b/c`` into ``("/a/b", "c")``; the parent of ``/c`` is ``/``."""
    trimmed = path.rstrip("/")
    parent, _, leaf = trimmed.rpartition("/")
    return parent or "/", leaf


def join_path(parent: str, name: str) -> str:
    return parent.rstrip("/") + "/" + name


def strip_extension(path: str, extension: str) -> str:
    """Remove a trailing extension such as ``.rdl`` (case-insensitive)."""
    return re.sub(re.escape(extension) + r"$", "", path, flags=re.IGNORECASE)


def to_bytes(definition: Union[str, bytes, bytearray], encoded: bool = False) -> bytes:
    """Return raw definition bytes.

    ``encoded=True`` means ``definition`` is already base64 text; it is
    decoded so the binding encodes it exactly once on the wire.
    """
    if encoded:
        return base64.b64decode(definition)
    if isinstance(definition, (bytes, bytearray)):
        return bytes(definition)
    return str(definition).encode("utf-8")


def decode_definition(data: Union[str, bytes, bytearray, None]) -> str:
    """Turn a GetItemDefinition payload into text without NUL padding."""
    if data is None:
        return ""
    if isinstance(data, str):
        data = base64.b64decode(data)
    return bytes(data).decode("utf-8", errors="replace").replace("\0", "")
