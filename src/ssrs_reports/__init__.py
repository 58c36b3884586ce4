# SSRS Reports Client
# File: __init__.py
# Version: v3

"""Top-level package for the SSRS reports client."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

from .config import ReportServerConfig
from .errors import (
    ConfigurationError,
    MissingParameterError,
    ReportingServicesError,
    TransportFault,
    ValidationError,
)
from .execution import ReportExecution
from .execution_url import ReportExecutionUrl
from .manager import ReportManager
from .models import FileManifest, ManifestEntry, PartialFailureWarning, RenderResult
from .parameters import format_parameters, format_parameters_for_url
from .references import ReferenceResolver
from .service import ReportService
from .sync import CatalogSync, UploadOptions

__all__ = [
    "__version__",
    "CatalogSync",
    "ConfigurationError",
    "FileManifest",
    "ManifestEntry",
    "MissingParameterError",
    "PartialFailureWarning",
    "ReferenceResolver",
    "RenderResult",
    "ReportExecution",
    "ReportExecutionUrl",
    "ReportManager",
    "ReportServerConfig",
    "ReportService",
    "ReportingServicesError",
    "TransportFault",
    "UploadOptions",
    "ValidationError",
    "format_parameters",
    "format_parameters_for_url",
]


def _resolve_version() -> str:
    """Resolve installed distribution version.

    Falls back to a default when running from a source tree without
    installed package metadata.
    """
    try:
        return version("ssrs-reports")
    except PackageNotFoundError:
        return "0.1.0"


__version__ = _resolve_version()
