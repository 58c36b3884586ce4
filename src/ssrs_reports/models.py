# SSRS Reports Client
# File: models.py
# Version: v5

"""Domain models used by the SSRS reports client."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from .utils import get_field, unwrap_array


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


@dataclass
class CatalogItem:
    """A node in the report server's catalog (folder, report, data source...)."""

    name: str
    path: str
    type_name: str
    hidden: bool = False
    id: Optional[str] = None
    description: Optional[str] = None

    # Raw payload from the server, for debugging / advanced use.
    raw: Optional[Any] = None

    @classmethod
    def from_raw(cls, item: Any) -> "CatalogItem":
        return cls(
            name=str(get_field(item, "Name", default="")),
            path=str(get_field(item, "Path", default="")),
            type_name=str(get_field(item, "TypeName", "Type", default="")),
            hidden=_as_bool(get_field(item, "Hidden", default=False)),
            id=get_field(item, "ID"),
            description=get_field(item, "Description"),
            raw=item,
        )


@dataclass
class ParameterValue:
    """One wire entry of a report parameter.

    A multivalue parameter is sent as several entries sharing ``name``.
    """

    name: str
    value: Any = None

    def to_soap(self) -> Dict[str, Any]:
        return {"Name": self.name, "Value": self.value}


@dataclass
class ReportParameter:
    """Descriptor form of a report parameter (mirrors ``ItemParameter``)."""

    name: str
    value: Any = None
    type_name: Optional[str] = None
    nullable: bool = False
    allow_blank: bool = False
    valid_values: List[Any] = field(default_factory=list)
    prompt: Optional[str] = None

    raw: Optional[Any] = None

    @classmethod
    def from_raw(cls, item: Any) -> "ReportParameter":
        if isinstance(item, ReportParameter):
            return item

        valid = unwrap_array(get_field(item, "ValidValues"), "ValidValue")
        value = get_field(item, "Value")
        if value is None:
            # GetItemParameters reports current values as DefaultValues.
            defaults = unwrap_array(get_field(item, "DefaultValues"), "Value")
            if defaults:
                value = defaults if len(defaults) > 1 else defaults[0]

        return cls(
            name=str(get_field(item, "Name", default="")),
            value=value,
            type_name=get_field(item, "ParameterTypeName", "Type"),
            nullable=_as_bool(get_field(item, "Nullable", default=False)),
            allow_blank=_as_bool(get_field(item, "AllowBlank", default=False)),
            valid_values=[get_field(v, "Value", default=v) for v in valid],
            prompt=get_field(item, "Prompt"),
            raw=item,
        )


@dataclass
class DataSourceDefinition:
    """Connection properties sent with CreateDataSource."""

    connect_string: Optional[str]
    extension: Optional[str]
    credential_retrieval: str = "Integrated"
    enabled: bool = True
    enabled_specified: bool = True
    impersonate_user_specified: bool = False
    user_name: Optional[str] = None
    password: Optional[str] = None
    prompt: Optional[str] = None
    windows_credentials: Optional[bool] = None

    def to_soap(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "ConnectString": self.connect_string,
            "Extension": self.extension,
            "CredentialRetrieval": self.credential_retrieval,
            "Enabled": self.enabled,
            "EnabledSpecified": self.enabled_specified,
            "ImpersonateUserSpecified": self.impersonate_user_specified,
        }
        if self.windows_credentials:
            out["WindowsCredentials"] = True
        if self.credential_retrieval == "Store":
            out["UserName"] = self.user_name
            out["Password"] = self.password
        else:
            out["Prompt"] = self.prompt
        return out


@dataclass
class ManifestEntry:
    """One local (or downloaded) file or folder in a FileManifest."""

    name: str
    path: str
    definition: Optional[Union[str, bytes]] = None

    # Lazy mode: walk root to read ``file_path + path`` from later.
    file_path: Optional[str] = None
    overwrite: Optional[bool] = None

    # True when ``definition`` is already base64 text.
    encoded: bool = False


@dataclass
class FileManifest:
    """Typed view of a local directory tree or a downloaded catalog subtree."""

    folders: List[ManifestEntry] = field(default_factory=list)
    reports: List[ManifestEntry] = field(default_factory=list)
    data_sources: List[ManifestEntry] = field(default_factory=list)
    other: List[ManifestEntry] = field(default_factory=list)

    def bucket_for(self, type_name: str) -> List[ManifestEntry]:
        if type_name == "Folder":
            return self.folders
        if type_name == "Report":
            return self.reports
        if type_name == "DataSource":
            return self.data_sources
        return self.other


@dataclass
class RenderResult:
    """Output of a Render call."""

    result: bytes
    extension: Optional[str] = None
    mime_type: Optional[str] = None
    encoding: Optional[str] = None
    stream_ids: List[str] = field(default_factory=list)
    warnings: List[Any] = field(default_factory=list)

    raw: Optional[Any] = None


@dataclass
class ItemReference:
    """A named reference to push with SetItemReferences."""

    name: str
    reference: Optional[str]

    def to_soap(self) -> Dict[str, Any]:
        return {"Name": self.name, "Reference": self.reference}


@dataclass
class ItemReferenceData:
    """A reference binding as returned by GetItemReferences."""

    name: str
    reference: Optional[str] = None
    reference_type: Optional[str] = None

    @classmethod
    def from_raw(cls, item: Any) -> "ItemReferenceData":
        return cls(
            name=str(get_field(item, "Name", default="")),
            reference=get_field(item, "Reference"),
            reference_type=get_field(item, "ReferenceType"),
        )


@dataclass
class PartialFailureWarning:
    """A single item that failed inside a multi-item operation."""

    action: str
    path: Optional[str]
    message: str
    error: Optional[BaseException] = None

    def __str__(self) -> str:
        where = f" '{self.path}'" if self.path else ""
        return f"{self.action}{where}: {self.message}"
