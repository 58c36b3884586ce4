# SSRS Reports Client
# File: mock.py
# Version: v3

"""In-memory stand-in for a report server.

Activated when REPORTSERVER_MOCK_MODE is truthy, and used heavily by the
tests. ``MockReportServer`` holds the catalog and execution state;
``MockReportServerChannel`` speaks the same ``call(operation, **kwargs)``
protocol as :class:`~ssrs_reports.soap.SoapChannel`, including the header
slot, so services and the execution engine run unchanged on top of it.

Several channels may share one server (the catalog and execution services
of a single report server), each with its own header slot.
"""

from __future__ import annotations

import base64
import itertools
import logging
import uuid
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from .errors import TransportFault
from .soap import SoapHeader
from .utils import get_field, join_path, split_path, unwrap_array

logger = logging.getLogger(__name__)

# 1x1 transparent PNG.
MOCK_IMAGE = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="
)

_RENDER_TYPES: Dict[str, Tuple[str, str]] = {
    "PDF": ("pdf", "application/pdf"),
    "HTML5": ("html", "text/html"),
    "HTML4.0": ("html", "text/html"),
    "CSV": ("csv", "text/csv"),
    "XML": ("xml", "text/xml"),
    "EXCELOPENXML": ("xlsx", "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"),
    "WORDOPENXML": ("docx", "application/vnd.openxmlformats-officedocument.wordprocessingml.document"),
    "IMAGE": ("tif", "image/tiff"),
}


@dataclass
class _MockItem:
    name: str
    path: str
    type_name: str
    definition: Any = None
    properties: Dict[str, Any] = field(default_factory=dict)

    # Report only: data source name -> bound reference (None when unbound).
    references: Dict[str, Optional[str]] = field(default_factory=dict)
    parameters: List[Dict[str, Any]] = field(default_factory=list)

    def to_catalog_item(self) -> Dict[str, Any]:
        return {
            "ID": str(uuid.uuid5(uuid.NAMESPACE_URL, self.path)),
            "Name": self.name,
            "Path": self.path,
            "TypeName": self.type_name,
            "Hidden": self.properties.get("Hidden", "False") == "True",
            "Description": self.properties.get("Description"),
        }


@dataclass
class _MockExecution:
    execution_id: str
    report_path: str
    parameters: List[Dict[str, Any]] = field(default_factory=list)
    rendered_format: Optional[str] = None


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _children_named(elem: ET.Element, name: str) -> List[ET.Element]:
    return [c for c in elem.iter() if _local(c.tag) == name]


def _child_text(elem: ET.Element, name: str) -> Optional[str]:
    for child in elem:
        if _local(child.tag) == name:
            return (child.text or "").strip()
    return None


def _parse_rdl(definition: bytes) -> Tuple[Dict[str, Optional[str]], List[Dict[str, Any]]]:
    """Extract ``{data source name: declared reference}`` and parameters."""
    try:
        root = ET.fromstring(definition.decode("utf-8", errors="replace").lstrip("\ufeff"))
    except ET.ParseError:
        return {}, []

    sources: Dict[str, Optional[str]] = {}
    for ds in _children_named(root, "DataSource"):
        name = ds.get("Name")
        if name:
            sources[name] = _child_text(ds, "DataSourceReference")

    params: List[Dict[str, Any]] = []
    for p in _children_named(root, "ReportParameter"):
        params.append(
            {
                "Name": p.get("Name"),
                "ParameterTypeName": _child_text(p, "DataType") or "String",
                "Nullable": (_child_text(p, "Nullable") or "false").lower() == "true",
                "AllowBlank": (_child_text(p, "AllowBlank") or "false").lower() == "true",
                "MultiValue": (_child_text(p, "MultiValue") or "false").lower() == "true",
                "Prompt": _child_text(p, "Prompt"),
            }
        )
    return sources, params


def _properties_from(arg: Any) -> Dict[str, Any]:
    return {
        get_field(p, "Name"): get_field(p, "Value")
        for p in unwrap_array(arg, "Property")
    }


def _data_source_xml(definition: Dict[str, Any]) -> bytes:
    root = ET.Element("DataSourceDefinition")
    for key in ("Extension", "ConnectString", "CredentialRetrieval", "UserName", "Prompt", "Enabled"):
        value = definition.get(key)
        if value is not None:
            ET.SubElement(root, key).text = str(value)
    if definition.get("WindowsCredentials"):
        ET.SubElement(root, "WindowsCredentials").text = "True"
    return ET.tostring(root, encoding="utf-8")


class MockReportServer:
    """Catalog, execution and job state shared by mock channels."""

    def __init__(self) -> None:
        self.items: Dict[str, _MockItem] = {}
        self.executions: Dict[str, _MockExecution] = {}
        self.jobs: List[Dict[str, Any]] = []
        self._ids = itertools.count(1)

    # ------------------------------------------------------------------
    # Seeding helpers
    # ------------------------------------------------------------------

    @classmethod
    def with_demo_catalog(cls) -> "MockReportServer":
        """A small static catalog for mock mode."""
        server = cls()
        server.add_folder("/Reports")
        server.add_folder("/Reports/Sales")
        server.add_data_source(
            "/Reports/Sales/SalesDB",
            {"Extension": "SQL", "ConnectString": "Data Source=mock;Initial Catalog=Sales"},
        )
        server.add_report(
            "/Reports/Sales/Sales Summary",
            (
                '<Report xmlns="http://schemas.microsoft.com/sqlserver/reporting/2016/01/reportdefinition">'
                '<DataSources><DataSource Name="SalesDB">'
                "<DataSourceReference>SalesDB</DataSourceReference>"
                "</DataSource></DataSources>"
                "<ReportParameters>"
                '<ReportParameter Name="Region"><DataType>String</DataType><AllowBlank>true</AllowBlank></ReportParameter>'
                '<ReportParameter Name="From"><DataType>DateTime</DataType><Nullable>true</Nullable></ReportParameter>'
                "</ReportParameters>"
                "</Report>"
            ).encode("utf-8"),
        )
        server.add_report("/Reports/Sales/Internal Audit", b"<Report/>", hidden=True)
        server.jobs.append(
            {"JobID": "mock-job-1", "Name": "Sales Summary", "Path": "/Reports/Sales/Sales Summary", "Status": "Running"}
        )
        return server

    def add_folder(self, path: str) -> _MockItem:
        return self._store(path, "Folder")

    def add_data_source(self, path: str, definition: Dict[str, Any]) -> _MockItem:
        return self._store(path, "DataSource", definition=dict(definition))

    def add_report(self, path: str, definition: bytes, hidden: bool = False) -> _MockItem:
        item = self._store(path, "Report", definition=bytes(definition), hidden=hidden)
        item.references, item.parameters = self._bind_report(path, item.definition)
        return item

    def _store(self, path: str, type_name: str, definition: Any = None, hidden: bool = False) -> _MockItem:
        _, name = split_path(path)
        item = _MockItem(
            name=name,
            path=path,
            type_name=type_name,
            definition=definition,
            properties={"Hidden": "True" if hidden else "False", "Description": None},
        )
        self.items[path] = item
        return item

    def _bind_report(self, path: str, definition: bytes) -> Tuple[Dict[str, Optional[str]], List[Dict[str, Any]]]:
        declared, params = _parse_rdl(definition)
        parent, _ = split_path(path)
        refs: Dict[str, Optional[str]] = {}
        for name, reference in declared.items():
            resolved = None
            if reference:
                candidate = reference if reference.startswith("/") else join_path(parent, reference)
                if self._get(candidate, "DataSource") is not None:
                    resolved = candidate
            refs[name] = resolved
        return refs, params

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _get(self, path: str, type_name: Optional[str] = None) -> Optional[_MockItem]:
        item = self.items.get(path)
        if item is None or (type_name and item.type_name != type_name):
            return None
        return item

    def _require(self, operation: str, path: str) -> _MockItem:
        item = self.items.get(path)
        if item is None:
            raise TransportFault(
                f"The item '{path}' cannot be found.",
                operation=operation,
                fault_code="rsItemNotFound",
            )
        return item

    def _require_folder(self, operation: str, path: str) -> None:
        if path == "/":
            return
        item = self._require(operation, path)
        if item.type_name != "Folder":
            raise TransportFault(
                f"The item '{path}' is not a folder.",
                operation=operation,
                fault_code="rsWrongItemType",
            )

    def _check_create(self, operation: str, parent: str, name: str, overwrite: bool) -> str:
        self._require_folder(operation, parent)
        path = join_path(parent, name)
        existing = self.items.get(path)
        if existing is not None and (not overwrite or existing.type_name == "Folder"):
            raise TransportFault(
                f"The item '{path}' already exists.",
                operation=operation,
                fault_code="rsItemAlreadyExists",
            )
        return path

    def children(self, path: str, recursive: bool) -> List[_MockItem]:
        prefix = path.rstrip("/") + "/"
        found = []
        for item_path in sorted(self.items):
            if not item_path.startswith(prefix):
                continue
            if not recursive and "/" in item_path[len(prefix):]:
                continue
            found.append(self.items[item_path])
        return found

    # ------------------------------------------------------------------
    # Operation dispatch
    # ------------------------------------------------------------------

    def handle(self, operation: str, headers: Tuple[SoapHeader, ...], kwargs: Dict[str, Any]) -> Any:
        handler: Optional[Callable[..., Any]] = getattr(self, f"_op_{operation}", None)
        if handler is None:
            raise TransportFault(
                f"Operation '{operation}' is not offered by the mock report server.",
                operation=operation,
            )
        return handler(headers, **kwargs)

    def _execution(self, operation: str, headers: Tuple[SoapHeader, ...]) -> _MockExecution:
        for header in headers:
            if header.name == "ExecutionHeader":
                execution = self.executions.get(header.get("ExecutionID"))
                if execution is not None:
                    return execution
        raise TransportFault(
            "The report execution has expired or cannot be found.",
            operation=operation,
            fault_code="rsExecutionNotFound",
        )

    # Catalog ------------------------------------------------------------

    def _op_ListChildren(self, headers, ItemPath, Recursive=False):
        self._require_folder("ListChildren", ItemPath)
        items = [i.to_catalog_item() for i in self.children(ItemPath, bool(Recursive))]
        return {"CatalogItems": {"CatalogItem": items}}

    def _op_GetItemDefinition(self, headers, ItemPath):
        item = self._require("GetItemDefinition", ItemPath)
        if item.type_name == "Folder":
            raise TransportFault(
                f"The item '{ItemPath}' has no definition.",
                operation="GetItemDefinition",
                fault_code="rsWrongItemType",
            )
        if item.type_name == "DataSource":
            return {"Definition": _data_source_xml(item.definition or {})}
        return {"Definition": item.definition}

    def _op_CreateFolder(self, headers, Folder, Parent, Properties=None):
        path = self._check_create("CreateFolder", Parent, Folder, False)
        item = self.add_folder(path)
        item.properties.update(_properties_from(Properties))
        return {"ItemInfo": item.to_catalog_item()}

    def _op_DeleteItem(self, headers, ItemPath):
        self._require("DeleteItem", ItemPath)
        for child in self.children(ItemPath, True):
            del self.items[child.path]
        del self.items[ItemPath]
        return {}

    def _op_CreateDataSource(self, headers, DataSource, Parent, Overwrite, Definition, Properties=None):
        path = self._check_create("CreateDataSource", Parent, DataSource, bool(Overwrite))
        item = self.add_data_source(path, dict(Definition or {}))
        item.properties.update(_properties_from(Properties))
        return {"ItemInfo": item.to_catalog_item()}

    def _op_CreateCatalogItem(self, headers, ItemType, Name, Parent, Overwrite, Definition, Properties=None):
        path = self._check_create("CreateCatalogItem", Parent, Name, bool(Overwrite))
        if ItemType == "Report":
            try:
                ET.fromstring(bytes(Definition).decode("utf-8", errors="replace").lstrip("\ufeff"))
            except ET.ParseError as exc:
                raise TransportFault(
                    f"The report definition is not valid: {exc}",
                    operation="CreateCatalogItem",
                    fault_code="rsInvalidReportDefinition",
                ) from exc
            item = self.add_report(path, bytes(Definition))
        else:
            item = self._store(path, ItemType, definition=bytes(Definition or b""))
        item.properties.update(_properties_from(Properties))
        return {"ItemInfo": item.to_catalog_item()}

    def _op_GetItemReferences(self, headers, ItemPath, ReferenceItemType):
        item = self._require("GetItemReferences", ItemPath)
        refs = [
            {"Name": name, "Reference": ref, "ReferenceType": ReferenceItemType}
            for name, ref in item.references.items()
        ]
        return {"ItemReferences": {"ItemReferenceData": refs}}

    def _op_SetItemReferences(self, headers, ItemPath, ItemReferences):
        item = self._require("SetItemReferences", ItemPath)
        for ref in unwrap_array(ItemReferences, "ItemReference"):
            name = get_field(ref, "Name")
            if name not in item.references:
                raise TransportFault(
                    f"The data source '{name}' is not defined in '{ItemPath}'.",
                    operation="SetItemReferences",
                    fault_code="rsDataSourceNotFound",
                )
            target = get_field(ref, "Reference")
            self._require("SetItemReferences", target)
            item.references[name] = target
        return {}

    def _op_GetItemDataSources(self, headers, ItemPath):
        item = self._require("GetItemDataSources", ItemPath)
        sources = [
            {"Name": name, "Item": {"Reference": ref} if ref else {"InvalidDataSourceReference": True}}
            for name, ref in item.references.items()
        ]
        return {"DataSources": {"DataSource": sources}}

    def _op_SetItemDataSources(self, headers, ItemPath, DataSources):
        item = self._require("SetItemDataSources", ItemPath)
        for ds in unwrap_array(DataSources, "DataSource"):
            name = get_field(ds, "Name")
            target = get_field(get_field(ds, "Item", default={}), "Reference")
            if name in item.references and target:
                self._require("SetItemDataSources", target)
                item.references[name] = target
        return {}

    def _op_GetProperties(self, headers, ItemPath, Properties=None):
        item = self._require("GetProperties", ItemPath)
        wanted = [get_field(p, "Name") for p in unwrap_array(Properties, "Property")]
        names = wanted or list(item.properties)
        values = [{"Name": n, "Value": item.properties.get(n)} for n in names]
        return {"Values": {"Property": values}}

    def _op_SetProperties(self, headers, ItemPath, Properties):
        item = self._require("SetProperties", ItemPath)
        item.properties.update(_properties_from(Properties))
        return {}

    def _op_GetItemParameters(self, headers, ItemPath, ForRendering=False, Values=None, **_):
        item = self._require("GetItemParameters", ItemPath)
        supplied: Dict[str, List[Any]] = {}
        for value in unwrap_array(Values, "ParameterValue"):
            supplied.setdefault(get_field(value, "Name"), []).append(get_field(value, "Value"))

        params = []
        for p in item.parameters:
            entry = dict(p)
            if p["Name"] in supplied:
                entry["DefaultValues"] = {"Value": supplied[p["Name"]]}
            params.append(entry)
        return {"Parameters": {"ItemParameter": params}}

    def _op_TestConnectForDataSourceDefinition(self, headers, DataSourceDefinition, UserName=None, Password=None):
        if get_field(DataSourceDefinition, "ConnectString"):
            return {"TestConnectForDataSourceDefinitionResult": True, "ConnectError": None}
        return {
            "TestConnectForDataSourceDefinitionResult": False,
            "ConnectError": "The ConnectionString property has not been initialized.",
        }

    def _op_ListJobs(self, headers):
        return {"Jobs": {"Job": list(self.jobs)}}

    def _op_CancelJob(self, headers, JobID):
        before = len(self.jobs)
        self.jobs = [j for j in self.jobs if j.get("JobID") != JobID]
        return {"CancelJobResult": len(self.jobs) != before}

    # Execution ----------------------------------------------------------

    def _op_ListRenderingExtensions(self, headers):
        extensions = [
            {"Name": name, "LocalizedName": name, "Visible": True, "ExtensionType": "Render"}
            for name in _RENDER_TYPES
        ]
        return {"Extensions": {"Extension": extensions}}

    def _op_LoadReport(self, headers, Report, HistoryID=None):
        item = self._require("LoadReport", Report)
        if item.type_name != "Report":
            raise TransportFault(
                f"The item '{Report}' is not a report.",
                operation="LoadReport",
                fault_code="rsWrongItemType",
            )
        execution_id = f"mock-exec-{next(self._ids):04d}"
        self.executions[execution_id] = _MockExecution(execution_id, Report)
        return {
            "executionInfo": {
                "ExecutionID": execution_id,
                "ReportPath": Report,
                "Parameters": {"ReportParameter": list(item.parameters)},
            }
        }

    def _op_SetExecutionParameters(self, headers, Parameters, ParameterLanguage=None):
        execution = self._execution("SetExecutionParameters", headers)
        execution.parameters = [
            {"Name": get_field(p, "Name"), "Value": get_field(p, "Value")}
            for p in unwrap_array(Parameters, "ParameterValue")
        ]
        return {"executionInfo": {"ExecutionID": execution.execution_id}}

    def _op_Render(self, headers, Format, DeviceInfo=None):
        execution = self._execution("Render", headers)
        execution.rendered_format = Format
        extension, mime_type = _RENDER_TYPES.get(Format, (Format.lower(), "application/octet-stream"))

        stream_ids: List[str] = []
        if Format.startswith("HTML"):
            stream_ids = ["img-logo"]
            body = (
                f"<div><h1>{execution.report_path}</h1>"
                f'<img src="?rs:Command=RenderStream&amp;ImageID={stream_ids[0]}"/></div>'
            )
        else:
            values = ";".join(f"{p['Name']}={p['Value']}" for p in execution.parameters)
            body = f"{Format}|{execution.report_path}|{values}"

        return {
            "Result": body.encode("utf-8"),
            "Extension": extension,
            "MimeType": mime_type,
            "Encoding": "utf-8",
            "Warnings": None,
            "StreamIds": {"string": stream_ids},
        }

    def _op_RenderStream(self, headers, Format, StreamID, DeviceInfo=None):
        self._execution("RenderStream", headers)
        return {"Result": MOCK_IMAGE, "Encoding": None, "MimeType": "image/png"}


class MockReportServerChannel:
    """Channel over a :class:`MockReportServer` with its own header slot."""

    def __init__(self, server: Optional[MockReportServer] = None, endpoint: str = "mock://reportserver") -> None:
        self.server = server or MockReportServer()
        self.endpoint = endpoint
        self._headers: List[SoapHeader] = []
        self._connected = False

        # (operation, kwargs, headers at call time)
        self.calls: List[Tuple[str, Dict[str, Any], Tuple[SoapHeader, ...]]] = []

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> "MockReportServerChannel":
        self._connected = True
        return self

    async def close(self) -> None:
        self._connected = False
        self._headers.clear()

    @property
    def headers(self) -> Tuple[SoapHeader, ...]:
        return tuple(self._headers)

    def attach_header(self, header: SoapHeader) -> int:
        self._headers.append(header)
        return len(self._headers) - 1

    def clear_headers(self) -> None:
        self._headers.clear()

    def operations(self) -> List[str]:
        return sorted(name[4:] for name in dir(self.server) if name.startswith("_op_"))

    def operation_names(self) -> List[str]:
        return [op for op, _, _ in self.calls]

    async def call(self, operation: str, **kwargs: Any) -> Any:
        headers = self.headers
        self.calls.append((operation, dict(kwargs), headers))
        logger.debug("MOCK %s -> %s", operation, self.endpoint)
        try:
            return self.server.handle(operation, headers, kwargs)
        except TypeError as exc:
            raise TransportFault(
                f"Invalid arguments for '{operation}': {exc}", operation=operation
            ) from exc
