# SSRS Reports Client
# File: service.py
# Version: v9
"""Catalog management over the ReportService2010/2012 SOAP service.

Implements:

- list_children() / get_item_definition() for browsing and download
- create_folder() / create_data_source() / create_report() / create_resource()
- delete_item()
- get/set_properties()
- get/set_item_references() and get/set_item_data_sources()
- get_item_parameters() / update_item_parameters()
- list_jobs() / cancel_job()
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Sequence, Union

from .config import ReportServerConfig
from .errors import ValidationError
from .models import (
    CatalogItem,
    DataSourceDefinition,
    ItemReference,
    ItemReferenceData,
    ReportParameter,
)
from .parameters import ParametersInput, format_parameters, to_soap_values
from .soap import SoapChannel, catalog_endpoint, response_field
from .utils import decode_definition, get_field, to_bytes, unwrap_array

logger = logging.getLogger(__name__)


def _item_properties(description: Optional[str], hidden: bool) -> Dict[str, Any]:
    return {
        "Property": [
            {"Name": "Description", "Value": description},
            {"Name": "Hidden", "Value": "True" if hidden else "False"},
        ]
    }


class ReportService:
    """Wrapper around the report server catalog operations."""

    def __init__(
        self,
        config: ReportServerConfig,
        channel: Optional[SoapChannel] = None,
    ) -> None:
        self.config = config
        self.channel = channel or SoapChannel(
            config, catalog_endpoint(config.server_url, config.use_rs2012)
        )

    async def start(self) -> SoapChannel:
        await self.channel.connect()
        return self.channel

    async def close(self) -> None:
        await self.channel.close()

    # ------------------------------------------------------------------
    # Browsing
    # ------------------------------------------------------------------

    async def list_children(self, item_path: str, recursive: bool = False) -> List[CatalogItem]:
        """List catalog items below ``item_path``."""
        response = await self.channel.call(
            "ListChildren", ItemPath=item_path, Recursive=bool(recursive)
        )
        items = unwrap_array(response_field(response, "CatalogItems"), "CatalogItem")
        return [CatalogItem.from_raw(item) for item in items]

    async def get_item_definition(self, item_path: str) -> str:
        """Return an item's definition (RDL/RDS text) with NUL padding removed."""
        response = await self.channel.call("GetItemDefinition", ItemPath=item_path)
        return decode_definition(response_field(response, "Definition"))

    # ------------------------------------------------------------------
    # Parameters
    # ------------------------------------------------------------------

    async def get_item_parameters(
        self, item_path: str, for_rendering: bool = False
    ) -> List[ReportParameter]:
        response = await self.channel.call(
            "GetItemParameters", ItemPath=item_path, ForRendering=bool(for_rendering)
        )
        params = unwrap_array(response_field(response, "Parameters"), "ItemParameter")
        return [ReportParameter.from_raw(p) for p in params]

    async def update_item_parameters(
        self,
        item_path: str,
        params: Union[ParametersInput, Sequence[Dict[str, Any]]],
        format_params: bool = False,
    ) -> List[ReportParameter]:
        """Re-evaluate parameters (valid values, dependencies) for given values."""
        if format_params:
            values = to_soap_values(format_parameters(params))
        else:
            values = list(params or [])

        response = await self.channel.call(
            "GetItemParameters",
            ItemPath=item_path,
            ForRendering=True,
            Values={"ParameterValue": values},
        )
        items = unwrap_array(response_field(response, "Parameters"), "ItemParameter")
        return [ReportParameter.from_raw(p) for p in items]

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    async def get_properties(
        self,
        item_path: str,
        properties: Optional[Sequence[Union[str, Mapping]]] = None,
    ) -> List[Dict[str, Any]]:
        """Return ``[{"Name", "Value"}]``; ``properties`` may be names or dicts."""
        props: List[Any] = []
        for prop in properties or []:
            props.append({"Name": prop} if isinstance(prop, str) else prop)

        kwargs: Dict[str, Any] = {"ItemPath": item_path}
        if props:
            kwargs["Properties"] = {"Property": props}

        response = await self.channel.call("GetProperties", **kwargs)
        values = unwrap_array(response_field(response, "Values"), "Property")
        return [
            {"Name": get_field(v, "Name"), "Value": get_field(v, "Value")}
            for v in values
        ]

    async def set_properties(
        self,
        item_path: str,
        properties: Union[Mapping, Sequence[Mapping]],
    ) -> Any:
        if isinstance(properties, Mapping):
            props = [{"Name": k, "Value": v} for k, v in properties.items()]
        else:
            props = list(properties)

        return await self.channel.call(
            "SetProperties", ItemPath=item_path, Properties={"Property": props}
        )

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def list_jobs(self) -> List[Any]:
        response = await self.channel.call("ListJobs")
        return unwrap_array(response_field(response, "Jobs"), "Job")

    async def cancel_job(self, job_id: str) -> Any:
        if not job_id:
            raise ValidationError("Job id required!")
        response = await self.channel.call("CancelJob", JobID=job_id)
        return response_field(response, "CancelJobResult")

    # ------------------------------------------------------------------
    # Create / delete
    # ------------------------------------------------------------------

    async def delete_item(self, item_path: str) -> Any:
        logger.debug("Deleting '%s'", item_path)
        return await self.channel.call("DeleteItem", ItemPath=item_path)

    async def create_folder(self, folder_name: str, parent: str) -> Any:
        return await self.channel.call("CreateFolder", Folder=folder_name, Parent=parent)

    async def create_data_source(
        self,
        name: str,
        parent: str,
        overwrite: bool,
        definition: Union[DataSourceDefinition, Mapping],
        description: Optional[str] = None,
        hidden: bool = False,
    ) -> Any:
        soap_definition = (
            definition.to_soap() if isinstance(definition, DataSourceDefinition) else dict(definition)
        )
        response = await self.channel.call(
            "CreateDataSource",
            DataSource=name,
            Parent=parent,
            Overwrite=bool(overwrite),
            Definition=soap_definition,
            Properties=_item_properties(description, hidden),
        )
        return response_field(response, "ItemInfo")

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
        """Create (or overwrite) a report from its RDL definition.

        The binding sends ``Definition`` as base64; pass ``encoded=True``
        when ``definition`` is already base64 text.
        """
        response = await self.channel.call(
            "CreateCatalogItem",
            ItemType="Report",
            Name=name,
            Parent=parent,
            Overwrite=bool(overwrite),
            Definition=to_bytes(definition, encoded=encoded),
            Properties=_item_properties(description, hidden),
        )
        return response_field(response, "ItemInfo")

    async def create_resource(
        self,
        name: str,
        parent: str,
        contents: Union[str, bytes],
        overwrite: bool = False,
        mime_type: Optional[str] = None,
    ) -> Any:
        response = await self.channel.call(
            "CreateCatalogItem",
            ItemType="Resource",
            Name=name,
            Parent=parent,
            Overwrite=bool(overwrite),
            Definition=to_bytes(contents),
            Properties={"Property": [{"Name": "MimeType", "Value": mime_type}]},
        )
        return response_field(response, "ItemInfo")

    async def test_data_source_connection(
        self,
        user_name: Optional[str],
        password: Optional[str],
        definition: Union[DataSourceDefinition, Mapping],
    ) -> Union[bool, str]:
        """Return ``True`` on success, otherwise the server's connect error."""
        soap_definition = (
            definition.to_soap() if isinstance(definition, DataSourceDefinition) else dict(definition)
        )
        response = await self.channel.call(
            "TestConnectForDataSourceDefinition",
            DataSourceDefinition=soap_definition,
            UserName=user_name,
            Password=password,
        )
        if get_field(response, "TestConnectForDataSourceDefinitionResult") or response is True:
            return True
        return get_field(response, "ConnectError", default="")

    # ------------------------------------------------------------------
    # Data sources & references
    # ------------------------------------------------------------------

    async def get_item_data_sources(self, item_path: str) -> List[Any]:
        response = await self.channel.call("GetItemDataSources", ItemPath=item_path)
        return unwrap_array(response_field(response, "DataSources"), "DataSource")

    async def set_item_data_sources(
        self,
        item_path: str,
        data_sources: Union[Mapping, Sequence[Mapping]],
    ) -> Any:
        """Bind data sources; a mapping is read as ``{name: reference path}``."""
        if isinstance(data_sources, Mapping):
            ds = [
                {"Name": name, "Item": {"Reference": ref}}
                for name, ref in data_sources.items()
            ]
        else:
            ds = list(data_sources)

        return await self.channel.call(
            "SetItemDataSources", ItemPath=item_path, DataSources={"DataSource": ds}
        )

    async def get_item_references(
        self, item_path: str, reference_item_type: str
    ) -> List[ItemReferenceData]:
        response = await self.channel.call(
            "GetItemReferences", ItemPath=item_path, ReferenceItemType=reference_item_type
        )
        refs = unwrap_array(response_field(response, "ItemReferences"), "ItemReferenceData")
        return [ItemReferenceData.from_raw(r) for r in refs]

    async def set_item_references(
        self, item_path: str, references: Sequence[Union[ItemReference, Mapping]]
    ) -> Any:
        refs = [r.to_soap() if isinstance(r, ItemReference) else dict(r) for r in references]
        return await self.channel.call(
            "SetItemReferences", ItemPath=item_path, ItemReferences={"ItemReference": refs}
        )
