# SSRS Reports Client
# File: datasource.py
# Version: v3

"""Shared data source (``.rds``) parsing.

Only the handful of fields needed to recreate the data source on a server
are read. A ``.rds`` file looks like::

    <RptDataSource Name="DS1">
      <ConnectionProperties>
        <Extension>SQL</Extension>
        <ConnectString>Data Source=.;Initial Catalog=Sales</ConnectString>
        <IntegratedSecurity>true</IntegratedSecurity>
      </ConnectionProperties>
    </RptDataSource>
"""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from .errors import ValidationError
from .models import DataSourceDefinition
from .utils import get_field

_XML_DECLARATION = re.compile(r"^\s*<\?xml[^>]*\?>", re.IGNORECASE)


@dataclass
class RdsFile:
    """Fields extracted from a ``.rds`` definition."""

    name: Optional[str] = None
    extension: Optional[str] = None
    connect_string: Optional[str] = None
    integrated_security: bool = False
    prompt: Optional[str] = None
    user_name: Optional[str] = None
    password: Optional[str] = None
    windows_credentials: bool = False
    impersonate_user_specified: bool = False


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes"}
    return bool(value)


def _parse_xml(text: str) -> ET.Element:
    body = _XML_DECLARATION.sub("", text.lstrip("\ufeff"), count=1)
    try:
        return ET.fromstring(body)
    except ET.ParseError:
        pass
    # Fragments (several top-level elements) are accepted too.
    try:
        return ET.fromstring(f"<RptDataSourceFragment>{body}</RptDataSourceFragment>")
    except ET.ParseError as exc:
        raise ValidationError(f"Invalid data source definition: {exc}") from exc


def _first_text(root: ET.Element, name: str) -> Optional[str]:
    for elem in root.iter():
        if _local_name(elem.tag) == name:
            return (elem.text or "").strip() or None
    return None


def _first_attribute(root: ET.Element, name: str) -> Optional[str]:
    for elem in root.iter():
        value = elem.get(name)
        if value:
            return value
    return None


def parse_rds(definition: Union[str, bytes, Mapping, None]) -> RdsFile:
    """Parse ``.rds`` text (or an already structured mapping)."""
    if definition is None:
        return RdsFile()

    if isinstance(definition, Mapping):
        return RdsFile(
            name=get_field(definition, "Name"),
            extension=get_field(definition, "Extension"),
            connect_string=get_field(definition, "ConnectString"),
            integrated_security=_truthy(get_field(definition, "IntegratedSecurity", default=False)),
            prompt=get_field(definition, "Prompt"),
            user_name=get_field(definition, "UserName"),
            password=get_field(definition, "Password"),
            windows_credentials=_truthy(get_field(definition, "WindowsCredentials", default=False)),
            impersonate_user_specified=_truthy(
                get_field(definition, "ImpersonateUserSpecified", default=False)
            ),
        )

    if isinstance(definition, (bytes, bytearray)):
        definition = bytes(definition).decode("utf-8", errors="replace")

    root = _parse_xml(definition)
    return RdsFile(
        name=_first_attribute(root, "Name"),
        extension=_first_text(root, "Extension"),
        connect_string=_first_text(root, "ConnectString"),
        integrated_security=_truthy(_first_text(root, "IntegratedSecurity") or False),
        prompt=_first_text(root, "Prompt"),
        user_name=_first_text(root, "UserName"),
        password=_first_text(root, "Password"),
        windows_credentials=_truthy(_first_text(root, "WindowsCredentials") or False),
        impersonate_user_specified=_truthy(_first_text(root, "ImpersonateUserSpecified") or False),
    )


def build_data_source_definition(
    rds: RdsFile,
    auth: Optional[Mapping] = None,
) -> DataSourceDefinition:
    """Combine parsed ``.rds`` fields with caller auth overrides.

    Credential mode precedence: a user name (override or file) selects
    ``Store``, otherwise a prompt selects ``Prompt``, otherwise
    ``Integrated``.
    """
    auth = auth or {}

    definition = DataSourceDefinition(
        connect_string=get_field(auth, "ConnectString", "connect_string") or rds.connect_string,
        extension=get_field(auth, "Extension", "extension") or rds.extension,
        impersonate_user_specified=rds.impersonate_user_specified,
    )

    if _truthy(get_field(auth, "WindowsCredentials", "windows_credentials", default=False)) or rds.windows_credentials:
        definition.windows_credentials = True

    user_name = get_field(auth, "UserName", "user_name") or rds.user_name
    prompt = get_field(auth, "Prompt", "prompt") or rds.prompt

    if user_name:
        definition.credential_retrieval = "Store"
        definition.user_name = user_name
        definition.password = get_field(auth, "Password", "password") or rds.password
    elif prompt:
        definition.credential_retrieval = "Prompt"
        definition.prompt = prompt
    else:
        definition.credential_retrieval = "Integrated"
        definition.prompt = None

    return definition


def data_source_name(rds: RdsFile, fallback: Optional[str]) -> Optional[str]:
    """Name to create the data source under: the file's, else ``fallback``."""
    return rds.name or fallback


def definition_summary(definition: DataSourceDefinition) -> Dict[str, Any]:
    """Loggable view of a definition without the password."""
    return {
        "extension": definition.extension,
        "credential_retrieval": definition.credential_retrieval,
        "user_name": definition.user_name,
        "windows_credentials": bool(definition.windows_credentials),
    }
