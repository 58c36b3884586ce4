# SSRS Reports Client
# File: soap.py
# Version: v6

"""SOAP channel to the report server.

A :class:`SoapChannel` wraps one zeep ``AsyncClient`` bound to a service
WSDL (catalog or execution) and carries a single slot of attached SOAP
headers. Every remote operation goes through :meth:`SoapChannel.call`, which
normalises SOAP faults and transport errors into :class:`TransportFault`.

The header slot is shared by every call on the channel, so multi-step
protocols that depend on it (report execution) must not interleave on one
channel. See ``execution.ExecutionSession``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import httpx
from zeep import AsyncClient, Settings, xsd
from zeep.exceptions import Error as ZeepError
from zeep.exceptions import Fault, TransportError
from zeep.transports import AsyncTransport

from .auth import build_auth
from .config import ReportServerConfig
from .errors import TransportFault
from .utils import get_field

logger = logging.getLogger(__name__)

RS_NAMESPACE = (
    "http://schemas.microsoft.com/sqlserver/2005/06/30/reporting/reportingservices"
)

EXECUTION_SERVICE = "ReportExecution2005.asmx"
CATALOG_SERVICE_2010 = "ReportService2010.asmx"
CATALOG_SERVICE_2012 = "ReportService2012.asmx"


def execution_endpoint(server_url: str) -> str:
    return f"{server_url.rstrip('/')}/{EXECUTION_SERVICE}"


def catalog_endpoint(server_url: str, use_rs2012: bool = False) -> str:
    service = CATALOG_SERVICE_2012 if use_rs2012 else CATALOG_SERVICE_2010
    return f"{server_url.rstrip('/')}/{service}"


@dataclass(frozen=True)
class SoapHeader:
    """A SOAP header block, e.g. ``ExecutionHeader/ExecutionID``."""

    name: str
    namespace: str
    values: Tuple[Tuple[str, Any], ...] = field(default_factory=tuple)

    def get(self, key: str) -> Any:
        return dict(self.values).get(key)

    def to_element(self) -> Any:
        """Build the zeep xsd value for ``_soapheaders``."""
        children = [
            xsd.Element(f"{{{self.namespace}}}{key}", xsd.String())
            for key, _ in self.values
        ]
        element = xsd.Element(
            f"{{{self.namespace}}}{self.name}", xsd.ComplexType(children)
        )
        return element(**dict(self.values))


def execution_header(execution_id: str) -> SoapHeader:
    return SoapHeader(
        name="ExecutionHeader",
        namespace=RS_NAMESPACE,
        values=(("ExecutionID", execution_id),),
    )


def response_field(response: Any, name: str) -> Any:
    """Read ``name`` from a response body.

    zeep sometimes unwraps single-child responses all the way down to the
    value itself; in that case the value is returned unchanged.
    """
    if response is None:
        return None
    if isinstance(response, (list, tuple, str, bytes, bytearray, bool, int)):
        return response
    return get_field(response, name)


def fault_from_exception(exc: BaseException, operation: Optional[str] = None) -> TransportFault:
    """Normalise a zeep / httpx error into a :class:`TransportFault`."""
    if isinstance(exc, TransportFault):
        return exc

    if isinstance(exc, Fault):
        message = exc.message or str(exc)
        return TransportFault(
            message, operation=operation, fault_code=exc.code, detail=exc.detail
        )

    if isinstance(exc, TransportError):
        message = exc.message or f"HTTP {exc.status_code}"
        return TransportFault(
            message, operation=operation, fault_code=str(exc.status_code), detail=exc.content
        )

    return TransportFault(str(exc) or exc.__class__.__name__, operation=operation)


def _unwrap_envelope(result: Any) -> Any:
    # Operations declaring output headers come back as {body, header}.
    if result is not None and not isinstance(result, (list, tuple, dict, bytes, str)):
        if hasattr(result, "body") and hasattr(result, "header"):
            return result.body
    return result


class SoapChannel:
    """Async SOAP channel bound to one report server service endpoint."""

    def __init__(self, config: ReportServerConfig, endpoint: str) -> None:
        self.config = config
        self.endpoint = endpoint
        self._client: Optional[AsyncClient] = None
        self._http: Optional[httpx.AsyncClient] = None
        self._wsdl_http: Optional[httpx.Client] = None
        self._headers: List[SoapHeader] = []

    @property
    def wsdl_url(self) -> str:
        return f"{self.endpoint}?wsdl"

    @property
    def connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> "SoapChannel":
        """Load the WSDL and create the zeep client (idempotent)."""
        if self._client is not None:
            return self

        auth = build_auth(self.config)
        self._http = httpx.AsyncClient(
            auth=auth, timeout=float(self.config.timeout), verify=self.config.verify_tls
        )
        self._wsdl_http = httpx.Client(
            auth=auth, timeout=float(self.config.timeout), verify=self.config.verify_tls
        )
        transport = AsyncTransport(client=self._http, wsdl_client=self._wsdl_http)

        try:
            self._client = AsyncClient(
                self.wsdl_url,
                transport=transport,
                settings=Settings(strict=False, xml_huge_tree=True),
            )
        except (ZeepError, httpx.HTTPError, OSError) as exc:
            await self.close()
            raise TransportFault(
                f"Error loading WSDL from '{self.wsdl_url}': {exc}"
            ) from exc

        logger.info("Connected SOAP channel to %s", self.endpoint)
        return self

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
        if self._wsdl_http is not None:
            self._wsdl_http.close()
        self._http = None
        self._wsdl_http = None
        self._client = None
        self._headers.clear()

    # ------------------------------------------------------------------
    # Header slot
    # ------------------------------------------------------------------

    @property
    def headers(self) -> Tuple[SoapHeader, ...]:
        return tuple(self._headers)

    def attach_header(self, header: SoapHeader) -> int:
        """Attach a header to every following call; returns its index."""
        self._headers.append(header)
        return len(self._headers) - 1

    def clear_headers(self) -> None:
        self._headers.clear()

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    def operations(self) -> List[str]:
        """Names of the operations offered by the bound service."""
        if self._client is None:
            return []
        names: List[str] = []
        for service in self._client.wsdl.services.values():
            for port in service.ports.values():
                names.extend(port.binding._operations.keys())
        return sorted(set(names))

    async def call(self, operation: str, **kwargs: Any) -> Any:
        """Invoke ``operation`` with the attached headers."""
        if self._client is None:
            raise TransportFault(
                f"SOAP channel for '{self.endpoint}' is not connected. "
                "Call connect() first.",
                operation=operation,
            )

        try:
            method = getattr(self._client.service, operation)
        except AttributeError as exc:
            raise TransportFault(
                f"Operation '{operation}' is not offered by '{self.endpoint}'.",
                operation=operation,
            ) from exc

        if self._headers:
            kwargs["_soapheaders"] = [h.to_element() for h in self._headers]

        logger.debug("SOAP %s -> %s %s", operation, self.endpoint, summarize_kwargs(kwargs))
        try:
            result = await method(**kwargs)
        except (ZeepError, httpx.HTTPError) as exc:
            raise fault_from_exception(exc, operation) from exc
        except (TypeError, ValueError) as exc:
            # zeep validates arguments and headers against the WSDL before sending.
            raise TransportFault(
                f"Invalid arguments for '{operation}': {exc}", operation=operation
            ) from exc

        return _unwrap_envelope(result)


def summarize_kwargs(kwargs: Dict[str, Any]) -> Dict[str, Any]:
    """Drop bulky binary arguments before logging a call."""
    return {
        k: (f"<{len(v)} bytes>" if isinstance(v, (bytes, bytearray)) else v)
        for k, v in kwargs.items()
    }
