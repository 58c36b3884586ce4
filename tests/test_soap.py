# SSRS Reports Client
# File: tests/test_soap.py
# Version: v2

from __future__ import annotations

from types import SimpleNamespace

import httpx
import pytest
from zeep.exceptions import Fault, TransportError

from ssrs_reports.config import ReportServerConfig
from ssrs_reports.errors import TransportFault
from ssrs_reports.soap import (
    RS_NAMESPACE,
    SoapChannel,
    catalog_endpoint,
    execution_endpoint,
    execution_header,
    fault_from_exception,
    response_field,
    summarize_kwargs,
)


class _FakeService:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls = []

    def __getattr__(self, name):
        if name.startswith("__"):
            raise AttributeError(name)

        async def method(**kwargs):
            self.calls.append((name, kwargs))
            if self.error is not None:
                raise self.error
            return SimpleNamespace(body={"Result": b"ok"}, header=None)

        return method


def _channel(service: _FakeService) -> SoapChannel:
    config = ReportServerConfig(url="http://rs.example/ReportServer", security="none")
    channel = SoapChannel(config, execution_endpoint(config.server_url))
    channel._client = SimpleNamespace(service=service)  # type: ignore[assignment]
    return channel


def test_endpoints() -> None:
    assert execution_endpoint("http://rs/ReportServer/") == "http://rs/ReportServer/ReportExecution2005.asmx"
    assert catalog_endpoint("http://rs/ReportServer") == "http://rs/ReportServer/ReportService2010.asmx"
    assert catalog_endpoint("http://rs/ReportServer", True) == "http://rs/ReportServer/ReportService2012.asmx"


def test_wsdl_url() -> None:
    config = ReportServerConfig(url="http://rs/ReportServer", security="none")
    channel = SoapChannel(config, catalog_endpoint(config.server_url))
    assert channel.wsdl_url == "http://rs/ReportServer/ReportService2010.asmx?wsdl"
    assert channel.connected is False


def test_execution_header_carries_id() -> None:
    header = execution_header("abc123")

    assert header.name == "ExecutionHeader"
    assert header.namespace == RS_NAMESPACE
    assert header.get("ExecutionID") == "abc123"


def test_fault_uses_faultstring() -> None:
    fault = fault_from_exception(
        Fault("The item '/x' cannot be found.", code="rsItemNotFound"), "ListChildren"
    )

    assert str(fault) == "The item '/x' cannot be found."
    assert fault.fault_code == "rsItemNotFound"
    assert fault.operation == "ListChildren"


def test_transport_error_without_message_uses_status() -> None:
    fault = fault_from_exception(TransportError(status_code=401), "Render")

    assert str(fault) == "HTTP 401"
    assert fault.fault_code == "401"


def test_response_field_handles_unwrapped_values() -> None:
    assert response_field({"Definition": b"x"}, "Definition") == b"x"
    assert response_field(b"raw", "Definition") == b"raw"
    assert response_field(None, "Definition") is None


def test_summarize_kwargs_hides_binary_payloads() -> None:
    assert summarize_kwargs({"Definition": b"12345", "Name": "R"}) == {
        "Definition": "<5 bytes>",
        "Name": "R",
    }


def test_header_slot_attach_and_clear() -> None:
    channel = _channel(_FakeService())
    header = execution_header("id-1")

    assert channel.attach_header(header) == 0
    assert channel.headers == (header,)

    channel.clear_headers()
    assert channel.headers == ()


@pytest.mark.asyncio
async def test_call_sends_attached_headers_and_unwraps_body() -> None:
    service = _FakeService()
    channel = _channel(service)
    channel.attach_header(execution_header("id-1"))

    result = await channel.call("Render", Format="PDF")

    assert result == {"Result": b"ok"}
    name, kwargs = service.calls[0]
    assert name == "Render"
    assert kwargs["Format"] == "PDF"
    assert len(kwargs["_soapheaders"]) == 1


@pytest.mark.asyncio
async def test_call_without_headers_sends_none() -> None:
    service = _FakeService()
    channel = _channel(service)

    await channel.call("ListChildren", ItemPath="/", Recursive=False)

    assert "_soapheaders" not in service.calls[0][1]


@pytest.mark.asyncio
async def test_call_maps_soap_fault() -> None:
    channel = _channel(_FakeService(Fault("Access denied", code="rsAccessDenied")))

    with pytest.raises(TransportFault) as exc_info:
        await channel.call("ListChildren", ItemPath="/")

    assert str(exc_info.value) == "Access denied"
    assert exc_info.value.operation == "ListChildren"
    assert isinstance(exc_info.value.__cause__, Fault)


@pytest.mark.asyncio
async def test_call_maps_httpx_errors() -> None:
    channel = _channel(_FakeService(httpx.ConnectError("connection refused")))

    with pytest.raises(TransportFault, match="connection refused"):
        await channel.call("ListChildren", ItemPath="/")


@pytest.mark.asyncio
async def test_call_maps_argument_validation_errors() -> None:
    signature_error = TypeError(
        "{http://schemas.microsoft.com/sqlserver/2005/06/30/reporting/reportingservices}"
        "SetExecutionParameters() got an unexpected keyword argument 'ExecutionDateTime'."
    )
    channel = _channel(_FakeService(signature_error))

    with pytest.raises(TransportFault, match="unexpected keyword argument") as exc_info:
        await channel.call("SetExecutionParameters", Parameters=None, ExecutionDateTime="now")

    assert exc_info.value.operation == "SetExecutionParameters"
    assert exc_info.value.__cause__ is signature_error


@pytest.mark.asyncio
async def test_call_maps_invalid_header_errors() -> None:
    channel = _channel(_FakeService(ValueError("Invalid value given to _soapheaders")))
    channel.attach_header(execution_header("id-1"))

    with pytest.raises(TransportFault, match="_soapheaders"):
        await channel.call("Render", Format="PDF")


@pytest.mark.asyncio
async def test_call_before_connect_raises() -> None:
    config = ReportServerConfig(url="http://rs/ReportServer", security="none")
    channel = SoapChannel(config, catalog_endpoint(config.server_url))

    with pytest.raises(TransportFault, match="not connected"):
        await channel.call("ListChildren", ItemPath="/")
