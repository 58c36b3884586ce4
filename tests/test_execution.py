# SSRS Reports Client
# File: tests/test_execution.py
# Version: v3

from __future__ import annotations

import asyncio
import base64

import pytest

from ssrs_reports.config import ReportServerConfig
from ssrs_reports.errors import MissingParameterError, TransportFault
from ssrs_reports.execution import IMAGE_DEVICE_INFO, ExecutionState, ReportExecution
from ssrs_reports.mock import MOCK_IMAGE, MockReportServer, MockReportServerChannel
from ssrs_reports.models import ParameterValue, ReportParameter

REPORT = "/Reports/Sales/Sales Summary"


class _YieldingChannel(MockReportServerChannel):
    """Gives the event loop a chance to interleave between calls."""

    async def call(self, operation, **kwargs):
        await asyncio.sleep(0)
        return await super().call(operation, **kwargs)


class _FailingRenderChannel(MockReportServerChannel):
    async def call(self, operation, **kwargs):
        if operation == "Render":
            self.calls.append((operation, dict(kwargs), self.headers))
            raise TransportFault("Rendering failed", operation=operation)
        return await super().call(operation, **kwargs)


def _config() -> ReportServerConfig:
    return ReportServerConfig(url="http://rs.example/ReportServer", security="none")


def _execution(channel_cls=MockReportServerChannel):
    channel = channel_cls(MockReportServer.with_demo_catalog())
    return ReportExecution(_config(), channel=channel), channel


def _execution_ids(channel, operation):
    out = []
    for op, _kwargs, headers in channel.calls:
        if op == operation:
            out.append([h.get("ExecutionID") for h in headers])
    return out


@pytest.mark.asyncio
async def test_get_report_runs_load_set_render_in_order():
    execution, channel = _execution()

    rendered = await execution.get_report(REPORT, "pdf", {"Region": ["East", "West"]})

    assert channel.operation_names() == ["LoadReport", "SetExecutionParameters", "Render"]
    assert rendered.result == f"PDF|{REPORT}|Region=East;Region=West".encode("utf-8")
    assert rendered.extension == "pdf"
    assert rendered.mime_type == "application/pdf"
    assert channel.headers == ()


@pytest.mark.asyncio
async def test_same_header_object_is_used_for_parameters_and_render():
    execution, channel = _execution()

    await execution.get_report(REPORT)

    load = channel.calls[0]
    set_params = channel.calls[1]
    render = channel.calls[2]

    assert load[2] == ()
    assert len(set_params[2]) == 1
    assert set_params[2][0] is render[2][0]
    assert set_params[2][0].name == "ExecutionHeader"
    assert set_params[2][0].get("ExecutionID") == "mock-exec-0001"


@pytest.mark.asyncio
async def test_format_aliases_and_default_format():
    execution, channel = _execution()

    excel = await execution.get_report(REPORT, "excel")
    default = await execution.get_report(REPORT)

    renders = [kwargs["Format"] for op, kwargs, _ in channel.calls if op == "Render"]
    assert renders == ["EXCELOPENXML", "PDF"]
    assert excel.extension == "xlsx"
    assert default.extension == "pdf"


@pytest.mark.asyncio
async def test_report_path_is_resolved_against_root_folder():
    channel = MockReportServerChannel(MockReportServer.with_demo_catalog())
    config = ReportServerConfig(url="http://rs.example/ReportServer", security="none", root_folder="/Reports")
    execution = ReportExecution(config, channel=channel)

    await execution.get_report("Sales/Sales Summary")

    assert channel.calls[0][1] == {"Report": REPORT}


@pytest.mark.asyncio
async def test_missing_parameter_fails_before_any_remote_call():
    execution, channel = _execution()

    with pytest.raises(MissingParameterError):
        await execution.get_report(REPORT, params=[ReportParameter(name="Region", value=None)], strict=True)

    assert channel.calls == []


@pytest.mark.asyncio
async def test_header_is_cleared_when_render_fails():
    execution, channel = _execution(_FailingRenderChannel)

    with pytest.raises(TransportFault, match="Rendering failed"):
        await execution.get_report(REPORT)

    assert channel.headers == ()

    # The lock was released: a new session can start right away.
    async with execution.session() as session:
        assert session.state is ExecutionState.IDLE
        await session.load(REPORT)
        assert session.state is ExecutionState.LOADED
    assert channel.headers == ()


@pytest.mark.asyncio
async def test_session_state_machine_rejects_out_of_order_steps():
    execution, channel = _execution()

    async with execution.session() as session:
        with pytest.raises(RuntimeError, match="expected PARAMETERIZED"):
            await session.render("PDF")

    assert channel.calls == []


@pytest.mark.asyncio
async def test_concurrent_get_report_calls_are_serialized():
    execution, channel = _execution(_YieldingChannel)

    results = await asyncio.gather(
        execution.get_report(REPORT, "pdf", {"Region": "East"}),
        execution.get_report(REPORT, "csv", {"Region": "West"}),
    )

    assert channel.operation_names() == [
        "LoadReport",
        "SetExecutionParameters",
        "Render",
        "LoadReport",
        "SetExecutionParameters",
        "Render",
    ]
    # Each render only ever carried the header of its own execution.
    assert _execution_ids(channel, "SetExecutionParameters") == [["mock-exec-0001"], ["mock-exec-0002"]]
    assert _execution_ids(channel, "Render") == [["mock-exec-0001"], ["mock-exec-0002"]]
    assert results[0].result.endswith(b"Region=East")
    assert results[1].result.endswith(b"Region=West")
    assert channel.headers == ()


@pytest.mark.asyncio
async def test_html5_images_are_inlined_as_data_uris():
    execution, channel = _execution()

    rendered = await execution.get_report(REPORT, "html5")

    html = rendered.result.decode("utf-8")
    assert "ImageID=" not in html
    assert 'src="data:image/png;base64,' in html

    stream_calls = [kwargs for op, kwargs, _ in channel.calls if op == "RenderStream"]
    assert stream_calls == [
        {"Format": "HTML5", "StreamID": "img-logo", "DeviceInfo": IMAGE_DEVICE_INFO}
    ]
    assert base64.b64encode(MOCK_IMAGE).decode("ascii") in html
    assert channel.headers == ()


@pytest.mark.asyncio
async def test_list_rendering_extensions():
    execution, _channel = _execution()

    extensions = await execution.list_rendering_extensions()
    names = {e["name"] for e in extensions}

    assert {"PDF", "HTML5", "EXCELOPENXML", "WORDOPENXML"} <= names


@pytest.mark.asyncio
async def test_load_report_for_unknown_path_raises_transport_fault():
    execution, channel = _execution()

    with pytest.raises(TransportFault, match="cannot be found"):
        await execution.get_report("/Reports/Nope")

    assert channel.headers == ()


@pytest.mark.asyncio
async def test_set_execution_parameters_sends_only_declared_arguments():
    execution, channel = _execution()

    async with execution.session() as session:
        await session.load(REPORT)
        assert session.started_at is not None
        await session.set_parameters([ParameterValue("Region", "East")])

    [kwargs] = [kw for op, kw, _headers in channel.calls if op == "SetExecutionParameters"]
    assert set(kwargs) == {"Parameters"}
    assert kwargs["Parameters"] == {"ParameterValue": [{"Name": "Region", "Value": "East"}]}


@pytest.mark.asyncio
async def test_mock_rejects_undeclared_set_execution_parameters_argument():
    _, channel = _execution()

    with pytest.raises(TransportFault, match="SetExecutionParameters"):
        await channel.call("SetExecutionParameters", Parameters=None, ExecutionDateTime="2024-01-15")
