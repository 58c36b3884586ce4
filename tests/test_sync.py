# SSRS Reports Client
# File: tests/test_sync.py
# Version: v3

from __future__ import annotations

import pytest

from ssrs_reports.config import ReportServerConfig
from ssrs_reports.datasource import parse_rds
from ssrs_reports.errors import TransportFault
from ssrs_reports.mock import MockReportServer, MockReportServerChannel
from ssrs_reports.models import (
    CatalogItem,
    FileManifest,
    ItemReferenceData,
    ManifestEntry,
    PartialFailureWarning,
)
from ssrs_reports.service import ReportService
from ssrs_reports.sync import CatalogSync, UploadOptions

DS1_RDS = (
    '<RptDataSource Name="DS1"><ConnectionProperties>'
    "<Extension>SQL</Extension><ConnectString>X</ConnectString>"
    "</ConnectionProperties></RptDataSource>"
)

R1_RDL = (
    "<Report><DataSources>"
    '<DataSource Name="DS1"><DataSourceReference>DS1</DataSourceReference></DataSource>'
    "</DataSources></Report>"
)


class _FakeService:
    """Records catalog calls in order; duck-types ReportService."""

    def __init__(self, existing=None, missing_root=False, failing_reports=()):
        self.calls = []
        self.existing = existing or []
        self.missing_root = missing_root
        self.failing_reports = set(failing_reports)

    async def list_children(self, path, recursive=False):
        self.calls.append(("list_children", path, recursive))
        if self.missing_root and not recursive:
            raise TransportFault(f"The item '{path}' cannot be found.")
        return list(self.existing)

    async def create_folder(self, name, parent):
        self.calls.append(("create_folder", name, parent))

    async def delete_item(self, path):
        self.calls.append(("delete_item", path))

    async def create_data_source(self, name, parent, overwrite, definition, description=None, hidden=False):
        self.calls.append(("create_data_source", name, parent, overwrite, definition))

    async def create_report(self, name, parent, overwrite, definition, description=None, hidden=False, encoded=False):
        self.calls.append(("create_report", name, parent, overwrite))
        if name in self.failing_reports:
            raise TransportFault(f"The report definition for '{name}' is not valid.")

    async def get_item_references(self, path, reference_type):
        self.calls.append(("get_item_references", path, reference_type))
        return [ItemReferenceData(name="DS1", reference=None, reference_type="DataSource")]

    async def set_item_references(self, path, refs):
        self.calls.append(("set_item_references", path, [(r.name, r.reference) for r in refs]))


def _scenario_manifest(*report_names):
    return FileManifest(
        data_sources=[ManifestEntry(name="DS1", path="/ds1.rds", definition=DS1_RDS)],
        reports=[
            ManifestEntry(name=name, path=f"/{name.lower()}.rdl", definition="<Report/>")
            for name in (report_names or ("R1",))
        ],
    )


@pytest.mark.asyncio
async def test_upload_creates_data_source_then_report_then_fixes_reference():
    service = _FakeService()
    sync = CatalogSync(service)

    warnings = await sync.upload(
        "/Reports/Demo", _scenario_manifest(), UploadOptions(fix_data_source_reference=True)
    )

    assert warnings == []
    assert [c[0] for c in service.calls] == [
        "list_children",
        "create_data_source",
        "create_report",
        "get_item_references",
        "set_item_references",
    ]
    assert service.calls[1][1:3] == ("DS1", "/Reports/Demo")
    assert service.calls[1][4].connect_string == "X"
    assert service.calls[1][4].credential_retrieval == "Integrated"
    assert service.calls[2][1:3] == ("R1", "/Reports/Demo")
    assert service.calls[4] == ("set_item_references", "/Reports/Demo/R1", [("DS1", "/Reports/Demo/DS1")])


@pytest.mark.asyncio
async def test_upload_without_fix_flag_skips_references():
    service = _FakeService()

    await CatalogSync(service).upload("/Reports/Demo", _scenario_manifest())

    assert "get_item_references" not in [c[0] for c in service.calls]


@pytest.mark.asyncio
async def test_failed_report_becomes_warning_and_upload_continues():
    service = _FakeService(failing_reports={"Broken"})

    warnings = await CatalogSync(service).upload(
        "/Reports/Demo",
        _scenario_manifest("Broken", "Good"),
        UploadOptions(fix_data_source_reference=True),
    )

    assert len(warnings) == 1
    warning = warnings[0]
    assert isinstance(warning, PartialFailureWarning)
    assert warning.action == "create report"
    assert warning.path == "/Reports/Demo/Broken"
    assert "not valid" in str(warning)

    created = [c[1] for c in service.calls if c[0] == "create_report"]
    assert created == ["Broken", "Good"]
    # Only the report that made it gets its references fixed.
    assert [c[1] for c in service.calls if c[0] == "set_item_references"] == ["/Reports/Demo/Good"]


@pytest.mark.asyncio
async def test_missing_root_folder_is_created():
    service = _FakeService(missing_root=True)

    await CatalogSync(service).upload("/Reports/Demo", FileManifest())

    assert service.calls[1] == ("create_folder", "Demo", "/Reports")


@pytest.mark.asyncio
async def test_delete_existing_items_skips_children_of_deleted_folders():
    existing = [
        CatalogItem(name="Old", path="/Reports/Demo/Old", type_name="Folder"),
        CatalogItem(name="R", path="/Reports/Demo/Old/R", type_name="Report"),
        CatalogItem(name="DS", path="/Reports/Demo/DS", type_name="DataSource"),
    ]
    service = _FakeService(existing=existing)

    await CatalogSync(service).upload(
        "/Reports/Demo", FileManifest(), UploadOptions(delete_existing_items=True)
    )

    assert [c[1] for c in service.calls if c[0] == "delete_item"] == [
        "/Reports/Demo/Old",
        "/Reports/Demo/DS",
    ]


@pytest.mark.asyncio
async def test_delete_existing_items_can_keep_data_sources():
    existing = [
        CatalogItem(name="R", path="/Reports/Demo/R", type_name="Report"),
        CatalogItem(name="DS", path="/Reports/Demo/DS", type_name="DataSource"),
    ]
    service = _FakeService(existing=existing)

    await CatalogSync(service).upload(
        "/Reports/Demo",
        FileManifest(),
        UploadOptions(delete_existing_items=True, keep_data_source=True),
    )

    assert [c[1] for c in service.calls if c[0] == "delete_item"] == ["/Reports/Demo/R"]


@pytest.mark.asyncio
async def test_progress_sink_receives_counted_steps():
    messages = []
    service = _FakeService()

    await CatalogSync(service).upload(
        "/Reports/Demo",
        _scenario_manifest(),
        UploadOptions(logger=lambda message, level: messages.append((level, message))),
    )

    assert ("info", "[2/3] Create datasource: /Reports/Demo/DS1") in messages
    assert ("info", "[3/3] Create report: /Reports/Demo/R1") in messages


# ---------------------------------------------------------------------------
# Against the in-memory server
# ---------------------------------------------------------------------------


def _mock_sync():
    server = MockReportServer()
    server.add_folder("/Reports")
    channel = MockReportServerChannel(server)
    config = ReportServerConfig(url="http://rs.example/ReportServer", security="none")
    return CatalogSync(ReportService(config, channel=channel)), server


@pytest.mark.asyncio
async def test_upload_files_then_download_round_trip(tmp_path):
    (tmp_path / "Shared").mkdir()
    (tmp_path / "Shared" / "DS1.rds").write_text(DS1_RDS, encoding="utf-8")
    (tmp_path / "Sales").mkdir()
    (tmp_path / "Sales" / "R1.rdl").write_text(R1_RDL, encoding="utf-8")
    (tmp_path / "Reports.rptproj").write_text("<Project/>", encoding="utf-8")

    sync, server = _mock_sync()
    warnings = await sync.upload_files(
        tmp_path,
        "/Reports/Demo",
        UploadOptions(fix_data_source_reference=True, exclude=[".rptproj"]),
    )

    assert warnings == []
    assert server.items["/Reports/Demo/Sales/R1"].references == {"DS1": "/Reports/Demo/Shared/DS1"}

    manifest = await sync.download("/Reports/Demo")

    assert [f.path for f in manifest.folders] == ["/Reports/Demo/Sales", "/Reports/Demo/Shared"]
    assert [(r.name, r.definition) for r in manifest.reports] == [("R1", R1_RDL)]
    assert [d.name for d in manifest.data_sources] == ["DS1"]
    assert parse_rds(manifest.data_sources[0].definition).connect_string == "X"
    assert manifest.other == []


@pytest.mark.asyncio
async def test_download_accepts_several_paths():
    sync, server = _mock_sync()
    server.add_folder("/Other")
    server.add_report("/Reports/A", b"<Report/>")
    server.add_report("/Other/B", b"<Report/>")

    manifest = await sync.download(["/Reports", "/Other"])

    assert [r.path for r in manifest.reports] == ["/Reports/A", "/Other/B"]


@pytest.mark.asyncio
async def test_data_source_options_create_additional_source_and_bind_it():
    sync, server = _mock_sync()
    server.add_folder("/Reports/Demo")

    manifest = FileManifest(reports=[ManifestEntry(name="R1", path="/R1.rdl", definition=R1_RDL)])
    warnings = await sync.upload(
        "/Reports/Demo",
        manifest,
        UploadOptions(
            fix_data_source_reference=True,
            data_source_options={"DS1": {"ConnectString": "Data Source=prod", "Extension": "SQL", "UserName": "svc"}},
        ),
    )

    assert warnings == []
    ds = server.items["/Reports/Demo/DS1"]
    assert ds.definition["CredentialRetrieval"] == "Store"
    assert ds.definition["ConnectString"] == "Data Source=prod"
    assert server.items["/Reports/Demo/R1"].references == {"DS1": "/Reports/Demo/DS1"}


@pytest.mark.asyncio
async def test_existing_items_fail_without_overwrite_and_succeed_with_it():
    sync, server = _mock_sync()
    server.add_folder("/Reports/Demo")
    server.add_report("/Reports/Demo/R1", b"<Report/>")
    manifest = FileManifest(reports=[ManifestEntry(name="R1", path="/R1.rdl", definition=R1_RDL)])

    warnings = await sync.upload("/Reports/Demo", manifest)
    assert [w.path for w in warnings] == ["/Reports/Demo/R1"]

    warnings = await sync.upload("/Reports/Demo", manifest, UploadOptions(overwrite=True))
    assert warnings == []
    assert server.items["/Reports/Demo/R1"].definition == R1_RDL.encode("utf-8")
