"""Tests for streaming PRONOM DROID signature ingestion."""

import xml.etree.ElementTree as ET
from datetime import date

import httpx
import pytest

from FormatLibrary.errors import DownloadFailure, IngestionError
from FormatLibrary.ingestion.pronom import (
    ingest_droid_file,
    load_pronom_signatures,
    parse_droid_signatures,
)
from FormatLibrary.testing import use_mock_http_client

SIGNATURES = [
    {
        "puid": "fmt/114",
        "name": "Windows Bitmap",
        "version": "3.0",
        "mime": "image/bmp, image/x-ms-bmp",
        "extensions": ["bmp", "dib"],
    },
    {"puid": "fmt/11", "name": "Portable Network Graphics", "version": "1.0", "mime": "image/png", "extensions": ["png"]},
    {"puid": "x-fmt/398", "name": "Café Exporter Format", "extensions": []},
]


class TestParser:
    """Incremental parsing of the signature file."""

    def test_one_byte_chunks(self, droid_xml):
        """Records survive chunk boundaries inside tags, text, and multibyte characters."""
        data = droid_xml(SIGNATURES)
        records = []
        target = parse_droid_signatures((data[i : i + 1] for i in range(len(data))), records.append)

        assert target.version == "120"
        assert target.count == 3
        assert [r["uid"] for r in records] == ["fmt/114", "fmt/11", "x-fmt/398"]
        bitmap = records[0]
        assert bitmap["extensions"] == ["bmp", "dib"]
        assert bitmap["mimetypes"] == ["image/bmp", "image/x-ms-bmp"]
        assert bitmap["source"] == "PRONOM"
        assert bitmap["source_version"] == "120"
        assert bitmap["created_at"] == date(2024, 3, 28)
        assert bitmap["url"] == "https://www.nationalarchives.gov.uk/PRONOM/fmt/114"
        assert records[2]["name"] == "Café Exporter Format"
        assert records[2]["mimetypes"] == []

    def test_records_arrive_before_document_ends(self, droid_xml):
        """The sink sees each format as soon as its element closes."""
        data = droid_xml(SIGNATURES)
        cut = data.index(b"</FileFormat>") + len(b"</FileFormat>")
        records = []
        with pytest.raises(ET.ParseError):
            parse_droid_signatures([data[:cut]], records.append)
        assert [r["uid"] for r in records] == ["fmt/114"]


class TestIngestFile:
    """Local signature files."""

    def test_ingest_and_reingest(self, db, droid_xml, tmp_path):
        path = tmp_path / "DROID_SignatureFile_V120.xml"
        path.write_bytes(droid_xml(SIGNATURES))
        report = ingest_droid_file(db, path)

        assert report.records == 3
        assert report.catalog_version == "120"
        assert db.get_format("fmt/114").extensions == ["bmp", "dib"]

        revised = [dict(SIGNATURES[0], extensions=["bmp"], name="Windows Bitmap Image")]
        path.write_bytes(droid_xml(revised, version="121"))
        ingest_droid_file(db, path)

        stored = db.get_format("fmt/114")
        assert stored.extensions == ["bmp"]
        assert stored.name == "Windows Bitmap Image"
        assert stored.source_version == "121"
        assert db.count("format") == 3

    def test_malformed_file_reports_committed(self, db, droid_xml, tmp_path):
        data = droid_xml(SIGNATURES)
        cut = data.index(b"</FileFormat>") + len(b"</FileFormat>")
        path = tmp_path / "truncated.xml"
        path.write_bytes(data[:cut] + b"<FileFormat PUID='fmt/broken'")

        with pytest.raises(IngestionError) as excinfo:
            ingest_droid_file(db, path)
        assert excinfo.value.committed == 1
        assert db.get_format("fmt/114") is not None

    def test_undated_file_can_be_ingested_again(self, db, droid_xml, tmp_path):
        path = tmp_path / "DROID_SignatureFile_V120.xml"
        path.write_bytes(droid_xml(SIGNATURES))
        ingest_droid_file(db, path)

        path.write_bytes(droid_xml(SIGNATURES, version="121", date_created=None))
        for _ in range(2):
            assert ingest_droid_file(db, path).records == 3

        assert db.get_format("fmt/114").created_at == date(2024, 3, 28)
        assert db.get_format("fmt/114").source_version == "121"

    def test_unreadable_header_date_aborts(self, db, droid_xml, tmp_path):
        path = tmp_path / "DROID_SignatureFile_V122.xml"
        path.write_bytes(droid_xml(SIGNATURES, date_created="last Tuesday"))

        with pytest.raises(IngestionError, match="unrecognised date") as excinfo:
            ingest_droid_file(db, path)
        assert excinfo.value.committed == 0
        assert db.count("format") == 0


class TestDownload:
    """Index discovery plus streamed download."""

    def _handler(self, droid_xml, config, calls):
        sources = config.defaults.sources
        index = """<html><body>
          <a href="https://cdn.nationalarchives.gov.uk/documents/DROID_SignatureFile_V119.xml">old</a>
          <a href="https://cdn.nationalarchives.gov.uk/documents/DROID_SignatureFile_V120.xml">new</a>
        </body></html>"""

        def handler(request: httpx.Request) -> httpx.Response:
            url = str(request.url)
            calls.append(url)
            if url == sources.pronom_index_url:
                return httpx.Response(200, text=index)
            if url.endswith("DROID_SignatureFile_V120.xml"):
                return httpx.Response(200, content=droid_xml(SIGNATURES))
            return httpx.Response(404)

        return handler

    def test_load_latest_signature_file(self, db, config, droid_xml):
        calls = []
        transport = httpx.MockTransport(self._handler(droid_xml, config, calls))
        with use_mock_http_client(transport, default_config=config.defaults.http):
            report = load_pronom_signatures(db, config)

        assert report.catalog_url.endswith("DROID_SignatureFile_V120.xml")
        assert report.records == 3
        assert report.correlation_id
        assert calls[-1] == report.catalog_url
        assert {f.uid for f in db.list_formats("PRONOM")} == {"fmt/114", "fmt/11", "x-fmt/398"}

    def test_download_failure_aborts(self, db, config):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404)

        with use_mock_http_client(httpx.MockTransport(handler), default_config=config.defaults.http):
            with pytest.raises(DownloadFailure) as excinfo:
                load_pronom_signatures(db, config)
        assert excinfo.value.status_code == 404
        assert excinfo.value.committed == 0
        assert db.count("format") == 0
