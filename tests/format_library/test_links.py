"""Tests for registry index link discovery."""

import httpx
import pytest

from FormatLibrary.errors import IngestionError
from FormatLibrary.ingestion.links import (
    discover_latest_link,
    extract_links,
    latest_link,
    natural_sort_key,
)
from FormatLibrary.settings import DownloadConfiguration
from FormatLibrary.testing import use_mock_http_client

INDEX_URL = "https://registry.example.org/signatures/index.htm"
PATTERN = r"^https://registry\.example\.org/files/DROID_SignatureFile_V\d+\.xml$"
INDEX_HTML = """
<html><body>
  <ul>
    <li><a href="/files/DROID_SignatureFile_V9.xml">V9</a></li>
    <li><a href="https://registry.example.org/files/DROID_SignatureFile_V120.xml">V120</a></li>
    <li><a href="../files/DROID_SignatureFile_V99.xml">V99</a></li>
    <li><a href="/files/DROID_SignatureFile_V120.xml">duplicate</a></li>
    <li><a href="/files/container-signature-20240501.xml">container</a></li>
    <li><a>no href</a></li>
  </ul>
</body></html>
"""


class TestLinkSelection:
    """Pure link parsing and ordering."""

    def test_natural_sort(self):
        names = ["V120.xml", "V9.xml", "V99.xml", "V10.xml"]
        assert sorted(names, key=natural_sort_key) == ["V9.xml", "V10.xml", "V99.xml", "V120.xml"]

    def test_extract_resolves_and_filters(self):
        links = extract_links(INDEX_HTML, PATTERN, base_url=INDEX_URL)
        assert links == [
            "https://registry.example.org/files/DROID_SignatureFile_V9.xml",
            "https://registry.example.org/files/DROID_SignatureFile_V120.xml",
            "https://registry.example.org/files/DROID_SignatureFile_V99.xml",
        ]

    def test_latest_link(self):
        links = extract_links(INDEX_HTML, PATTERN, base_url=INDEX_URL)
        assert latest_link(links).endswith("_V120.xml")
        assert latest_link([]) is None


class TestDiscovery:
    """Fetching the index page over HTTP."""

    def test_discover_latest_link(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, text=INDEX_HTML, headers={"Content-Type": "text/html"})

        config = DownloadConfiguration(max_retries=0, backoff_factor=0.0)
        with use_mock_http_client(httpx.MockTransport(handler), default_config=config):
            link = discover_latest_link(INDEX_URL, PATTERN, config=config)
        assert link == "https://registry.example.org/files/DROID_SignatureFile_V120.xml"
        assert seen == [INDEX_URL]

    def test_no_matching_link(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html><a href='/elsewhere.xml'>x</a></html>")

        config = DownloadConfiguration(max_retries=0, backoff_factor=0.0)
        with use_mock_http_client(httpx.MockTransport(handler), default_config=config):
            with pytest.raises(IngestionError, match="No catalog links"):
                discover_latest_link(INDEX_URL, PATTERN, config=config)
