# === NAVMAP v1 ===
# {
#   "module": "tests.format_library.conftest",
#   "purpose": "Shared fixtures: isolated config, throwaway catalogs, registry document builders",
#   "sections": [
#     {"id": "isolation", "name": "Environment Isolation", "anchor": "ISO", "kind": "fixtures"},
#     {"id": "catalog", "name": "Catalog Fixtures", "anchor": "CAT", "kind": "fixtures"},
#     {"id": "builders", "name": "Registry Document Builders", "anchor": "BLD", "kind": "fixtures"}
#   ]
# }
# === /NAVMAP ===

"""Shared fixtures for the format library test suite."""

from __future__ import annotations

import io
import logging
import zipfile
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence
from xml.sax.saxutils import escape, quoteattr

import pytest

from FormatLibrary.api import FormatLibrary
from FormatLibrary.logging_config import LOGGER_NAME
from FormatLibrary.net import reset_http_client
from FormatLibrary.settings import invalidate_default_config_cache
from FormatLibrary.testing import build_test_config, temporary_catalog

DROID_NS = "http://www.nationalarchives.gov.uk/pronom/SignatureFile"
FDD_NS = "http://www.loc.gov/preservation/digital/formats/schemas/fdd/v1"

_ENV_VARS = (
    "FORMATLIB_LOG_LEVEL",
    "FORMATLIB_TIMEOUT_SEC",
    "FORMATLIB_MAX_RETRIES",
    "FORMATLIB_SEEDS_DIR",
    "FORMATLIB_SEEDS_TAG_DIR",
)


# --- Environment Isolation ---


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Keep env overrides, the shared HTTP client, and log handlers per-test."""
    monkeypatch.setenv("FORMATLIB_LOG_DIR", str(tmp_path / "env-logs"))
    monkeypatch.setenv("FORMATLIB_DB_PATH", str(tmp_path / "env-catalog.duckdb"))
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    invalidate_default_config_cache()
    reset_http_client()
    yield
    reset_http_client()
    invalidate_default_config_cache()
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if getattr(handler, "_formatlib_managed", False):
            logger.removeHandler(handler)
            handler.close()


# --- Catalog Fixtures ---


@pytest.fixture
def config(tmp_path):
    """Test configuration rooted in ``tmp_path`` with instant retries and no file locks."""
    cfg = build_test_config(tmp_path)
    cfg.defaults.db.enable_locks = False
    return cfg


@pytest.fixture
def db(tmp_path, config):
    """Bootstrapped empty catalog."""
    with temporary_catalog(tmp_path, config) as database:
        yield database


@pytest.fixture
def library(db, config):
    """Facade over the ``db`` fixture."""
    return FormatLibrary(db, config)


def _format(uid: str, name: Optional[str] = None, **fields: Any) -> Dict[str, Any]:
    record = {"uid": uid, "name": name or f"Format {uid}", "source": "PRONOM"}
    record.update(fields)
    return record


@pytest.fixture
def make_format():
    """Factory for minimal valid format records."""
    return _format


@pytest.fixture
def image_catalog(db):
    """IMAGE -> BMP taxonomy with seven bitmap formats tagged BMP, plus a PNG branch."""
    bitmaps = ["fmt/114", "fmt/115", "fmt/116", "fmt/117", "fmt/118", "fmt/119", "x-fmt/25"]
    for uid in bitmaps:
        db.upsert_format(_format(uid, extensions=["bmp"], mimetypes=["image/bmp"]))
    db.upsert_format(_format("fmt/11", "Portable Network Graphics", extensions=["png"]))
    db.upsert_format(_format("fmt/999", "Untagged"))

    db.upsert_tag({"tag": "IMAGE", "name": "Images", "profile": "teneo"})
    db.upsert_tag({"tag": "BMP", "name": "Windows Bitmap", "profile": "teneo"})
    db.upsert_tag({"tag": "PNG", "name": "PNG", "profile": "teneo"})
    db.link_tags("BMP", "IMAGE")
    db.link_tags("PNG", "IMAGE")
    for uid in bitmaps:
        db.tag_format("BMP", uid)
    db.tag_format("PNG", "fmt/11")
    return db


# --- Registry Document Builders ---


def build_droid_xml(
    formats: Iterable[Mapping[str, Any]],
    *,
    version: str = "120",
    date_created: Optional[str] = "2024-03-28T15:08:00",
) -> bytes:
    """Render a DROID signature file; each format maps ``puid``/``name``/``version``/``mime``/``extensions``."""
    created = f" DateCreated={quoteattr(date_created)}" if date_created is not None else ""
    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        f'<FFSignatureFile xmlns="{DROID_NS}"{created} Version="{version}">',
        "  <InternalSignatureCollection>",
        '    <InternalSignature ID="1" Specificity="Specific"/>',
        "  </InternalSignatureCollection>",
        "  <FileFormatCollection>",
    ]
    for index, fmt in enumerate(formats, start=1):
        attrs = [f"ID={quoteattr(str(index))}", f"PUID={quoteattr(fmt['puid'])}"]
        attrs.append(f"Name={quoteattr(fmt.get('name', fmt['puid']))}")
        if fmt.get("version") is not None:
            attrs.append(f"Version={quoteattr(fmt['version'])}")
        if fmt.get("mime") is not None:
            attrs.append(f"MIMEType={quoteattr(fmt['mime'])}")
        lines.append(f"    <FileFormat {' '.join(attrs)}>")
        lines.append("      <InternalSignatureID>1</InternalSignatureID>")
        for extension in fmt.get("extensions", ()):
            lines.append(f"      <Extension>{escape(extension)}</Extension>")
        lines.append("    </FileFormat>")
    lines += ["  </FileFormatCollection>", "</FFSignatureFile>"]
    return "\n".join(lines).encode("utf-8")


def build_fdd_xml(
    fdd_id: Optional[str],
    title: str = "Untitled",
    *,
    date: Optional[str] = "2023-05-01",
    groups: Sequence[Mapping[str, Any]] = (),
) -> bytes:
    """Render one FDD document; each group maps ``extensions``/``mimetypes``/``other``.

    ``other`` is a list of ``(tag, [values])`` pairs.
    """
    id_attr = f" id={quoteattr(fdd_id)}" if fdd_id else ""
    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        f'<fdd:FDD xmlns:fdd="{FDD_NS}"{id_attr} titleName={quoteattr(title)}>',
        "  <fdd:identificationAndDescription/>",
    ]
    if date is not None:
        lines.append(
            f"  <fdd:properties><fdd:updates><fdd:date>{escape(date)}</fdd:date></fdd:updates></fdd:properties>"
        )
    lines.append("  <fdd:fileTypeSignifiers>")
    for group in groups:
        lines.append("    <fdd:signifiersGroup>")
        for extension in group.get("extensions", ()):
            lines.append(
                "      <fdd:fileExtension><fdd:sigValues>"
                f"<fdd:sigValue>{escape(extension)}</fdd:sigValue>"
                "</fdd:sigValues></fdd:fileExtension>"
            )
        for mimetype in group.get("mimetypes", ()):
            lines.append(
                "      <fdd:internetMediaType><fdd:sigValues>"
                f"<fdd:sigValue>{escape(mimetype)}</fdd:sigValue>"
                "</fdd:sigValues></fdd:internetMediaType>"
            )
        for tag, values in group.get("other", ()):
            rendered = "".join(f"<fdd:sigValue>{escape(v)}</fdd:sigValue>" for v in values)
            lines.append(
                f"      <fdd:other><fdd:tag>{escape(tag)}</fdd:tag>"
                f"<fdd:values><fdd:sigValues>{rendered}</fdd:sigValues></fdd:values></fdd:other>"
            )
        lines.append("    </fdd:signifiersGroup>")
    lines += ["  </fdd:fileTypeSignifiers>", "</fdd:FDD>"]
    return "\n".join(lines).encode("utf-8")


def build_zip(members: Mapping[str, bytes]) -> bytes:
    """Zip ``members`` (name -> payload) into an in-memory archive."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as bundle:
        for name, payload in members.items():
            bundle.writestr(name, payload)
    return buffer.getvalue()


@pytest.fixture
def droid_xml():
    return build_droid_xml


@pytest.fixture
def fdd_xml():
    return build_fdd_xml


@pytest.fixture
def zip_bytes():
    return build_zip
