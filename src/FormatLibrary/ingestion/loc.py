# === NAVMAP v1 ===
# {
#   "module": "FormatLibrary.ingestion.loc",
#   "purpose": "Library of Congress FDD archive ingestion",
#   "sections": [
#     {"id": "document", "name": "FDD Document Parsing", "anchor": "DOC", "kind": "api"},
#     {"id": "archive", "name": "Archive Walk", "anchor": "ARC", "kind": "api"},
#     {"id": "load", "name": "Registry Download", "anchor": "LOD", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Library of Congress Format Description Document ingestion.

The registry publishes one small XML document per format inside a zip
archive.  Each qualifying member is parsed on its own; documents share no
state.  The archive is spooled to a temporary file first because zip
members are located through the central directory at the end of the file.
"""

from __future__ import annotations

import logging
import re
import tempfile
import xml.etree.ElementTree as ET
import zipfile
from pathlib import Path
from typing import IO, Any, Dict, List, Optional, Union

from ..database import Database
from ..errors import IngestionError
from ..logging_config import generate_correlation_id
from ..models import parse_date
from ..net import stream_with_retry
from ..settings import LOC_MEMBER_PATTERN, ResolvedConfig, get_default_config
from .base import CHUNK_SIZE, FormatSink, IngestionReport, finish_report, ingestion_run

logger = logging.getLogger(__name__)

SOURCE = "LOC"
URL_TEMPLATE = "https://www.loc.gov/preservation/digital/formats/fdd/{uid}.shtml"
PUID_TAG = "Pronom PUID"


def _namespaces(root: ET.Element) -> Dict[str, str]:
    if root.tag.startswith("{"):
        return {"fdd": root.tag[1:].split("}", 1)[0]}
    return {}


def _path(expression: str, namespaces: Dict[str, str]) -> str:
    return expression if namespaces else expression.replace("fdd:", "")


def _texts(elements: List[ET.Element]) -> List[str]:
    return [(element.text or "").strip() for element in elements]


def parse_fdd_document(data: Union[bytes, str]) -> Dict[str, Any]:
    """Normalize one FDD document into a format record."""

    root = ET.fromstring(data)
    ns = _namespaces(root)
    uid = root.get("id")
    if not uid:
        raise IngestionError("FDD document has no 'id' attribute")

    date_element = root.find(_path("fdd:properties/fdd:updates/fdd:date", ns), ns)
    updated = (date_element.text or "").strip() if date_element is not None else ""
    try:
        created_at = parse_date(updated) if updated else None
    except ValueError as exc:
        raise IngestionError(f"FDD document {uid!r}: {exc}") from exc
    record: Dict[str, Any] = {
        "source": SOURCE,
        "source_version": updated or None,
        "created_at": created_at,
        "uid": uid,
        "name": root.get("titleName"),
        "url": URL_TEMPLATE.format(uid=uid),
    }

    mimetypes: List[str] = []
    extensions: List[str] = []
    related: List[str] = []
    for group in root.findall(_path("fdd:fileTypeSignifiers/fdd:signifiersGroup", ns), ns):
        mimetypes += _texts(
            group.findall(_path("fdd:internetMediaType/fdd:sigValues/fdd:sigValue", ns), ns)
        )
        extensions += _texts(
            group.findall(_path("fdd:fileExtension/fdd:sigValues/fdd:sigValue", ns), ns)
        )
        for other in group.findall(_path("fdd:other", ns), ns):
            if PUID_TAG not in _texts(other.findall(_path("fdd:tag", ns), ns)):
                continue
            values = _texts(other.findall(_path("fdd:values/fdd:sigValues/fdd:sigValue", ns), ns))
            related += [value for value in values if "fmt/" in value]

    record["mimetypes"] = mimetypes
    record["extensions"] = extensions
    record["related_formats"] = related
    return record


def ingest_fdd_archive(
    db: Database,
    archive: Union[str, Path, IO[bytes]],
    *,
    member_pattern: str = LOC_MEMBER_PATTERN,
    correlation_id: Optional[str] = None,
    catalog_url: Optional[str] = None,
) -> IngestionReport:
    """Upsert a format for every archive member whose name matches ``member_pattern``."""

    pattern = re.compile(member_pattern)
    correlation_id = correlation_id or generate_correlation_id()
    if catalog_url is None and isinstance(archive, (str, Path)):
        catalog_url = Path(archive).resolve().as_uri()
    report = IngestionReport(source=SOURCE, catalog_url=catalog_url, correlation_id=correlation_id)
    sink = FormatSink(db)

    with ingestion_run(SOURCE, sink, correlation_id):
        with zipfile.ZipFile(archive) as bundle:
            for info in bundle.infolist():
                if info.is_dir() or not pattern.match(info.filename):
                    report.skipped += 1
                    continue
                with bundle.open(info) as handle:
                    payload = handle.read()
                try:
                    record = parse_fdd_document(payload)
                except IngestionError as exc:
                    raise IngestionError(f"{info.filename}: {exc}") from exc
                sink(record)
    return finish_report(report, sink)


def load_loc_signatures(
    db: Database,
    config: Optional[ResolvedConfig] = None,
    *,
    correlation_id: Optional[str] = None,
) -> IngestionReport:
    """Download the FDD archive and upsert every format document in it."""

    cfg = config or get_default_config()
    sources = cfg.defaults.sources
    http = cfg.defaults.http
    correlation_id = correlation_id or generate_correlation_id()
    url = sources.loc_archive_url

    logger.info(
        "Loading LOC signatures from %s",
        url,
        extra={"stage": "ingest", "source": SOURCE, "correlation_id": correlation_id},
    )
    with tempfile.TemporaryFile(suffix=".zip") as spool:
        with ingestion_run(SOURCE, None, correlation_id):
            with stream_with_retry(url, config=http, correlation_id=correlation_id) as response:
                for chunk in response.iter_bytes(CHUNK_SIZE):
                    spool.write(chunk)
        spool.seek(0)
        return ingest_fdd_archive(
            db,
            spool,
            member_pattern=sources.loc_member_pattern,
            correlation_id=correlation_id,
            catalog_url=url,
        )


__all__ = ["parse_fdd_document", "ingest_fdd_archive", "load_loc_signatures"]
