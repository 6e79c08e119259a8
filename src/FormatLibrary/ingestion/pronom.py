# === NAVMAP v1 ===
# {
#   "module": "FormatLibrary.ingestion.pronom",
#   "purpose": "Streaming ingestion of PRONOM DROID signature files",
#   "sections": [
#     {"id": "target", "name": "Parser Target", "anchor": "TGT", "kind": "helpers"},
#     {"id": "parse", "name": "Offline Parsing", "anchor": "PRS", "kind": "api"},
#     {"id": "load", "name": "Registry Download", "anchor": "LOD", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""PRONOM DROID signature file ingestion.

The signature file is large, so it is parsed incrementally: bytes are fed to
an ``ElementTree`` parser whose target receives start/data/end callbacks and
hands every completed ``FileFormat`` record to a sink before the next one
starts.  Only the record under construction is held in memory.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from ..database import Database
from ..errors import IngestionError
from ..logging_config import generate_correlation_id
from ..models import parse_date
from ..net import stream_with_retry
from ..settings import ResolvedConfig, get_default_config
from .base import CHUNK_SIZE, FormatSink, IngestionReport, finish_report, ingestion_run
from .links import discover_latest_link

logger = logging.getLogger(__name__)

SOURCE = "PRONOM"
URL_TEMPLATE = "https://www.nationalarchives.gov.uk/PRONOM/{uid}"

Sink = Callable[[Mapping[str, Any]], None]


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


class DroidSignatureTarget:
    """Parser target turning DROID ``FileFormat`` elements into format records."""

    def __init__(self, sink: Sink) -> None:
        self._sink = sink
        self._format: Optional[Dict[str, Any]] = None
        self._extension: Optional[List[str]] = None
        self.version: Optional[str] = None
        self.date_created: Optional[str] = None
        self.created_at: Optional[date] = None
        self.count = 0

    def start(self, tag: str, attrib: Mapping[str, str]) -> None:
        name = _local_name(tag)
        if name == "FFSignatureFile":
            self.version = attrib.get("Version")
            self.date_created = attrib.get("DateCreated")
            if self.date_created:
                try:
                    self.created_at = parse_date(self.date_created)
                except ValueError as exc:
                    raise IngestionError(f"DROID signature file header: {exc}") from exc
        elif name == "FileFormat":
            uid = attrib.get("PUID")
            mimetypes = attrib.get("MIMEType") or ""
            self._format = {
                "source": SOURCE,
                "source_version": self.version,
                "created_at": self.created_at,
                "uid": uid,
                "name": attrib.get("Name"),
                "url": URL_TEMPLATE.format(uid=uid),
                "mimetypes": [value.strip() for value in mimetypes.split(",") if value.strip()],
                "version": attrib.get("Version"),
                "extensions": [],
            }
        elif name == "Extension" and self._format is not None:
            self._extension = []

    def data(self, text: str) -> None:
        if self._extension is not None:
            self._extension.append(text)

    def end(self, tag: str) -> None:
        name = _local_name(tag)
        if name == "Extension" and self._extension is not None:
            value = "".join(self._extension).strip()
            if value and self._format is not None:
                self._format["extensions"].append(value)
            self._extension = None
        elif name == "FileFormat" and self._format is not None:
            record, self._format = self._format, None
            self._sink(record)
            self.count += 1

    def close(self) -> int:
        return self.count


def parse_droid_signatures(chunks: Iterable[bytes], sink: Sink) -> DroidSignatureTarget:
    """Feed ``chunks`` of a DROID signature file through the parser.

    ``sink`` is called once per ``FileFormat`` in document order.  The
    returned target carries the file header (``version``, ``date_created``)
    and the number of records emitted.
    """

    target = DroidSignatureTarget(sink)
    parser = ET.XMLParser(target=target)
    for chunk in chunks:
        if chunk:
            parser.feed(chunk)
    parser.close()
    return target


def _file_chunks(path: Path) -> Iterable[bytes]:
    with path.open("rb") as handle:
        yield from iter(lambda: handle.read(CHUNK_SIZE), b"")


def ingest_droid_file(
    db: Database,
    path: Union[str, Path],
    *,
    correlation_id: Optional[str] = None,
) -> IngestionReport:
    """Ingest a DROID signature file from local disk."""

    path = Path(path)
    correlation_id = correlation_id or generate_correlation_id()
    report = IngestionReport(source=SOURCE, catalog_url=path.as_uri(), correlation_id=correlation_id)
    sink = FormatSink(db)
    with ingestion_run(SOURCE, sink, correlation_id):
        target = parse_droid_signatures(_file_chunks(path), sink)
    report.catalog_version = target.version
    return finish_report(report, sink)


def load_pronom_signatures(
    db: Database,
    config: Optional[ResolvedConfig] = None,
    *,
    correlation_id: Optional[str] = None,
) -> IngestionReport:
    """Download the newest DROID signature file and upsert every format in it."""

    cfg = config or get_default_config()
    sources = cfg.defaults.sources
    http = cfg.defaults.http
    correlation_id = correlation_id or generate_correlation_id()
    report = IngestionReport(source=SOURCE, correlation_id=correlation_id)
    sink = FormatSink(db)

    with ingestion_run(SOURCE, sink, correlation_id):
        link = discover_latest_link(
            sources.pronom_index_url,
            sources.pronom_link_pattern,
            config=http,
            correlation_id=correlation_id,
        )
        report.catalog_url = link
        logger.info(
            "Loading PRONOM signatures from %s",
            link,
            extra={"stage": "ingest", "source": SOURCE, "correlation_id": correlation_id},
        )
        with stream_with_retry(link, config=http, correlation_id=correlation_id) as response:
            target = parse_droid_signatures(response.iter_bytes(CHUNK_SIZE), sink)
    report.catalog_version = target.version
    return finish_report(report, sink)


__all__ = [
    "DroidSignatureTarget",
    "parse_droid_signatures",
    "ingest_droid_file",
    "load_pronom_signatures",
]
