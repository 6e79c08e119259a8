# === NAVMAP v1 ===
# {
#   "module": "FormatLibrary.ingestion.base",
#   "purpose": "Run reports, record sinks, and failure handling shared by ingesters",
#   "sections": [
#     {"id": "report", "name": "Run Report", "anchor": "REP", "kind": "models"},
#     {"id": "sink", "name": "Record Sink", "anchor": "SNK", "kind": "api"},
#     {"id": "run", "name": "Run Guard", "anchor": "RUN", "kind": "helpers"}
#   ]
# }
# === /NAVMAP ===

"""Plumbing shared by the signature registry ingesters."""

from __future__ import annotations

import contextlib
import logging
import time
import xml.etree.ElementTree as ET
import zipfile
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Generator, Mapping, Optional

import httpx

from ..database import Database
from ..errors import CatalogError, IngestionError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


@dataclass
class IngestionReport:
    """Outcome of one catalog run."""

    source: str
    catalog_url: Optional[str] = None
    catalog_version: Optional[str] = None
    records: int = 0
    skipped: int = 0
    elapsed_sec: float = 0.0
    correlation_id: Optional[str] = None
    started: float = field(default_factory=time.perf_counter, repr=False, compare=False)

    def finish(self, records: int) -> "IngestionReport":
        self.records = records
        self.elapsed_sec = round(time.perf_counter() - self.started, 3)
        return self

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("started")
        return data


class FormatSink:
    """Upserts each normalized format record, counting committed records."""

    def __init__(self, db: Database) -> None:
        self.db = db
        self.committed = 0

    def __call__(self, record: Mapping[str, Any]) -> None:
        self.db.upsert_format(record)
        self.committed += 1
        if self.committed % 1000 == 0:
            logger.info("%d formats upserted", self.committed, extra={"stage": "ingest"})


def finish_report(report: IngestionReport, sink: FormatSink) -> IngestionReport:
    """Stamp the committed count and elapsed time, then log the summary."""

    report.finish(sink.committed)
    logger.info(
        "%s ingestion finished: %d record(s) in %.1fs",
        report.source,
        report.records,
        report.elapsed_sec,
        extra={
            "stage": "ingest",
            "source": report.source,
            "correlation_id": report.correlation_id,
            "extra_fields": {
                "catalog_version": report.catalog_version,
                "skipped": report.skipped,
            },
        },
    )
    return report


@contextlib.contextmanager
def ingestion_run(
    source: str,
    sink: Optional[FormatSink] = None,
    correlation_id: Optional[str] = None,
) -> Generator[None, None, None]:
    """Turn any failure inside the block into an :class:`IngestionError`.

    Records committed before the failure stay in the catalog; their number
    is attached to the error and logged.
    """

    try:
        yield
    except IngestionError as exc:
        if sink is not None:
            exc.committed = sink.committed
        _log_abort(source, exc, exc.committed, correlation_id)
        raise
    except (
        httpx.HTTPError,
        ET.ParseError,
        zipfile.BadZipFile,
        CatalogError,
        OSError,
        ValueError,
    ) as exc:
        committed = sink.committed if sink is not None else 0
        _log_abort(source, exc, committed, correlation_id)
        raise IngestionError(f"{source} ingestion aborted: {exc}", committed=committed) from exc


def _log_abort(source: str, exc: BaseException, committed: int, correlation_id: Optional[str]) -> None:
    logger.error(
        "%s ingestion aborted after %d committed record(s): %s",
        source,
        committed,
        exc,
        extra={"stage": "ingest", "source": source, "correlation_id": correlation_id},
    )


__all__ = ["IngestionReport", "FormatSink", "finish_report", "ingestion_run", "CHUNK_SIZE"]
