"""Signature registry ingesters (PRONOM DROID files and LOC FDD archives)."""

from .base import FormatSink, IngestionReport, ingestion_run
from .links import discover_latest_link, extract_links, latest_link, natural_sort_key
from .loc import ingest_fdd_archive, load_loc_signatures, parse_fdd_document
from .pronom import (
    DroidSignatureTarget,
    ingest_droid_file,
    load_pronom_signatures,
    parse_droid_signatures,
)

__all__ = [
    "IngestionReport",
    "FormatSink",
    "ingestion_run",
    "natural_sort_key",
    "latest_link",
    "extract_links",
    "discover_latest_link",
    "DroidSignatureTarget",
    "parse_droid_signatures",
    "ingest_droid_file",
    "load_pronom_signatures",
    "parse_fdd_document",
    "ingest_fdd_archive",
    "load_loc_signatures",
]
