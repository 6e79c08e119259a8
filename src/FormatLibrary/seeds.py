"""Catalog seeding: registry ingestion followed by local format and tag documents."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .database import Database
from .ingestion import load_loc_signatures, load_pronom_signatures
from .loader import load_yaml_file
from .logging_config import generate_correlation_id
from .models import EntityKind
from .settings import ResolvedConfig, get_default_config

logger = logging.getLogger(__name__)


@dataclass
class SeedStep:
    name: str
    records: int = 0
    skipped: bool = False
    detail: Optional[str] = None


@dataclass
class SeedReport:
    correlation_id: str
    steps: List[SeedStep] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def run_seeds(
    db: Database,
    config: Optional[ResolvedConfig] = None,
    *,
    registries: bool = True,
) -> SeedReport:
    """Seed the catalog in order: PRONOM, LOC, local formats, tag documents.

    Registry failures abort the run.  Missing local seed files are skipped
    with a warning.
    """

    cfg = config or get_default_config()
    seeds = cfg.defaults.seeds
    report = SeedReport(correlation_id=generate_correlation_id())
    extra = {"stage": "seed", "correlation_id": report.correlation_id}

    if registries:
        logger.info("Loading PRONOM signatures ...", extra=extra)
        pronom = load_pronom_signatures(db, cfg, correlation_id=report.correlation_id)
        report.steps.append(SeedStep("pronom", pronom.records, detail=pronom.catalog_url))

        logger.info("Loading LOC signatures ...", extra=extra)
        loc = load_loc_signatures(db, cfg, correlation_id=report.correlation_id)
        report.steps.append(SeedStep("loc", loc.records, detail=loc.catalog_url))

    formats_file = seeds.data_dir / seeds.formats_file
    if formats_file.is_file():
        logger.info("Loading formats from %s ...", formats_file.name, extra=extra)
        records = load_yaml_file(db, EntityKind.FORMAT, formats_file)
        report.steps.append(SeedStep("formats", len(records), detail=str(formats_file)))
    else:
        logger.warning("Formats seed file %s not found; skipping", formats_file, extra=extra)
        report.steps.append(SeedStep("formats", skipped=True, detail=str(formats_file)))

    tags_dir = seeds.resolved_tags_dir()
    tag_files: List[Path] = sorted(tags_dir.glob("*.yml")) if tags_dir.is_dir() else []
    if not tag_files:
        logger.warning("No tag seed files in %s; skipping", tags_dir, extra=extra)
        report.steps.append(SeedStep("tags", skipped=True, detail=str(tags_dir)))
    for path in tag_files:
        logger.info("... tags from %s ...", path.name, extra=extra)
        records = load_yaml_file(db, EntityKind.TAG, path, key="tag")
        report.steps.append(SeedStep(f"tags:{path.name}", len(records), detail=str(path)))

    return report


__all__ = ["run_seeds", "SeedReport", "SeedStep"]
