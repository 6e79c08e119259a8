# === NAVMAP v1 ===
# {
#   "module": "FormatLibrary.api",
#   "purpose": "Public facade over the catalog store, closures, loader, and ingesters",
#   "sections": [
#     {"id": "session", "name": "Session Lifecycle", "anchor": "SES", "kind": "api"},
#     {"id": "formats", "name": "Format Queries", "anchor": "FMT", "kind": "api"},
#     {"id": "tags", "name": "Tag Queries", "anchor": "TAG", "kind": "api"},
#     {"id": "writes", "name": "Loading & Ingestion", "anchor": "WRT", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Public API for the format library.

:class:`FormatLibrary` bundles a :class:`~FormatLibrary.database.Database`
with the closure engine, association resolver, loader, and ingesters.
Closure-based queries accept ``strategy="memory"`` (graph walk over one edge
snapshot) or ``strategy="query"`` (recursive SQL); both return the same keys.

Example::

    with FormatLibrary.open() as library:
        library.load(EntityKind.TAG, {"tag": "IMAGE", "name": "Images", "profile": "teneo"})
        print(library.tree("IMAGE"))
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from . import associations, graph, loader, queries
from .database import Database, KeyFields
from .errors import ConfigurationError, EntityNotFoundError
from .ingestion import (
    IngestionReport,
    ingest_droid_file,
    ingest_fdd_archive,
    load_loc_signatures,
    load_pronom_signatures,
)
from .models import EntityKind, Format, Tag
from .settings import ResolvedConfig, get_default_config

logger = logging.getLogger(__name__)

STRATEGIES = ("memory", "query")


def _check_strategy(strategy: str) -> str:
    if strategy not in STRATEGIES:
        raise ConfigurationError(f"strategy must be one of {', '.join(STRATEGIES)}; got {strategy!r}")
    return strategy


class FormatLibrary:
    """Query and maintenance surface of the format catalog."""

    def __init__(self, db: Database, config: Optional[ResolvedConfig] = None) -> None:
        self.db = db
        self.config = config or get_default_config()

    @classmethod
    def open(cls, config: Optional[ResolvedConfig] = None) -> "FormatLibrary":
        """Bootstrap a database from ``config`` and wrap it."""

        cfg = config or get_default_config()
        db = Database(cfg.defaults.db)
        db.bootstrap()
        return cls(db, cfg)

    def close(self) -> None:
        self.db.close()

    def __enter__(self) -> "FormatLibrary":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # --- formats -----------------------------------------------------------

    def get_format(self, uid: str) -> Format:
        return self.db.require(EntityKind.FORMAT, uid)

    def list_formats(self, source: Optional[str] = None) -> List[Format]:
        return self.db.list_formats(source)

    def direct_tags(self, uid: str) -> Dict[str, Tag]:
        """Tags assigned to ``uid`` itself, without ancestors."""

        with self.db.snapshot():
            self.get_format(uid)
            return {tag.tag: tag for tag in self.db.format_tags(uid)}

    def all_tags(self, uid: str, strategy: str = "memory") -> Dict[str, Tag]:
        """Direct tags of ``uid`` and all their ancestors."""

        if _check_strategy(strategy) == "query":
            return associations.all_tags_of_format_query(self.db, uid)
        return associations.all_tags_of_format(self.db, uid)

    # --- tags --------------------------------------------------------------

    def get_tag(self, tag: str) -> Tag:
        return self.db.require(EntityKind.TAG, tag)

    def list_tags(self, profile: Optional[str] = None) -> List[Tag]:
        return self.db.list_tags(profile)

    def direct_formats(self, tag: str) -> Dict[str, Format]:
        """Formats assigned to ``tag`` itself, without descendants."""

        with self.db.snapshot():
            self.get_tag(tag)
            return {fmt.uid: fmt for fmt in self.db.tag_formats(tag)}

    def parents(self, tag: str) -> Dict[str, Tag]:
        with self.db.snapshot():
            self.get_tag(tag)
            return {parent.tag: parent for parent in self.db.parent_tags(tag)}

    def children(self, tag: str) -> Dict[str, Tag]:
        with self.db.snapshot():
            self.get_tag(tag)
            return {child.tag: child for child in self.db.child_tags(tag)}

    def ancestors(self, tag: str, strategy: str = "memory") -> Dict[str, Tag]:
        if _check_strategy(strategy) == "query":
            return queries.ancestor_tags(self.db, tag)
        return graph.ancestors(self.db, tag)

    def descendants(self, tag: str, strategy: str = "memory") -> Dict[str, Tag]:
        if _check_strategy(strategy) == "query":
            return queries.descendant_tags(self.db, tag)
        return graph.descendants(self.db, tag)

    def all_formats(self, tag: str, strategy: str = "memory") -> Dict[str, Format]:
        """Formats tagged with ``tag`` or any descendant, keyed by uid."""

        if _check_strategy(strategy) == "query":
            return associations.all_formats_under_tag_query(self.db, tag)
        return associations.all_formats_under_tag(self.db, tag)

    def tree(self, tag: str, strategy: str = "memory") -> graph.Tree:
        if _check_strategy(strategy) == "query":
            return queries.tree(self.db, tag)
        return graph.tree(self.db, tag)

    def tree_with_formats(self, tag: str) -> Dict[str, Dict[str, Any]]:
        return graph.tree_with_formats(self.db, tag)

    # --- writes ------------------------------------------------------------

    def load(
        self,
        kind: Union[EntityKind, str],
        documents: loader.Documents,
        *,
        key: KeyFields = None,
        customize: Optional[loader.Customizer] = None,
    ) -> List[Any]:
        return loader.load_documents(self.db, kind, documents, key=key, customize=customize)

    def load_file(
        self,
        kind: Union[EntityKind, str],
        path: Union[str, Path],
        *,
        key: KeyFields = None,
    ) -> List[Any]:
        """Load a ``.json`` document, or YAML for any other suffix."""

        path = Path(path)
        if path.suffix.lower() == ".json":
            return loader.load_json_file(self.db, kind, path, key=key)
        return loader.load_yaml_file(self.db, kind, path, key=key)

    def delete(self, kind: Union[EntityKind, str], key: str) -> None:
        kind = EntityKind.parse(kind)
        if not self.db.delete(kind, key):
            raise EntityNotFoundError(kind.value, key)

    def ingest_pronom(self) -> IngestionReport:
        return load_pronom_signatures(self.db, self.config)

    def ingest_loc(self) -> IngestionReport:
        return load_loc_signatures(self.db, self.config)

    def ingest_fdd_archive(self, path: Union[str, Path]) -> IngestionReport:
        return ingest_fdd_archive(
            self.db, path, member_pattern=self.config.defaults.sources.loc_member_pattern
        )

    def ingest_droid_file(self, path: Union[str, Path]) -> IngestionReport:
        return ingest_droid_file(self.db, path)


__all__ = ["FormatLibrary", "STRATEGIES"]
