# === NAVMAP v1 ===
# {
#   "module": "FormatLibrary.associations",
#   "purpose": "Transitive format/tag associations via in-memory and relational closures",
#   "sections": [
#     {"id": "tags", "name": "Tags of a Format", "anchor": "TOF", "kind": "api"},
#     {"id": "formats", "name": "Formats under a Tag", "anchor": "FUT", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Association resolver.

Two independent paths answer each question.  The in-memory path walks a
:class:`~FormatLibrary.graph.TagGraph` built from one edge snapshot; the
``*_query`` path runs a single recursive SQL statement.  Both read inside one
:meth:`~FormatLibrary.database.Database.snapshot` and must return the same
keys.
"""

from __future__ import annotations

from typing import Dict, Set

from . import queries
from .database import Database
from .errors import EntityNotFoundError
from .graph import TagGraph
from .models import Format, Tag

__all__ = [
    "all_tags_of_format",
    "all_tags_of_format_query",
    "all_formats_under_tag",
    "all_formats_under_tag_query",
]


def all_tags_of_format(db: Database, uid: str) -> Dict[str, Tag]:
    """Every directly assigned tag of ``uid`` plus every ancestor of each."""

    with db.snapshot():
        if not db.exists("format", uid):
            raise EntityNotFoundError("format", uid)
        graph = TagGraph.from_database(db)
        closure: Set[str] = set()
        for direct in db.format_tags(uid):
            closure |= graph.ancestor_ids(direct.tag)
        return db.load_tags(closure)


def all_tags_of_format_query(db: Database, uid: str) -> Dict[str, Tag]:
    return queries.tags_of_format(db, uid)


def all_formats_under_tag(db: Database, tag: str) -> Dict[str, Format]:
    """Formats directly tagged with ``tag`` or any of its descendants, keyed by uid."""

    with db.snapshot() as cursor:
        graph = TagGraph.from_database(db)
        if tag not in graph:
            raise EntityNotFoundError("tag", tag)
        members = sorted(graph.descendant_ids(tag))
        rows = cursor.execute(
            "SELECT DISTINCT format FROM tagged_formats WHERE list_contains(?, tag)", [members]
        ).fetchall()
        return db.load_formats(row[0] for row in rows)


def all_formats_under_tag_query(db: Database, tag: str) -> Dict[str, Format]:
    return queries.formats_under_tag(db, tag)
