# === NAVMAP v1 ===
# {
#   "module": "FormatLibrary.queries",
#   "purpose": "Recursive SQL closures and tree rows over the tag graph",
#   "sections": [
#     {"id": "sql", "name": "Recursive Queries", "anchor": "SQL", "kind": "infra"},
#     {"id": "closures", "name": "Closure Facades", "anchor": "CLO", "kind": "api"},
#     {"id": "trees", "name": "Tree Rows", "anchor": "TRE", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Relational closure computation.

Every recursive query carries an ``is_cycle`` guard column; a marked row is
emitted once and never expanded.

Closures recurse with ``UNION`` over ``(tag, is_cycle)``, so each tag enters
the result at most once per guard value and the walk ends as soon as a round
adds nothing new; a step back onto a start tag is the row that gets marked.
Diamonds cost one row per tag, not one per path.  Trees need every root path,
so their walk carries the list of tags on the current path and marks a step
onto a tag already on it.  The results must match the in-memory walks in
:mod:`FormatLibrary.graph` for every graph.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .database import record_from_row, select_list
from .errors import EntityNotFoundError
from .graph import Tree, seal_tree
from .models import EntityKind, Format, Tag

logger = logging.getLogger(__name__)

__all__ = [
    "TreeRow",
    "ancestor_tags",
    "descendant_tags",
    "tree_rows",
    "tree_from_rows",
    "tree",
    "tags_of_format",
    "formats_under_tag",
]


# ============================================================================
# Recursive Queries
# ============================================================================

# Closures: UNION keeps each (tag, is_cycle) row once, so the walk ends when a
# round reaches nothing new.  A step back onto a start tag is marked and not
# expanded.  Seeds are bound as one list parameter.
_UPWARD_REACH = """
WITH RECURSIVE seeds(tags) AS (
    SELECT CAST(? AS VARCHAR[])
),
reach(tag, is_cycle) AS (
    SELECT t.tag, FALSE
    FROM tags t, seeds s
    WHERE list_contains(s.tags, t.tag)
    UNION
    SELECT e.parent, list_contains(s.tags, e.parent)
    FROM reach r
    JOIN tagged_tags e ON e.tag = r.tag
    CROSS JOIN seeds s
    WHERE NOT r.is_cycle
)
"""

_DOWNWARD_REACH = """
WITH RECURSIVE seeds(tags) AS (
    SELECT CAST(? AS VARCHAR[])
),
reach(tag, is_cycle) AS (
    SELECT t.tag, FALSE
    FROM tags t, seeds s
    WHERE list_contains(s.tags, t.tag)
    UNION
    SELECT e.tag, list_contains(s.tags, e.tag)
    FROM reach r
    JOIN tagged_tags e ON e.parent = r.tag
    CROSS JOIN seeds s
    WHERE NOT r.is_cycle
)
"""

# Path walk toward children from a single root, keeping the parent of each step.
# Only trees need every path; a step onto a tag already on its path is flagged
# and not expanded.
_DOWNWARD_WALK = """
WITH RECURSIVE walk(tag, parent, path, is_cycle) AS (
    SELECT t.tag, CAST(NULL AS VARCHAR), [t.tag], FALSE
    FROM tags t
    WHERE t.tag = ?
    UNION ALL
    SELECT e.tag, w.tag, list_append(w.path, e.tag), list_contains(w.path, e.tag)
    FROM walk w
    JOIN tagged_tags e ON e.parent = w.tag
    WHERE NOT w.is_cycle
)
"""


def _require_tag(cursor: Any, tag: str) -> None:
    if cursor.execute("SELECT 1 FROM tags WHERE tag = ?", [tag]).fetchone() is None:
        raise EntityNotFoundError("tag", tag)


def _tags_from(cursor: Any, sql: str, params: List[Any]) -> Dict[str, Tag]:
    rows = cursor.execute(sql, params).fetchall()
    return {row[0]: record_from_row(EntityKind.TAG, row) for row in rows}


# ============================================================================
# Closure Facades
# ============================================================================


_TAGS_REACHED = (
    f"SELECT DISTINCT {select_list(EntityKind.TAG, 't')} "
    "FROM tags t JOIN reach r ON r.tag = t.tag ORDER BY t.tag"
)


def ancestor_tags(db: Any, tag: str) -> Dict[str, Tag]:
    """``tag`` and every ancestor, computed by a recursive query."""

    with db.snapshot() as cursor:
        _require_tag(cursor, tag)
        return _tags_from(cursor, _UPWARD_REACH + _TAGS_REACHED, [[tag]])


def descendant_tags(db: Any, tag: str) -> Dict[str, Tag]:
    """``tag`` and every descendant, computed by a recursive query."""

    with db.snapshot() as cursor:
        _require_tag(cursor, tag)
        return _tags_from(cursor, _DOWNWARD_REACH + _TAGS_REACHED, [[tag]])


def tags_of_format(db: Any, uid: str) -> Dict[str, Tag]:
    """Direct tags of format ``uid`` plus all their ancestors, in one query."""

    with db.snapshot() as cursor:
        if cursor.execute("SELECT 1 FROM formats WHERE uid = ?", [uid]).fetchone() is None:
            raise EntityNotFoundError("format", uid)
        seeds = [
            row[0]
            for row in cursor.execute(
                "SELECT tag FROM tagged_formats WHERE format = ?", [uid]
            ).fetchall()
        ]
        if not seeds:
            return {}
        return _tags_from(cursor, _UPWARD_REACH + _TAGS_REACHED, [seeds])


def formats_under_tag(db: Any, tag: str) -> Dict[str, Format]:
    """Formats directly tagged with ``tag`` or any descendant, deduplicated by uid."""

    with db.snapshot() as cursor:
        _require_tag(cursor, tag)
        rows = cursor.execute(
            _DOWNWARD_REACH
            + f"SELECT DISTINCT {select_list(EntityKind.FORMAT, 'f')} "
            "FROM reach r "
            "JOIN tagged_formats e ON e.tag = r.tag "
            "JOIN formats f ON f.uid = e.format "
            "ORDER BY f.uid",
            [[tag]],
        ).fetchall()
    return {row[0]: record_from_row(EntityKind.FORMAT, row) for row in rows}


# ============================================================================
# Tree Rows
# ============================================================================


@dataclass(frozen=True)
class TreeRow:
    """One step of the downward walk: ``tag`` reached from ``parent`` along ``path``."""

    tag: str
    parent: Optional[str]
    path: Tuple[str, ...]


def tree_rows(db: Any, tag: str) -> List[TreeRow]:
    """All acyclic paths from ``tag`` down its descendant subgraph.

    Steps that would revisit a tag already on their path are marked by the
    guard column and filtered out here.
    """

    with db.snapshot() as cursor:
        _require_tag(cursor, tag)
        rows = cursor.execute(
            _DOWNWARD_WALK + "SELECT tag, parent, path FROM walk WHERE NOT is_cycle",
            [tag],
        ).fetchall()
    return sorted(
        (TreeRow(tag=row[0], parent=row[1], path=tuple(row[2])) for row in rows),
        key=lambda item: item.path,
    )


def tree_from_rows(rows: Iterable[TreeRow]) -> Tree:
    """Assemble the nested tree from path rows; same shape as ``TagGraph.tree``."""

    nested: Dict[str, Any] = {}
    for row in rows:
        level = nested
        for step in row.path:
            level = level.setdefault(step, {})
    return seal_tree(nested)


def tree(db: Any, tag: str) -> Tree:
    return tree_from_rows(tree_rows(db, tag))
