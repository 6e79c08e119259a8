# === NAVMAP v1 ===
# {
#   "module": "FormatLibrary.graph",
#   "purpose": "In-memory closure and tree materialization over the tag graph",
#   "sections": [
#     {"id": "taggraph", "name": "TagGraph", "anchor": "TGR", "kind": "api"},
#     {"id": "trees", "name": "Tree Shaping", "anchor": "TRE", "kind": "helpers"},
#     {"id": "catalog", "name": "Catalog Helpers", "anchor": "CAT", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""In-memory traversal of the tag graph.

Edges point from child to parent and the graph may contain cycles.  Every
walk keeps a visited set, so a tag is expanded at most once and cyclic
graphs terminate with exactly the finite reachable set.

Trees are nested mappings keyed by tag id::

    {"IMAGE": {"BMP": None, "PNG": None}}

A leaf maps to ``None``.  Children are ordered by tag id.  An edge back to a
tag already on the path from the root is not materialized.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from .errors import EntityNotFoundError
from .models import Format, Tag

logger = logging.getLogger(__name__)

Tree = Dict[str, Optional["Tree"]]

__all__ = [
    "TagGraph",
    "Tree",
    "ancestors",
    "descendants",
    "tree",
    "tree_with_formats",
    "decorate_tree",
    "seal_tree",
]


class TagGraph:
    """Immutable adjacency built from one snapshot of (child, parent) edges."""

    def __init__(self, edges: Iterable[Tuple[str, str]], nodes: Iterable[str] = ()) -> None:
        parents: Dict[str, Set[str]] = defaultdict(set)
        children: Dict[str, Set[str]] = defaultdict(set)
        known: Set[str] = set(nodes)
        for child, parent in edges:
            parents[child].add(parent)
            children[parent].add(child)
            known.update((child, parent))
        self._parents = {tag: frozenset(values) for tag, values in parents.items()}
        self._children = {tag: frozenset(values) for tag, values in children.items()}
        self._nodes = frozenset(known)

    @classmethod
    def from_database(cls, db: Any) -> "TagGraph":
        """Build from the store; call inside ``db.snapshot()`` for a consistent view."""

        with db.reader() as cursor:
            edges = cursor.execute("SELECT tag, parent FROM tagged_tags").fetchall()
            nodes = [row[0] for row in cursor.execute("SELECT tag FROM tags").fetchall()]
        return cls(((row[0], row[1]) for row in edges), nodes)

    @property
    def nodes(self) -> frozenset:
        return self._nodes

    def __contains__(self, tag: object) -> bool:
        return tag in self._nodes

    def parents(self, tag: str) -> frozenset:
        return self._parents.get(tag, frozenset())

    def children(self, tag: str) -> frozenset:
        return self._children.get(tag, frozenset())

    def _closure(self, start: str, neighbours: Mapping[str, frozenset]) -> Set[str]:
        visited: Set[str] = {start}
        worklist: List[str] = [start]
        while worklist:
            current = worklist.pop()
            for nxt in neighbours.get(current, ()):
                if nxt not in visited:
                    visited.add(nxt)
                    worklist.append(nxt)
        return visited

    def ancestor_ids(self, start: str) -> Set[str]:
        """``start`` plus every tag reachable over parent edges."""

        return self._closure(start, self._parents)

    def descendant_ids(self, start: str) -> Set[str]:
        """``start`` plus every tag reachable over child edges."""

        return self._closure(start, self._children)

    def tree(self, root: str) -> Tree:
        """Nested ``{root: children-or-None}`` over the descendant subgraph."""

        nested: Dict[str, Any] = {root: {}}
        stack: List[Tuple[str, Dict[str, Any], frozenset]] = [
            (root, nested[root], frozenset((root,)))
        ]
        while stack:
            node, branch, on_path = stack.pop()
            for child in sorted(self._children.get(node, ())):
                if child in on_path:
                    continue
                branch[child] = {}
                stack.append((child, branch[child], on_path | {child}))
        return seal_tree(nested)


# --- Tree Shaping ---


def seal_tree(nested: Dict[str, Any]) -> Tree:
    """Sort every level by tag id and turn empty branches into ``None`` leaves, in place."""

    stack = [nested]
    while stack:
        level = stack.pop()
        items = sorted(level.items())
        level.clear()
        for tag, children in items:
            level[tag] = children or None
            if children:
                stack.append(children)
    return nested


def decorate_tree(
    plain: Mapping[str, Optional[Mapping[str, Any]]],
    formats_by_tag: Mapping[str, Mapping[str, Format]],
) -> Dict[str, Dict[str, Any]]:
    """Turn a plain tree into the formats-decorated shape.

    Each node becomes a mapping with ``tags`` (present only when the node has
    children) and ``formats`` (present only when formats are directly tagged
    with the node's tag).
    """

    decorated: Dict[str, Dict[str, Any]] = {}
    stack: List[Tuple[Mapping[str, Any], Dict[str, Dict[str, Any]]]] = [(plain, decorated)]
    while stack:
        level, target = stack.pop()
        for tag, children in level.items():
            node: Dict[str, Any] = {}
            if children:
                node["tags"] = {}
                stack.append((children, node["tags"]))
            direct = formats_by_tag.get(tag)
            if direct:
                node["formats"] = dict(sorted(direct.items()))
            target[tag] = node
    return decorated


def tree_tags(plain: Mapping[str, Optional[Mapping[str, Any]]]) -> Set[str]:
    """Every tag id mentioned anywhere in a tree."""

    found: Set[str] = set()
    stack = [plain]
    while stack:
        level = stack.pop()
        for tag, children in level.items():
            found.add(tag)
            if children:
                stack.append(children)
    return found


# --- Catalog Helpers ---


def _graph_for(db: Any, tag: str) -> TagGraph:
    graph = TagGraph.from_database(db)
    if tag not in graph:
        raise EntityNotFoundError("tag", tag)
    return graph


def ancestors(db: Any, tag: str) -> Dict[str, Tag]:
    """Map of tag id to Tag for ``tag`` and all of its ancestors."""

    with db.snapshot():
        ids = _graph_for(db, tag).ancestor_ids(tag)
        return db.load_tags(ids)


def descendants(db: Any, tag: str) -> Dict[str, Tag]:
    """Map of tag id to Tag for ``tag`` and all of its descendants."""

    with db.snapshot():
        ids = _graph_for(db, tag).descendant_ids(tag)
        return db.load_tags(ids)


def tree(db: Any, tag: str) -> Tree:
    with db.snapshot():
        return _graph_for(db, tag).tree(tag)


def tree_with_formats(db: Any, tag: str) -> Dict[str, Dict[str, Any]]:
    """Tree rooted at ``tag`` with each node's directly tagged formats attached."""

    with db.snapshot() as cursor:
        plain = _graph_for(db, tag).tree(tag)
        members = sorted(tree_tags(plain))
        rows = cursor.execute(
            "SELECT tag, format FROM tagged_formats WHERE list_contains(?, tag)", [members]
        ).fetchall()
        formats = db.load_formats(row[1] for row in rows)
    formats_by_tag: Dict[str, Dict[str, Format]] = defaultdict(dict)
    for tag_id, uid in rows:
        if uid in formats:
            formats_by_tag[tag_id][uid] = formats[uid]
    return decorate_tree(plain, formats_by_tag)
