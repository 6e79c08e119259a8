# === NAVMAP v1 ===
# {
#   "module": "tests.format_library.test_closure_equivalence",
#   "purpose": "Property-based agreement between in-memory walks and recursive SQL closures",
#   "sections": [
#     {"id": "strategies", "name": "Hypothesis Strategies", "anchor": "STR", "kind": "helpers"},
#     {"id": "tests", "name": "Property Tests", "anchor": "TST", "kind": "tests"}
#   ]
# }
# === /NAVMAP ===

"""Both closure strategies must agree on arbitrary, possibly cyclic, tag graphs."""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Dict, List, Set, Tuple

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from FormatLibrary import associations, graph, queries
from FormatLibrary.testing import temporary_catalog

TAGS = [f"T{i}" for i in range(6)]
FORMATS = [f"fmt/{i}" for i in range(1, 5)]

tag_edges = st.lists(
    st.tuples(st.sampled_from(TAGS), st.sampled_from(TAGS)), max_size=12, unique=True
)
format_assignments = st.lists(
    st.tuples(st.sampled_from(TAGS), st.sampled_from(FORMATS)), max_size=8, unique=True
)

PROPERTY_SETTINGS = settings(
    max_examples=25,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture, HealthCheck.too_slow],
)


def _reachable(start: str, edges: List[Tuple[str, str]], upward: bool) -> Set[str]:
    """Fixed-point reachability used as an oracle."""
    found = {start}
    changed = True
    while changed:
        changed = False
        for child, parent in edges:
            source, target = (child, parent) if upward else (parent, child)
            if source in found and target not in found:
                found.add(target)
                changed = True
    return found


def _populate(db, edges, assignments) -> None:
    for uid in FORMATS:
        db.upsert_format({"uid": uid, "name": uid, "source": "PRONOM"})
    for tag in TAGS:
        db.upsert_tag({"tag": tag, "name": tag, "profile": "prop"})
    for child, parent in edges:
        db.link_tags(child, parent)
    for tag, uid in assignments:
        db.tag_format(tag, uid)


class TestClosureEquivalence:
    """In-memory and SQL paths return identical results."""

    @PROPERTY_SETTINGS
    @given(edges=tag_edges)
    def test_tag_closures_and_trees_agree(self, edges):
        with tempfile.TemporaryDirectory() as tmp:
            with temporary_catalog(Path(tmp)) as db:
                _populate(db, edges, [])
                for tag in TAGS:
                    up = set(graph.ancestors(db, tag))
                    down = set(graph.descendants(db, tag))
                    assert up == set(queries.ancestor_tags(db, tag))
                    assert down == set(queries.descendant_tags(db, tag))
                    assert up == _reachable(tag, edges, upward=True)
                    assert down == _reachable(tag, edges, upward=False)
                    assert graph.tree(db, tag) == queries.tree(db, tag)

    @PROPERTY_SETTINGS
    @given(edges=tag_edges, assignments=format_assignments)
    def test_associations_agree(self, edges, assignments):
        with tempfile.TemporaryDirectory() as tmp:
            with temporary_catalog(Path(tmp)) as db:
                _populate(db, edges, assignments)

                for uid in FORMATS:
                    expected: Set[str] = set()
                    for tag, assigned in assignments:
                        if assigned == uid:
                            expected |= _reachable(tag, edges, upward=True)
                    memory = associations.all_tags_of_format(db, uid)
                    assert set(memory) == expected
                    assert set(associations.all_tags_of_format_query(db, uid)) == expected

                by_tag: Dict[str, Set[str]] = {tag: set() for tag in TAGS}
                for tag, uid in assignments:
                    by_tag[tag].add(uid)
                for tag in TAGS:
                    expected_formats: Set[str] = set()
                    for member in _reachable(tag, edges, upward=False):
                        expected_formats |= by_tag[member]
                    assert set(associations.all_formats_under_tag(db, tag)) == expected_formats
                    assert set(associations.all_formats_under_tag_query(db, tag)) == expected_formats
