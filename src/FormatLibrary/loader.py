# === NAVMAP v1 ===
# {
#   "module": "FormatLibrary.loader",
#   "purpose": "Declarative find-or-create-merge loading of format and tag documents",
#   "sections": [
#     {"id": "references", "name": "Reference Parsing", "anchor": "REF", "kind": "helpers"},
#     {"id": "records", "name": "Record Loading", "anchor": "REC", "kind": "api"},
#     {"id": "documents", "name": "Document Sources", "anchor": "DOC", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Hash-driven loader.

A record is a flat mapping of entity fields.  Tag records may additionally
carry three relationship fields:

``children``
    nested tag records, loaded recursively and linked as children
``uids``
    format identifiers (list, or a string split on whitespace and commas)
    linked to the tag
``tags``
    identifiers of existing tags linked as children of the tag

Each top-level record, nested children included, loads in one transaction,
so an unresolved reference leaves the catalog untouched.  Loading the same
document twice produces the same state.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import fields as dataclass_fields
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

import yaml

from .database import Database, KeyFields
from .errors import CatalogIntegrityError, LoaderError, ReferenceNotFoundError
from .models import EntityKind, build_record, merge_fields

logger = logging.getLogger(__name__)

Customizer = Callable[[Any], None]
Documents = Union[Mapping[str, Any], Sequence[Mapping[str, Any]], None]

RELATIONSHIP_FIELDS = ("children", "uids", "tags")
_DELIMITERS = re.compile(r"[\s,]+")

__all__ = [
    "load_record",
    "load_documents",
    "load_yaml_file",
    "load_json_file",
    "load_json",
    "split_references",
]


# --- Reference Parsing ---


def split_references(value: Any) -> List[str]:
    """Normalise a reference list or whitespace/comma separated string.

    Examples:
        >>> split_references("fmt/3, fmt/4  fmt/5")
        ['fmt/3', 'fmt/4', 'fmt/5']
        >>> split_references(["x-fmt/1 ", "fmt/2"])
        ['x-fmt/1', 'fmt/2']
    """
    if value is None:
        return []
    if isinstance(value, str):
        return [part for part in _DELIMITERS.split(value.strip()) if part]
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if item is not None and str(item).strip()]
    raise LoaderError(f"Expected a list or string of references, got {type(value).__name__}")


def _resolve(db: Database, kind: EntityKind, keys: List[str]) -> List[str]:
    for key in keys:
        if not db.exists(kind, key):
            raise ReferenceNotFoundError(kind.value, key)
    return keys


# --- Record Loading ---


def load_record(
    db: Database,
    kind: Union[EntityKind, str],
    data: Mapping[str, Any],
    *,
    key: KeyFields = None,
    customize: Optional[Customizer] = None,
) -> Any:
    """Find-or-create ``data`` by ``key`` fields, merge it, link its relationships."""

    kind = EntityKind.parse(kind)
    if not isinstance(data, Mapping):
        raise LoaderError(f"Expected a mapping for a {kind.value} record, got {type(data).__name__}")

    payload: Dict[str, Any] = {str(name): value for name, value in data.items()}
    relations = {name: payload.pop(name) for name in RELATIONSHIP_FIELDS if name in payload}
    if relations and kind is not EntityKind.TAG:
        raise LoaderError(
            f"{kind.value} records do not support relationship field(s): {', '.join(relations)}"
        )
    unknown = sorted(set(payload) - set(kind.columns))
    if unknown:
        raise LoaderError(f"Unknown {kind.value} field(s): {', '.join(unknown)}")

    pk = kind.primary_key
    key_fields = (key,) if isinstance(key, str) else tuple(key or (pk,))
    missing = [name for name in key_fields if payload.get(name) is None]
    if missing:
        raise LoaderError(f"{kind.value} record is missing key field(s): {', '.join(missing)}")

    children = relations.get("children") or []
    if not isinstance(children, list):
        raise LoaderError("'children' must be a list of tag records")

    with db.transaction():
        existing = db.find_by(kind, {name: payload[name] for name in key_fields})
        try:
            if existing is None:
                if payload.get(pk) is None:
                    raise LoaderError(f"{kind.value} record has no {pk!r}")
                record = build_record(kind, payload)
            else:
                current = getattr(existing, pk)
                if payload.get(pk) is not None and str(payload[pk]) != current:
                    raise CatalogIntegrityError(
                        f"Cannot change {kind.value} key {current!r} to {payload[pk]!r}"
                    )
                record = existing
                merge_fields(record, payload, skip=(pk,))
        except ValueError as exc:
            raise LoaderError(str(exc)) from exc

        if customize is not None:
            customize(record)

        stored = db.upsert(
            kind, {f.name: getattr(record, f.name) for f in dataclass_fields(record)}
        )
        stored_key = getattr(stored, pk)

        if kind is EntityKind.TAG:
            uids = _resolve(db, EntityKind.FORMAT, split_references(relations.get("uids")))
            tags = _resolve(db, EntityKind.TAG, split_references(relations.get("tags")))
            for uid in uids:
                db.tag_format(stored_key, uid)
            for child in tags:
                db.link_tags(child, stored_key)
            for child_data in children:
                child = load_record(db, kind, child_data, key=key, customize=customize)
                db.link_tags(child.tag, stored_key)

    logger.debug("Loaded %s %s", kind.value, stored_key)
    return stored


def load_documents(
    db: Database,
    kind: Union[EntityKind, str],
    documents: Documents,
    *,
    key: KeyFields = None,
    customize: Optional[Customizer] = None,
) -> List[Any]:
    """Load a single record mapping or a list of them, in order."""

    if documents is None:
        return []
    if isinstance(documents, Mapping):
        documents = [documents]
    if not isinstance(documents, (list, tuple)):
        raise LoaderError(
            f"Expected a mapping or list of mappings, got {type(documents).__name__}"
        )
    return [load_record(db, kind, item, key=key, customize=customize) for item in documents]


# --- Document Sources ---


def load_yaml_file(
    db: Database,
    kind: Union[EntityKind, str],
    path: Union[str, Path],
    *,
    key: KeyFields = None,
    customize: Optional[Customizer] = None,
) -> List[Any]:
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as handle:
            documents = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise LoaderError(f"Invalid YAML in {path}: {exc}") from exc
    records = load_documents(db, kind, documents, key=key, customize=customize)
    logger.info(
        "Loaded %d %s record(s) from %s",
        len(records),
        EntityKind.parse(kind).value,
        path,
        extra={"stage": "load"},
    )
    return records


def load_json(
    db: Database,
    kind: Union[EntityKind, str],
    text: str,
    *,
    key: KeyFields = None,
    customize: Optional[Customizer] = None,
) -> List[Any]:
    try:
        documents = json.loads(text)
    except json.JSONDecodeError as exc:
        raise LoaderError(f"Invalid JSON document: {exc}") from exc
    return load_documents(db, kind, documents, key=key, customize=customize)


def load_json_file(
    db: Database,
    kind: Union[EntityKind, str],
    path: Union[str, Path],
    *,
    key: KeyFields = None,
    customize: Optional[Customizer] = None,
) -> List[Any]:
    path = Path(path)
    records = load_json(db, kind, path.read_text(encoding="utf-8"), key=key, customize=customize)
    logger.info(
        "Loaded %d %s record(s) from %s",
        len(records),
        EntityKind.parse(kind).value,
        path,
        extra={"stage": "load"},
    )
    return records
