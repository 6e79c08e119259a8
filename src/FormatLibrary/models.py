# === NAVMAP v1 ===
# {
#   "module": "FormatLibrary.models",
#   "purpose": "Format and Tag records, entity kinds, edge relations, and field coercion",
#   "sections": [
#     {"id": "coercion", "name": "Field Coercion", "anchor": "COE", "kind": "helpers"},
#     {"id": "records", "name": "Records", "anchor": "REC", "kind": "models"},
#     {"id": "kinds", "name": "Entity Kinds & Relations", "anchor": "KND", "kind": "models"}
#   ]
# }
# === /NAVMAP ===

"""Data transfer objects for the format catalog.

:class:`Format` and :class:`Tag` mirror the ``formats`` and ``tags`` tables.
Array columns are plain lists kept in first-seen order with duplicates
dropped; map columns are dicts.  :class:`EntityKind` and :class:`Relation`
describe the tables generically so the store and the loader can work on
either entity without per-kind code paths.
"""

from __future__ import annotations

import enum
import re
from dataclasses import asdict, dataclass, field, fields
from datetime import date, datetime
from typing import Any, ClassVar, Dict, Iterable, List, Mapping, Optional, Tuple

__all__ = [
    "Format",
    "Tag",
    "EntityKind",
    "Relation",
    "parse_date",
    "unique_strings",
    "build_record",
    "merge_fields",
]


# --- Field Coercion ---


_DATE_PREFIX = re.compile(r"^(\d{4})[-/.](\d{1,2})[-/.](\d{1,2})(?!\d)")


def parse_date(value: Any) -> date:
    """Coerce registry timestamps (``2024-03-28``, ``2024-3-28``, ``2024-03-28T15:08:00``) to a date."""

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if value is None:
        raise ValueError("date value is required")
    match = _DATE_PREFIX.match(str(value).strip())
    if match is None:
        raise ValueError(f"unrecognised date {value!r}")
    try:
        return date(*(int(part) for part in match.groups()))
    except ValueError as exc:
        raise ValueError(f"unrecognised date {value!r}") from exc


def unique_strings(values: Any) -> List[str]:
    """Return stripped, non-empty strings in first-seen order without duplicates."""

    if values is None:
        return []
    if isinstance(values, str):
        values = [values]
    seen: Dict[str, None] = {}
    for item in values:
        if item is None:
            continue
        text = str(item).strip()
        if text:
            seen.setdefault(text, None)
    return list(seen)


def _as_map(value: Any) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValueError(f"expected a mapping, got {type(value).__name__}")
    return {str(k): v for k, v in value.items()}


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


# --- Records ---


@dataclass
class Format:
    """A file format description, keyed by its registry identifier (``fmt/114``)."""

    uid: str
    name: Optional[str] = None
    version: Optional[str] = None
    source: Optional[str] = None
    source_version: Optional[str] = None
    url: Optional[str] = None
    mimetypes: List[str] = field(default_factory=list)
    extensions: List[str] = field(default_factory=list)
    parent_format: Optional[str] = None
    related_formats: List[str] = field(default_factory=list)
    properties: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[date] = None

    LIST_FIELDS: ClassVar[Tuple[str, ...]] = ("mimetypes", "extensions", "related_formats")
    MAP_FIELDS: ClassVar[Tuple[str, ...]] = ("properties",)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Format":
        return build_record(EntityKind.FORMAT, data)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if self.created_at is not None:
            data["created_at"] = self.created_at.isoformat()
        return data


@dataclass
class Tag:
    """A node in the classification taxonomy, keyed by its human readable id."""

    tag: str
    name: Optional[str] = None
    profile: Optional[str] = None
    properties: Dict[str, Any] = field(default_factory=dict)
    info: Dict[str, Any] = field(default_factory=dict)

    LIST_FIELDS: ClassVar[Tuple[str, ...]] = ()
    MAP_FIELDS: ClassVar[Tuple[str, ...]] = ("properties", "info")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Tag":
        return build_record(EntityKind.TAG, data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def coerce_field(record_type: type, name: str, value: Any) -> Any:
    """Normalise one incoming value for ``record_type.name``."""

    if name in record_type.LIST_FIELDS:
        return unique_strings(value)
    if name in record_type.MAP_FIELDS:
        return _as_map(value)
    if name == "created_at":
        return None if value is None else parse_date(value)
    return _as_text(value)


# --- Entity Kinds & Relations ---


class EntityKind(str, enum.Enum):
    """The two keyed entity tables."""

    FORMAT = "format"
    TAG = "tag"

    @property
    def record_type(self) -> type:
        return Format if self is EntityKind.FORMAT else Tag

    @property
    def table(self) -> str:
        return "formats" if self is EntityKind.FORMAT else "tags"

    @property
    def primary_key(self) -> str:
        return "uid" if self is EntityKind.FORMAT else "tag"

    @property
    def columns(self) -> Tuple[str, ...]:
        return tuple(f.name for f in fields(self.record_type))

    @property
    def required(self) -> Tuple[str, ...]:
        if self is EntityKind.FORMAT:
            return ("name", "source")
        return ("name", "profile")

    @classmethod
    def parse(cls, value: "EntityKind | str") -> "EntityKind":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError as exc:
            raise ValueError(f"unknown entity kind {value!r}") from exc


class Relation(str, enum.Enum):
    """The two edge tables; ``a``/``b`` name the endpoints in argument order."""

    FORMAT_TAG = "format_tag"  # a=tag, b=format
    TAG_PARENT = "tag_parent"  # a=child tag, b=parent tag

    @property
    def table(self) -> str:
        return "tagged_formats" if self is Relation.FORMAT_TAG else "tagged_tags"

    @property
    def columns(self) -> Tuple[str, str]:
        return ("tag", "format") if self is Relation.FORMAT_TAG else ("tag", "parent")

    @property
    def endpoint_kinds(self) -> Tuple[EntityKind, EntityKind]:
        if self is Relation.FORMAT_TAG:
            return (EntityKind.TAG, EntityKind.FORMAT)
        return (EntityKind.TAG, EntityKind.TAG)


def build_record(kind: EntityKind, data: Mapping[str, Any]) -> Any:
    """Create a record of ``kind`` from a mapping of column values."""

    record_type = kind.record_type
    known = set(kind.columns)
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"unknown {kind.value} field(s): {', '.join(unknown)}")
    values = {name: coerce_field(record_type, name, value) for name, value in data.items()}
    return record_type(**values)


def merge_fields(record: Any, data: Mapping[str, Any], *, skip: Iterable[str] = ()) -> None:
    """Assign every non-skipped field in ``data`` onto ``record`` (replace, not deep-merge)."""

    record_type = type(record)
    skipped = set(skip)
    known = {f.name for f in fields(record_type)}
    for name, value in data.items():
        if name in skipped:
            continue
        if name not in known:
            raise ValueError(f"unknown field {name!r} for {record_type.__name__}")
        setattr(record, name, coerce_field(record_type, name, value))
