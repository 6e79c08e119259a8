# === NAVMAP v1 ===
# {
#   "module": "FormatLibrary.database",
#   "purpose": "DuckDB entity store for formats, tags, and their edge relations",
#   "sections": [
#     {"id": "migrations", "name": "Schema Migrations", "anchor": "MIG", "kind": "infra"},
#     {"id": "rows", "name": "Row Codec", "anchor": "ROW", "kind": "helpers"},
#     {"id": "init", "name": "Initialization & Bootstrap", "anchor": "INI", "kind": "api"},
#     {"id": "transactions", "name": "Transactions & Snapshots", "anchor": "TXN", "kind": "api"},
#     {"id": "entities", "name": "Entity Upsert / Find / Delete", "anchor": "ENT", "kind": "api"},
#     {"id": "edges", "name": "Edge Relations", "anchor": "EDG", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""DuckDB entity store for the format catalog.

The store keeps four relations: ``formats`` and ``tags`` keyed by their
external identifiers, plus the ``tagged_formats`` (tag, format) and
``tagged_tags`` (tag, parent) edge sets.  The tag graph may contain cycles.

Key design principles:
- One writer at a time (process mutex plus an optional file lock); many readers
- Writes go through :meth:`Database.transaction`; nested calls join the outer one
- Multi-query readers use :meth:`Database.snapshot` for a consistent view
- Foreign keys and cascades are enforced here, inside the write transaction
- Array and map columns are stored as JSON text
- Query facades encapsulate SQL; no leakage to callers
"""

from __future__ import annotations

import contextlib
import fcntl
import json
import logging
import os
import threading
from datetime import date
from pathlib import Path
from typing import Any, Dict, Generator, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import duckdb

from .errors import CatalogError, CatalogIntegrityError, EntityNotFoundError, ReadOnlyCatalogError
from .models import EntityKind, Format, Relation, Tag, build_record, merge_fields, parse_date
from .settings import DATA_ROOT, DatabaseConfiguration

logger = logging.getLogger(__name__)

KeyFields = Union[str, Sequence[str], None]


# ============================================================================
# Schema & Migrations
# ============================================================================


_MIGRATIONS: List[Tuple[str, str]] = [
    (
        "0001_init",
        """
        -- Schema versioning
        CREATE TABLE IF NOT EXISTS schema_version (
            version TEXT PRIMARY KEY,
            applied_at TIMESTAMP NOT NULL DEFAULT now()
        );

        -- File format descriptions
        CREATE TABLE IF NOT EXISTS formats (
            uid TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            version TEXT,
            source TEXT NOT NULL,
            source_version TEXT,
            url TEXT,
            mimetypes JSON,
            extensions JSON,
            parent_format TEXT,
            related_formats JSON,
            properties JSON,
            created_at DATE NOT NULL DEFAULT current_date
        );

        -- Classification taxonomy nodes
        CREATE TABLE IF NOT EXISTS tags (
            tag TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            profile TEXT NOT NULL,
            properties JSON,
            info JSON
        );

        -- Format <-> tag assignments
        CREATE TABLE IF NOT EXISTS tagged_formats (
            tag TEXT NOT NULL,
            format TEXT NOT NULL,
            PRIMARY KEY (tag, format)
        );

        -- Child -> parent edges of the tag graph
        CREATE TABLE IF NOT EXISTS tagged_tags (
            tag TEXT NOT NULL,
            parent TEXT NOT NULL,
            PRIMARY KEY (tag, parent)
        );

        INSERT OR IGNORE INTO schema_version VALUES ('0001_init', now());
        """,
    ),
    (
        "0002_edge_indexes",
        """
        -- Reverse lookups for closure walks
        CREATE INDEX IF NOT EXISTS idx_tagged_formats_format
            ON tagged_formats(format);

        CREATE INDEX IF NOT EXISTS idx_tagged_tags_parent
            ON tagged_tags(parent);

        INSERT OR IGNORE INTO schema_version VALUES ('0002_edge_indexes', now());
        """,
    ),
]


# ============================================================================
# Row Codec
# ============================================================================


def select_list(kind: EntityKind, alias: str = "") -> str:
    """Return the column list used by every entity SELECT, in record field order."""

    prefix = f"{alias}." if alias else ""
    return ", ".join(f"{prefix}{column}" for column in kind.columns)


def _encode(kind: EntityKind, record: Any) -> List[Any]:
    record_type = kind.record_type
    values: List[Any] = []
    for column in kind.columns:
        value = getattr(record, column)
        if column in record_type.LIST_FIELDS or column in record_type.MAP_FIELDS:
            value = json.dumps(value, sort_keys=True, default=str)
        values.append(value)
    return values


def record_from_row(kind: EntityKind, row: Sequence[Any]) -> Any:
    """Decode a row selected with :func:`select_list` into a record."""

    record_type = kind.record_type
    values: Dict[str, Any] = {}
    for column, value in zip(kind.columns, row):
        if column in record_type.LIST_FIELDS:
            value = json.loads(value) if value else []
        elif column in record_type.MAP_FIELDS:
            value = json.loads(value) if value else {}
        values[column] = value
    return record_type(**values)


def _key_fields(kind: EntityKind, key: KeyFields) -> Tuple[str, ...]:
    if key is None:
        return (kind.primary_key,)
    if isinstance(key, str):
        return (key,)
    fields = tuple(str(name) for name in key)
    if not fields:
        return (kind.primary_key,)
    return fields


# ============================================================================
# DuckDB Connection & Bootstrap
# ============================================================================


class Database:
    """Transactional store for format and tag records.

    Usage::

        db = Database(config)
        db.bootstrap()
        try:
            db.upsert_format({"uid": "fmt/114", "name": "Windows Bitmap", "source": "PRONOM"})
        finally:
            db.close()
    """

    def __init__(self, config: Optional[DatabaseConfiguration] = None):
        self.config = config or DatabaseConfiguration()
        self._db_path = self._resolve_db_path()
        self._lock_path = Path(str(self._db_path) + ".lock")
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._lock_file: Optional[Any] = None
        self._mutex = threading.RLock()
        self._local = threading.local()

    @property
    def path(self) -> Path:
        return self._db_path

    def _resolve_db_path(self) -> Path:
        if self.config.db_path:
            return self.config.db_path
        return DATA_ROOT / "catalog" / "formatlib.duckdb"

    @contextlib.contextmanager
    def _write_lock(self) -> Generator[None, None, None]:
        """Acquire an exclusive file lock for writes."""

        if not self.config.enable_locks or self.config.readonly:
            yield
            return

        lock_file = self._lock_path
        lock_file.parent.mkdir(parents=True, exist_ok=True)

        try:
            self._lock_file = open(lock_file, "w")
            fcntl.flock(self._lock_file.fileno(), fcntl.LOCK_EX)
            logger.debug("Acquired write lock at %s", lock_file)
            yield
        finally:
            if self._lock_file:
                try:
                    fcntl.flock(self._lock_file.fileno(), fcntl.LOCK_UN)
                finally:
                    self._lock_file.close()
                    self._lock_file = None

    def bootstrap(self) -> None:
        """Open the database, apply migrations, and prepare for operations."""

        db_path = self._db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)

        logger.info("Opening DuckDB at %s (read_only=%s)", db_path, self.config.readonly)

        config_dict: Dict[str, Any] = {}
        if self.config.threads is not None:
            config_dict["threads"] = self.config.threads
        elif os.cpu_count():
            config_dict["threads"] = os.cpu_count()
        if self.config.memory_limit is not None:
            config_dict["memory_limit"] = self.config.memory_limit

        self._connection = duckdb.connect(
            str(db_path),
            read_only=self.config.readonly,
            config=config_dict,
        )

        if not self.config.readonly:
            with self._mutex, self._write_lock():
                self._apply_migrations()

    def _apply_migrations(self) -> None:
        """Apply pending schema migrations in order."""

        assert self._connection is not None
        try:
            result = self._connection.execute(
                "SELECT version FROM schema_version ORDER BY version DESC LIMIT 1"
            ).fetchall()
            current_version = result[0][0] if result else None
        except duckdb.CatalogException:
            current_version = None

        for migration_name, migration_sql in _MIGRATIONS:
            if current_version is None or migration_name > current_version:
                logger.info("Applying migration: %s", migration_name)
                self._connection.execute(migration_sql)

    def schema_versions(self) -> List[str]:
        """Return the names of all applied migrations."""

        with self.reader() as cursor:
            rows = cursor.execute("SELECT version FROM schema_version ORDER BY version").fetchall()
        return [row[0] for row in rows]

    def close(self) -> None:
        if self._connection:
            self._connection.close()
            self._connection = None

    def __enter__(self) -> Database:
        self.bootstrap()
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def _require_connection(self) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            raise CatalogError("Database is not bootstrapped; call bootstrap() first")
        return self._connection

    # ========================================================================
    # Transactions
    # ========================================================================

    @contextlib.contextmanager
    def transaction(self) -> Generator[duckdb.DuckDBPyConnection, None, None]:
        """Serialized write context; nested use joins the enclosing transaction."""

        connection = self._require_connection()
        if self.config.readonly:
            raise ReadOnlyCatalogError("Cannot write in read-only mode")

        active = getattr(self._local, "cursor", None)
        if active is not None:
            if not getattr(self._local, "writing", False):
                raise CatalogError("Cannot write inside a read snapshot")
            yield active
            return

        with self._mutex, self._write_lock():
            cursor = connection.cursor()
            cursor.execute("BEGIN TRANSACTION")
            self._local.cursor = cursor
            self._local.writing = True
            try:
                yield cursor
                cursor.execute("COMMIT")
            except Exception as exc:
                try:
                    cursor.execute("ROLLBACK")
                except duckdb.TransactionException:
                    logger.debug("No active transaction to roll back")
                logger.error("Transaction rolled back: %s", exc)
                if isinstance(exc, duckdb.ConstraintException):
                    raise CatalogIntegrityError(str(exc)) from exc
                raise
            finally:
                self._local.cursor = None
                self._local.writing = False
                cursor.close()

    @contextlib.contextmanager
    def snapshot(self) -> Generator[duckdb.DuckDBPyConnection, None, None]:
        """Point-in-time read context on a dedicated cursor.

        Every query issued through the yielded cursor (or through store
        methods called on this thread while the context is open) observes the
        same committed state, even while another thread is writing.
        """

        connection = self._require_connection()
        active = getattr(self._local, "cursor", None)
        if active is not None:
            yield active
            return

        cursor = connection.cursor()
        cursor.execute("BEGIN TRANSACTION")
        self._local.cursor = cursor
        self._local.writing = False
        try:
            yield cursor
        finally:
            self._local.cursor = None
            try:
                cursor.execute("ROLLBACK")
            finally:
                cursor.close()

    @contextlib.contextmanager
    def reader(self) -> Generator[duckdb.DuckDBPyConnection, None, None]:
        """Yield the active transaction cursor, or a short-lived one."""

        active = getattr(self._local, "cursor", None)
        if active is not None:
            yield active
            return
        cursor = self._require_connection().cursor()
        try:
            yield cursor
        finally:
            cursor.close()

    # ========================================================================
    # Query Facades: Entities
    # ========================================================================

    def _select_by(
        self, cursor: duckdb.DuckDBPyConnection, kind: EntityKind, fields: Mapping[str, Any]
    ) -> Optional[Any]:
        columns = set(kind.columns)
        clauses: List[str] = []
        params: List[Any] = []
        record_type = kind.record_type
        for name, value in fields.items():
            if name not in columns:
                raise CatalogError(f"Unknown {kind.value} field {name!r}")
            if value is None:
                clauses.append(f"{name} IS NULL")
                continue
            if name in record_type.LIST_FIELDS or name in record_type.MAP_FIELDS:
                value = json.dumps(value, sort_keys=True, default=str)
            elif name == "created_at":
                value = parse_date(value)
            else:
                value = str(value)
            clauses.append(f"{name} = ?")
            params.append(value)
        where = " AND ".join(clauses) if clauses else "TRUE"
        row = cursor.execute(
            f"SELECT {select_list(kind)} FROM {kind.table} WHERE {where} "
            f"ORDER BY {kind.primary_key} LIMIT 1",
            params,
        ).fetchone()
        return record_from_row(kind, row) if row else None

    def find(self, kind: Union[EntityKind, str], key: str) -> Optional[Any]:
        """Return the entity with primary key ``key`` or ``None``."""

        kind = EntityKind.parse(kind)
        with self.reader() as cursor:
            return self._select_by(cursor, kind, {kind.primary_key: key})

    def find_by(self, kind: Union[EntityKind, str], fields: Mapping[str, Any]) -> Optional[Any]:
        """Return the first entity (by primary key) whose columns equal ``fields``."""

        kind = EntityKind.parse(kind)
        with self.reader() as cursor:
            return self._select_by(cursor, kind, fields)

    def require(self, kind: Union[EntityKind, str], key: str) -> Any:
        kind = EntityKind.parse(kind)
        record = self.find(kind, key)
        if record is None:
            raise EntityNotFoundError(kind.value, key)
        return record

    def exists(self, kind: Union[EntityKind, str], key: str) -> bool:
        kind = EntityKind.parse(kind)
        with self.reader() as cursor:
            row = cursor.execute(
                f"SELECT 1 FROM {kind.table} WHERE {kind.primary_key} = ?", [key]
            ).fetchone()
        return row is not None

    def upsert(
        self,
        kind: Union[EntityKind, str],
        data: Mapping[str, Any],
        key: KeyFields = None,
    ) -> Any:
        """Find by ``key`` fields (default: primary key) or create, merge ``data``, persist.

        Primary-key fields are assigned once; every other field present in
        ``data`` replaces the stored value.  Fields absent from ``data`` keep
        their stored values.
        """

        kind = EntityKind.parse(kind)
        pk = kind.primary_key
        key_fields = _key_fields(kind, key)
        missing = [name for name in key_fields if data.get(name) is None]
        if missing:
            raise CatalogIntegrityError(
                f"{kind.value} record is missing key field(s): {', '.join(missing)}"
            )

        with self.transaction() as cursor:
            existing = self._select_by(cursor, kind, {name: data[name] for name in key_fields})
            try:
                if existing is None:
                    if data.get(pk) is None:
                        raise CatalogIntegrityError(f"{kind.value} record has no {pk!r}")
                    record = build_record(kind, data)
                    self._prepare_insert(kind, record)
                    self._check_references(cursor, kind, record)
                    values = _encode(kind, record)
                    placeholders = ", ".join("?" for _ in values)
                    cursor.execute(
                        f"INSERT INTO {kind.table} ({select_list(kind)}) VALUES ({placeholders})",
                        values,
                    )
                    logger.debug("Inserted %s %s", kind.value, getattr(record, pk))
                    return record

                current_key = getattr(existing, pk)
                if data.get(pk) is not None and str(data[pk]) != current_key:
                    raise CatalogIntegrityError(
                        f"Cannot change {kind.value} key {current_key!r} to {data[pk]!r}"
                    )
                created_at = getattr(existing, "created_at", None)
                merge_fields(existing, data, skip=(pk,))
                self._prepare_update(kind, existing, created_at)
                self._check_required(kind, existing)
                self._check_references(cursor, kind, existing)
                assignments = [column for column in kind.columns if column != pk]
                values = _encode(kind, existing)
                cursor.execute(
                    f"UPDATE {kind.table} SET "
                    + ", ".join(f"{column} = ?" for column in assignments)
                    + f" WHERE {pk} = ?",
                    [v for c, v in zip(kind.columns, values) if c != pk] + [current_key],
                )
                logger.debug("Updated %s %s", kind.value, current_key)
                return existing
            except ValueError as exc:
                raise CatalogIntegrityError(str(exc)) from exc

    def _prepare_insert(self, kind: EntityKind, record: Any) -> None:
        if kind is EntityKind.FORMAT and record.created_at is None:
            record.created_at = date.today()
        self._check_required(kind, record)

    @staticmethod
    def _prepare_update(kind: EntityKind, record: Any, created_at: Optional[date]) -> None:
        # An undated update keeps the date the format was first catalogued.
        if kind is EntityKind.FORMAT and record.created_at is None:
            record.created_at = created_at or date.today()

    @staticmethod
    def _check_required(kind: EntityKind, record: Any) -> None:
        missing = [name for name in kind.required if getattr(record, name) in (None, "")]
        if missing:
            raise CatalogIntegrityError(
                f"{kind.value} {getattr(record, kind.primary_key)!r} is missing required "
                f"field(s): {', '.join(missing)}"
            )

    def _check_references(
        self, cursor: duckdb.DuckDBPyConnection, kind: EntityKind, record: Any
    ) -> None:
        if kind is not EntityKind.FORMAT or not record.parent_format:
            return
        if record.parent_format == record.uid:
            return
        row = cursor.execute(
            "SELECT 1 FROM formats WHERE uid = ?", [record.parent_format]
        ).fetchone()
        if row is None:
            raise CatalogIntegrityError(
                f"format {record.uid!r} references missing parent format {record.parent_format!r}"
            )

    def delete(self, kind: Union[EntityKind, str], key: str) -> bool:
        """Delete an entity and everything that depends on it; ``False`` when absent."""

        kind = EntityKind.parse(kind)
        with self.transaction() as cursor:
            if kind is EntityKind.FORMAT:
                rows = cursor.execute(
                    """
                    WITH RECURSIVE lineage(uid) AS (
                        SELECT uid FROM formats WHERE uid = ?
                        UNION
                        SELECT f.uid FROM formats f JOIN lineage l ON f.parent_format = l.uid
                    )
                    SELECT uid FROM lineage
                    """,
                    [key],
                ).fetchall()
                doomed = [row[0] for row in rows]
                if not doomed:
                    return False
                cursor.execute(
                    "DELETE FROM tagged_formats WHERE list_contains(?, format)", [doomed]
                )
                cursor.execute("DELETE FROM formats WHERE list_contains(?, uid)", [doomed])
                logger.info("Deleted format %s (%d row(s) with lineage)", key, len(doomed))
                return True

            if cursor.execute("SELECT 1 FROM tags WHERE tag = ?", [key]).fetchone() is None:
                return False
            cursor.execute("DELETE FROM tagged_formats WHERE tag = ?", [key])
            cursor.execute("DELETE FROM tagged_tags WHERE tag = ? OR parent = ?", [key, key])
            cursor.execute("DELETE FROM tags WHERE tag = ?", [key])
            logger.info("Deleted tag %s", key)
            return True

    def count(self, kind: Union[EntityKind, str]) -> int:
        kind = EntityKind.parse(kind)
        with self.reader() as cursor:
            return int(cursor.execute(f"SELECT count(*) FROM {kind.table}").fetchone()[0])

    # Typed conveniences ----------------------------------------------------

    def upsert_format(self, data: Mapping[str, Any], key: KeyFields = None) -> Format:
        return self.upsert(EntityKind.FORMAT, data, key)

    def upsert_tag(self, data: Mapping[str, Any], key: KeyFields = None) -> Tag:
        return self.upsert(EntityKind.TAG, data, key)

    def get_format(self, uid: str) -> Optional[Format]:
        return self.find(EntityKind.FORMAT, uid)

    def get_tag(self, tag: str) -> Optional[Tag]:
        return self.find(EntityKind.TAG, tag)

    def delete_format(self, uid: str) -> bool:
        return self.delete(EntityKind.FORMAT, uid)

    def delete_tag(self, tag: str) -> bool:
        return self.delete(EntityKind.TAG, tag)

    def list_formats(self, source: Optional[str] = None) -> List[Format]:
        """List formats ordered by uid, optionally restricted to one source."""

        query = f"SELECT {select_list(EntityKind.FORMAT)} FROM formats"
        params: List[Any] = []
        if source:
            query += " WHERE source = ?"
            params.append(source)
        query += " ORDER BY uid"
        with self.reader() as cursor:
            rows = cursor.execute(query, params).fetchall()
        return [record_from_row(EntityKind.FORMAT, row) for row in rows]

    def list_tags(self, profile: Optional[str] = None) -> List[Tag]:
        """List tags ordered by id, optionally restricted to one profile."""

        query = f"SELECT {select_list(EntityKind.TAG)} FROM tags"
        params: List[Any] = []
        if profile:
            query += " WHERE profile = ?"
            params.append(profile)
        query += " ORDER BY tag"
        with self.reader() as cursor:
            rows = cursor.execute(query, params).fetchall()
        return [record_from_row(EntityKind.TAG, row) for row in rows]

    # ========================================================================
    # Query Facades: Edges
    # ========================================================================

    def add_edge(self, relation: Union[Relation, str], a: str, b: str) -> bool:
        """Insert the edge ``(a, b)``; re-adding an existing edge is a no-op.

        Returns ``True`` when a new edge was stored.
        """

        relation = Relation(relation)
        left, right = relation.columns
        with self.transaction() as cursor:
            for kind, key in zip(relation.endpoint_kinds, (a, b)):
                row = cursor.execute(
                    f"SELECT 1 FROM {kind.table} WHERE {kind.primary_key} = ?", [key]
                ).fetchone()
                if row is None:
                    raise CatalogIntegrityError(
                        f"{relation.value} edge references missing {kind.value} {key!r}"
                    )
            present = cursor.execute(
                f"SELECT 1 FROM {relation.table} WHERE {left} = ? AND {right} = ?", [a, b]
            ).fetchone()
            if present is not None:
                return False
            cursor.execute(
                f"INSERT OR IGNORE INTO {relation.table} ({left}, {right}) VALUES (?, ?)", [a, b]
            )
            return True

    def remove_edge(self, relation: Union[Relation, str], a: str, b: str) -> bool:
        relation = Relation(relation)
        left, right = relation.columns
        with self.transaction() as cursor:
            present = cursor.execute(
                f"SELECT 1 FROM {relation.table} WHERE {left} = ? AND {right} = ?", [a, b]
            ).fetchone()
            if present is None:
                return False
            cursor.execute(f"DELETE FROM {relation.table} WHERE {left} = ? AND {right} = ?", [a, b])
            return True

    def tag_format(self, tag: str, uid: str) -> bool:
        return self.add_edge(Relation.FORMAT_TAG, tag, uid)

    def link_tags(self, child: str, parent: str) -> bool:
        return self.add_edge(Relation.TAG_PARENT, child, parent)

    def _related(self, kind: EntityKind, join_sql: str, key: str, order: str) -> List[Any]:
        with self.reader() as cursor:
            rows = cursor.execute(
                f"SELECT {select_list(kind, 'x')} FROM {kind.table} x {join_sql} ORDER BY {order}",
                [key],
            ).fetchall()
        return [record_from_row(kind, row) for row in rows]

    def format_tags(self, uid: str) -> List[Tag]:
        """Tags directly assigned to format ``uid``."""

        return self._related(
            EntityKind.TAG, "JOIN tagged_formats e ON e.tag = x.tag WHERE e.format = ?", uid, "x.tag"
        )

    def tag_formats(self, tag: str) -> List[Format]:
        """Formats directly assigned to ``tag``."""

        return self._related(
            EntityKind.FORMAT, "JOIN tagged_formats e ON e.format = x.uid WHERE e.tag = ?", tag, "x.uid"
        )

    def parent_tags(self, tag: str) -> List[Tag]:
        return self._related(
            EntityKind.TAG, "JOIN tagged_tags e ON e.parent = x.tag WHERE e.tag = ?", tag, "x.tag"
        )

    def child_tags(self, tag: str) -> List[Tag]:
        return self._related(
            EntityKind.TAG, "JOIN tagged_tags e ON e.tag = x.tag WHERE e.parent = ?", tag, "x.tag"
        )

    def tag_edges(self) -> List[Tuple[str, str]]:
        """All (child, parent) pairs of the tag graph."""

        with self.reader() as cursor:
            rows = cursor.execute("SELECT tag, parent FROM tagged_tags ORDER BY tag, parent").fetchall()
        return [(row[0], row[1]) for row in rows]

    def format_tag_edges(self) -> List[Tuple[str, str]]:
        """All (tag, format) assignment pairs."""

        with self.reader() as cursor:
            rows = cursor.execute(
                "SELECT tag, format FROM tagged_formats ORDER BY tag, format"
            ).fetchall()
        return [(row[0], row[1]) for row in rows]

    def load_tags(self, keys: Iterable[str]) -> Dict[str, Tag]:
        """Fetch many tags at once, keyed by id; unknown ids are skipped."""

        wanted = sorted(set(keys))
        if not wanted:
            return {}
        with self.reader() as cursor:
            rows = cursor.execute(
                f"SELECT {select_list(EntityKind.TAG)} FROM tags WHERE list_contains(?, tag) ORDER BY tag",
                [wanted],
            ).fetchall()
        return {row[0]: record_from_row(EntityKind.TAG, row) for row in rows}

    def load_formats(self, keys: Iterable[str]) -> Dict[str, Format]:
        """Fetch many formats at once, keyed by uid; unknown uids are skipped."""

        wanted = sorted(set(keys))
        if not wanted:
            return {}
        with self.reader() as cursor:
            rows = cursor.execute(
                f"SELECT {select_list(EntityKind.FORMAT)} FROM formats WHERE list_contains(?, uid) ORDER BY uid",
                [wanted],
            ).fetchall()
        return {row[0]: record_from_row(EntityKind.FORMAT, row) for row in rows}


__all__ = [
    "Database",
    "record_from_row",
    "select_list",
]
