# === NAVMAP v1 ===
# {
#   "module": "FormatLibrary.errors",
#   "purpose": "Define the exception hierarchy used across the catalog, loader, and ingestion runs",
#   "sections": [
#     {"id": "base", "name": "Base Exceptions", "anchor": "BAS", "kind": "api"},
#     {"id": "catalog", "name": "Catalog Errors", "anchor": "CAT", "kind": "api"},
#     {"id": "loader", "name": "Loader Errors", "anchor": "LOD", "kind": "api"},
#     {"id": "ingestion", "name": "Ingestion & Download Errors", "anchor": "ING", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Exception hierarchy shared across the format catalog, loader, and ingestion.

The library spans configuration parsing, DuckDB persistence, declarative bulk
loading, and HTTP retrieval of external signature registries.  Failures are
grouped so callers can react to categories (for example, a dangling reference
in a seed document vs. a network outage during ingestion) while still having
access to the specialised subclasses.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "FormatLibraryError",
    "ConfigurationError",
    "CatalogError",
    "CatalogIntegrityError",
    "EntityNotFoundError",
    "ReadOnlyCatalogError",
    "LoaderError",
    "ReferenceNotFoundError",
    "IngestionError",
    "DownloadFailure",
    "UserConfigError",
]


class FormatLibraryError(RuntimeError):
    """Base exception for catalog, loader, and ingestion failures."""


class ConfigurationError(FormatLibraryError):
    """Raised when configuration inputs are invalid."""


class CatalogError(FormatLibraryError):
    """Raised when the DuckDB catalog cannot complete an operation."""


class CatalogIntegrityError(CatalogError):
    """Raised on constraint violations: dangling references, missing required values."""


class EntityNotFoundError(CatalogError):
    """Raised when a Format or Tag looked up by key does not exist."""

    def __init__(self, kind: str, key: str) -> None:
        super().__init__(f"{kind} '{key}' not found")
        self.kind = kind
        self.key = key


class ReadOnlyCatalogError(CatalogError):
    """Raised when a write is attempted on a catalog opened read-only."""


class LoaderError(FormatLibraryError):
    """Raised when a declarative record cannot be loaded."""


class ReferenceNotFoundError(LoaderError):
    """Raised when ``uids``/``tags``/``children`` name an entity that does not exist."""

    def __init__(self, kind: str, key: str) -> None:
        super().__init__(f"{kind.capitalize()} '{key}' not found")
        self.kind = kind
        self.key = key


class IngestionError(FormatLibraryError):
    """Raised when a signature catalog run aborts (network or parse failure)."""

    def __init__(self, message: str, *, committed: int = 0) -> None:
        super().__init__(message)
        self.committed = committed


class DownloadFailure(IngestionError):
    """Raised when an HTTP download attempt fails."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class UserConfigError(RuntimeError):
    """Raised when CLI arguments or YAML configuration inputs are invalid."""
