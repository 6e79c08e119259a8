# === NAVMAP v1 ===
# {
#   "module": "FormatLibrary",
#   "purpose": "Package initialization for the format catalog",
#   "sections": [
#     {
#       "id": "getattr",
#       "name": "__getattr__",
#       "anchor": "function-getattr",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Public API for the format catalog and tag taxonomy.

The facade exposes the catalog store, the file format and tag records, and
the :class:`~FormatLibrary.api.FormatLibrary` query surface.  Attributes are
imported lazily so that ``import FormatLibrary`` stays cheap.
"""

from __future__ import annotations

from importlib import import_module
from typing import Any, Dict, Tuple

__version__ = "0.1.0"

_EXPORTS: Dict[str, Tuple[str, str]] = {
    "FormatLibrary": ("FormatLibrary.api", "FormatLibrary"),
    "Database": ("FormatLibrary.database", "Database"),
    "Format": ("FormatLibrary.models", "Format"),
    "Tag": ("FormatLibrary.models", "Tag"),
    "EntityKind": ("FormatLibrary.models", "EntityKind"),
    "Relation": ("FormatLibrary.models", "Relation"),
    "TagGraph": ("FormatLibrary.graph", "TagGraph"),
    "IngestionReport": ("FormatLibrary.ingestion", "IngestionReport"),
    "FormatLibraryError": ("FormatLibrary.errors", "FormatLibraryError"),
    "load_config": ("FormatLibrary.settings", "load_config"),
    "setup_logging": ("FormatLibrary.logging_config", "setup_logging"),
}

__all__ = [*_EXPORTS, "__version__"]


def __getattr__(name: str) -> Any:
    """Lazily import public exports."""

    target = _EXPORTS.get(name)
    if target is None:
        raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
    value = getattr(import_module(target[0]), target[1])
    globals()[name] = value
    return value


def __dir__() -> list[str]:
    return sorted(set(globals()) | set(_EXPORTS))
