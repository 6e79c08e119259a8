# === NAVMAP v1 ===
# {
#   "module": "FormatLibrary.cli",
#   "purpose": "Typer command line interface for the format catalog",
#   "sections": [
#     {"id": "setup", "name": "Setup & Helpers", "anchor": "IMP", "kind": "infra"},
#     {"id": "catalog", "name": "Catalog Commands", "anchor": "CAT", "kind": "commands"},
#     {"id": "ingest", "name": "Ingest Commands", "anchor": "ING", "kind": "commands"},
#     {"id": "formats", "name": "Format Commands", "anchor": "FMT", "kind": "commands"},
#     {"id": "tags", "name": "Tag Commands", "anchor": "TAG", "kind": "commands"}
#   ]
# }
# === /NAVMAP ===

"""``formatlib`` command line interface.

Every command prints JSON on stdout.  Failures print a message on stderr
and exit with status 1.
"""

from __future__ import annotations

import contextlib
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Generator, List, Optional

import typer
from pydantic import ValidationError as PydanticValidationError

from .api import STRATEGIES, FormatLibrary
from .errors import FormatLibraryError, UserConfigError
from .logging_config import setup_logging
from .models import EntityKind
from .seeds import run_seeds
from .settings import ResolvedConfig, load_config

# ============================================================================
# SETUP (IMP)
# ============================================================================

app = typer.Typer(help="Format catalog and tag taxonomy utilities", no_args_is_help=True)
ingest_app = typer.Typer(help="Ingest signature registries", no_args_is_help=True)
format_app = typer.Typer(help="Inspect formats", no_args_is_help=True)
tag_app = typer.Typer(help="Inspect tags and the tag hierarchy", no_args_is_help=True)
app.add_typer(ingest_app, name="ingest")
app.add_typer(format_app, name="format")
app.add_typer(tag_app, name="tag")

logger = logging.getLogger(__name__)

_KIND_ALIASES = {
    "format": EntityKind.FORMAT,
    "formats": EntityKind.FORMAT,
    "tag": EntityKind.TAG,
    "tags": EntityKind.TAG,
}


@dataclass
class CliState:
    config: ResolvedConfig

    @contextlib.contextmanager
    def library(self) -> Generator[FormatLibrary, None, None]:
        """Open the catalog for one command, reporting failures as exit code 1."""

        try:
            with FormatLibrary.open(self.config) as library:
                yield library
        except (FormatLibraryError, UserConfigError, ValueError) as exc:
            logger.debug("command failed", exc_info=True)
            typer.echo(f"Error: {exc}", err=True)
            raise typer.Exit(code=1) from exc


def _jsonable(data: Any) -> Any:
    if hasattr(data, "to_dict"):
        return data.to_dict()
    if isinstance(data, dict):
        return {str(key): _jsonable(value) for key, value in data.items()}
    if isinstance(data, (list, tuple)):
        return [_jsonable(item) for item in data]
    return data


def _format_output(data: Any) -> str:
    return json.dumps(_jsonable(data), indent=2, default=str)


def _emit(data: Any) -> None:
    typer.echo(_format_output(data))


def _state(ctx: typer.Context) -> CliState:
    return ctx.obj


def _kind(value: str) -> EntityKind:
    try:
        return _KIND_ALIASES[value.lower()]
    except KeyError as exc:
        raise typer.BadParameter("expected 'formats' or 'tags'") from exc


def _strategy(value: str) -> str:
    if value not in STRATEGIES:
        raise typer.BadParameter(f"expected one of: {', '.join(STRATEGIES)}")
    return value


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML configuration file"),
    db_path: Optional[Path] = typer.Option(None, "--db", help="DuckDB catalog path"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level"),
    log_dir: Optional[Path] = typer.Option(None, "--log-dir", help="Directory for JSON logs"),
) -> None:
    """Resolve configuration and logging shared by every command."""

    try:
        resolved = load_config(config)
        if db_path is not None:
            resolved.defaults.db.db_path = db_path
        if log_level is not None:
            resolved.defaults.logging.level = log_level
    except (UserConfigError, PydanticValidationError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    setup_logging(resolved.defaults.logging, log_dir=log_dir or resolved.defaults.log_dir)
    ctx.obj = CliState(config=resolved)


# ============================================================================
# CATALOG COMMANDS (CAT)
# ============================================================================


@app.command()
def migrate(ctx: typer.Context) -> None:
    """Create the catalog if needed and apply pending schema migrations."""

    with _state(ctx).library() as library:
        _emit({"db_path": str(library.db.path), "schema_versions": library.db.schema_versions()})


@app.command()
def seed(
    ctx: typer.Context,
    registries: bool = typer.Option(
        True, "--registries/--no-registries", help="Download PRONOM and LOC first"
    ),
) -> None:
    """Seed the catalog from the registries and the local seed documents."""

    state = _state(ctx)
    with state.library() as library:
        _emit(run_seeds(library.db, state.config, registries=registries))


@app.command()
def load(
    ctx: typer.Context,
    kind: str = typer.Argument(..., help="'formats' or 'tags'"),
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="YAML or JSON document"),
    key: Optional[List[str]] = typer.Option(None, "--key", help="Lookup field(s); default: primary key"),
) -> None:
    """Find-or-create every record of a declarative document."""

    entity = _kind(kind)
    with _state(ctx).library() as library:
        records = library.load_file(entity, file, key=key or None)
        _emit({"loaded": len(records), "keys": [getattr(r, entity.primary_key) for r in records]})


@app.command()
def delete(
    ctx: typer.Context,
    kind: str = typer.Argument(..., help="'format' or 'tag'"),
    key: str = typer.Argument(..., help="Format uid or tag id"),
) -> None:
    """Delete an entity together with its edges (and lineage, for formats)."""

    entity = _kind(kind)
    with _state(ctx).library() as library:
        library.delete(entity, key)
        _emit({"deleted": entity.value, "key": key})


# ============================================================================
# INGEST COMMANDS (ING)
# ============================================================================


@ingest_app.command("pronom")
def ingest_pronom(ctx: typer.Context) -> None:
    """Download the newest DROID signature file and upsert its formats."""

    with _state(ctx).library() as library:
        _emit(library.ingest_pronom())


@ingest_app.command("loc")
def ingest_loc(ctx: typer.Context) -> None:
    """Download the LOC FDD archive and upsert its formats."""

    with _state(ctx).library() as library:
        _emit(library.ingest_loc())


@ingest_app.command("fdd-archive")
def ingest_fdd(
    ctx: typer.Context,
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="fddXML.zip archive"),
) -> None:
    """Ingest a locally stored FDD archive."""

    with _state(ctx).library() as library:
        _emit(library.ingest_fdd_archive(path))


@ingest_app.command("droid-file")
def ingest_droid(
    ctx: typer.Context,
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="DROID signature XML"),
) -> None:
    """Ingest a locally stored DROID signature file."""

    with _state(ctx).library() as library:
        _emit(library.ingest_droid_file(path))


# ============================================================================
# FORMAT COMMANDS (FMT)
# ============================================================================


@format_app.command("show")
def format_show(
    ctx: typer.Context,
    uid: str = typer.Argument(..., help="Format identifier, e.g. fmt/114"),
    all_tags: bool = typer.Option(False, "--all-tags", help="Include the transitive tag closure"),
    strategy: str = typer.Option("memory", "--strategy", callback=_strategy),
) -> None:
    """Show a format with its direct (and optionally all) tags."""

    with _state(ctx).library() as library:
        payload = library.get_format(uid).to_dict()
        payload["tags"] = sorted(library.direct_tags(uid))
        if all_tags:
            payload["all_tags"] = sorted(library.all_tags(uid, strategy=strategy))
        _emit(payload)


@format_app.command("list")
def format_list(
    ctx: typer.Context,
    source: Optional[str] = typer.Option(None, "--source", help="Restrict to one source"),
) -> None:
    """List format identifiers and names."""

    with _state(ctx).library() as library:
        _emit([{"uid": f.uid, "name": f.name, "source": f.source} for f in library.list_formats(source)])


# ============================================================================
# TAG COMMANDS (TAG)
# ============================================================================


@tag_app.command("show")
def tag_show(ctx: typer.Context, tag: str = typer.Argument(..., help="Tag id")) -> None:
    """Show a tag with its parents, children, and direct formats."""

    with _state(ctx).library() as library:
        payload = library.get_tag(tag).to_dict()
        payload["parents"] = sorted(library.parents(tag))
        payload["children"] = sorted(library.children(tag))
        payload["formats"] = sorted(library.direct_formats(tag))
        _emit(payload)


@tag_app.command("tree")
def tag_tree(
    ctx: typer.Context,
    tag: str = typer.Argument(..., help="Root tag id"),
    formats: bool = typer.Option(False, "--formats", help="Attach directly tagged formats"),
    strategy: str = typer.Option("memory", "--strategy", callback=_strategy),
) -> None:
    """Print the descendant tree rooted at a tag."""

    with _state(ctx).library() as library:
        if formats:
            _emit(library.tree_with_formats(tag))
        else:
            _emit(library.tree(tag, strategy=strategy))


@tag_app.command("formats")
def tag_formats(
    ctx: typer.Context,
    tag: str = typer.Argument(..., help="Tag id"),
    transitive: bool = typer.Option(False, "--all", help="Include formats of descendant tags"),
    strategy: str = typer.Option("memory", "--strategy", callback=_strategy),
) -> None:
    """List format identifiers tagged with a tag."""

    with _state(ctx).library() as library:
        if transitive:
            _emit(sorted(library.all_formats(tag, strategy=strategy)))
        else:
            _emit(sorted(library.direct_formats(tag)))


@tag_app.command("closure")
def tag_closure(
    ctx: typer.Context,
    tag: str = typer.Argument(..., help="Tag id"),
    up: bool = typer.Option(False, "--up", help="Ancestors instead of descendants"),
    strategy: str = typer.Option("memory", "--strategy", callback=_strategy),
) -> None:
    """List the descendant (or ancestor) closure of a tag."""

    with _state(ctx).library() as library:
        closure = library.ancestors(tag, strategy) if up else library.descendants(tag, strategy)
        _emit(sorted(closure))


@tag_app.command("list")
def tag_list(
    ctx: typer.Context,
    profile: Optional[str] = typer.Option(None, "--profile", help="Restrict to one profile"),
) -> None:
    """List tags, optionally within one profile."""

    with _state(ctx).library() as library:
        _emit([{"tag": t.tag, "name": t.name, "profile": t.profile} for t in library.list_tags(profile)])


__all__ = ["app"]
