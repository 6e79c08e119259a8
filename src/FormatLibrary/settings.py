# === NAVMAP v1 ===
# {
#   "module": "FormatLibrary.settings",
#   "purpose": "Pydantic configuration models, environment overrides, and YAML config loading",
#   "sections": [
#     {"id": "paths", "name": "Data Directories", "anchor": "PTH", "kind": "constants"},
#     {"id": "models", "name": "Configuration Models", "anchor": "MOD", "kind": "models"},
#     {"id": "env", "name": "Environment Overrides", "anchor": "ENV", "kind": "api"},
#     {"id": "loading", "name": "Config Loading", "anchor": "LOAD", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Configuration for the format library.

Every tunable lives on a pydantic model so that YAML files, environment
variables and CLI flags all go through the same validation.  The composite
:class:`ResolvedConfig` bundles the sections consumed by the catalog
(:class:`DatabaseConfiguration`), the HTTP layer
(:class:`DownloadConfiguration`), the signature-registry ingestion
(:class:`SourcesConfiguration`), seeding (:class:`SeedsConfiguration`) and
logging (:class:`LoggingConfiguration`).
"""

from __future__ import annotations

import logging
import os
import re
import threading
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import UserConfigError

__all__ = [
    "DATA_ROOT",
    "LOG_DIR",
    "LoggingConfiguration",
    "DatabaseConfiguration",
    "DownloadConfiguration",
    "SourcesConfiguration",
    "SeedsConfiguration",
    "DefaultsConfig",
    "ResolvedConfig",
    "EnvironmentOverrides",
    "get_default_config",
    "invalidate_default_config_cache",
    "load_config",
]

# --- Data Directories ---

DATA_ROOT = Path(os.environ.get("FORMATLIB_HOME", Path.home() / ".data" / "format-library"))
LOG_DIR = DATA_ROOT / "logs"
SEEDS_DIR = DATA_ROOT / "seeds"

PRONOM_INDEX_URL = "https://www.nationalarchives.gov.uk/aboutapps/pronom/droid-signature-files.htm"
PRONOM_LINK_PATTERN = (
    r"^https://cdn.nationalarchives.gov.uk/documents/DROID_SignatureFile_V\d*.xml"
)
LOC_ARCHIVE_URL = "https://www.loc.gov/preservation/digital/formats/fddXML.zip"
LOC_MEMBER_PATTERN = r"^fddXML/fdd\d+\.xml$"


# --- Configuration Models ---


class LoggingConfiguration(BaseModel):
    """Logging-related configuration."""

    level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    max_log_size_mb: int = Field(default=100, gt=0, description="Maximum size of rotated log files")
    retention_days: int = Field(default=30, ge=1, description="Retention period for log files")

    @field_validator("level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        """Normalise logging levels and ensure they match the supported set."""

        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR"}
        upper = value.upper()
        if upper not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}")
        return upper

    model_config = {"validate_assignment": True}


class DatabaseConfiguration(BaseModel):
    """DuckDB catalog configuration for formats, tags, and their edges."""

    db_path: Optional[Path] = Field(
        default=None,
        description="Path to DuckDB file; defaults to <FORMATLIB_HOME>/catalog/formatlib.duckdb",
    )
    readonly: bool = Field(default=False, description="Open database in read-only mode")
    enable_locks: bool = Field(
        default=True,
        description="Enable file-based locks to serialize writers; readers bypass locks",
    )
    threads: Optional[int] = Field(
        default=None,
        gt=0,
        description="Number of threads for query execution; None uses CPU count",
    )
    memory_limit: Optional[str] = Field(
        default=None,
        description="Memory limit as string (e.g., '2GB'); None uses auto",
    )

    @field_validator("db_path", mode="before")
    @classmethod
    def normalize_path(cls, value: Any) -> Optional[Path]:
        """Expand ``~`` in user supplied catalog paths."""

        if value is None:
            return None
        return Path(value).expanduser()

    model_config = {"validate_assignment": True}


class DownloadConfiguration(BaseModel):
    """HTTP timeout, retry, and politeness settings for registry downloads."""

    max_retries: int = Field(default=3, ge=0, le=20)
    timeout_sec: int = Field(default=60, gt=0, le=600, description="Read/write timeout")
    connect_timeout_sec: float = Field(default=10.0, gt=0.0, le=120.0)
    backoff_factor: float = Field(default=0.5, ge=0.0, le=10.0)
    follow_redirects: bool = Field(default=True)
    user_agent: str = Field(default="FormatLibrary/1.0 (+signature-registry-ingest)")
    polite_headers: Dict[str, str] = Field(default_factory=dict)

    def polite_http_headers(self, *, correlation_id: Optional[str] = None) -> Dict[str, str]:
        """Compute polite HTTP headers for outbound registry requests."""

        headers: Dict[str, str] = {
            str(key): str(value)
            for key, value in (self.polite_headers or {}).items()
            if str(value).strip()
        }
        if not any(key.lower() == "user-agent" for key in headers):
            headers["User-Agent"] = self.user_agent
        if correlation_id:
            headers.setdefault("X-Request-ID", correlation_id)
        return headers

    model_config = {"validate_assignment": True, "extra": "ignore"}


class SourcesConfiguration(BaseModel):
    """Locations of the external signature registries."""

    pronom_index_url: str = Field(default=PRONOM_INDEX_URL)
    pronom_link_pattern: str = Field(default=PRONOM_LINK_PATTERN)
    loc_archive_url: str = Field(default=LOC_ARCHIVE_URL)
    loc_member_pattern: str = Field(default=LOC_MEMBER_PATTERN)

    @field_validator("pronom_link_pattern", "loc_member_pattern")
    @classmethod
    def validate_pattern(cls, value: str) -> str:
        """Reject patterns that do not compile."""

        try:
            re.compile(value)
        except re.error as exc:
            raise ValueError(f"invalid regular expression {value!r}: {exc}") from exc
        return value

    model_config = {"validate_assignment": True, "extra": "forbid"}


class SeedsConfiguration(BaseModel):
    """Where seed documents for formats and tags are read from."""

    data_dir: Path = Field(default_factory=lambda: SEEDS_DIR)
    formats_file: str = Field(default="teneo_formats.yml")
    tags_dir: Optional[Path] = Field(
        default=None, description="Directory of tag YAML files; defaults to <data_dir>/tags"
    )

    @field_validator("data_dir", "tags_dir", mode="before")
    @classmethod
    def normalize_dir(cls, value: Any) -> Optional[Path]:
        if value is None:
            return None
        return Path(value).expanduser()

    def resolved_tags_dir(self) -> Path:
        """Return the tag seed directory, falling back to ``<data_dir>/tags``."""

        return self.tags_dir or (self.data_dir / "tags")

    model_config = {"validate_assignment": True, "extra": "forbid"}


class DefaultsConfig(BaseModel):
    """Composite configuration for a catalog session."""

    logging: LoggingConfiguration = Field(default_factory=LoggingConfiguration)
    db: DatabaseConfiguration = Field(default_factory=DatabaseConfiguration)
    http: DownloadConfiguration = Field(default_factory=DownloadConfiguration)
    sources: SourcesConfiguration = Field(default_factory=SourcesConfiguration)
    seeds: SeedsConfiguration = Field(default_factory=SeedsConfiguration)
    log_dir: Optional[Path] = Field(default=None)

    model_config = {"validate_assignment": True, "extra": "forbid"}


class ResolvedConfig(BaseModel):
    """Materialised configuration: defaults merged with file and environment values."""

    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)

    @classmethod
    def from_defaults(cls) -> "ResolvedConfig":
        """Construct a resolved configuration populated with default values only."""

        defaults = DefaultsConfig()
        _apply_env_overrides(defaults)
        return cls(defaults=defaults)


# --- Environment Overrides ---


class EnvironmentOverrides(BaseSettings):
    """Pydantic settings model exposing environment-derived overrides."""

    db_path: Optional[Path] = Field(default=None, alias="FORMATLIB_DB_PATH")
    log_level: Optional[str] = Field(default=None, alias="FORMATLIB_LOG_LEVEL")
    log_dir: Optional[Path] = Field(default=None, alias="FORMATLIB_LOG_DIR")
    timeout_sec: Optional[int] = Field(default=None, alias="FORMATLIB_TIMEOUT_SEC")
    max_retries: Optional[int] = Field(default=None, alias="FORMATLIB_MAX_RETRIES")
    seeds_dir: Optional[Path] = Field(default=None, alias="FORMATLIB_SEEDS_DIR")
    seeds_tag_dir: Optional[Path] = Field(default=None, alias="FORMATLIB_SEEDS_TAG_DIR")

    model_config = SettingsConfigDict(
        env_prefix="FORMATLIB_", case_sensitive=False, extra="ignore"
    )


def get_env_overrides() -> Dict[str, str]:
    """Return environment-derived overrides as stringified key/value pairs."""

    env = EnvironmentOverrides()
    return {
        key: str(value) for key, value in env.model_dump(by_alias=False, exclude_none=True).items()
    }


def _apply_env_overrides(defaults: DefaultsConfig) -> None:
    """Mutate ``defaults`` in-place using values from :class:`EnvironmentOverrides`."""

    env = EnvironmentOverrides()
    logger = logging.getLogger("FormatLibrary")

    if env.db_path is not None:
        defaults.db.db_path = env.db_path
        logger.info("Config overridden: db_path=%s", env.db_path, extra={"stage": "config"})
    if env.log_level is not None:
        defaults.logging.level = env.log_level
        logger.info("Config overridden: log_level=%s", env.log_level, extra={"stage": "config"})
    if env.log_dir is not None:
        defaults.log_dir = env.log_dir
        logger.info("Config overridden: log_dir=%s", env.log_dir, extra={"stage": "config"})
    if env.timeout_sec is not None:
        defaults.http.timeout_sec = env.timeout_sec
        logger.info("Config overridden: timeout_sec=%s", env.timeout_sec, extra={"stage": "config"})
    if env.max_retries is not None:
        defaults.http.max_retries = env.max_retries
        logger.info("Config overridden: max_retries=%s", env.max_retries, extra={"stage": "config"})
    if env.seeds_dir is not None:
        defaults.seeds.data_dir = env.seeds_dir
        logger.info("Config overridden: seeds_dir=%s", env.seeds_dir, extra={"stage": "config"})
    if env.seeds_tag_dir is not None:
        defaults.seeds.tags_dir = env.seeds_tag_dir
        logger.info(
            "Config overridden: seeds_tag_dir=%s", env.seeds_tag_dir, extra={"stage": "config"}
        )


_DEFAULT_CONFIG_LOCK = threading.RLock()
_DEFAULT_CONFIG_CACHE: Optional[ResolvedConfig] = None


def get_default_config(*, copy: bool = False) -> ResolvedConfig:
    """Return a memoised :class:`ResolvedConfig` constructed from defaults."""

    global _DEFAULT_CONFIG_CACHE  # noqa: PLW0603

    with _DEFAULT_CONFIG_LOCK:
        if _DEFAULT_CONFIG_CACHE is None:
            _DEFAULT_CONFIG_CACHE = ResolvedConfig.from_defaults()
        cached = _DEFAULT_CONFIG_CACHE
    if copy:
        return cached.model_copy(deep=True)
    return cached


def invalidate_default_config_cache() -> None:
    """Invalidate the cached default configuration."""

    global _DEFAULT_CONFIG_CACHE  # noqa: PLW0603

    with _DEFAULT_CONFIG_LOCK:
        _DEFAULT_CONFIG_CACHE = None


# --- Config Loading ---


def build_resolved_config(raw_config: Mapping[str, object]) -> ResolvedConfig:
    """Materialise a :class:`ResolvedConfig` from a raw mapping loaded from disk."""

    defaults_section = raw_config.get("defaults", {}) or {}
    if not isinstance(defaults_section, Mapping):
        raise UserConfigError("'defaults' section must be a mapping")
    try:
        defaults = DefaultsConfig.model_validate(defaults_section)
    except PydanticValidationError as exc:
        messages: List[str] = []
        for error in exc.errors():
            location = " -> ".join(str(part) for part in error["loc"])
            messages.append(f"{location}: {error['msg']}")
        raise UserConfigError(
            "Configuration validation failed:\n  " + "\n  ".join(messages)
        ) from exc

    _apply_env_overrides(defaults)
    return ResolvedConfig(defaults=defaults)


def load_raw_yaml(config_path: Path) -> Mapping[str, object]:
    """Read a YAML configuration file and return its top-level mapping."""

    normalized_path = Path(config_path).expanduser()
    if not normalized_path.exists():
        raise UserConfigError(f"Configuration file not found: {normalized_path}")

    try:
        with normalized_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise UserConfigError(
            f"Configuration file '{normalized_path}' contains invalid YAML"
        ) from exc

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise UserConfigError("Configuration file must contain a mapping at the root")
    return data


def load_config(config_path: Optional[Path] = None) -> ResolvedConfig:
    """Load and validate configuration; without a path return the defaults."""

    if config_path is None:
        return get_default_config(copy=True)
    return build_resolved_config(load_raw_yaml(config_path))
