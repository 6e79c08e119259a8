"""Testing utilities for exercising the format catalog without a network.

Provides an HTTPX client override backed by ``httpx.MockTransport`` and a
throwaway catalog rooted in a temporary directory.
"""

from __future__ import annotations

import contextlib
from pathlib import Path
from typing import Generator, Optional

import httpx

from .database import Database
from .net import configure_http_client, reset_http_client
from .settings import (
    DatabaseConfiguration,
    DefaultsConfig,
    DownloadConfiguration,
    ResolvedConfig,
    SeedsConfiguration,
    invalidate_default_config_cache,
)

__all__ = ["use_mock_http_client", "build_test_config", "temporary_catalog"]


@contextlib.contextmanager
def use_mock_http_client(
    transport: httpx.BaseTransport, **client_kwargs
) -> Generator[httpx.Client, None, None]:
    """Temporarily install an HTTPX client backed by ``transport``."""

    default_config = client_kwargs.pop("default_config", None)
    client = httpx.Client(transport=transport, **client_kwargs)
    configure_http_client(client=client, default_config=default_config)
    try:
        yield client
    finally:
        reset_http_client()
        client.close()


def build_test_config(root: Path, *, max_retries: int = 2) -> ResolvedConfig:
    """Configuration with every path under ``root`` and instant retries."""

    root = Path(root)
    defaults = DefaultsConfig(
        db=DatabaseConfiguration(db_path=root / "catalog.duckdb", threads=1),
        http=DownloadConfiguration(max_retries=max_retries, backoff_factor=0.0),
        seeds=SeedsConfiguration(data_dir=root / "seeds"),
        log_dir=root / "logs",
    )
    return ResolvedConfig(defaults=defaults)


@contextlib.contextmanager
def temporary_catalog(
    root: Path, config: Optional[ResolvedConfig] = None
) -> Generator[Database, None, None]:
    """Bootstrap a catalog under ``root`` and close it afterwards."""

    cfg = config or build_test_config(root)
    invalidate_default_config_cache()
    db = Database(cfg.defaults.db)
    db.bootstrap()
    try:
        yield db
    finally:
        db.close()
        invalidate_default_config_cache()
