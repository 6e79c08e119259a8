"""Catalog link discovery on registry index pages."""

from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional, Tuple, Union
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from ..errors import IngestionError
from ..net import request_with_retry
from ..settings import DownloadConfiguration

logger = logging.getLogger(__name__)

_DIGITS = re.compile(r"(\d+)")


def natural_sort_key(value: str) -> Tuple[Union[str, int], ...]:
    """Order strings by their embedded numbers rather than lexically.

    Examples:
        >>> sorted(["V9.xml", "V120.xml", "V10.xml"], key=natural_sort_key)
        ['V9.xml', 'V10.xml', 'V120.xml']
    """
    parts = _DIGITS.split(value)
    return tuple(int(part) if index % 2 else part.lower() for index, part in enumerate(parts))


def latest_link(links: Iterable[str]) -> Optional[str]:
    """Return the link with the highest natural version, or ``None``."""

    candidates = list(links)
    if not candidates:
        return None
    return max(candidates, key=natural_sort_key)


def extract_links(html: str, pattern: str, base_url: Optional[str] = None) -> List[str]:
    """Return anchor targets matching ``pattern``, in document order, without duplicates."""

    regex = re.compile(pattern)
    soup = BeautifulSoup(html, "html.parser")
    found: List[str] = []
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        candidate = urljoin(base_url, href) if base_url else href
        if regex.match(candidate) and candidate not in found:
            found.append(candidate)
    return found


def discover_latest_link(
    index_url: str,
    pattern: str,
    *,
    config: Optional[DownloadConfiguration] = None,
    correlation_id: Optional[str] = None,
) -> str:
    """Fetch ``index_url`` and pick the newest catalog link matching ``pattern``."""

    response = request_with_retry("GET", index_url, config=config, correlation_id=correlation_id)
    links = extract_links(response.text, pattern, base_url=index_url)
    link = latest_link(links)
    if link is None:
        raise IngestionError(f"No catalog links matching {pattern!r} found at {index_url}")
    logger.info(
        "Selected %s out of %d candidate link(s)",
        link,
        len(links),
        extra={"stage": "discover", "correlation_id": correlation_id},
    )
    return link


__all__ = ["natural_sort_key", "latest_link", "extract_links", "discover_latest_link"]
