# === NAVMAP v1 ===
# {
#   "module": "FormatLibrary.net",
#   "purpose": "Shared HTTPX client and Tenacity retry policy for registry downloads",
#   "sections": [
#     {"id": "constants", "name": "Constants & globals", "anchor": "CONST", "kind": "constants"},
#     {"id": "helpers", "name": "Client construction helpers", "anchor": "HELP", "kind": "helpers"},
#     {"id": "retry", "name": "Retry policy", "anchor": "RTY", "kind": "helpers"},
#     {"id": "api", "name": "Public API", "anchor": "API", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Shared HTTPX client used by the signature registry ingesters.

Retry strategy:
- **Retryable exceptions**: ConnectError, ConnectTimeout, ReadTimeout, RemoteProtocolError
- **Retryable responses**: 429 (rate-limit), 5xx (server error)
- **Backoff**: full-jitter exponential, honouring ``Retry-After`` when present
- **Bounded**: ``max_retries`` extra attempts, then :class:`DownloadFailure`
"""

from __future__ import annotations

import contextlib
import email.utils
import logging
import ssl
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Generator, Optional

import certifi
import httpx
from tenacity import (
    RetryCallState,
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_random_exponential,
)
from tenacity.wait import wait_base

from .errors import DownloadFailure
from .settings import DownloadConfiguration

LOGGER = logging.getLogger(__name__)

# --- Constants & globals -------------------------------------------------------

RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})
_RETRYABLE_EXCEPTIONS = (
    httpx.ConnectError,
    httpx.ConnectTimeout,
    httpx.ReadTimeout,
    httpx.RemoteProtocolError,
)
_MAX_RETRY_AFTER_SEC = 60.0

_CLIENT_LOCK = threading.RLock()
_HTTP_CLIENT: Optional[httpx.Client] = None
_DEFAULT_CONFIG = DownloadConfiguration()

# --- Client construction helpers ----------------------------------------------


def _build_ssl_context() -> ssl.SSLContext:
    context = ssl.create_default_context()
    context.load_verify_locations(certifi.where())
    return context


def _timeout_for(config: DownloadConfiguration) -> httpx.Timeout:
    connect = float(config.connect_timeout_sec)
    read = float(config.timeout_sec)
    return httpx.Timeout(connect=connect, read=read, write=read, pool=connect)


def _build_http_client(config: DownloadConfiguration) -> httpx.Client:
    return httpx.Client(
        timeout=_timeout_for(config),
        verify=_build_ssl_context(),
        trust_env=True,
        follow_redirects=config.follow_redirects,
        headers={"User-Agent": config.user_agent},
    )


def _close_client_unlocked() -> None:
    global _HTTP_CLIENT
    if _HTTP_CLIENT is not None:
        _HTTP_CLIENT.close()
    _HTTP_CLIENT = None


# --- Retry policy ----------------------------------------------------------------


def _parse_retry_after_value(value: Optional[str]) -> Optional[float]:
    """Convert a Retry-After header value into a delay in seconds."""
    if not value:
        return None
    try:
        delay = float(int(value))
    except ValueError:
        try:
            dt = email.utils.parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        delay = (dt - datetime.now(timezone.utc)).total_seconds()
    return max(0.0, delay)


class _RetryAfterOrBackoff(wait_base):
    """Wait strategy that honours Retry-After before falling back to backoff."""

    def __init__(self, fallback_wait: wait_base, max_delay_seconds: float) -> None:
        self._fallback_wait = fallback_wait
        self._max_delay_seconds = max_delay_seconds

    def __call__(self, retry_state: RetryCallState) -> float:
        outcome = retry_state.outcome
        exc = outcome.exception() if outcome is not None else None
        response = getattr(exc, "response", None) if isinstance(exc, httpx.HTTPStatusError) else None
        if response is not None:
            delay = _parse_retry_after_value(response.headers.get("Retry-After"))
            if delay is not None:
                return min(delay, self._max_delay_seconds)
        return float(self._fallback_wait(retry_state))


def is_retryable(exc: BaseException) -> bool:
    """Return ``True`` for transient transport errors and 429/5xx responses."""

    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS
    return isinstance(exc, _RETRYABLE_EXCEPTIONS)


def create_http_retry_policy(config: Optional[DownloadConfiguration] = None) -> Retrying:
    """Create the Tenacity policy used for every registry request.

    Example:
        >>> policy = create_http_retry_policy(DownloadConfiguration(max_retries=2))
        >>> policy.stop.max_attempt_number
        3
    """
    cfg = config or _DEFAULT_CONFIG
    return Retrying(
        stop=stop_after_attempt(cfg.max_retries + 1),
        wait=_RetryAfterOrBackoff(
            fallback_wait=wait_random_exponential(
                multiplier=cfg.backoff_factor,
                max=_MAX_RETRY_AFTER_SEC,
            ),
            max_delay_seconds=_MAX_RETRY_AFTER_SEC,
        ),
        retry=retry_if_exception(is_retryable),
        before_sleep=before_sleep_log(LOGGER, logging.WARNING),
        reraise=True,
    )


def _as_failure(url: str, exc: httpx.HTTPError) -> DownloadFailure:
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return DownloadFailure(
            f"HTTP {status} while fetching {url}",
            status_code=status,
            retryable=status in RETRYABLE_STATUS,
        )
    return DownloadFailure(
        f"{type(exc).__name__} while fetching {url}: {exc}",
        retryable=is_retryable(exc),
    )


def _call_with_retry(url: str, config: Optional[DownloadConfiguration], fn: Callable[[], Any]) -> Any:
    policy = create_http_retry_policy(config)
    try:
        return policy(fn)
    except httpx.HTTPError as exc:
        LOGGER.error(
            "download failed",
            extra={"stage": "download", "extra_fields": {"url": url, "error": str(exc)}},
        )
        raise _as_failure(url, exc) from exc


# --- Public API ----------------------------------------------------------------


def configure_http_client(
    client: Optional[httpx.Client] = None,
    *,
    default_config: Optional[DownloadConfiguration] = None,
) -> None:
    """Override the shared HTTPX client (tests install ``MockTransport`` clients here)."""

    global _HTTP_CLIENT, _DEFAULT_CONFIG
    with _CLIENT_LOCK:
        if default_config is not None:
            _DEFAULT_CONFIG = default_config
        if client is None or _HTTP_CLIENT is not client:
            _close_client_unlocked()
        _HTTP_CLIENT = client


def reset_http_client() -> None:
    """Drop the shared client and restore the default configuration."""

    global _DEFAULT_CONFIG
    with _CLIENT_LOCK:
        _DEFAULT_CONFIG = DownloadConfiguration()
        _close_client_unlocked()


def get_http_client(config: Optional[DownloadConfiguration] = None) -> httpx.Client:
    """Return the shared HTTPX client, creating it if necessary."""

    global _HTTP_CLIENT
    with _CLIENT_LOCK:
        if _HTTP_CLIENT is None:
            _HTTP_CLIENT = _build_http_client(config or _DEFAULT_CONFIG)
        return _HTTP_CLIENT


def request_with_retry(
    method: str,
    url: str,
    *,
    config: Optional[DownloadConfiguration] = None,
    correlation_id: Optional[str] = None,
    **kwargs: Any,
) -> httpx.Response:
    """Issue a fully-read request, retrying transient failures."""

    cfg = config or _DEFAULT_CONFIG
    client = get_http_client(cfg)
    headers = {**cfg.polite_http_headers(correlation_id=correlation_id), **kwargs.pop("headers", {})}

    def _attempt() -> httpx.Response:
        response = client.request(
            method, url, headers=headers, follow_redirects=cfg.follow_redirects, **kwargs
        )
        response.raise_for_status()
        return response

    response = _call_with_retry(url, cfg, _attempt)
    LOGGER.debug(
        "http-response",
        extra={"stage": "download", "extra_fields": {"url": url, "status": response.status_code}},
    )
    return response


@contextlib.contextmanager
def stream_with_retry(
    url: str,
    *,
    method: str = "GET",
    config: Optional[DownloadConfiguration] = None,
    correlation_id: Optional[str] = None,
) -> Generator[httpx.Response, None, None]:
    """Open a streaming response; only establishing it is retried.

    Failures while the body is being consumed propagate as ``httpx`` errors.
    """

    cfg = config or _DEFAULT_CONFIG
    client = get_http_client(cfg)
    headers = cfg.polite_http_headers(correlation_id=correlation_id)

    def _attempt() -> httpx.Response:
        request = client.build_request(method, url, headers=headers)
        response = client.send(request, stream=True, follow_redirects=cfg.follow_redirects)
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError:
            response.close()
            raise
        return response

    response = _call_with_retry(url, cfg, _attempt)
    try:
        yield response
    finally:
        response.close()


__all__ = [
    "configure_http_client",
    "reset_http_client",
    "get_http_client",
    "create_http_retry_policy",
    "request_with_retry",
    "stream_with_retry",
    "is_retryable",
]
