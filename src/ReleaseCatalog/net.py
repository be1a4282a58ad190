# === NAVMAP v1 ===
# {
#   "module": "ReleaseCatalog.net",
#   "purpose": "Build HTTPX clients and run requests under a Tenacity retry policy",
#   "sections": [
#     {"id": "helpers", "name": "Client construction helpers", "anchor": "HELP", "kind": "helpers"},
#     {"id": "retry", "name": "Retry policy", "anchor": "RETRY", "kind": "api"},
#     {"id": "api", "name": "Public API", "anchor": "API", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""HTTPX client construction and retrying request helpers.

Every network fetch in the package (index document, listing pages, checksum
manifests, artifacts) goes through a client built here, so each request has
an explicit per-phase timeout and transient failures (connect errors, read
timeouts, 429 and 5xx responses) are retried with jittered exponential
backoff.  Non-success responses are converted into
:class:`~ReleaseCatalog.errors.NetworkError`.
"""

from __future__ import annotations

import logging
import ssl
import time
from typing import Optional

import certifi
import httpx
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_random_exponential,
)

from .errors import NetworkError
from .settings import CatalogSettings, get_default_settings

__all__ = [
    "RETRYABLE_STATUS_CODES",
    "build_http_client",
    "create_retry_policy",
    "ensure_success",
    "get_bytes",
    "is_retryable_error",
]

LOGGER = logging.getLogger("ReleaseCatalog.net")

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

# --- Client construction helpers ----------------------------------------------


def _build_ssl_context() -> ssl.SSLContext:
    return ssl.create_default_context(cafile=certifi.where())


def _timeout_for(settings: CatalogSettings) -> httpx.Timeout:
    return httpx.Timeout(
        connect=settings.connect_timeout_sec,
        read=settings.timeout_sec,
        write=settings.timeout_sec,
        pool=settings.connect_timeout_sec,
    )


def _limits_for(settings: CatalogSettings) -> httpx.Limits:
    # The crawler keeps up to ``crawl_parallelism`` requests in flight.
    return httpx.Limits(
        max_connections=max(settings.crawl_parallelism * 2, 10),
        max_keepalive_connections=settings.crawl_parallelism,
    )


def _request_hook(request: httpx.Request) -> None:
    request.extensions["release_catalog_start"] = time.perf_counter()


def _response_hook(response: httpx.Response) -> None:
    start = response.request.extensions.get("release_catalog_start")
    elapsed = time.perf_counter() - start if isinstance(start, float) else None
    LOGGER.debug(
        "http response",
        extra={
            "stage": "http",
            "url": str(response.request.url),
            "status": response.status_code,
            "elapsed_sec": round(elapsed, 4) if elapsed is not None else None,
        },
    )


def build_http_client(
    settings: Optional[CatalogSettings] = None,
    *,
    transport: Optional[httpx.BaseTransport] = None,
) -> httpx.Client:
    """Return an HTTPX client configured from ``settings``.

    Args:
        settings: Source of timeouts, connection limits, and polite headers.
        transport: Optional transport override (``httpx.MockTransport`` in tests).
    """

    cfg = settings or get_default_settings()
    kwargs = {}
    if transport is not None:
        kwargs["transport"] = transport
    else:
        kwargs["verify"] = _build_ssl_context()
        kwargs["http2"] = cfg.http2_enabled
    return httpx.Client(
        timeout=_timeout_for(cfg),
        limits=_limits_for(cfg),
        headers=cfg.polite_headers(),
        follow_redirects=True,
        trust_env=True,
        event_hooks={"request": [_request_hook], "response": [_response_hook]},
        **kwargs,
    )


# --- Retry policy ----------------------------------------------------------------


def is_retryable_error(exc: BaseException) -> bool:
    """Return ``True`` for transient transport failures and retryable HTTP statuses."""

    if isinstance(exc, NetworkError):
        return exc.retryable
    return isinstance(exc, (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError))


def create_retry_policy(settings: Optional[CatalogSettings] = None) -> Retrying:
    """Create the Tenacity policy used for every request.

    Use it as an explicit retry loop::

        for attempt in create_retry_policy(settings):
            with attempt:
                ...

    The original exception is re-raised once attempts are exhausted.
    """

    cfg = settings or get_default_settings()
    return Retrying(
        stop=stop_after_attempt(cfg.max_retries + 1),
        wait=wait_random_exponential(multiplier=cfg.backoff_factor, max=30),
        retry=retry_if_exception(is_retryable_error),
        before_sleep=before_sleep_log(LOGGER, logging.WARNING),
        reraise=True,
    )


# --- Public API ----------------------------------------------------------------


def ensure_success(response: httpx.Response) -> httpx.Response:
    """Raise :class:`NetworkError` unless ``response`` has a 2xx status."""

    if response.is_success:
        return response
    status = response.status_code
    raise NetworkError(
        f"GET {response.request.url} returned HTTP {status}",
        url=str(response.request.url),
        status_code=status,
        retryable=status in RETRYABLE_STATUS_CODES,
    )


def get_bytes(
    client: httpx.Client,
    url: str,
    *,
    settings: Optional[CatalogSettings] = None,
    timeout: Optional[float] = None,
) -> bytes:
    """GET ``url`` with retries and return the body.

    Raises:
        NetworkError: On transport failure or a non-success status after retries.
    """

    request_timeout = httpx.USE_CLIENT_DEFAULT if timeout is None else timeout
    try:
        for attempt in create_retry_policy(settings):
            with attempt:
                response = client.get(url, timeout=request_timeout)
                ensure_success(response)
                return response.content
    except NetworkError:
        raise
    except httpx.HTTPError as exc:
        raise NetworkError(f"GET {url} failed: {exc}", url=url) from exc
    raise NetworkError(f"GET {url} failed", url=url)  # pragma: no cover - loop always returns or raises
