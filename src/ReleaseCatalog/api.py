"""High-level entry points composing ingestion, resolution, download, and verification.

``build_catalog`` runs one ingestion source and returns the frozen catalog.
``install`` resolves a build and walks it through
download -> verify -> extract, so nothing reaches ``destination`` unless the
archive matched its published checksum.

Both accept an optional ``httpx.Client``; when omitted a client is built from
the settings and closed before returning.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Optional

import httpx

from .artifacts import ArtifactFetcher
from .cancellation import CancellationToken
from .catalog import Build, Catalog
from .checksums import IntegrityVerifier
from .crawler import LinkCrawler
from .errors import ConfigError
from .index import IndexDocumentFetcher
from .net import build_http_client
from .resolver import resolve_build
from .settings import CatalogSettings, get_default_settings

__all__ = ["INGESTION_MODES", "InstallResult", "build_catalog", "install"]

LOGGER = logging.getLogger("ReleaseCatalog.api")

IngestionMode = Literal["index", "crawl"]
INGESTION_MODES = ("index", "crawl")


@dataclass(slots=True, frozen=True)
class InstallResult:
    """Outcome of a verified install."""

    build: Build
    binary_path: Path
    sha256: str


def build_catalog(
    settings: Optional[CatalogSettings] = None,
    *,
    mode: IngestionMode = "index",
    client: Optional[httpx.Client] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> Catalog:
    """Populate a catalog with the selected ingestion source.

    Args:
        settings: Endpoint, cache, and crawl configuration.
        mode: ``"index"`` for the structured document, ``"crawl"`` for listing pages.
        client: HTTP client to reuse; built from ``settings`` when omitted.
        cancel_token: Observed by the crawl; ignored in index mode.

    Returns:
        The frozen catalog.

    Raises:
        ConfigError: For an unknown ``mode``.
        IngestionError: When the source fails; nothing partial is returned.
    """

    cfg = settings or get_default_settings()
    if mode not in INGESTION_MODES:
        raise ConfigError(f"unknown ingestion mode {mode!r}; expected one of {', '.join(INGESTION_MODES)}")
    owns_client = client is None
    http = client or build_http_client(cfg)
    try:
        LOGGER.info("building catalog", extra={"stage": "ingest", "mode": mode, "base_url": cfg.base_url})
        if mode == "crawl":
            return LinkCrawler(http, cfg, cancel_token=cancel_token).crawl()
        return IndexDocumentFetcher(http, cfg).fetch_index()
    finally:
        if owns_client:
            http.close()


def install(
    catalog: Catalog,
    product: str,
    version: Optional[str] = None,
    *,
    destination: Path,
    os: Optional[str] = None,
    arch: Optional[str] = None,
    client: Optional[httpx.Client] = None,
    settings: Optional[CatalogSettings] = None,
) -> InstallResult:
    """Resolve, download, verify, and extract a product binary into ``destination``.

    ``version=None`` installs the latest version; ``os``/``arch`` default to
    the local platform.

    Raises:
        CatalogLookupError: Unknown product/version or no matching build.
        NetworkError: When the archive or manifest cannot be fetched.
        IntegrityError: When the archive fails verification; nothing is extracted.
        ExtractionError: When the archive does not contain the binary.
    """

    cfg = settings or get_default_settings()
    build = resolve_build(catalog, product, version, os=os, arch=arch)
    owns_client = client is None
    http = client or build_http_client(cfg)
    try:
        fetcher = ArtifactFetcher(http, cfg)
        archive = fetcher.download(build)
        digest = IntegrityVerifier(http, cfg).verify(build.filename, archive)
        binary = fetcher.extract(build.product, archive, Path(destination))
    finally:
        if owns_client:
            http.close()
    LOGGER.info(
        "installed",
        extra={"stage": "install", "product": build.product, "version": build.version, "path": str(binary)},
    )
    return InstallResult(build=build, binary_path=binary, sha256=digest)
