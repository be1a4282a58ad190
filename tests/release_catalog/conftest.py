"""Shared fixtures for the release catalog suite.

Every test runs against an isolated environment: ``RELEASE_CATALOG_*``
variables are cleared, cache and log directories point into ``tmp_path``,
and retries never sleep.  Network access goes through
:class:`~tests.release_catalog._helpers.FakeReleaseServer` mounted on an
``httpx.MockTransport``.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterator

import httpx
import pytest

from ReleaseCatalog.catalog import Catalog, Release
from ReleaseCatalog.net import build_http_client
from ReleaseCatalog.settings import CatalogSettings, invalidate_default_settings_cache, load_settings
from ReleaseCatalog.versions import SemanticVersion

from ._helpers import BASE_URL, FakeReleaseServer


@pytest.fixture(autouse=True)
def _isolated_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for key in list(os.environ):
        if key.startswith("RELEASE_CATALOG_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("RELEASE_CATALOG_CACHE_DIR", str(tmp_path / "cache"))
    monkeypatch.setenv("RELEASE_CATALOG_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("RELEASE_CATALOG_LOG_JSON", "false")
    monkeypatch.setenv("RELEASE_CATALOG_BACKOFF_FACTOR", "0")
    invalidate_default_settings_cache()
    yield
    invalidate_default_settings_cache()
    logger = logging.getLogger("ReleaseCatalog")
    for handler in list(logger.handlers):
        if getattr(handler, "_release_catalog_managed", False):
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def settings(tmp_path: Path) -> CatalogSettings:
    return load_settings(
        base_url=BASE_URL,
        cache_dir=tmp_path / "cache",
        max_retries=1,
        backoff_factor=0,
        crawl_parallelism=4,
        queue_size=8,
    )


@pytest.fixture
def server() -> FakeReleaseServer:
    return FakeReleaseServer()


@pytest.fixture
def client(settings: CatalogSettings, server: FakeReleaseServer) -> Iterator[httpx.Client]:
    http = build_http_client(settings, transport=httpx.MockTransport(server))
    try:
        yield http
    finally:
        http.close()


@pytest.fixture
def sample_catalog() -> Catalog:
    """Frozen catalog with two products and a handful of builds."""

    catalog = Catalog()
    for product, version, os_name, arch in [
        ("terraform", "0.12.3", "linux", "amd64"),
        ("terraform", "0.12.3", "darwin", "amd64"),
        ("terraform", "0.11.14", "linux", "amd64"),
        ("terraform", "0.12.0-beta1", "linux", "amd64"),
        ("consul", "1.5.0", "linux", "amd64"),
        ("consul", "1.4.4", "windows", "amd64"),
    ]:
        filename = f"{product}_{version}_{os_name}_{arch}.zip"
        catalog.insert(
            Release(
                product=product,
                version=SemanticVersion.parse(version),
                os=os_name,
                arch=arch,
                filename=filename,
                url=f"{BASE_URL}/{product}/{version}/{filename}",
            )
        )
    return catalog.freeze()
