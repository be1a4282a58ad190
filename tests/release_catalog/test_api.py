"""End-to-end catalog building and verified installs."""

from __future__ import annotations

from pathlib import Path

import httpx
import pytest

from ReleaseCatalog import api
from ReleaseCatalog.api import build_catalog, install
from ReleaseCatalog.catalog import Catalog
from ReleaseCatalog.errors import (
    BuildResolutionError,
    ConfigError,
    DigestMismatchError,
    IndexFetchError,
    SumNotFoundError,
)
from ReleaseCatalog.settings import CatalogSettings

from ._helpers import FakeReleaseServer, index_document, listing, make_zip, manifest_for

ARCHIVE = make_zip({"terraform": b"\x7fELF terraform"})
FILENAME = "terraform_0.12.3_linux_amd64.zip"


@pytest.fixture
def published(server: FakeReleaseServer) -> FakeReleaseServer:
    server.add("/index.json", index_document({"terraform": ["0.12.3", "0.11.14"]}), headers={"ETag": '"e1"'})
    server.add(f"/terraform/0.12.3/{FILENAME}", ARCHIVE)
    server.add("/terraform/0.12.3/terraform_0.12.3_SHA256SUMS", manifest_for({FILENAME: ARCHIVE}))
    return server


@pytest.fixture
def catalog(client: httpx.Client, settings: CatalogSettings, published: FakeReleaseServer) -> Catalog:
    return build_catalog(settings, client=client)


def test_build_catalog_index_mode(catalog: Catalog) -> None:
    assert catalog.frozen
    assert catalog.list_versions("terraform") == ["0.11.14", "0.12.3"]


def test_build_catalog_crawl_mode(client: httpx.Client, settings: CatalogSettings, server: FakeReleaseServer) -> None:
    server.add("/", listing("vault/"))
    server.add("/vault/", listing("1.2.0/"))
    server.add("/vault/1.2.0/", listing("vault_1.2.0_linux_amd64.zip"))
    catalog = build_catalog(settings, mode="crawl", client=client)
    assert catalog.list_products() == ["vault"]


def test_build_catalog_rejects_unknown_mode(settings: CatalogSettings) -> None:
    with pytest.raises(ConfigError):
        build_catalog(settings, mode="mirror")  # type: ignore[arg-type]


def test_build_catalog_owns_client_when_none_given(
    settings: CatalogSettings, published: FakeReleaseServer, monkeypatch: pytest.MonkeyPatch
) -> None:
    closed = []

    class TrackingClient(httpx.Client):
        def close(self) -> None:
            closed.append(True)
            super().close()

    monkeypatch.setattr(
        api,
        "build_http_client",
        lambda cfg: TrackingClient(transport=httpx.MockTransport(published)),
    )
    assert "terraform" in build_catalog(settings)
    assert closed == [True]


def test_ingestion_failure_propagates(client: httpx.Client, settings: CatalogSettings) -> None:
    with pytest.raises(IndexFetchError):
        build_catalog(settings, client=client)


def test_install_verifies_then_extracts(
    catalog: Catalog, client: httpx.Client, settings: CatalogSettings, tmp_path: Path
) -> None:
    result = install(
        catalog,
        "terraform",
        destination=tmp_path / "bin",
        os="linux",
        arch="amd64",
        client=client,
        settings=settings,
    )
    assert result.build.filename == FILENAME
    assert result.binary_path == tmp_path / "bin" / "terraform"
    assert result.binary_path.read_bytes() == b"\x7fELF terraform"
    assert len(result.sha256) == 64


def test_tampered_archive_leaves_destination_untouched(
    catalog: Catalog,
    client: httpx.Client,
    settings: CatalogSettings,
    published: FakeReleaseServer,
    tmp_path: Path,
) -> None:
    published.add(f"/terraform/0.12.3/{FILENAME}", make_zip({"terraform": b"malicious"}))
    destination = tmp_path / "bin"
    with pytest.raises(DigestMismatchError):
        install(catalog, "terraform", "0.12.3", destination=destination, os="linux", arch="amd64", client=client, settings=settings)
    assert not destination.exists()


def test_unlisted_archive_is_refused(
    catalog: Catalog,
    client: httpx.Client,
    settings: CatalogSettings,
    published: FakeReleaseServer,
    tmp_path: Path,
) -> None:
    published.add("/terraform/0.12.3/terraform_0.12.3_SHA256SUMS", manifest_for({"terraform_0.12.3_darwin_amd64.zip": b"x"}))
    with pytest.raises(SumNotFoundError):
        install(catalog, "terraform", destination=tmp_path, os="linux", arch="amd64", client=client, settings=settings)
    assert not (tmp_path / "terraform").exists()


def test_install_without_matching_build(
    catalog: Catalog, client: httpx.Client, settings: CatalogSettings, published: FakeReleaseServer, tmp_path: Path
) -> None:
    with pytest.raises(BuildResolutionError):
        install(catalog, "terraform", destination=tmp_path, os="plan9", arch="mips", client=client, settings=settings)
    assert published.hits(f"/terraform/0.12.3/{FILENAME}") == 0
